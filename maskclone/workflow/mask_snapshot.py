"""Orchestrator for the clone → mask → snapshot workflow.

Implements the run as one sequential task:

1. **Validate** config and resolve the source cluster and mask script.
2. **Clone** the source cluster copy-on-write into a temp cluster and
   attach a single writer instance.
3. **Mask**: run the script (and optionally an interactive prompt)
   against the writer endpoint.
4. **Snapshot** once the cluster's latest restorable time has passed the
   end of the mask, then optionally **export** the snapshot to S3.

Everything after the clone call runs inside a :class:`CleanupGuard`, so
the temp instance and cluster are deleted on every exit path.  With
export enabled they are deleted early, right after the snapshot call.
"""

from __future__ import annotations

import io
import logging
import random
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import IO, Any, Callable, Optional

from maskclone import ui
from maskclone.config.models import MaskConfig, validate_config
from maskclone.errors import (
    ConfigurationError,
    ExecutionError,
    ExportTaskError,
    MaskCloneError,
    OperationCancelled,
    ProviderCallError,
    ResourceNotFoundError,
    SessionAbortError,
)
from maskclone.lifecycle.backoff import (
    DEFAULT_INTERVAL,
    DEFAULT_WAIT_BUDGET,
    CancelToken,
    ProbeResult,
    WaitSpec,
    wait_until,
)
from maskclone.lifecycle.cleanup import CleanupGuard
from maskclone.lifecycle.ids import (
    export_task_identifier,
    instance_identifier,
    snapshot_identifier,
    temp_cluster_identifier,
)
from maskclone.mask.executor import resolve_dbtype
from maskclone.mask.session import MaskSession, session_prompt

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILURE = 1
EXIT_AWS_FAILURE = 2
EXIT_MASK_FAILURE = 3
EXIT_CANCELLED = 130

#: Extra constant-phase intervals a wait may spend in the exponential phase.
GRACE_INTERVALS = 10


def exit_code_for(exc: BaseException) -> int:
    """Map a workflow exception onto an ``EXIT_*`` constant."""
    if isinstance(exc, (OperationCancelled, KeyboardInterrupt)):
        return EXIT_CANCELLED
    if isinstance(exc, ConfigurationError):
        return EXIT_VALIDATION_FAILURE
    if isinstance(exc, (ExecutionError, SessionAbortError)):
        return EXIT_MASK_FAILURE
    return EXIT_AWS_FAILURE


@dataclass
class RunResult:
    """What a successful run produced."""

    temp_cluster_id: str
    snapshot_id: str
    snapshot_arn: str = ""
    export_task_id: Optional[str] = None
    masked_at: Optional[datetime] = None
    elapsed_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class MaskSnapshotWorkflow:
    """One configured run against one provider.

    *executor_factory* is called as ``factory(cfg, dbtype, host, port)``
    and *read_location* as ``read_location(location) -> bytes``.
    """

    def __init__(
        self,
        cfg: MaskConfig,
        provider: Any,
        *,
        executor_factory: Optional[Callable[..., Any]] = None,
        read_location: Optional[Callable[[str], bytes]] = None,
        stdin: Optional[IO[str]] = None,
        stderr: Optional[IO[str]] = None,
        log: Optional[logging.Logger] = None,
        wait_interval: float = DEFAULT_INTERVAL,
        wait_budget: float = DEFAULT_WAIT_BUDGET,
        rand: Callable[[float, float], float] = random.uniform,
    ) -> None:
        if executor_factory is None:
            from maskclone.mask.executor import new_executor as executor_factory
        if read_location is None:
            from maskclone.aws.s3 import read_location
        self.cfg = cfg
        self.provider = provider
        self.executor_factory = executor_factory
        self.read_location = read_location
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stderr = stderr if stderr is not None else sys.stderr
        self.log = log or logger
        self.wait_interval = wait_interval
        self.wait_budget = wait_budget
        self.rand = rand

    # -- waits ------------------------------------------------------------

    def _wait(self, token: CancelToken, what: str, probe: Callable[[], ProbeResult]) -> Any:
        spec = WaitSpec(budget=self.wait_budget, interval=self.wait_interval)
        child = token.child(self.wait_budget + GRACE_INTERVALS * self.wait_interval)
        self.log.info("Wait %s ...", what)
        ui.step(f"Waiting for {what}")
        try:
            return wait_until(child, spec, probe, log=self.log, rand=self.rand)
        finally:
            ui.clear_progress()

    def _cluster_available(self, cluster_id: str) -> Callable[[], ProbeResult]:
        def probe() -> ProbeResult:
            cluster = self.provider.describe_cluster(cluster_id)
            if cluster.available:
                return ProbeResult.met(cluster, f"db cluster status is {cluster.status}")
            return ProbeResult.pending(f"db cluster status is {cluster.status} ...")
        return probe

    def _instance_available(self, instance_id: str) -> Callable[[], ProbeResult]:
        def probe() -> ProbeResult:
            instance = self.provider.describe_instance(instance_id)
            if instance.available:
                return ProbeResult.met(instance, f"db instance status is {instance.status}")
            return ProbeResult.pending(f"db instance status is {instance.status} ...")
        return probe

    def _writer_endpoint_available(self, cluster_id: str) -> Callable[[], ProbeResult]:
        def probe() -> ProbeResult:
            endpoints = self.provider.describe_cluster_endpoints(cluster_id)
            if not endpoints:
                return ProbeResult.failed(ResourceNotFoundError(
                    "DescribeDBClusterEndpoints",
                    f"writer endpoint of db cluster `{cluster_id}` not found",
                ))
            endpoint = endpoints[0]
            if endpoint.available:
                return ProbeResult.met(endpoint, f"db endpoint status is {endpoint.status}")
            return ProbeResult.pending(f"db endpoint status is {endpoint.status} ...")
        return probe

    def _restorable_after(self, cluster_id: str, masked_at: datetime) -> Callable[[], ProbeResult]:
        def probe() -> ProbeResult:
            cluster = self.provider.describe_cluster(cluster_id)
            lrt = cluster.latest_restorable_time
            if lrt is not None and lrt > masked_at:
                return ProbeResult.met(cluster, f"latest restorable time is {lrt.isoformat()}")
            shown = lrt.isoformat() if lrt is not None else "unset"
            return ProbeResult.pending(
                f"latest restorable time {shown} is not after {masked_at.isoformat()} ..."
            )
        return probe

    def _snapshot_available(self, snapshot_id: str) -> Callable[[], ProbeResult]:
        def probe() -> ProbeResult:
            snapshot = self.provider.describe_cluster_snapshot(snapshot_id)
            if snapshot.available:
                return ProbeResult.met(snapshot, f"db cluster snapshot status is {snapshot.status}")
            ui.progress_line(f"snapshot {snapshot_id}: {snapshot.percent_progress}%")
            return ProbeResult.pending(
                f"db cluster snapshot status is {snapshot.status} "
                f"({snapshot.percent_progress}%) ..."
            )
        return probe

    # -- mask -------------------------------------------------------------

    def _mask(
        self,
        token: CancelToken,
        dbtype: str,
        host: str,
        port: Optional[int],
        cluster_id: str,
        script: Optional[bytes],
    ) -> datetime:
        """Run the script and the interactive prompt; return the completion time."""
        token.raise_if_cancelled()
        executor = self.executor_factory(self.cfg, dbtype, host, port)
        try:
            executor.set_table_select_hook(
                lambda query, table: self.log.info("Query: %s\n%s", query, table)
            )
            if script is not None:
                token.raise_if_cancelled()
                self.log.info("Start mask sql `%s`", self.cfg.sql_file)
                executor.execute(token, io.BytesIO(script))
                self.log.info("End mask sql")
            if self.cfg.interactive:
                self.log.info("Start interactive prompt")
                MaskSession(
                    executor,
                    stdin=self.stdin,
                    stderr=self.stderr,
                    token=token,
                    prompt=session_prompt(cluster_id),
                    log=self.log,
                ).run()
                self.log.info("End interactive prompt")
            return executor.last_execute_time or datetime.now(timezone.utc)
        finally:
            executor.close()

    # -- run --------------------------------------------------------------

    def run(self, source_cluster_id: str = "", token: Optional[CancelToken] = None) -> RunResult:
        """Execute the workflow; raise a :class:`MaskCloneError` on failure."""
        token = token or CancelToken()
        started = time.monotonic()
        cfg = self.cfg

        # -- 1. Validate ----------------------------------------------------------
        validate_config(cfg, self.log)
        source_id = source_cluster_id or cfg.source_db_cluster_identifier
        if not source_id:
            raise ConfigurationError("source db cluster is required")
        script: Optional[bytes] = None
        if cfg.sql_file:
            script = self.read_location(cfg.sql_file)
            try:
                self.log.debug("sql: %s", script.decode("utf-8"))
            except UnicodeDecodeError as exc:
                raise ConfigurationError(
                    f"mask sql {cfg.sql_file} is not valid UTF-8: {exc}"
                ) from exc

        # -- 2. Temp cluster identifier --------------------------------------------
        temp_id = temp_cluster_identifier(
            cfg.temp_cluster.db_cluster_identifier_prefix,
            cfg.temp_cluster.db_cluster_identifier,
        )

        with CleanupGuard(self.provider, log=self.log) as guard:
            # -- 3. Clone -------------------------------------------------------------
            ui.phase("CLONE")
            token.raise_if_cancelled()
            cluster = self.provider.restore_cluster_to_point_in_time(
                source_id,
                temp_id,
                security_group_ids=cfg.temp_cluster.security_group_id_list,
            )
            guard.register_cluster(temp_id)
            self.log.info("Cloned db cluster: %s", cluster.arn or temp_id)
            ui.ok(f"Cloned {source_id} → {temp_id}")
            engine = cluster.engine
            dbtype = resolve_dbtype(engine, self.log)

            # -- 4. Wait cluster -------------------------------------------------------
            cluster = self._wait(
                token, f"db cluster `{temp_id}` available", self._cluster_available(temp_id),
            )

            # -- 5. Create instance ----------------------------------------------------
            instance_id = instance_identifier(temp_id)
            token.raise_if_cancelled()
            instance = self.provider.create_instance(
                temp_id,
                instance_id,
                instance_class=cfg.temp_cluster.db_instance_class,
                engine=engine,
                publicly_accessible=cfg.temp_cluster.publicly_accessible,
            )
            guard.register_instance(instance_id)
            self.log.info("Created db instance: %s", instance.arn or instance_id)

            # -- 6. Wait instance ------------------------------------------------------
            self._wait(
                token, f"db instance `{instance_id}` available",
                self._instance_available(instance_id),
            )

            # -- 7. Wait writer endpoint -----------------------------------------------
            endpoint = self._wait(
                token, f"writer endpoint of `{temp_id}` available",
                self._writer_endpoint_available(temp_id),
            )
            ui.ok(f"Writer endpoint ready: {endpoint.endpoint}")

            # -- 8-9. Mask, then wait for the restorable window ------------------------
            masked_at: Optional[datetime] = None
            if script is not None or cfg.interactive:
                ui.phase("MASK")
                masked_at = self._mask(
                    token, dbtype, endpoint.endpoint, cluster.port, temp_id, script,
                )
                ui.ok("Mask finished")
                self._wait(
                    token, f"latest restorable time of `{temp_id}` after mask",
                    self._restorable_after(temp_id, masked_at),
                )

            # -- 10. Snapshot ----------------------------------------------------------
            ui.phase("SNAPSHOT")
            snapshot_id = snapshot_identifier(temp_id)
            self.log.info("Create snapshot: %s", snapshot_id)
            token.raise_if_cancelled()
            snapshot = self.provider.create_cluster_snapshot(temp_id, snapshot_id)
            guard.register_snapshot(snapshot_id)
            self.log.info("Snapshot arn = %s", snapshot.arn)
            ui.ok(f"Snapshot {snapshot_id} created")

            result = RunResult(
                temp_cluster_id=temp_id,
                snapshot_id=snapshot_id,
                snapshot_arn=snapshot.arn,
                masked_at=masked_at,
            )

            # -- 11. No export: guard cleans up on exit --------------------------------
            if not cfg.enable_export_task:
                result.elapsed_seconds = time.monotonic() - started
                return result

            # -- 12. Export -------------------------------------------------------------
            ui.phase("EXPORT")
            guard.cleanup()
            snapshot = self._wait(
                token, f"db cluster snapshot `{snapshot_id}` available",
                self._snapshot_available(snapshot_id),
            )
            result.snapshot_arn = snapshot.arn

            task_id = export_task_identifier(snapshot_id, cfg.export_task.task_identifier)
            self.log.info("Start export task, export task identifier=%s", task_id)
            token.raise_if_cancelled()
            try:
                task = self.provider.start_export_task(
                    task_id,
                    iam_role_arn=cfg.export_task.iam_role_arn,
                    kms_key_id=cfg.export_task.kms_key_id,
                    s3_bucket=cfg.export_task.s3_bucket,
                    s3_prefix=cfg.export_task.s3_prefix,
                    export_only=cfg.export_task.export_only_list,
                    source_arn=snapshot.arn,
                )
            except ExportTaskError as exc:
                self._log_export_messages(exc.failure_cause, exc.warning_message)
                raise
            except ProviderCallError as exc:
                raise ExportTaskError(str(exc)) from exc
            self._log_export_messages(task.failure_cause, task.warning_message)
            guard.register_export_task(task.identifier or task_id)
            result.export_task_id = task.identifier or task_id
            ui.ok(f"Export task {result.export_task_id} started")

        result.elapsed_seconds = time.monotonic() - started
        return result

    def _log_export_messages(self, failure_cause: Optional[str], warning: Optional[str]) -> None:
        if failure_cause:
            self.log.warning("Export task failure cause: %s", failure_cause)
        if warning:
            self.log.warning("Export task warning: %s", warning)


# ---------------------------------------------------------------------------
# Process-level entry
# ---------------------------------------------------------------------------


def run_mask_workflow(
    cfg: MaskConfig,
    source_cluster_id: str = "",
    *,
    profile: Optional[str] = None,
    region: Optional[str] = None,
    token: Optional[CancelToken] = None,
    provider: Any = None,
    executor_factory: Optional[Callable[..., Any]] = None,
    debug: bool = False,
) -> int:
    """Build the AWS-backed workflow, run it, and report the outcome.

    Returns one of the ``EXIT_*`` constants.
    """
    from functools import partial

    from maskclone.aws.context import AWSContext
    from maskclone.aws.rds import RdsProvider
    from maskclone.aws.s3 import read_location

    if debug:
        logging.getLogger("maskclone").setLevel(logging.DEBUG)

    started = time.monotonic()
    try:
        reader = read_location
        if provider is None:
            aws_ctx = AWSContext.build(profile=profile, region=region)
            provider = RdsProvider.from_context(aws_ctx)
            reader = partial(read_location, session=aws_ctx.session)
            logger.info("AWS context: profile=%s region=%s",
                        aws_ctx.profile or "(default)", aws_ctx.region)

        workflow = MaskSnapshotWorkflow(
            cfg, provider, executor_factory=executor_factory, read_location=reader,
        )
        result = workflow.run(source_cluster_id, token=token)
    except (MaskCloneError, KeyboardInterrupt) as exc:
        code = exit_code_for(exc)
        if code == EXIT_CANCELLED:
            logger.warning("Run cancelled: %s", str(exc) or type(exc).__name__)
            ui.error_panel("Cancelled", f"Run cancelled after {ui.elapsed_str(time.monotonic() - started)}.")
        else:
            logger.error("Run failed: %s", exc)
            ui.error_panel("Run failed", str(exc))
        return code

    body = (
        f"Snapshot:   {result.snapshot_id}\n"
        f"ARN:        {result.snapshot_arn}\n"
    )
    if result.export_task_id:
        body += f"Export:     {result.export_task_id}\n"
    body += f"Elapsed:    {ui.elapsed_str(result.elapsed_seconds)}"
    logger.info("All finished.")
    ui.success_panel("Masked snapshot ready", body)
    return EXIT_SUCCESS
