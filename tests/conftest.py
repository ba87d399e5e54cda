"""Shared fakes for workflow, cleanup and session tests."""

from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from maskclone.aws.rds import (
    ClusterInfo,
    EndpointInfo,
    ExportTaskInfo,
    InstanceInfo,
    SnapshotInfo,
)
from maskclone.config.models import MaskConfig
from maskclone.workflow.mask_snapshot import MaskSnapshotWorkflow

ACCOUNT_ARN = "arn:aws:rds:us-east-1:123456789012"


class FakeProvider:
    """In-memory ResourceProvider that records every call in order.

    ``errors`` maps an operation name to an exception raised by that call;
    ``errors_once`` raises only on the first call.
    Status lists are consumed one describe call at a time; the last entry
    repeats.
    """

    def __init__(
        self,
        *,
        engine: str = "aurora-mysql",
        cluster_statuses: Optional[List[str]] = None,
        instance_statuses: Optional[List[str]] = None,
        endpoint_statuses: Optional[List[str]] = None,
        snapshot_statuses: Optional[List[str]] = None,
        export_response: Optional[ExportTaskInfo] = None,
        restorable_times: Optional[List[datetime]] = None,
    ) -> None:
        self.engine = engine
        self.calls: List[Tuple[str, Tuple[Any, ...], Dict[str, Any]]] = []
        self.errors: Dict[str, BaseException] = {}
        self.errors_once: Dict[str, BaseException] = {}
        self.cluster_statuses = list(cluster_statuses or ["available"])
        self.instance_statuses = list(instance_statuses or ["available"])
        self.endpoint_statuses = list(endpoint_statuses or ["available"])
        self.snapshot_statuses = list(snapshot_statuses or ["available"])
        self.export_response = export_response
        self.restorable_times = list(
            restorable_times or [datetime.now(timezone.utc) + timedelta(hours=1)]
        )

    # -- helpers ----------------------------------------------------------

    def _record(self, op: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((op, args, kwargs))
        if op in self.errors_once:
            raise self.errors_once.pop(op)
        if op in self.errors:
            raise self.errors[op]

    @staticmethod
    def _next(statuses: List[str]) -> str:
        return statuses.pop(0) if len(statuses) > 1 else statuses[0]

    def ops(self) -> List[str]:
        return [op for op, _, _ in self.calls]

    def calls_to(self, op: str) -> List[Tuple[Tuple[Any, ...], Dict[str, Any]]]:
        return [(args, kwargs) for name, args, kwargs in self.calls if name == op]

    # -- ResourceProvider -------------------------------------------------

    def restore_cluster_to_point_in_time(self, source_id, target_id, **kwargs):
        self._record("restore_cluster_to_point_in_time", source_id, target_id, **kwargs)
        return ClusterInfo(
            identifier=target_id,
            arn=f"{ACCOUNT_ARN}:cluster:{target_id}",
            status="creating",
            engine=self.engine,
            port=3306,
        )

    def describe_cluster(self, cluster_id):
        self._record("describe_cluster", cluster_id)
        return ClusterInfo(
            identifier=cluster_id,
            arn=f"{ACCOUNT_ARN}:cluster:{cluster_id}",
            status=self._next(self.cluster_statuses),
            engine=self.engine,
            port=3306,
            latest_restorable_time=self._next(self.restorable_times),
        )

    def create_instance(self, cluster_id, instance_id, **kwargs):
        self._record("create_instance", cluster_id, instance_id, **kwargs)
        return InstanceInfo(
            identifier=instance_id, arn=f"{ACCOUNT_ARN}:db:{instance_id}", status="creating",
        )

    def describe_instance(self, instance_id):
        self._record("describe_instance", instance_id)
        return InstanceInfo(identifier=instance_id, status=self._next(self.instance_statuses))

    def describe_cluster_endpoints(self, cluster_id, *, endpoint_type="WRITER"):
        self._record("describe_cluster_endpoints", cluster_id, endpoint_type=endpoint_type)
        return [
            EndpointInfo(
                endpoint=f"{cluster_id}.cluster-abc.us-east-1.rds.amazonaws.com",
                endpoint_type=endpoint_type,
                status=self._next(self.endpoint_statuses),
            )
        ]

    def create_cluster_snapshot(self, cluster_id, snapshot_id):
        self._record("create_cluster_snapshot", cluster_id, snapshot_id)
        return SnapshotInfo(
            identifier=snapshot_id,
            arn=f"{ACCOUNT_ARN}:cluster-snapshot:{snapshot_id}",
            status="creating",
        )

    def describe_cluster_snapshot(self, snapshot_id):
        self._record("describe_cluster_snapshot", snapshot_id)
        return SnapshotInfo(
            identifier=snapshot_id,
            arn=f"{ACCOUNT_ARN}:cluster-snapshot:{snapshot_id}:final",
            status=self._next(self.snapshot_statuses),
            percent_progress=100,
        )

    def start_export_task(self, task_id, **kwargs):
        self._record("start_export_task", task_id, **kwargs)
        return self.export_response or ExportTaskInfo(identifier=task_id, status="STARTING")

    def delete_instance(self, instance_id):
        self._record("delete_instance", instance_id)
        return InstanceInfo(identifier=instance_id, arn=f"{ACCOUNT_ARN}:db:{instance_id}")

    def delete_cluster(self, cluster_id):
        self._record("delete_cluster", cluster_id)
        return ClusterInfo(identifier=cluster_id, arn=f"{ACCOUNT_ARN}:cluster:{cluster_id}")


class FakeExecutor:
    """Executor double that records the exact text it was handed."""

    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self.executed: List[Any] = []
        self.closed = False
        self.last_execute_time: Optional[datetime] = None
        self.table_hook = None
        self.execute_hook = None

    def execute(self, token, reader):
        data = reader.read()
        self.executed.append(data)
        if self.error is not None:
            raise self.error
        self.last_execute_time = datetime.now(timezone.utc)
        if self.execute_hook is not None:
            text = data.decode() if isinstance(data, bytes) else data
            self.execute_hook(text, 1, 0)

    def set_table_select_hook(self, hook):
        self.table_hook = hook

    def set_execute_hook(self, hook):
        self.execute_hook = hook

    def close(self):
        self.closed = True


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def make_workflow():
    """Factory for a workflow wired to fakes with millisecond waits."""

    def _make(
        cfg: MaskConfig,
        provider: FakeProvider,
        executor: Optional[FakeExecutor] = None,
        *,
        files: Optional[Dict[str, bytes]] = None,
        stdin: str = "",
        factory_calls: Optional[list] = None,
    ) -> MaskSnapshotWorkflow:
        executor = executor or FakeExecutor()
        files = files or {}

        def executor_factory(cfg, dbtype, host, port):
            if factory_calls is not None:
                factory_calls.append((dbtype, host, port))
            return executor

        return MaskSnapshotWorkflow(
            cfg,
            provider,
            executor_factory=executor_factory,
            read_location=lambda loc: files[loc],
            stdin=io.StringIO(stdin),
            stderr=io.StringIO(),
            wait_interval=0.001,
            wait_budget=0.05,
            rand=lambda lo, hi: 0.0,
        )

    return _make
