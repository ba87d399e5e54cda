"""CLI entry point for maskclone, built on cli-core-yo.

Provides the ``run`` command, which clones an Aurora cluster, masks it and
leaves a snapshot behind.

Usage::

    maskclone run --sql-file mask.sql source-cluster
    maskclone run --config s3://my-bucket/maskclone.yaml --interactive
    MASKCLONE_DB_USER_PASSWORD=secret maskclone run --sql-file mask.sql src

Every ``run`` option can also be set through ``MASKCLONE_<OPTION>``
(e.g. ``--db-instance-class`` → ``MASKCLONE_DB_INSTANCE_CLASS``).  Flags
and environment override the config file, which overrides the defaults.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
from typing import Any, Dict, Optional

import typer
from cli_core_yo import output
from cli_core_yo.app import create_app
from cli_core_yo.runtime import _reset, initialize
from cli_core_yo.spec import CliSpec, XdgSpec

from maskclone.config.models import ExportTaskConfig, MaskConfig, TempClusterConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "MASKCLONE_"

# ── App specification ────────────────────────────────────────────────────────

spec = CliSpec(
    prog_name="maskclone",
    app_display_name="maskclone",
    dist_name="maskclone",
    root_help=(
        "Create masked snapshots of Aurora clusters through a throwaway "
        "copy-on-write clone."
    ),
    xdg=XdgSpec(app_dir_name="maskclone"),
)

app = create_app(spec)


def _env(option: str) -> str:
    return ENV_PREFIX + option.upper().replace("-", "_")


# ── Root callback (global options) ───────────────────────────────────────────


@app.callback()
def _root_callback(
    json_flag: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON."
    ),
) -> None:
    """Masked Aurora snapshot builder."""
    _reset()
    debug = os.environ.get("CLI_CORE_YO_DEBUG") == "1"
    xdg_paths = app._cli_core_yo_xdg_paths  # type: ignore[attr-defined]
    initialize(spec, xdg_paths, json_mode=json_flag, debug=debug)


# ── Config assembly ──────────────────────────────────────────────────────────


def flags_config(values: Dict[str, Any]) -> MaskConfig:
    """Build the flag/env layer from ``run`` option values (``None`` = unset)."""

    def s(key: str) -> str:
        return values.get(key) or ""

    return MaskConfig(
        temp_cluster=TempClusterConfig(
            db_cluster_identifier_prefix=s("db_cluster_identifier_prefix"),
            db_cluster_identifier=s("db_cluster_identifier"),
            db_instance_class=s("db_instance_class"),
            security_group_ids=s("security_group_ids"),
            publicly_accessible=bool(values.get("publicly_accessible")),
        ),
        db_user_name=s("db_user_name"),
        db_user_password=s("db_user_password"),
        database=s("database"),
        ssl_mode=s("ssl_mode"),
        sql_file=s("sql_file"),
        source_db_cluster_identifier=s("src_db_cluster"),
        interactive=bool(values.get("interactive")),
        enable_export_task=bool(values.get("enable_export_task")),
        export_task=ExportTaskConfig(
            task_identifier=s("export_task_identifier"),
            iam_role_arn=s("export_task_iam_role_arn"),
            kms_key_id=s("export_task_kms_key_id"),
            s3_bucket=s("export_task_s3_bucket"),
            s3_prefix=s("export_task_s3_prefix"),
            export_only=s("export_task_export_only"),
        ),
    )


def build_config(config_path: Optional[str], overrides: MaskConfig) -> MaskConfig:
    """Layer *overrides* over the config file (or the defaults)."""
    from maskclone.config.loader import load_config

    base = load_config(config_path) if config_path else MaskConfig.defaults()
    return base.merge_in(overrides)


def _install_signal_handlers(token: Any) -> Dict[int, Any]:
    """Cancel *token* on SIGTERM/SIGHUP; return the handlers replaced."""

    def _handler(signum: int, _frame: Any) -> None:
        logger.warning("Signal %s caught; cancelling run.", signal.Signals(signum).name)
        token.cancel()

    previous: Dict[int, Any] = {}
    for name in ("SIGTERM", "SIGHUP"):
        sig = getattr(signal, name, None)
        if sig is not None:
            previous[sig] = signal.signal(sig, _handler)
    return previous


def _restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


# ── run command ──────────────────────────────────────────────────────────────


def _opt(name: str, help_text: str) -> Any:
    return typer.Option(None, f"--{name}", envvar=_env(name), help=help_text)


def _flag(name: str, help_text: str) -> Any:
    return typer.Option(False, f"--{name}", envvar=_env(name), help=help_text)


@app.command()
def run(
    source_cluster: Optional[str] = typer.Argument(
        None, help="Source DB cluster identifier (overrides --src-db-cluster).",
    ),
    config: Optional[str] = _opt("config", "Config file location: path, file:// or s3:// URI."),
    sql_file: Optional[str] = _opt("sql-file", "Mask SQL location: path, file:// or s3:// URI."),
    src_db_cluster: Optional[str] = _opt("src-db-cluster", "Source DB cluster identifier."),
    db_cluster_identifier_prefix: Optional[str] = _opt(
        "db-cluster-identifier-prefix", "Prefix for the generated temp cluster identifier.",
    ),
    db_cluster_identifier: Optional[str] = _opt(
        "db-cluster-identifier", "Fixed temp cluster identifier.",
    ),
    db_instance_class: Optional[str] = _opt(
        "db-instance-class", "Temp instance class (default db.t3.small).",
    ),
    publicly_accessible: bool = _flag(
        "publicly-accessible", "Make the temp instance publicly accessible.",
    ),
    security_group_ids: Optional[str] = _opt(
        "security-group-ids", "Comma-separated VPC security group ids for the temp cluster.",
    ),
    db_user_name: Optional[str] = _opt("db-user-name", "DB user name (default root)."),
    db_user_password: Optional[str] = _opt("db-user-password", "DB user password."),
    database: Optional[str] = _opt("database", "Database the mask SQL runs in."),
    ssl_mode: Optional[str] = _opt("ssl-mode", "sslmode for PostgreSQL clusters (default disable)."),
    interactive: bool = _flag(
        "interactive", "Open an SQL prompt after the mask SQL, before the snapshot.",
    ),
    enable_export_task: bool = _flag("enable-export-task", "Export the snapshot to S3."),
    export_task_identifier: Optional[str] = _opt(
        "export-task-identifier", "Export task identifier (default <snapshot>-export-task).",
    ),
    export_task_iam_role_arn: Optional[str] = _opt(
        "export-task-iam-role-arn", "IAM role for the export task. Required with export.",
    ),
    export_task_kms_key_id: Optional[str] = _opt(
        "export-task-kms-key-id", "KMS key for the export task. Required with export.",
    ),
    export_task_s3_bucket: Optional[str] = _opt(
        "export-task-s3-bucket", "Destination bucket. Required with export.",
    ),
    export_task_s3_prefix: Optional[str] = _opt(
        "export-task-s3-prefix", "Destination key prefix.",
    ),
    export_task_export_only: Optional[str] = _opt(
        "export-task-export-only", "Comma-separated databases/tables to export.",
    ),
    profile: Optional[str] = typer.Option(
        None, "--profile", help="AWS CLI profile. Defaults to AWS_PROFILE env var.",
    ),
    region: Optional[str] = typer.Option(
        None, "--region", help="AWS region. Defaults to AWS_DEFAULT_REGION.",
    ),
    debug: bool = _flag("debug", "Enable debug logging."),
) -> None:
    """Clone a cluster, run the mask SQL, and snapshot the result.

    The temp cluster and instance are deleted whatever the outcome.

    Environment variables:
      MASKCLONE_<OPTION>     Any option above, e.g. MASKCLONE_SQL_FILE.
      AWS_PROFILE            Default AWS profile when --profile is omitted.
      AWS_DEFAULT_REGION     Default region; also used for s3:// locations.
    """
    from maskclone.errors import ConfigurationError
    from maskclone.lifecycle.backoff import CancelToken
    from maskclone.workflow.mask_snapshot import EXIT_VALIDATION_FAILURE, run_mask_workflow

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    values = dict(locals())
    try:
        cfg = build_config(config, flags_config(values))
    except ConfigurationError as exc:
        output.error(f"Config: {exc}")
        raise typer.Exit(EXIT_VALIDATION_FAILURE) from exc

    source = source_cluster or ""
    output.action(f"Masking {source or cfg.source_db_cluster_identifier or '(unset)'} ...")

    token = CancelToken()
    previous = _install_signal_handlers(token)
    try:
        rc = run_mask_workflow(
            cfg, source, profile=profile, region=region, token=token, debug=debug,
        )
    finally:
        _restore_signal_handlers(previous)

    if rc == 0:
        output.success("success.")
    raise typer.Exit(rc)


# ── Entry point ──────────────────────────────────────────────────────────────


def main() -> int:
    """Run the CLI and return an exit code."""
    try:
        app()
        return 0
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())
