"""Pydantic models for maskclone run configuration.

Defines the data structures for:
- The temporary cluster (identifier, instance class, networking)
- The optional snapshot export task
- The top-level run configuration (credentials, script, flags)

A config file, CLI flags and environment variables each produce a
:class:`MaskConfig`; :meth:`MaskConfig.merge_in` layers them.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from maskclone.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_IDENTIFIER_PREFIX = "maskclone"
DEFAULT_INSTANCE_CLASS = "db.t3.small"
DEFAULT_DB_USER_NAME = "root"
DEFAULT_SSL_MODE = "disable"


def _coalesce(preferred: str, fallback: str) -> str:
    return preferred if preferred else fallback


def _split_csv(value: str) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class _ConfigModel(BaseModel):
    """Shared behaviour: ``null`` becomes an empty string for str fields."""

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_empty(cls, value, info):
        if value is None and cls.model_fields[info.field_name].annotation is str:
            return ""
        return value


class TempClusterConfig(_ConfigModel):
    """The throwaway clone and its single writer instance."""

    db_cluster_identifier_prefix: str = ""
    db_cluster_identifier: str = ""
    db_instance_class: str = ""
    security_group_ids: str = ""
    publicly_accessible: bool = False

    @field_validator("security_group_ids", mode="before")
    @classmethod
    def _join_list(cls, value):
        if isinstance(value, (list, tuple)):
            return ",".join(str(v) for v in value)
        return value

    @property
    def security_group_id_list(self) -> List[str]:
        return _split_csv(self.security_group_ids)

    def merge_in(self, other: "TempClusterConfig") -> "TempClusterConfig":
        self.db_cluster_identifier = _coalesce(other.db_cluster_identifier, self.db_cluster_identifier)
        self.db_cluster_identifier_prefix = _coalesce(
            other.db_cluster_identifier_prefix, self.db_cluster_identifier_prefix
        )
        self.db_instance_class = _coalesce(other.db_instance_class, self.db_instance_class)
        self.security_group_ids = _coalesce(other.security_group_ids, self.security_group_ids)
        self.publicly_accessible = other.publicly_accessible or self.publicly_accessible
        return self

    def validate_settings(self, log: logging.Logger) -> None:
        if not self.db_cluster_identifier and not self.db_cluster_identifier_prefix:
            raise ConfigurationError(
                "either db-cluster-identifier or db-cluster-identifier-prefix is required"
            )
        if not self.db_instance_class:
            raise ConfigurationError("db-instance-class is required")
        if not self.db_instance_class.startswith("db."):
            log.warning(
                "db-instance-class %r does not have the `db.` prefix; "
                "the DB instance may fail to create",
                self.db_instance_class,
            )


class ExportTaskConfig(_ConfigModel):
    """Snapshot export to S3."""

    task_identifier: str = ""
    iam_role_arn: str = ""
    kms_key_id: str = ""
    s3_bucket: str = ""
    s3_prefix: str = ""
    export_only: str = ""

    @field_validator("export_only", mode="before")
    @classmethod
    def _join_list(cls, value):
        if isinstance(value, (list, tuple)):
            return ",".join(str(v) for v in value)
        return value

    @property
    def export_only_list(self) -> List[str]:
        return _split_csv(self.export_only)

    def merge_in(self, other: "ExportTaskConfig") -> "ExportTaskConfig":
        for name in ("task_identifier", "iam_role_arn", "kms_key_id",
                     "s3_bucket", "s3_prefix", "export_only"):
            setattr(self, name, _coalesce(getattr(other, name), getattr(self, name)))
        return self

    def validate_settings(self) -> None:
        if not self.iam_role_arn:
            raise ConfigurationError(
                "export-task-iam-role-arn is required when the export task is enabled"
            )
        if not self.kms_key_id:
            raise ConfigurationError(
                "export-task-kms-key-id is required when the export task is enabled"
            )
        if not self.s3_bucket:
            raise ConfigurationError(
                "export-task-s3-bucket is required when the export task is enabled"
            )


class MaskConfig(_ConfigModel):
    """Top-level model for one run.

    Structure::

        source_db_cluster_identifier: <id>
        sql_file: <location>
        db_user_name: <user>
        db_user_password: <password>
        database: <name>
        ssl_mode: <mode>
        interactive: <bool>
        temp_cluster:
          db_cluster_identifier_prefix: <prefix>
          db_instance_class: <class>
          ...
        enable_export_task: <bool>
        export_task:
          iam_role_arn: <arn>
          ...
    """

    temp_cluster: TempClusterConfig = Field(default_factory=TempClusterConfig)
    db_user_name: str = ""
    db_user_password: str = ""
    database: str = ""
    ssl_mode: str = ""
    sql_file: str = ""
    source_db_cluster_identifier: str = ""
    interactive: bool = False

    enable_export_task: bool = False
    export_task: ExportTaskConfig = Field(default_factory=ExportTaskConfig)

    @classmethod
    def defaults(cls) -> "MaskConfig":
        """Built-in defaults; the lowest-precedence layer."""
        return cls(
            temp_cluster=TempClusterConfig(
                db_cluster_identifier_prefix=DEFAULT_CLUSTER_IDENTIFIER_PREFIX,
                db_instance_class=DEFAULT_INSTANCE_CLASS,
            ),
            db_user_name=DEFAULT_DB_USER_NAME,
            ssl_mode=DEFAULT_SSL_MODE,
        )

    def merge_in(self, other: Optional["MaskConfig"]) -> "MaskConfig":
        """Overlay *other* onto this config in place and return ``self``.

        Non-empty strings in *other* win; booleans are OR-ed, so a flag set
        anywhere stays set.
        """
        if other is None:
            return self
        self.temp_cluster.merge_in(other.temp_cluster)
        for name in ("db_user_name", "db_user_password", "database",
                     "ssl_mode", "sql_file", "source_db_cluster_identifier"):
            setattr(self, name, _coalesce(getattr(other, name), getattr(self, name)))
        self.interactive = other.interactive or self.interactive
        self.enable_export_task = other.enable_export_task or self.enable_export_task
        self.export_task.merge_in(other.export_task)
        return self


def validate_config(cfg: MaskConfig, log: Optional[logging.Logger] = None) -> None:
    """Raise :class:`ConfigurationError` if *cfg* cannot drive a run.

    Missing credentials are only warned about: the clone may accept
    whatever the source cluster accepted.
    """
    log = log or logger
    cfg.temp_cluster.validate_settings(log)
    if not cfg.db_user_name:
        log.warning("db-user-name is empty; connecting to the cloned cluster may fail")
    if not cfg.db_user_password:
        log.warning("db-user-password is empty; connecting to the cloned cluster may fail")
    if cfg.enable_export_task:
        cfg.export_task.validate_settings()
