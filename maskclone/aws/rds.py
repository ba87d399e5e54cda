"""RDS control-plane operations used by the mask workflow.

:class:`ResourceProvider` is the interface the workflow and the cleanup
guard depend on; :class:`RdsProvider` implements it on a boto3 ``rds``
client.  Responses are projected onto small dataclasses so nothing
downstream touches raw boto3 dictionaries, and every botocore failure is
re-raised as :class:`~maskclone.errors.ProviderCallError` carrying the
RDS operation name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from maskclone.errors import ExportTaskError, ProviderCallError, ResourceNotFoundError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Status string shared by clusters, instances, endpoints and snapshots.
STATUS_AVAILABLE = "available"

RESTORE_TYPE_COPY_ON_WRITE = "copy-on-write"

ENDPOINT_TYPE_WRITER = "WRITER"

#: Error codes RDS uses when a describe target does not exist.
NOT_FOUND_CODES = frozenset({
    "DBClusterNotFoundFault",
    "DBInstanceNotFound",
    "DBInstanceNotFoundFault",
    "DBClusterSnapshotNotFoundFault",
})


# ---------------------------------------------------------------------------
# Response records
# ---------------------------------------------------------------------------


@dataclass
class ClusterInfo:
    identifier: str
    arn: str = ""
    status: str = ""
    engine: str = ""
    port: Optional[int] = None
    latest_restorable_time: Optional[datetime] = None

    @property
    def available(self) -> bool:
        return self.status.lower() == STATUS_AVAILABLE


@dataclass
class InstanceInfo:
    identifier: str
    arn: str = ""
    status: str = ""

    @property
    def available(self) -> bool:
        return self.status.lower() == STATUS_AVAILABLE


@dataclass
class EndpointInfo:
    endpoint: str
    endpoint_type: str = ""
    status: str = ""

    @property
    def available(self) -> bool:
        return self.status.lower() == STATUS_AVAILABLE


@dataclass
class SnapshotInfo:
    identifier: str
    arn: str = ""
    status: str = ""
    percent_progress: int = 0

    @property
    def available(self) -> bool:
        return self.status.lower() == STATUS_AVAILABLE


@dataclass
class ExportTaskInfo:
    identifier: str
    status: str = ""
    failure_cause: Optional[str] = None
    warning_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class ResourceProvider(Protocol):
    """Control-plane operations consumed by the workflow."""

    def restore_cluster_to_point_in_time(
        self,
        source_id: str,
        target_id: str,
        *,
        restore_type: str = RESTORE_TYPE_COPY_ON_WRITE,
        use_latest_restorable_time: bool = True,
        security_group_ids: Optional[List[str]] = None,
    ) -> ClusterInfo: ...

    def describe_cluster(self, cluster_id: str) -> ClusterInfo: ...

    def create_instance(
        self,
        cluster_id: str,
        instance_id: str,
        *,
        instance_class: str,
        engine: str,
        publicly_accessible: bool = False,
    ) -> InstanceInfo: ...

    def describe_instance(self, instance_id: str) -> InstanceInfo: ...

    def describe_cluster_endpoints(
        self, cluster_id: str, *, endpoint_type: str = ENDPOINT_TYPE_WRITER,
    ) -> List[EndpointInfo]: ...

    def create_cluster_snapshot(self, cluster_id: str, snapshot_id: str) -> SnapshotInfo: ...

    def describe_cluster_snapshot(self, snapshot_id: str) -> SnapshotInfo: ...

    def start_export_task(
        self,
        task_id: str,
        *,
        iam_role_arn: str,
        kms_key_id: str,
        s3_bucket: str,
        s3_prefix: str = "",
        export_only: Optional[List[str]] = None,
        source_arn: str,
    ) -> ExportTaskInfo: ...

    def delete_instance(self, instance_id: str) -> InstanceInfo: ...

    def delete_cluster(self, cluster_id: str) -> ClusterInfo: ...


# ---------------------------------------------------------------------------
# boto3 implementation
# ---------------------------------------------------------------------------


class RdsProvider:
    """:class:`ResourceProvider` backed by a boto3 RDS client."""

    def __init__(self, rds_client: Any) -> None:
        self.client = rds_client

    @classmethod
    def from_context(cls, aws_ctx: Any) -> "RdsProvider":
        return cls(aws_ctx.rds_client())

    # -- clusters ---------------------------------------------------------

    def restore_cluster_to_point_in_time(
        self,
        source_id: str,
        target_id: str,
        *,
        restore_type: str = RESTORE_TYPE_COPY_ON_WRITE,
        use_latest_restorable_time: bool = True,
        security_group_ids: Optional[List[str]] = None,
    ) -> ClusterInfo:
        params: Dict[str, Any] = {
            "SourceDBClusterIdentifier": source_id,
            "DBClusterIdentifier": target_id,
            "RestoreType": restore_type,
            "UseLatestRestorableTime": use_latest_restorable_time,
        }
        if security_group_ids:
            params["VpcSecurityGroupIds"] = list(security_group_ids)
        resp = _call(
            "RestoreDBClusterToPointInTime",
            self.client.restore_db_cluster_to_point_in_time,
            **params,
        )
        return _cluster(resp["DBCluster"])

    def describe_cluster(self, cluster_id: str) -> ClusterInfo:
        resp = _call(
            "DescribeDBClusters",
            self.client.describe_db_clusters,
            DBClusterIdentifier=cluster_id,
        )
        clusters = resp.get("DBClusters", [])
        if not clusters:
            raise ResourceNotFoundError(
                "DescribeDBClusters", f"db cluster `{cluster_id}` not found",
            )
        return _cluster(clusters[0])

    def delete_cluster(self, cluster_id: str) -> ClusterInfo:
        resp = _call(
            "DeleteDBCluster",
            self.client.delete_db_cluster,
            DBClusterIdentifier=cluster_id,
            SkipFinalSnapshot=True,
        )
        return _cluster(resp.get("DBCluster", {"DBClusterIdentifier": cluster_id}))

    # -- instances --------------------------------------------------------

    def create_instance(
        self,
        cluster_id: str,
        instance_id: str,
        *,
        instance_class: str,
        engine: str,
        publicly_accessible: bool = False,
    ) -> InstanceInfo:
        resp = _call(
            "CreateDBInstance",
            self.client.create_db_instance,
            DBClusterIdentifier=cluster_id,
            DBInstanceIdentifier=instance_id,
            DBInstanceClass=instance_class,
            Engine=engine,
            PubliclyAccessible=publicly_accessible,
        )
        return _instance(resp["DBInstance"])

    def describe_instance(self, instance_id: str) -> InstanceInfo:
        resp = _call(
            "DescribeDBInstances",
            self.client.describe_db_instances,
            DBInstanceIdentifier=instance_id,
        )
        instances = resp.get("DBInstances", [])
        if not instances:
            raise ResourceNotFoundError(
                "DescribeDBInstances", f"db instance `{instance_id}` not found",
            )
        return _instance(instances[0])

    def delete_instance(self, instance_id: str) -> InstanceInfo:
        resp = _call(
            "DeleteDBInstance",
            self.client.delete_db_instance,
            DBInstanceIdentifier=instance_id,
            SkipFinalSnapshot=True,
        )
        return _instance(resp.get("DBInstance", {"DBInstanceIdentifier": instance_id}))

    # -- endpoints --------------------------------------------------------

    def describe_cluster_endpoints(
        self, cluster_id: str, *, endpoint_type: str = ENDPOINT_TYPE_WRITER,
    ) -> List[EndpointInfo]:
        resp = _call(
            "DescribeDBClusterEndpoints",
            self.client.describe_db_cluster_endpoints,
            DBClusterIdentifier=cluster_id,
            Filters=[{"Name": "db-cluster-endpoint-type", "Values": [endpoint_type]}],
        )
        return [
            EndpointInfo(
                endpoint=ep.get("Endpoint", ""),
                endpoint_type=ep.get("EndpointType", ""),
                status=ep.get("Status", ""),
            )
            for ep in resp.get("DBClusterEndpoints", [])
        ]

    # -- snapshots --------------------------------------------------------

    def create_cluster_snapshot(self, cluster_id: str, snapshot_id: str) -> SnapshotInfo:
        resp = _call(
            "CreateDBClusterSnapshot",
            self.client.create_db_cluster_snapshot,
            DBClusterIdentifier=cluster_id,
            DBClusterSnapshotIdentifier=snapshot_id,
        )
        return _snapshot(resp["DBClusterSnapshot"])

    def describe_cluster_snapshot(self, snapshot_id: str) -> SnapshotInfo:
        resp = _call(
            "DescribeDBClusterSnapshots",
            self.client.describe_db_cluster_snapshots,
            DBClusterSnapshotIdentifier=snapshot_id,
        )
        snapshots = resp.get("DBClusterSnapshots", [])
        if not snapshots:
            raise ResourceNotFoundError(
                "DescribeDBClusterSnapshots",
                f"db cluster snapshot `{snapshot_id}` not found",
            )
        return _snapshot(snapshots[0])

    # -- export -----------------------------------------------------------

    def start_export_task(
        self,
        task_id: str,
        *,
        iam_role_arn: str,
        kms_key_id: str,
        s3_bucket: str,
        s3_prefix: str = "",
        export_only: Optional[List[str]] = None,
        source_arn: str,
    ) -> ExportTaskInfo:
        params: Dict[str, Any] = {
            "ExportTaskIdentifier": task_id,
            "SourceArn": source_arn,
            "IamRoleArn": iam_role_arn,
            "KmsKeyId": kms_key_id,
            "S3BucketName": s3_bucket,
        }
        if s3_prefix:
            params["S3Prefix"] = s3_prefix
        if export_only:
            params["ExportOnly"] = list(export_only)
        try:
            resp = self.client.start_export_task(**params)
        except ClientError as exc:
            body = exc.response or {}
            raise ExportTaskError(
                f"StartExportTask: {exc}",
                failure_cause=body.get("FailureCause"),
                warning_message=body.get("WarningMessage"),
            ) from exc
        except BotoCoreError as exc:
            raise ExportTaskError(f"StartExportTask: {exc}") from exc
        return ExportTaskInfo(
            identifier=resp.get("ExportTaskIdentifier", task_id),
            status=resp.get("Status", ""),
            failure_cause=resp.get("FailureCause"),
            warning_message=resp.get("WarningMessage"),
        )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _call(operation: str, fn: Callable[..., Dict[str, Any]], **kwargs: Any) -> Dict[str, Any]:
    """Invoke a boto3 method, re-raising botocore errors as ProviderCallError."""
    logger.debug("%s %s", operation, kwargs)
    try:
        return fn(**kwargs)
    except ClientError as exc:
        if _error_code(exc) in NOT_FOUND_CODES:
            raise ResourceNotFoundError(operation, str(exc)) from exc
        raise ProviderCallError(operation, str(exc)) from exc
    except BotoCoreError as exc:
        raise ProviderCallError(operation, str(exc)) from exc


def _error_code(exc: Exception) -> str:
    """Extract the AWS error code from a botocore ClientError (or return '')."""
    response = getattr(exc, "response", None)
    if not response:
        return ""
    return str(response.get("Error", {}).get("Code", ""))


def _cluster(raw: Dict[str, Any]) -> ClusterInfo:
    return ClusterInfo(
        identifier=raw.get("DBClusterIdentifier", ""),
        arn=raw.get("DBClusterArn", ""),
        status=raw.get("Status", ""),
        engine=raw.get("Engine", ""),
        port=raw.get("Port"),
        latest_restorable_time=raw.get("LatestRestorableTime"),
    )


def _instance(raw: Dict[str, Any]) -> InstanceInfo:
    return InstanceInfo(
        identifier=raw.get("DBInstanceIdentifier", ""),
        arn=raw.get("DBInstanceArn", ""),
        status=raw.get("DBInstanceStatus", ""),
    )


def _snapshot(raw: Dict[str, Any]) -> SnapshotInfo:
    return SnapshotInfo(
        identifier=raw.get("DBClusterSnapshotIdentifier", ""),
        arn=raw.get("DBClusterSnapshotArn", ""),
        status=raw.get("Status", ""),
        percent_progress=int(raw.get("PercentProgress") or 0),
    )
