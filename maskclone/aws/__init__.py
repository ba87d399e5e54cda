"""AWS service interactions (RDS control plane, S3 locations)."""

from maskclone.aws.context import AWSContext, resolve_profile, resolve_region
from maskclone.aws.rds import (
    ClusterInfo,
    EndpointInfo,
    ExportTaskInfo,
    InstanceInfo,
    RdsProvider,
    ResourceProvider,
    SnapshotInfo,
)
from maskclone.aws.s3 import read_location

__all__ = [
    "AWSContext",
    "ClusterInfo",
    "EndpointInfo",
    "ExportTaskInfo",
    "InstanceInfo",
    "RdsProvider",
    "ResourceProvider",
    "SnapshotInfo",
    "read_location",
    "resolve_profile",
    "resolve_region",
]
