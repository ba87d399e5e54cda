"""Location reader for config files and mask scripts.

A *location* is one of:

- a plain filesystem path (``./mask.sql``)
- a ``file://`` URI (``file:///etc/maskclone/mask.sql``)
- an ``s3://bucket/key`` URI

S3 objects are fetched with a client pinned to the bucket's region.  The
region comes from ``AWS_DEFAULT_REGION`` / ``AWS_REGION`` when set,
otherwise from ``GetBucketLocation``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from maskclone.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _resolve_bucket_region(s3_client: Any, bucket_name: str) -> str:
    """Return the region for *bucket_name*.

    ``LocationConstraint`` of ``None`` means ``us-east-1`` (AWS convention).
    """
    resp = s3_client.get_bucket_location(Bucket=bucket_name)
    loc = resp.get("LocationConstraint")
    return "us-east-1" if loc is None else str(loc)


def _read_file(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"cannot read {path}: {exc}") from exc


def _read_s3(bucket: str, key: str, session: Optional[Any]) -> bytes:
    session = session or boto3.Session()
    region = os.environ.get("AWS_DEFAULT_REGION") or os.environ.get("AWS_REGION")
    try:
        if not region:
            region = _resolve_bucket_region(session.client("s3"), bucket)
            logger.debug("Resolved region %s for bucket %s", region, bucket)
        s3 = session.client("s3", region_name=region)
        resp = s3.get_object(Bucket=bucket, Key=key)
        return resp["Body"].read()
    except (BotoCoreError, ClientError) as exc:
        raise ConfigurationError(f"cannot read s3://{bucket}/{key}: {exc}") from exc


def read_location(location: str, *, session: Optional[Any] = None) -> bytes:
    """Return the raw bytes stored at *location*.

    Raises :class:`ConfigurationError` for unsupported schemes and for
    unreadable files or objects.
    """
    parsed = urlparse(location)
    scheme = parsed.scheme.lower()

    if scheme == "":
        return _read_file(location)
    if scheme == "file":
        path = unquote(parsed.path)
        if parsed.netloc and parsed.netloc != "localhost":
            # file://relative/path
            path = parsed.netloc + path
        return _read_file(path)
    if scheme == "s3":
        key = parsed.path.lstrip("/")
        if not parsed.netloc or not key:
            raise ConfigurationError(f"invalid s3 location: {location}")
        logger.debug("Reading s3://%s/%s", parsed.netloc, key)
        return _read_s3(parsed.netloc, key, session)

    raise ConfigurationError(f"unsupported location scheme {scheme!r}: {location}")
