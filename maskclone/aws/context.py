"""Session and region resolution for one maskclone run.

:class:`AWSContext` owns the boto3 session every client of the run is
built from: the RDS provider gets a client with standard-mode retries,
since a run spends most of its time polling describe calls, and the S3
location reader reuses the same credentials.

Region: ``--region`` flag, then ``AWS_DEFAULT_REGION`` / ``AWS_REGION``,
then whatever the profile configures.  Profile: ``--profile`` flag, then
``AWS_PROFILE``, then boto3's default credential chain.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from maskclone.errors import ConfigurationError

logger = logging.getLogger(__name__)

#: Attempts per RDS call, first try included.
RDS_MAX_ATTEMPTS = 10


def resolve_region(region: Optional[str] = None) -> Optional[str]:
    """Return the region to pin the session to, or ``None`` to defer to boto3."""
    return (
        region
        or os.environ.get("AWS_DEFAULT_REGION")
        or os.environ.get("AWS_REGION")
        or None
    )


def resolve_profile(profile: Optional[str] = None) -> Optional[str]:
    return profile or os.environ.get("AWS_PROFILE") or None


@dataclass(frozen=True)
class AWSContext:
    """Resolved profile/region plus the boto3 session built from them."""

    session: Any
    profile: Optional[str] = None
    region: Optional[str] = None

    @classmethod
    def build(
        cls,
        *,
        profile: Optional[str] = None,
        region: Optional[str] = None,
    ) -> "AWSContext":
        """Create the run's session.

        Raises :class:`ConfigurationError` when the profile cannot be
        loaded or no region is configured anywhere.
        """
        profile = resolve_profile(profile)
        try:
            session = boto3.Session(profile_name=profile, region_name=resolve_region(region))
        except (BotoCoreError, ClientError) as exc:
            raise ConfigurationError(
                f"cannot create AWS session for profile {profile or '(default)'}: {exc}"
            ) from exc

        if not session.region_name:
            raise ConfigurationError(
                "AWS region is not set. Export AWS_DEFAULT_REGION or use --region."
            )
        logger.debug("AWS session: profile=%s region=%s", profile or "(default)", session.region_name)
        return cls(session=session, profile=profile, region=session.region_name)

    def client(self, service: str, **kwargs: Any) -> Any:
        return self.session.client(service, **kwargs)

    def rds_client(self) -> Any:
        """RDS client with standard-mode retries for throttled describe calls."""
        retries = Config(retries={"max_attempts": RDS_MAX_ATTEMPTS, "mode": "standard"})
        return self.client("rds", config=retries)
