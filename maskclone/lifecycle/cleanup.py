"""Teardown of the temporary cluster and instance on every exit path.

:class:`CleanupGuard` owns the :class:`TempResourceSet` for a run.  Use it
as a ``with`` block around everything that follows the clone call::

    with CleanupGuard(provider) as guard:
        cluster = provider.restore_cluster_to_point_in_time(...)
        guard.register_cluster(cluster.identifier)
        ...

Leaving the block (normally, by exception, or by ``KeyboardInterrupt``)
runs :meth:`CleanupGuard.cleanup`.  The workflow may also call it early;
anything already deleted is skipped the second time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Optional, Type

from maskclone import ui
from maskclone.errors import ProviderCallError

logger = logging.getLogger(__name__)


@dataclass
class TempResourceSet:
    """Temporary resources created by the current run.

    An id is set only after its create call succeeded, and cleared only
    after its delete call succeeded.  Snapshot and export-task ids are the
    run's product and are never deleted here.
    """

    cluster_id: Optional[str] = None
    instance_id: Optional[str] = None
    snapshot_id: Optional[str] = None
    export_task_id: Optional[str] = None

    @property
    def has_billable(self) -> bool:
        return self.cluster_id is not None or self.instance_id is not None


class CleanupGuard:
    """Idempotent, ordered teardown of the temp instance and cluster."""

    def __init__(self, provider: Any, *, log: Optional[logging.Logger] = None) -> None:
        self.provider = provider
        self.resources = TempResourceSet()
        self.log = log or logger

    # -- registration -----------------------------------------------------

    def register_cluster(self, cluster_id: str) -> None:
        if self.resources.cluster_id is not None:
            raise RuntimeError(
                f"temp cluster already registered: {self.resources.cluster_id}"
            )
        self.resources.cluster_id = cluster_id

    def register_instance(self, instance_id: str) -> None:
        if self.resources.instance_id is not None:
            raise RuntimeError(
                f"temp instance already registered: {self.resources.instance_id}"
            )
        self.resources.instance_id = instance_id

    def register_snapshot(self, snapshot_id: str) -> None:
        self.resources.snapshot_id = snapshot_id

    def register_export_task(self, task_id: str) -> None:
        self.resources.export_task_id = task_id

    # -- teardown ---------------------------------------------------------

    def cleanup(self) -> None:
        """Delete the tracked instance, then the tracked cluster.

        Raises :class:`ProviderCallError` on the first failed delete; ids
        deleted before it stay cleared, the rest stay tracked.
        """
        if not self.resources.has_billable:
            return
        self.log.info("Start cleanup ...")

        instance_id = self.resources.instance_id
        if instance_id is not None:
            deleted = self.provider.delete_instance(instance_id)
            self.log.info("Deleted temp db instance: %s", deleted.arn or instance_id)
            self.resources.instance_id = None

        cluster_id = self.resources.cluster_id
        if cluster_id is not None:
            deleted = self.provider.delete_cluster(cluster_id)
            self.log.info("Deleted temp db cluster: %s", deleted.arn or cluster_id)
            self.resources.cluster_id = None

        self.log.info("Finish cleanup.")

    # -- context manager ----------------------------------------------------

    def __enter__(self) -> "CleanupGuard":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        try:
            self.cleanup()
        except ProviderCallError as cleanup_exc:
            self.log.error("Cleanup failed: %s", cleanup_exc)
            ui.warn(f"Cleanup failed, delete manually: {self._leftovers()} ({cleanup_exc})")
        return False

    def _leftovers(self) -> str:
        parts = []
        if self.resources.instance_id:
            parts.append(f"instance {self.resources.instance_id}")
        if self.resources.cluster_id:
            parts.append(f"cluster {self.resources.cluster_id}")
        return ", ".join(parts) or "(none)"
