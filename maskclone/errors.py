"""Exception hierarchy for maskclone workflows.

Every error raised past a module boundary is a :class:`MaskCloneError`.
botocore errors are wrapped by :mod:`maskclone.aws.rds` and driver errors by
:mod:`maskclone.mask.executor`, so callers only need to handle the types
below::

    MaskCloneError
    ├── ConfigurationError
    ├── ProviderCallError
    │   └── ResourceNotFoundError
    ├── WaitTimeoutError
    │   └── WaitCancelledError   (also an OperationCancelled)
    ├── ExecutionError
    ├── SessionAbortError
    ├── ExportTaskError
    └── OperationCancelled
"""

from __future__ import annotations

from typing import Optional


class MaskCloneError(Exception):
    """Base class for all maskclone errors."""


class ConfigurationError(MaskCloneError):
    """Invalid or incomplete configuration, detected before any resource exists."""


class ProviderCallError(MaskCloneError):
    """A control-plane call failed.

    *operation* is the RDS API name (e.g. ``RestoreDBClusterToPointInTime``)
    and is prefixed to the message.
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")


class ResourceNotFoundError(ProviderCallError):
    """A describe call returned no matching resource."""


class WaitTimeoutError(MaskCloneError):
    """A resource never reached the expected state before the wait ended."""


class OperationCancelled(MaskCloneError):
    """The run-scoped cancellation token was cancelled."""


class WaitCancelledError(WaitTimeoutError, OperationCancelled):
    """A wait ended because the run was cancelled rather than by its deadline."""


class ExecutionError(MaskCloneError):
    """The mask executor failed to connect or to run a statement."""


class SessionAbortError(MaskCloneError):
    """The operator aborted the interactive session."""


class ExportTaskError(MaskCloneError):
    """The snapshot export task could not be started."""

    def __init__(
        self,
        message: str,
        *,
        failure_cause: Optional[str] = None,
        warning_message: Optional[str] = None,
    ) -> None:
        self.failure_cause = failure_cause
        self.warning_message = warning_message
        super().__init__(message)
