"""SQL execution against the clone and the interactive prompt."""

from maskclone.mask.executor import (
    Executor,
    SqlExecutor,
    new_executor,
    resolve_dbtype,
    split_statements,
)
from maskclone.mask.session import MaskSession, SessionOutcome

__all__ = [
    "Executor",
    "MaskSession",
    "SessionOutcome",
    "SqlExecutor",
    "new_executor",
    "resolve_dbtype",
    "split_statements",
]
