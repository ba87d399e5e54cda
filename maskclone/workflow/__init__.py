"""Orchestration workflow (clone, mask, snapshot, export)."""

from maskclone.workflow.mask_snapshot import (
    EXIT_AWS_FAILURE,
    EXIT_CANCELLED,
    EXIT_MASK_FAILURE,
    EXIT_SUCCESS,
    EXIT_VALIDATION_FAILURE,
    MaskSnapshotWorkflow,
    RunResult,
    exit_code_for,
    run_mask_workflow,
)

__all__ = [
    "EXIT_AWS_FAILURE",
    "EXIT_CANCELLED",
    "EXIT_MASK_FAILURE",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_FAILURE",
    "MaskSnapshotWorkflow",
    "RunResult",
    "exit_code_for",
    "run_mask_workflow",
]
