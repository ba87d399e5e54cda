"""Identifier generation for temporary resources."""

from __future__ import annotations

import secrets
import string

ALPHABET = string.ascii_letters + string.digits

#: Length of the random suffix appended to generated cluster ids.
SUFFIX_LENGTH = 10


def random_suffix(length: int = SUFFIX_LENGTH) -> str:
    """Return *length* alphanumeric characters from a CSPRNG."""
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def temp_cluster_identifier(prefix: str, configured: str = "") -> str:
    """Return *configured* if set, else ``<prefix>-<random suffix>``.

    A trailing dash on *prefix* is not doubled.
    """
    if configured:
        return configured
    return f"{prefix.rstrip('-')}-{random_suffix()}"


def instance_identifier(cluster_id: str) -> str:
    return f"{cluster_id}-instance"


def snapshot_identifier(cluster_id: str) -> str:
    return f"{cluster_id}-snapshot"


def export_task_identifier(snapshot_id: str, configured: str = "") -> str:
    return configured or f"{snapshot_id}-export-task"
