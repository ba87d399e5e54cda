"""Console status output for maskclone runs.

Thin wrapper around :mod:`rich`.  Status goes to **stderr** so stdout
stays clean for ``--json`` consumers and shell pipelines; the interactive
prompt writes to stderr as well.  ``logger.*`` calls remain the record
of what happened; this module is what the operator watches.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

# Shared console; force_terminal=None lets Rich decide from the stream.
console = Console(stderr=True, force_terminal=None)

# ── Symbols ────────────────────────────────────────────────────────────────

_PASS = "[bold green]✓[/]"
_WARN = "[bold yellow]⚠[/]"
_ARROW = "[bold cyan]›[/]"

# ── Phase headers ──────────────────────────────────────────────────────────


def phase(title: str) -> None:
    """Bold header for a workflow stage (``CLONE``, ``MASK``, ``SNAPSHOT``)."""
    console.print()
    console.print(f"[bold blue]── {title} ──[/]")


# ── Status lines ───────────────────────────────────────────────────────────


def ok(msg: str) -> None:
    console.print(f"  {_PASS} {msg}")


def warn(msg: str) -> None:
    console.print(f"  {_WARN} [yellow]{msg}[/]")


def step(msg: str) -> None:
    """An action that is starting now."""
    console.print(f"  {_ARROW} {msg}")


# ── Result panels ──────────────────────────────────────────────────────────


def _panel(title: str, body: str, color: str) -> None:
    console.print()
    console.print(
        Panel(body, title=f"[bold {color}]{title}[/]", border_style=color, padding=(1, 2))
    )


def success_panel(title: str, body: str) -> None:
    _panel(title, body, "green")


def error_panel(title: str, body: str) -> None:
    _panel(title, body, "red")


# ── Wait progress ──────────────────────────────────────────────────────────


def elapsed_str(seconds: float) -> str:
    """Format seconds as ``Xm Ys`` (``Ys`` under a minute)."""
    m, s = divmod(int(seconds), 60)
    return f"{m}m {s}s" if m else f"{s}s"


def progress_line(msg: str) -> None:
    """Status line for a polling loop; overwritten in place on a terminal."""
    if console.is_terminal:
        console.print(f"  {_ARROW} {msg}", end="\r", highlight=False)
    else:
        console.print(f"  {_ARROW} {msg}", highlight=False)


def clear_progress() -> None:
    """Erase the last :func:`progress_line` (terminal only)."""
    if console.is_terminal:
        console.print(" " * console.width, end="\r")
