"""Interactive prompt run after the mask script.

The operator can inspect the clone and run more SQL before the snapshot
is taken.  Lines are buffered until one contains ``;`` and the buffer is
then executed as a single script.  Built-in commands:

``help``   list commands
``exit``   leave the prompt and continue to the snapshot
``abort``  leave the prompt and fail the run (no snapshot)

``^C`` on an empty line and end-of-input both behave like ``exit``.
"""

from __future__ import annotations

import io
import logging
from enum import Enum
from typing import IO, Any, List, Optional

from maskclone.errors import ExecutionError, SessionAbortError

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "commands:\n"
    "\tabort:\tExit prompt as abnormal. Does not create a snapshot\n"
    "\texit:\tExit prompt as successful, continue creating Snapshot\n"
)


class SessionOutcome(str, Enum):
    """How a session ended.

    :meth:`MaskSession.run` returns ``CONTINUE`` or ``EXIT``.  ``ABORT`` is
    never returned; it names the abort case, which :meth:`MaskSession.run`
    reports by raising :class:`SessionAbortError`.
    """

    CONTINUE = "continue"
    ABORT = "abort"
    EXIT = "exit"


def session_prompt(cluster_id: str) -> str:
    return f"aurora[{cluster_id}]> "


class MaskSession:
    """Line-buffered SQL prompt bound to one executor."""

    def __init__(
        self,
        executor: Any,
        *,
        stdin: IO[str],
        stderr: IO[str],
        token: Any = None,
        prompt: str = "aurora> ",
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.executor = executor
        self.stdin = stdin
        self.stderr = stderr
        self.token = token
        self.prompt = prompt
        self.log = log or logger
        self.buffer: List[str] = []

    def _write(self, text: str) -> None:
        self.stderr.write(text)
        self.stderr.flush()

    def _print_table(self, _query: str, table: str) -> None:
        self._write("\n" + table + "\n")

    def _print_result(self, _query: str, rows_affected: int, last_insert_id: int) -> None:
        self._write(
            f"\nQuery OK, {rows_affected} rows affected\nLast insert id = {last_insert_id}\n"
        )

    def _flush(self) -> None:
        script = "\n".join(self.buffer)
        self.buffer = []
        try:
            self.executor.execute(self.token, io.StringIO(script))
        except ExecutionError as exc:
            self._write(f"{exc}\n")

    def run(self) -> SessionOutcome:
        """Read and dispatch lines until exit, abort or end of input.

        Raises :class:`SessionAbortError` on ``abort`` and
        :class:`~maskclone.errors.OperationCancelled` when the run token
        is cancelled.
        """
        self.executor.set_table_select_hook(self._print_table)
        self.executor.set_execute_hook(self._print_result)

        self.log.info("Use the `exit` or `abort` command to leave the prompt.")
        self.log.info("Enter `help` for more information.")

        while True:
            if self.token is not None:
                self.token.raise_if_cancelled()
            self._write(self.prompt)
            try:
                raw = self.stdin.readline()
            except KeyboardInterrupt:
                self._write("^C\n")
                if not self.buffer:
                    return SessionOutcome.CONTINUE
                continue
            if raw == "":
                self._write("exit\n")
                return SessionOutcome.CONTINUE

            line = raw.strip()
            if line.startswith("help"):
                self._write(HELP_TEXT + "\n")
            elif line == "abort":
                self._write("abort prompt.\n")
                raise SessionAbortError("prompt abort")
            elif line == "exit":
                self._write("exit prompt.\n")
                return SessionOutcome.EXIT
            elif line:
                self.buffer.append(line)
                if ";" in line:
                    self._flush()
