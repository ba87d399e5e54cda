"""Mask executor: runs SQL scripts against the cloned cluster's writer.

:class:`SqlExecutor` drives the MySQL or PostgreSQL driver through a
SQLAlchemy engine in autocommit mode, one statement at a time.  A
statement ends on a line whose last non-blank character is ``;``, so
scripts written for the ``mysql``/``psql`` command line run unchanged.

Observers:
    *table-select hook* ``fn(query, table)``: called for every
    row-returning statement with the result rendered as a text table.

    *execute hook* ``fn(query, rows_affected, last_insert_id)``: called
    for every other statement.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from typing import IO, Any, Callable, List, Optional, Protocol, Sequence, Union

from rich import box
from rich.console import Console
from rich.table import Table
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from maskclone.errors import ExecutionError

logger = logging.getLogger(__name__)

DBTYPE_MYSQL = "mysql"
DBTYPE_POSTGRESQL = "postgresql"

#: RDS engine name → executor db type.
ENGINE_DBTYPES = {
    "aurora": DBTYPE_MYSQL,
    "aurora-mysql": DBTYPE_MYSQL,
    "mysql": DBTYPE_MYSQL,
    "aurora-postgresql": DBTYPE_POSTGRESQL,
    "postgres": DBTYPE_POSTGRESQL,
}

#: SQLAlchemy driver names per db type.
DRIVERS = {
    DBTYPE_MYSQL: "mysql+mysqlconnector",
    DBTYPE_POSTGRESQL: "postgresql+psycopg2",
}

#: Sends each statement to the DB-API cursor without a parameter argument, so
#: pyformat drivers (psycopg2, mysql-connector) leave `%` in the text alone.
NO_PARAMETERS = {"no_parameters": True}

TableSelectHook = Callable[[str, str], None]
ExecuteHook = Callable[[str, int, int], None]


class Executor(Protocol):
    """What the workflow and the interactive session need from an executor."""

    @property
    def last_execute_time(self) -> Optional[datetime]: ...

    def execute(self, token: Any, reader: IO[Any]) -> None: ...

    def set_table_select_hook(self, hook: Optional[TableSelectHook]) -> None: ...

    def set_execute_hook(self, hook: Optional[ExecuteHook]) -> None: ...

    def close(self) -> None: ...


def resolve_dbtype(engine: str, log: Optional[logging.Logger] = None) -> str:
    """Map an RDS engine name to ``mysql`` or ``postgresql``.

    Unknown engines are treated as MySQL with a warning.
    """
    dbtype = ENGINE_DBTYPES.get(engine)
    if dbtype is None:
        (log or logger).warning(
            "Unknown engine %r; treating the cluster as a MySQL-compatible database.",
            engine,
        )
        return DBTYPE_MYSQL
    return dbtype


def split_statements(script: str) -> List[str]:
    """Split *script* into statement chunks.

    A chunk ends after a line whose stripped text ends with ``;``.
    Trailing text without a terminator forms a final chunk.  Chunks are
    returned verbatim, so ``"".join(split_statements(s)) == s``.
    """
    chunks: List[str] = []
    current: List[str] = []
    for line in script.splitlines(keepends=True):
        current.append(line)
        if line.rstrip().endswith(";"):
            chunks.append("".join(current))
            current = []
    if current:
        chunks.append("".join(current))
    return chunks


def is_comment_only(chunk: str) -> bool:
    """True when *chunk* holds nothing but blank lines and ``--`` comments."""
    for line in chunk.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("--"):
            return False
    return True


def render_table(columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """Render a result set as a plain-text table."""
    table = Table(box=box.ASCII, show_lines=False)
    for column in columns:
        table.add_column(str(column))
    for row in rows:
        table.add_row(*("NULL" if value is None else str(value) for value in row))
    buf = io.StringIO()
    Console(file=buf, width=240, color_system=None, highlight=False).print(table)
    return buf.getvalue().rstrip("\n")


class SqlExecutor:
    """Executes scripts through a SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._conn: Any = None
        self._last_execute_time: Optional[datetime] = None
        self._table_hook: Optional[TableSelectHook] = None
        self._execute_hook: Optional[ExecuteHook] = None

    @property
    def last_execute_time(self) -> Optional[datetime]:
        """UTC time the most recent statement finished, or ``None``."""
        return self._last_execute_time

    def set_table_select_hook(self, hook: Optional[TableSelectHook]) -> None:
        self._table_hook = hook

    def set_execute_hook(self, hook: Optional[ExecuteHook]) -> None:
        self._execute_hook = hook

    def _connection(self) -> Any:
        if self._conn is None:
            try:
                self._conn = self.engine.connect()
            except SQLAlchemyError as exc:
                raise ExecutionError(f"cannot connect to {self.engine.url.host}: {exc}") from exc
        return self._conn

    def execute(self, token: Any, reader: IO[Any]) -> None:
        """Run every statement read from *reader*, stopping at the first error."""
        data: Union[str, bytes] = reader.read()
        try:
            script = data.decode("utf-8") if isinstance(data, bytes) else data
        except UnicodeDecodeError as exc:
            raise ExecutionError(f"script is not valid UTF-8: {exc}") from exc
        conn = self._connection()

        for chunk in split_statements(script):
            if is_comment_only(chunk):
                continue
            if token is not None:
                token.raise_if_cancelled()
            statement = chunk.strip()
            logger.debug("Executing: %s", statement)
            try:
                result = conn.exec_driver_sql(statement, execution_options=NO_PARAMETERS)
                if result.returns_rows:
                    columns = list(result.keys())
                    rows = result.fetchall()
                    self._last_execute_time = datetime.now(timezone.utc)
                    if self._table_hook is not None:
                        self._table_hook(statement, render_table(columns, rows))
                else:
                    rows_affected = max(result.rowcount, 0)
                    last_insert_id = _last_insert_id(result)
                    self._last_execute_time = datetime.now(timezone.utc)
                    if self._execute_hook is not None:
                        self._execute_hook(statement, rows_affected, last_insert_id)
            except SQLAlchemyError as exc:
                raise ExecutionError(f"failed to execute `{statement}`: {exc}") from exc

    def close(self) -> None:
        try:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
        finally:
            self.engine.dispose()


def _last_insert_id(result: Any) -> int:
    try:
        value = result.lastrowid
    except (AttributeError, SQLAlchemyError):
        return 0
    return int(value or 0)


def build_url(cfg: Any, dbtype: str, host: str, port: Optional[int]) -> URL:
    """Return the SQLAlchemy URL for *dbtype* from the run configuration."""
    if dbtype not in DRIVERS:
        raise ExecutionError(f"unknown dbtype {dbtype!r}")
    query = {}
    if dbtype == DBTYPE_POSTGRESQL and cfg.ssl_mode:
        query["sslmode"] = cfg.ssl_mode
    return URL.create(
        DRIVERS[dbtype],
        username=cfg.db_user_name or None,
        password=cfg.db_user_password or None,
        host=host,
        port=port,
        database=cfg.database or None,
        query=query,
    )


def new_executor(cfg: Any, dbtype: str, host: str, port: Optional[int]) -> SqlExecutor:
    """Default executor factory used by the workflow."""
    url = build_url(cfg, dbtype, host, port)
    logger.debug("Creating %s executor for %s:%s", dbtype, host, port)
    try:
        engine = create_engine(url, isolation_level="AUTOCOMMIT", pool_pre_ping=True)
    except SQLAlchemyError as exc:
        raise ExecutionError(f"cannot create {dbtype} engine: {exc}") from exc
    return SqlExecutor(engine)
