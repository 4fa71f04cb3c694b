"""Transactional query execution with deadlock-aware retries."""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd
from sqlalchemy.engine import Connection, CursorResult

from sqlconduit.config.models import ExecutorSettings
from sqlconduit.db.binder import Binder, placeholder_name
from sqlconduit.exceptions import (
    EmptyStatement,
    ExecutionError,
    NoExecutableStatements,
    RetryBudgetExhausted,
    SQLConduitError,
    StatementError,
    TransactionError,
    TransientLockError,
)

logger = logging.getLogger(__name__)

# Statements that may return rows
SELECT_VERBS = ('SELECT', 'SHOW', 'HANDLER', 'ANALYZE', 'CHECK', 'DESCRIBE', 'DESC', 'EXPLAIN', 'HELP')

_SELECT_PATTERN = re.compile(
    r'^\s*(\(\s*)*(WITH|' + '|'.join(SELECT_VERBS) + r')\b',
    re.IGNORECASE,
)
_COMMENT_PATTERN = re.compile(r'^\s*(--|#|/\*)')
_QUOTES = ("'", '"', '`')
_TRANSIENT_PATTERN = re.compile(
    r'deadlock|restart(ing)? transaction|unbuffered queries|database is locked',
    re.IGNORECASE,
)
_TRANSIENT_SQLSTATES = frozenset({'40001', '40P01'})
# MySQL: lock wait timeout, deadlock found
_TRANSIENT_MYSQL_CODES = frozenset({1205, 1213})


def is_select(statement: str) -> bool:
    """Check whether a statement is read-only (SELECT-like or a CTE)."""
    return _SELECT_PATTERN.match(statement) is not None


def is_comment(statement: str) -> bool:
    """Check whether a statement starts as a comment."""
    return _COMMENT_PATTERN.match(statement) is not None


def split_statements(script: str) -> List[str]:
    """Split a script into statements usable as an ``execute`` batch.

    The script is cut after every semicolon that sits outside parentheses and
    outside quoted strings or identifiers. Each statement keeps its
    terminating semicolon and is stripped; pieces holding nothing but a
    semicolon are dropped.

    Args:
        script: One or more SQL statements.

    Returns:
        The statements in script order.
    """
    statements = []
    buffer: List[str] = []
    depth = 0
    quote: Optional[str] = None
    index = 0
    while index < len(script):
        char = script[index]
        buffer.append(char)
        if quote:
            if char == '\\' and index + 1 < len(script):
                buffer.append(script[index + 1])
                index += 1
            elif char == quote:
                quote = None
        elif char in _QUOTES:
            quote = char
        elif char == '(':
            depth += 1
        elif char == ')' and depth:
            depth -= 1
        elif char == ';' and not depth:
            statements.append(''.join(buffer).strip())
            buffer = []
        index += 1

    statements.append(''.join(buffer).strip())
    return [statement for statement in statements if statement.rstrip(';').strip()]


def is_transient_error(exc: BaseException) -> bool:
    """Classify an exception as a deadlock-class condition worth retrying."""
    if isinstance(exc, TransientLockError):
        return True

    orig = getattr(exc, 'orig', None) or exc
    sqlstate = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True

    args = getattr(orig, 'args', ())
    if args and isinstance(args[0], int) and args[0] in _TRANSIENT_MYSQL_CODES:
        return True

    # only the driver message; the wrapper also renders the SQL and parameters
    return _TRANSIENT_PATTERN.search(str(orig)) is not None


class FetchMode(str, Enum):
    """How a SELECT-shaped call reshapes its rows."""
    ALL = "all"
    ROW = "row"
    COLUMN = "column"
    PAIR = "pair"
    UNIQUE = "unique"


class LastId(str, Enum):
    """Marker for drivers that cannot report the last inserted ID."""
    UNSUPPORTED = "unsupported"


@dataclass
class QueryUnit:
    """A statement with the bindings it runs with."""
    statement: str
    bindings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """Outcome of a single executor call."""
    data: Any = None
    rows_affected: int = 0
    last_id: Union[None, int, str, LastId] = None
    is_select: bool = False
    attempts: int = 1
    execution_time: float = 0.0

    def to_dataframe(self) -> pd.DataFrame:
        """Return rows of an ``ALL`` fetch as a DataFrame."""
        if isinstance(self.data, list) and self.data and isinstance(self.data[0], dict):
            return pd.DataFrame(self.data)
        return pd.DataFrame()


QueryInput = Union[str, Sequence[Union[str, Tuple[str, Mapping[str, Any]]]]]


def _keyed_by_name(bindings: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {placeholder_name(key): value for key, value in (bindings or {}).items()}


def _serialize_bindings(bindings: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not bindings:
        return None
    try:
        return json.dumps({key: repr(value) for key, value in bindings.items()})
    except (TypeError, ValueError):
        return "Failed to JSON encode bindings"


def shape_result(result: CursorResult, fetch: FetchMode, column: int = 0) -> Any:
    """Fetch rows from a result and reshape them for the requested mode."""
    if fetch == FetchMode.ALL:
        return [dict(row) for row in result.mappings().all()]
    if fetch == FetchMode.ROW:
        row = result.mappings().first()
        return dict(row) if row is not None else {}

    rows = result.all()
    if fetch == FetchMode.COLUMN:
        return [row[column] for row in rows]
    if fetch == FetchMode.UNIQUE:
        return list(dict.fromkeys(row[column] for row in rows))
    if fetch == FetchMode.PAIR:
        return {row[column]: row[column + 1] for row in rows}
    raise StatementError(f"Unsupported fetch mode: {fetch}")


class QueryExecutor:
    """Runs statements or batches against a registry connection.

    The executor is the context object holding retry settings and the
    statement counter; calls without an explicit connection use the
    registry's active handle.
    """

    def __init__(
        self,
        registry=None,
        settings: Optional[ExecutorSettings] = None,
        binder: Optional[Binder] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the executor.

        Args:
            registry: ``ConnectionRegistry`` providing the default connection.
            settings: Retry and debug settings.
            binder: Binder used to turn bindings into bound parameters.
            sleep: Blocking delay used between deadlock retries.
        """
        self.registry = registry
        self.settings = settings or ExecutorSettings()
        self.binder = binder or Binder()
        self._sleep = sleep
        self.query_count = 0
        self.last_result: Optional[ExecutionResult] = None

    def resolve_connection(self, connection: Optional[Connection]) -> Connection:
        """Return ``connection`` or, when omitted, the registry's active one."""
        if connection is not None:
            return connection
        if self.registry is None:
            raise ExecutionError("No connection given and no connection registry configured")
        handle = self.registry.open()
        if handle is None:
            raise ExecutionError("Active registry slot has no live connection")
        return handle

    def normalize(self, queries: QueryInput, bindings: Optional[Mapping[str, Any]] = None) -> List[QueryUnit]:
        """Turn the caller's input into a list of query units.

        Raises:
            EmptyStatement: If any statement is blank.
            NoExecutableStatements: If a multi-statement batch only held SELECTs or comments.
        """
        global_bindings = _keyed_by_name(bindings)

        if isinstance(queries, str):
            if not queries.strip():
                raise EmptyStatement("Query is an empty string")
            return [QueryUnit(queries, global_bindings)]

        units = []
        for index, item in enumerate(queries):
            if isinstance(item, str):
                statement, local = item, None
            elif isinstance(item, (tuple, list)) and item:
                statement, local = item[0], (item[1] if len(item) > 1 else None)
            else:
                raise StatementError(f"Query #{index} is not a string or (statement, bindings) pair")

            if not isinstance(statement, str):
                raise StatementError(f"Query #{index} is not a string")
            if not statement.strip():
                raise EmptyStatement(f"Query #{index} is an empty string")

            units.append(QueryUnit(statement, {**global_bindings, **_keyed_by_name(local)}))

        if len(units) > 1:
            units = [
                unit for unit in units
                if not is_select(unit.statement) and not is_comment(unit.statement)
            ]

        if not units:
            raise NoExecutableStatements(
                "No queries were provided or all of them were identified as SELECT-like statements"
            )
        return units

    def execute(
        self,
        queries: QueryInput,
        bindings: Optional[Mapping[str, Any]] = None,
        fetch: FetchMode = FetchMode.ALL,
        column: int = 0,
        transaction: bool = True,
        connection: Optional[Connection] = None,
    ) -> ExecutionResult:
        """Run one statement or a batch.

        Args:
            queries: A statement, or a sequence of statements and
                ``(statement, bindings)`` pairs.
            bindings: Bindings merged into every statement; per-statement
                bindings win on collision.
            fetch: Result shape for a single read-only statement.
            column: Column index used by the column, pair and unique modes.
            transaction: Wrap write batches in a transaction.
            connection: Connection to use instead of the registry's active one.

        Returns:
            ExecutionResult holding shaped rows or the summed affected rows.

        Raises:
            TransactionError: If the transaction cannot be started.
            BindingError: If a value cannot be bound.
            ExecutionError: On any non-transient database failure.
            RetryBudgetExhausted: If every attempt hit a deadlock.
        """
        units = self.normalize(queries, bindings)
        select = len(units) == 1 and is_select(units[0].statement)
        use_transaction = transaction and not select
        conn = self.resolve_connection(connection)

        start_time = time.time()
        last_error: Optional[TransientLockError] = None
        # units committed outside a transaction keep their counts across retries
        committed = ExecutionResult(is_select=select)
        for attempt in range(1, self.settings.max_tries + 1):
            outcome = ExecutionResult(is_select=select) if use_transaction else committed
            try:
                outcome = self._attempt(conn, units, use_transaction, fetch, column, outcome)
            except TransientLockError as e:
                last_error = e
                if attempt < self.settings.max_tries:
                    logger.warning(
                        f"Deadlock on attempt {attempt}/{self.settings.max_tries}, "
                        f"retrying in {self.settings.retry_sleep}s: {e.__cause__}"
                    )
                    self._sleep(self.settings.retry_sleep)
                continue

            outcome.attempts = attempt
            outcome.execution_time = time.time() - start_time
            self.last_result = outcome
            return outcome

        logger.error(f"Giving up after {self.settings.max_tries} deadlocked attempts")
        raise RetryBudgetExhausted(self.settings.max_tries) from last_error

    def _attempt(
        self,
        conn: Connection,
        units: List[QueryUnit],
        use_transaction: bool,
        fetch: FetchMode,
        column: int,
        outcome: ExecutionResult,
    ) -> ExecutionResult:
        """Run the batch once.

        Raises:
            TransientLockError: After rolling back, when the failure is deadlock-class.
        """
        trans = None
        if use_transaction:
            try:
                trans = conn.begin()
            except Exception as e:
                raise TransactionError("Failed to start transaction") from e

        current: Optional[QueryUnit] = None
        current_bindings: Optional[Dict[str, Any]] = None
        try:
            for unit in list(units):
                current = unit
                current_bindings = unit.bindings
                statement, current_bindings = self.binder.prepare(unit.statement, unit.bindings)
                clause = self.binder.bind(statement, current_bindings)

                if self.settings.debug:
                    logger.debug(f"Executing `{statement}` with {_serialize_bindings(current_bindings)}")

                self.query_count += 1
                result = conn.execute(clause)
                try:
                    if outcome.is_select:
                        outcome.data = shape_result(result, fetch, column)
                    else:
                        outcome.rows_affected += max(result.rowcount or 0, 0)
                        last_id = self._read_last_id(conn, result)
                        if last_id is not None:
                            outcome.last_id = last_id
                finally:
                    result.close()

                if trans is None:
                    # each unit is final once run; a retry resumes with the rest
                    units.remove(unit)
                    if conn.in_transaction():
                        conn.commit()

            current = None
            if trans is not None:
                trans.commit()
            return outcome

        except SQLConduitError:
            self._rollback(conn, trans)
            raise
        except Exception as e:
            self._rollback(conn, trans)
            if is_transient_error(e):
                raise TransientLockError(str(e)) from e

            if current is not None:
                serialized = _serialize_bindings(current_bindings)
                message = f"Failed to run query `{current.statement}`"
                if serialized:
                    message += f" with following bindings: {serialized}"
                raise ExecutionError(message, current.statement, serialized) from e
            raise TransactionError("Failed to end transaction") from e

    @staticmethod
    def _read_last_id(conn: Connection, result: CursorResult) -> Union[None, int, str, LastId]:
        if not getattr(conn.dialect, 'postfetch_lastrowid', True):
            # lastrowid is a row OID on these dialects, not the generated key
            return LastId.UNSUPPORTED
        try:
            last_id = result.lastrowid
        except Exception:
            # driver cannot report it without a sequence name or at all
            return LastId.UNSUPPORTED
        return last_id or None

    @staticmethod
    def _rollback(conn: Connection, trans) -> None:
        """Roll back whatever transaction is open; failing to do so is fatal."""
        try:
            if trans is not None:
                trans.rollback()
            elif conn.in_transaction():
                conn.rollback()
        except Exception as e:
            raise ExecutionError("Failed to roll back transaction") from e
