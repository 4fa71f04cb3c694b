"""Read-only query helpers that reshape results for common access patterns."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.engine import Connection

from sqlconduit.db.binder import Binding, BindType
from sqlconduit.db.executor import FetchMode, QueryExecutor, is_select
from sqlconduit.exceptions import NotASelectStatement, StatementError, UnsupportedJoinType

logger = logging.getLogger(__name__)

_LIMIT_PATTERN = re.compile(
    r'\bLIMIT\s+(\d+|:\w+)(\s*,\s*(\d+|:\w+)|\s+OFFSET\s+(\d+|:\w+))?\s*;?\s*$',
    re.IGNORECASE,
)
_COUNT_PATTERN = re.compile(r'^\s*SELECT\s+COUNT', re.IGNORECASE)
_IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][\w$]*(\.[A-Za-z_][\w$]*)?$')
_JOIN_PATTERN = re.compile(r'(NATURAL\s+)?(INNER|CROSS|(LEFT|RIGHT)(\s+OUTER)?)', re.IGNORECASE)


def ensure_limit(query: str, limit: int = 1) -> str:
    """Append ``LIMIT`` to a query unless it already ends with a LIMIT clause."""
    if _LIMIT_PATTERN.search(query):
        return query
    return f"{query.rstrip().rstrip(';').rstrip()} LIMIT {limit}"


def _identifier(name: str, kind: str = "identifier") -> str:
    if not isinstance(name, str) or not _IDENTIFIER_PATTERN.match(name):
        raise StatementError(f"Invalid {kind} `{name}`")
    return name


def _order(order: str) -> str:
    match = re.search(r'DESC|ASC', order or '', re.IGNORECASE)
    return match.group(0).upper() if match else 'DESC'


def _join(join_type: str) -> str:
    if not _JOIN_PATTERN.fullmatch((join_type or '').strip()):
        raise UnsupportedJoinType(f"Unsupported type of JOIN ({join_type}) was provided")
    return ' '.join(join_type.upper().split()) + ' JOIN'


def _prefix(items: Optional[Sequence[str]]) -> str:
    return ''.join(f"{item}, " for item in items or ())


class Select:
    """Shortcuts for read-only statements run through a :class:`QueryExecutor`."""

    def __init__(self, executor: QueryExecutor) -> None:
        self.executor = executor

    def _run(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]],
        fetch: FetchMode,
        column: int = 0,
        connection: Optional[Connection] = None,
    ) -> Any:
        if not is_select(query):
            raise NotASelectStatement("Query is not one of SELECT, SHOW, HANDLER, ANALYZE, CHECK, DESCRIBE, DESC, EXPLAIN or HELP")
        result = self.executor.execute(query, bindings, fetch=fetch, column=column, connection=connection)
        return result.data

    def select_all(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]] = None,
        connection: Optional[Connection] = None,
    ) -> List[Dict[str, Any]]:
        """Return every row as a column-name to value mapping."""
        return self._run(query, bindings, FetchMode.ALL, connection=connection)

    def select_row(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]] = None,
        connection: Optional[Connection] = None,
    ) -> Dict[str, Any]:
        """Return the first row, or an empty dict when nothing matched.

        ``LIMIT 1`` is appended unless the query already ends with a LIMIT clause.
        """
        return self._run(ensure_limit(query), bindings, FetchMode.ROW, connection=connection)

    def select_column(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]] = None,
        column: int = 0,
        connection: Optional[Connection] = None,
    ) -> List[Any]:
        """Return one column of every row as a flat list."""
        return self._run(query, bindings, FetchMode.COLUMN, column, connection)

    def select_value(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]] = None,
        column: int = 0,
        connection: Optional[Connection] = None,
    ) -> Any:
        """Return the given column of the first row, or None."""
        values = self._run(query, bindings, FetchMode.COLUMN, column, connection)
        return values[0] if values else None

    def select_pair(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]] = None,
        column: int = 0,
        connection: Optional[Connection] = None,
    ) -> Dict[Any, Any]:
        """Map each row's ``column`` value to the value of the column after it."""
        return self._run(query, bindings, FetchMode.PAIR, column, connection)

    def select_unique(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]] = None,
        column: int = 0,
        connection: Optional[Connection] = None,
    ) -> List[Any]:
        """Return the distinct values of one column, in first-seen order."""
        return self._run(query, bindings, FetchMode.UNIQUE, column, connection)

    def count(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]] = None,
        connection: Optional[Connection] = None,
    ) -> int:
        """Run a ``SELECT COUNT`` query and return the first column of its first row.

        Raises:
            NotASelectStatement: If the query does not start with ``SELECT COUNT``.
        """
        if not _COUNT_PATTERN.match(query):
            raise NotASelectStatement("Query is not SELECT COUNT")
        values = self._run(query, bindings, FetchMode.COLUMN, 0, connection)
        if not values or values[0] is None:
            return 0
        return int(values[0])

    def check(
        self,
        query: str,
        bindings: Optional[Mapping[str, Any]] = None,
        connection: Optional[Connection] = None,
    ) -> bool:
        """Return whether the query matched at least one row."""
        return bool(self._run(query, bindings, FetchMode.ALL, connection=connection))

    def select_random(
        self,
        table: str,
        column: Optional[str] = None,
        number: int = 1,
        connection: Optional[Connection] = None,
    ) -> List[Dict[str, Any]]:
        """Return ``number`` random rows of a table, optionally a single column."""
        table = _identifier(table, "table name")
        columns = _identifier(column, "column name") if column else '*'
        connection = self.executor.resolve_connection(connection)
        query = f"SELECT {columns} FROM {table} ORDER BY {self._random_function(connection)} LIMIT :number"
        return self.select_all(query, {'number': Binding(max(number, 1), BindType.LIMIT)}, connection)

    def _random_function(self, connection: Connection) -> str:
        registry = self.executor.registry
        if registry is not None:
            for slot in registry.slots().values():
                if slot.connection is connection:
                    return slot.adapter.random_function()
        return "RAND()" if connection.dialect.name == "mysql" else "RANDOM()"

    def count_unique(
        self,
        table: str,
        column: str,
        where: str = '',
        join_table: str = '',
        join_type: str = 'INNER',
        join_on: str = '',
        join_return: str = '',
        order: str = 'DESC',
        limit: int = 0,
        extra_group: Optional[Sequence[str]] = None,
        alt_join: bool = False,
        extra_columns: Optional[Sequence[str]] = None,
        bindings: Optional[Mapping[str, Any]] = None,
        connection: Optional[Connection] = None,
    ) -> List[Dict[str, Any]]:
        """Count occurrences of each distinct value of a column.

        ``where``, ``join_return``, ``extra_group`` and ``extra_columns`` are
        SQL fragments inserted as-is, so never pass user input in them; use
        placeholders in ``where`` with ``bindings`` instead.

        Args:
            table: Table to count in.
            column: Column whose values are counted.
            where: Optional WHERE condition.
            join_table: Optional table to JOIN with, e.g. to replace IDs with names.
            join_type: JOIN flavour (INNER, CROSS, LEFT, RIGHT, optionally NATURAL or OUTER).
            join_on: Column of ``join_table`` to join on; defaults to ``column``.
            join_return: Expression returned as ``value`` when joining. Required with a JOIN.
            order: ``DESC`` or ``ASC`` order by count.
            limit: Maximum number of rows; 0 means no limit.
            extra_group: Expressions to GROUP BY before the counted value.
            alt_join: Count first and JOIN only the aggregated rows.
            extra_columns: Expressions selected before the counted value.

        Returns:
            Rows with ``value`` and ``count`` keys.
        """
        table = _identifier(table, "table name")
        column = _identifier(column, "column name")
        order = _order(order)
        limit_clause = f" LIMIT {limit}" if limit > 0 else ''
        where_clause = f"WHERE {where} " if where else ''

        if not join_table:
            query = (
                f"SELECT {_prefix(extra_columns)}{table}.{column} AS value, count({table}.{column}) AS count "
                f"FROM {table} {where_clause}GROUP BY {_prefix(extra_group)}value "
                f"ORDER BY count {order}{limit_clause}"
            )
        else:
            join = _join(join_type)
            join_table = _identifier(join_table, "table name")
            if not join_return:
                raise StatementError("No value to return after JOIN was provided")
            join_on = _identifier(join_on or column, "column name")
            if alt_join:
                query = (
                    f"SELECT {join_return} AS value, count FROM ("
                    f"SELECT {_prefix(extra_columns)}{table}.{column}, count({table}.{column}) AS count "
                    f"FROM {table} {where_clause}GROUP BY {_prefix(extra_group)}{table}.{column} "
                    f"ORDER BY count {order}{limit_clause}) tempresult "
                    f"{join} {join_table} ON tempresult.{column}={join_table}.{join_on} "
                    f"ORDER BY count {order}"
                )
            else:
                query = (
                    f"SELECT {join_return} AS value, count({table}.{column}) AS count "
                    f"FROM {table} {join} {join_table} ON {table}.{column}={join_table}.{join_on} "
                    f"{where_clause}GROUP BY {_prefix(extra_group)}value "
                    f"ORDER BY count {order}{limit_clause}"
                )

        logger.debug(f"Aggregate query for `{table}.{column}`: {query}")
        return self.select_all(query, bindings, connection)

    def sum_unique(
        self,
        table: str,
        column: str,
        values: Optional[Sequence[Any]] = None,
        names: Optional[Sequence[str]] = None,
        where: str = '',
        join_table: str = '',
        join_type: str = 'INNER',
        join_on: str = '',
        join_return: str = '',
        order: str = 'DESC',
        limit: int = 0,
        extra_group: Optional[Sequence[str]] = None,
        connection: Optional[Connection] = None,
    ) -> List[Dict[str, Any]]:
        """Count matches of a column against each of ``values``, one output column per value.

        ``values`` defaults to ``[0, 1]`` and ``names`` to ``["false", "true"]``.

        Raises:
            StatementError: If ``values`` and ``names`` differ in length.
        """
        values = list(values) if values else [0, 1]
        names = list(names) if names else ['false', 'true']
        if len(values) != len(names):
            raise StatementError(
                f"Array of names has different number of elements than array of values "
                f"({len(names)} instead of {len(values)})"
            )

        table = _identifier(table, "table name")
        column = _identifier(column, "column name")
        order = _order(order)
        limit_clause = f" LIMIT {limit}" if limit > 0 else ''
        where_clause = f"WHERE {where} " if where else ''

        connection = self.executor.resolve_connection(connection)
        preparer = connection.dialect.identifier_preparer
        sum_fields = ', '.join(
            f"SUM(CASE WHEN {table}.{column} = :value_{index} THEN 1 ELSE 0 END) "
            f"AS {preparer.quote_identifier(str(name))}"
            for index, name in enumerate(names)
        )
        bindings = {f"value_{index}": value for index, value in enumerate(values)}

        if not join_table:
            group_clause = f"GROUP BY {', '.join(extra_group)} " if extra_group else ''
            query = f"SELECT {sum_fields} FROM {table} {where_clause}{group_clause}ORDER BY 1 {order}{limit_clause}"
        else:
            join = _join(join_type)
            join_table = _identifier(join_table, "table name")
            if not join_return:
                raise StatementError("No value to return after JOIN was provided")
            join_on = _identifier(join_on or column, "column name")
            query = (
                f"SELECT {join_return}, {sum_fields} "
                f"FROM {table} {join} {join_table} ON {table}.{column}={join_table}.{join_on} "
                f"{where_clause}GROUP BY {_prefix(extra_group)}1 ORDER BY 1 {order}{limit_clause}"
            )

        logger.debug(f"Aggregate query for `{table}.{column}`: {query}")
        return self.select_all(query, bindings, connection)
