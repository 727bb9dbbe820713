"""
Statement introspection for result display.

This module inspects a SQL statement with sqlparse and reports what the
result display needs to know about it: statement type, tables, selected
expressions, ORDER BY and LIMIT clauses and a set of boolean flags.
"""

import re
import sqlparse
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union
from sqlparse import sql, tokens as T


class StatementParseError(Exception):
    """Raised when a statement cannot be analyzed."""
    pass


@dataclass
class TableRef:
    """A table referenced in a FROM or JOIN clause."""
    schema: str
    table: str
    alias: str = ''


@dataclass
class SelectExpr:
    """One expression of the SELECT list."""
    expr: str
    alias: str = ''
    column: str = ''
    table: str = ''
    function: str = ''


@dataclass
class OrderBy:
    """One ORDER BY item; ``expr`` is the expression as written."""
    expr: str
    column: str = ''
    direction: str = 'ASC'


@dataclass
class Limit:
    offset: int
    row_count: int


@dataclass
class StatementInfo:
    """Everything the result display knows about a statement."""
    sql: str
    query_type: str = ''
    select_from: bool = False
    from_tables: List[TableRef] = field(default_factory=list)
    join_tables: List[TableRef] = field(default_factory=list)
    select_expressions: List[SelectExpr] = field(default_factory=list)
    order: List[OrderBy] = field(default_factory=list)
    limit: Optional[Limit] = None
    where_identifiers: List[str] = field(default_factory=list)
    where_text: str = ''
    is_count: bool = False
    is_export: bool = False
    is_func: bool = False
    is_analyse: bool = False
    is_maint: bool = False
    is_explain: bool = False
    is_show: bool = False
    is_procedure: bool = False
    is_group: bool = False
    is_distinct: bool = False
    is_union: bool = False
    is_subquery: bool = False
    has_having: bool = False
    is_process_list: bool = False

    @property
    def select_tables(self) -> List[TableRef]:
        return self.from_tables + self.join_tables


# Aggregates which make a result set non-editable
AGGREGATE_FUNCTIONS = {
    'SUM', 'AVG', 'STD', 'STDDEV', 'STDDEV_POP', 'STDDEV_SAMP', 'VARIANCE',
    'MIN', 'MAX', 'BIT_OR', 'BIT_AND', 'BOOL_AND', 'BOOL_OR', 'STRING_AGG', 'ARRAY_AGG',
}

MAINTENANCE_STATEMENTS = {'CHECK', 'ANALYZE', 'REPAIR', 'OPTIMIZE', 'CHECKSUM', 'VACUUM', 'REINDEX'}

# Clause order of a SELECT statement; used to find where a new clause goes
CLAUSE_RANKS = {
    'SELECT': 0,
    'FROM': 1,
    'WHERE': 2,
    'GROUP BY': 3,
    'HAVING': 4,
    'WINDOW': 5,
    'ORDER BY': 6,
    'LIMIT': 7,
    'OFFSET': 8,
    'FETCH': 9,
    'FOR': 10,
    'END': 11,
}

PROCESS_LIST_PATTERN = re.compile(r'^SHOW\s+(FULL\s+)?PROCESSLIST\b', re.IGNORECASE)
EXPORT_PATTERN = re.compile(r'\bINTO\s+(OUTFILE|DUMPFILE)\b', re.IGNORECASE)
ANALYSE_PATTERN = re.compile(r'\bPROCEDURE\s+ANALYSE\b', re.IGNORECASE)


def quote_identifier(name: str) -> str:
    """Quote a PostgreSQL identifier ("*" stays as is)."""
    if name == '' or name == '*':
        return name
    return '"' + name.replace('"', '""') + '"'


def _normalize_keyword(token) -> str:
    return re.sub(r'\s+', ' ', token.normalized.upper())


def _unquote(name: str) -> str:
    if len(name) >= 2 and name[0] == name[-1] and name[0] in '"`':
        return name[1:-1].replace(name[0] * 2, name[0])
    return name


def _clause_for_keyword(keyword: str) -> Optional[str]:
    """Map a top-level keyword to the clause it opens, if any."""
    if keyword in ('SELECT', 'FROM', 'GROUP BY', 'HAVING', 'WINDOW', 'ORDER BY', 'LIMIT', 'OFFSET', 'FETCH'):
        return keyword
    if keyword.endswith('JOIN'):
        return 'FROM'
    if keyword in ('FOR', 'FOR UPDATE', 'FOR SHARE', 'LOCK'):
        return 'FOR'
    if keyword in ('UNION', 'UNION ALL', 'INTERSECT', 'EXCEPT'):
        return 'SELECT'
    return None


def _meaningful(tokens):
    return [t for t in tokens if not t.is_whitespace and t.ttype not in T.Comment]


def _clause_segments(statement) -> List[Tuple[str, object]]:
    """Pair every top-level token with the clause it belongs to."""
    segments = []
    clause = ''
    for token in statement.tokens:
        if isinstance(token, sql.Where):
            segments.append(('WHERE', token))
            clause = 'WHERE'
            continue
        if token.ttype is T.Punctuation and token.value == ';':
            segments.append(('END', token))
            continue
        if token.is_keyword:
            opened = _clause_for_keyword(_normalize_keyword(token))
            if opened:
                clause = opened
        segments.append((clause, token))
    return segments


class Statement_Analyzer:
    """
    Analyzes SQL statements for result display.

    Provides methods to:
    - Extract statement type, tables, select list, ORDER BY and LIMIT
    - Rewrite the ORDER BY clause of a statement
    - Decide whether a statement is plain browsing of one table
    """

    def analyze(self, sql_query: str) -> StatementInfo:
        """
        Analyze a SQL statement.

        Args:
            sql_query: The statement to analyze

        Returns:
            StatementInfo describing the (first) statement

        Raises:
            StatementParseError: If the statement is empty or cannot be parsed
        """
        if not sql_query or not sql_query.strip():
            raise StatementParseError("Empty SQL query")

        statements = [s for s in sqlparse.parse(sql_query) if _meaningful(s.tokens)]
        if not statements:
            raise StatementParseError("Unable to parse SQL query")
        statement = statements[0]

        info = StatementInfo(sql=sql_query)
        stripped = sqlparse.format(str(statement), strip_comments=True).strip()
        first_word = stripped.split(None, 1)[0].upper() if stripped else ''
        info.query_type = first_word
        if first_word == 'WITH':
            info.query_type = statement.get_type()

        info.is_show = info.query_type == 'SHOW'
        info.is_process_list = bool(PROCESS_LIST_PATTERN.match(stripped))
        info.is_explain = info.query_type in ('EXPLAIN', 'DESCRIBE')
        info.is_maint = info.query_type in MAINTENANCE_STATEMENTS
        info.is_procedure = info.query_type == 'CALL'
        info.is_export = bool(EXPORT_PATTERN.search(stripped)) or info.query_type == 'COPY'
        info.is_analyse = bool(ANALYSE_PATTERN.search(stripped))

        if info.query_type == 'SELECT':
            self._analyze_select(statement, info)

        return info

    def _analyze_select(self, statement, info: StatementInfo) -> None:
        limit_values: List[int] = []
        offset_value: Optional[int] = None

        for clause, token in _clause_segments(statement):
            if token.is_whitespace or token.ttype in T.Comment:
                continue

            if isinstance(token, sql.Where):
                self._collect_where(token, info)
                continue

            if token.is_keyword:
                keyword = _normalize_keyword(token)
                if keyword == 'FROM':
                    info.select_from = True
                elif keyword == 'DISTINCT' and clause == 'SELECT':
                    info.is_distinct = True
                elif keyword == 'GROUP BY':
                    info.is_group = True
                elif keyword == 'HAVING':
                    info.has_having = True
                elif keyword in ('UNION', 'UNION ALL', 'INTERSECT', 'EXCEPT'):
                    info.is_union = True
                elif keyword in ('ASC', 'DESC') and clause == 'ORDER BY' and info.order:
                    # "ORDER BY 1 DESC" is not grouped into an identifier
                    info.order[-1].direction = keyword
                continue

            if clause == 'SELECT':
                for item in self._items(token):
                    info.select_expressions.append(self._select_expression(item, info))
            elif clause == 'FROM':
                for item in self._items(token):
                    self._collect_table(item, info, joined=self._after_join(statement, token))
            elif clause == 'ORDER BY':
                for item in self._items(token):
                    info.order.append(self._order_item(item))
            elif clause == 'LIMIT':
                limit_values.extend(self._integers(token))
            elif clause == 'OFFSET':
                numbers = self._integers(token)
                if numbers:
                    offset_value = numbers[0]

        if limit_values:
            if len(limit_values) >= 2:
                # LIMIT offset, count
                info.limit = Limit(offset=limit_values[0], row_count=limit_values[1])
            else:
                info.limit = Limit(offset=offset_value or 0, row_count=limit_values[0])

        for expression in info.select_expressions:
            if expression.function == 'COUNT':
                info.is_count = True
            elif expression.function in AGGREGATE_FUNCTIONS:
                info.is_func = True

    @staticmethod
    def _items(token) -> list:
        if isinstance(token, sql.IdentifierList):
            return list(token.get_identifiers())
        return [token]

    @staticmethod
    def _integers(token) -> List[int]:
        numbers = []
        for item in token.flatten():
            if item.ttype in T.Number.Integer:
                numbers.append(int(item.value))
        return numbers

    @staticmethod
    def _after_join(statement, token) -> bool:
        """True when the nearest keyword before ``token`` is a JOIN."""
        index = statement.token_index(token)
        for previous in reversed(statement.tokens[:index]):
            if previous.is_whitespace or previous.ttype in T.Comment:
                continue
            if previous.is_keyword:
                return _normalize_keyword(previous).endswith('JOIN')
            return False
        return False

    def _collect_table(self, item, info: StatementInfo, joined: bool) -> None:
        if self._contains_select(item):
            info.is_subquery = True
            return
        if isinstance(item, sql.Parenthesis):
            # JOIN ... USING (column)
            return
        if not isinstance(item, sql.Identifier):
            if item.ttype in T.Name or item.ttype is T.String.Symbol:
                ref = TableRef(schema='', table=_unquote(item.value))
                (info.join_tables if joined else info.from_tables).append(ref)
            return
        if any(isinstance(t, sql.Function) for t in item.tokens):
            # set-returning functions have no table behind them
            return
        ref = TableRef(
            schema=item.get_parent_name() or '',
            table=item.get_real_name() or '',
            alias=item.get_alias() or '',
        )
        (info.join_tables if joined else info.from_tables).append(ref)

    @staticmethod
    def _contains_select(token) -> bool:
        if not token.is_group:
            return False
        return any(t.ttype is T.Keyword.DML and t.normalized == 'SELECT' for t in token.flatten())

    def _select_expression(self, item, info: StatementInfo) -> SelectExpr:
        expression = SelectExpr(expr=str(item).strip())
        if self._contains_select(item):
            info.is_subquery = True
            return expression

        target = item
        if isinstance(item, sql.Identifier):
            expression.alias = item.get_alias() or ''
            target = item.tokens[0]

        if isinstance(target, sql.Function):
            expression.function = (target.get_name() or '').upper()
            return expression

        if isinstance(item, sql.Identifier) and not any(
            isinstance(t, (sql.Function, sql.Operation, sql.Parenthesis)) for t in item.tokens
        ):
            expression.column = item.get_real_name() or ''
            expression.table = item.get_parent_name() or ''
        elif item.ttype is T.Wildcard:
            expression.column = '*'
        return expression

    @staticmethod
    def _order_item(item) -> OrderBy:
        direction = 'ASC'
        expr = str(item).strip()
        column = ''
        if isinstance(item, sql.Identifier):
            ordering = item.get_ordering()
            if ordering:
                direction = ordering.upper()
                expr = re.sub(r'\s+(ASC|DESC)\s*$', '', expr, flags=re.IGNORECASE)
            if not any(isinstance(t, (sql.Function, sql.Operation, sql.Parenthesis)) for t in item.tokens):
                column = item.get_real_name() or ''
        elif item.ttype in T.Name or item.ttype is T.String.Symbol:
            column = _unquote(item.value)
        return OrderBy(expr=expr, column=column, direction=direction)

    @staticmethod
    def _collect_where(where, info: StatementInfo) -> None:
        info.where_text = str(where).strip()[len('WHERE'):].strip()
        for token in where.flatten():
            if token.ttype in T.Name or token.ttype is T.String.Symbol:
                name = _unquote(token.value)
            else:
                continue
            if name not in info.where_identifiers:
                info.where_identifiers.append(name)


def replace_clause(sql_query: str, clause: str, replacement: str) -> str:
    """Drop a top-level clause and put ``replacement`` where it belongs.

    Args:
        sql_query: Statement to rewrite
        clause: Clause name, e.g. "ORDER BY" or "LIMIT" (LIMIT takes OFFSET with it)
        replacement: Full text of the new clause, or '' to only remove it

    Returns:
        str: The rewritten statement
    """
    statement = sqlparse.parse(sql_query)[0]
    removed = {clause}
    if clause == 'LIMIT':
        removed.add('OFFSET')
    rank = CLAUSE_RANKS[clause]

    before, after = [], []
    for name, token in _clause_segments(statement):
        if name in removed:
            continue
        if CLAUSE_RANKS.get(name, 0) > rank:
            after.append(token)
        else:
            before.append(token)

    parts = [''.join(str(t) for t in before).strip(), replacement.strip(), ''.join(str(t) for t in after).strip()]
    return ' '.join(part for part in parts if part)


def get_clause(statement: Union[StatementInfo, str], clause: str) -> str:
    """Return the body of a top-level clause without its keyword."""
    sql_query = statement.sql if isinstance(statement, StatementInfo) else statement
    parsed = sqlparse.parse(sql_query)[0]
    body = []
    opened = False
    for name, token in _clause_segments(parsed):
        if name != clause:
            if opened:
                break
            continue
        if clause == 'WHERE':
            return str(token).strip()[len('WHERE'):].strip()
        if not opened:
            opened = True
            continue
        body.append(str(token))
    return ''.join(body).strip()


def is_just_browsing(info: StatementInfo) -> bool:
    """True for a plain ``SELECT ... FROM one_table`` without filtering or grouping."""
    return (
        not info.is_group
        and not info.is_func
        and not info.is_union
        and not info.is_distinct
        and not info.is_subquery
        and not info.has_having
        and info.select_from
        and len(info.from_tables) == 1
        and not info.join_tables
        and info.where_text.upper() in ('', '1', 'TRUE')
    )


def remove_order_column(sql_query: str, column: str) -> Tuple[str, int]:
    """Rebuild a statement with one column dropped from its ORDER BY.

    Returns:
        Tuple of (new statement, number of ORDER BY items left)
    """
    info = Statement_Analyzer().analyze(sql_query)
    remaining = [order for order in info.order if order.column != column]
    if len(remaining) == len(info.order):
        return sql_query, len(remaining)
    clause = ''
    if remaining:
        clause = 'ORDER BY ' + ', '.join(f"{order.expr} {order.direction}" for order in remaining)
    return replace_clause(sql_query, 'ORDER BY', clause), len(remaining)
