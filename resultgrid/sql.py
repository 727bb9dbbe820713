"""
Running a statement and rendering its results.

Query_Runner is the glue between a request and Display_Results: it decides
which statement to run, pages it, counts the rows it would return without
paging, and hands everything to the display.
"""

import csv
import io
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Tuple

from markupsafe import Markup
from psycopg2 import sql as pgsql

from .config.manager import DisplayConfig
from .database.metadata import TYPE_JSON
from .database.result import QueryResult
from .display import session as session_store
from .display.messages import Message
from .display.parts import DisplayParts
from .display.results import Display_Results
from .display.urls import Url_Builder
from .formatting.formatter import Result_Formatter
from .parsing.analyzer import (
    StatementInfo, Statement_Analyzer, StatementParseError, get_clause, is_just_browsing, quote_identifier,
    replace_clause,
)

logger = logging.getLogger(__name__)


@dataclass
class Query_Output:
    """What a run produced, for the page around it."""
    content: Markup
    db: str
    table: str
    sql_query: str
    printview: bool = False
    has_rows: bool = True


def _is_true(value: Any) -> bool:
    return str(value).lower() in ('1', 'true', 'on', 'yes')


class Query_Runner:
    """
    Runs statements for the result display.

    Usage:
        runner = Query_Runner(dbi, display_config, url_builder, renderer)
        output = runner.run(session, db, table, sql_query, request.values)
    """

    def __init__(self, dbi, config: DisplayConfig, url_builder: Url_Builder, renderer,
                 server: Any = 1, formatter: Optional[Result_Formatter] = None):
        self.dbi = dbi
        self.config = config
        self.url_builder = url_builder
        self.renderer = renderer
        self.server = server
        self.formatter = formatter or Result_Formatter()
        self.analyzer = Statement_Analyzer()

    @staticmethod
    def build_default_query(db: str, table: str) -> str:
        return f"SELECT * FROM {quote_identifier(db)}.{quote_identifier(table)}"

    def resolve_query(self, db: str, table: str, sql_query: str) -> Tuple[str, str]:
        """
        The statement to run: the given one, or browsing of ``table``.

        Returns:
            Tuple of (statement, table)

        Raises:
            StatementParseError: If there is neither a statement nor a table
        """
        if sql_query and sql_query.strip():
            return sql_query.strip(), table
        if not table and db:
            table = self.dbi.get_first_table(db)
        if not table:
            raise StatementParseError("Empty SQL query")
        return self.build_default_query(db, table), table

    def apply_remembered_sort(self, session: MutableMapping, db: str, table: str, sql_query: str,
                              info: StatementInfo, request_values: Mapping) -> Tuple[str, StatementInfo]:
        """Remember the ORDER BY used to browse a table and reuse it when browsing it again."""
        if not table or not is_just_browsing(info):
            return sql_query, info

        if 'discard_remembered_sort' in request_values:
            session_store.remove_ui_prop(session, db, table, session_store.PROP_SORTED_COLUMN)
            return sql_query, info

        if info.order:
            session_store.set_ui_prop(
                session, db, table, session_store.PROP_SORTED_COLUMN, get_clause(info, 'ORDER BY'),
            )
            return sql_query, info

        remembered = session_store.get_ui_prop(session, db, table, session_store.PROP_SORTED_COLUMN)
        if not remembered:
            return sql_query, info

        sql_query = replace_clause(sql_query, 'ORDER BY', 'ORDER BY ' + remembered)
        logger.debug("Reusing remembered sort %s for %s.%s", remembered, db, table)
        return sql_query, self.analyzer.analyze(sql_query)

    def is_append_limit_clause(self, info: StatementInfo, tmpval: Mapping) -> bool:
        return (
            tmpval['max_rows'] != session_store.ALL_ROWS
            and not (info.is_export or info.is_analyse)
            and (info.select_from or info.is_subquery)
            and info.limit is None
        )

    def count_unlimited_rows(self, info: StatementInfo, db: str, table: str, sql_query: str,
                             num_rows: int, tmpval: Mapping) -> Tuple[int, bool]:
        """
        Number of rows the statement returns without the appended LIMIT.

        Returns:
            Tuple of (row count, whether it is an estimate)
        """
        if not self.is_append_limit_clause(info, tmpval):
            return num_rows, False
        if tmpval['pos'] == 0 and num_rows < int(tmpval['max_rows']):
            # the first page holds every row
            return num_rows, False
        if table and is_just_browsing(info):
            return self.dbi.count_records(
                db, table, self.config.max_exact_count, self.config.max_exact_count_views,
            )
        return self.dbi.count_query_rows(sql_query, db), False

    def is_editable(self, db: str, table: str, result: QueryResult) -> bool:
        """True when every column of some unique key of ``table`` is in the result."""
        if not table or not result.fields:
            return False
        columns = {meta.orgname for meta in result.fields if meta.orgtable == table}
        if not columns:
            return False
        for index in self.dbi.get_indexes(db, table):
            if (index.is_unique or index.is_primary) and set(index.columns) <= columns:
                return True
        return False

    def _find_real_end(self, db: str, table: str, sql_query: str,
                       tmpval: MutableMapping) -> None:
        count, _ = self.dbi.count_records(db, table, 2 ** 62, 0)
        max_rows = int(tmpval['max_rows'])
        pos = max(0, ((count - 1) // max_rows) * max_rows)
        tmpval['pos'] = pos
        sql_md5 = session_store.query_hash(self.server, db, sql_query)
        tmpval.get('query', {}).get(sql_md5, {})['pos'] = pos

    def _message_block(self, message: Any, sql_query: str, message_type: str) -> Markup:
        if isinstance(message, Message):
            message = message.get_message()
        return self.renderer.render('message.html', {
            'message': message,
            'sql_query': sql_query,
            'message_type': message_type,
        })

    def run(
        self,
        session: MutableMapping,
        db: str,
        table: str,
        sql_query: str,
        request_values: Mapping,
        goto: str = '',
    ) -> Query_Output:
        """
        Run a statement and render its results.

        Args:
            session: The user's session
            db: Current schema
            table: Current table, if any
            sql_query: Statement to run; browsing ``table`` when empty
            request_values: Display options of the request
            goto: Page to return to after a data changing statement

        Returns:
            Query_Output: The rendered results or message

        Raises:
            StatementParseError: If the statement cannot be analyzed
            DatabaseQueryError: If the statement fails
        """
        db = db or self.dbi.default_schema
        sql_query, table = self.resolve_query(db, table, sql_query)
        info = self.analyzer.analyze(sql_query)
        sql_query, info = self.apply_remembered_sort(session, db, table, sql_query, info, request_values)

        if not table and info.query_type == 'SELECT' and len(info.from_tables) == 1:
            table = info.from_tables[0].table
            db = info.from_tables[0].schema or db

        printview = _is_true(request_values.get('printview', ''))
        is_browse_distinct = _is_true(request_values.get('is_browse_distinct', ''))

        display = Display_Results(
            self.dbi, db, table, self.server, goto, sql_query, self.config, session,
            self.renderer, self.url_builder, self.formatter,
        )
        tmpval = display.set_config_params_for_display_table(info, request_values)

        if (request_values.get('find_real_end') and table and is_just_browsing(info)
                and tmpval['max_rows'] != session_store.ALL_ROWS):
            self._find_real_end(db, table, sql_query, tmpval)

        full_sql_query = sql_query
        if self.is_append_limit_clause(info, tmpval):
            full_sql_query = replace_clause(
                sql_query, 'LIMIT', f"LIMIT {int(tmpval['max_rows'])} OFFSET {int(tmpval['pos'])}",
            )

        result = self.dbi.execute_result(full_sql_query, db)

        message_to_show = request_values.get('message_to_show')
        prefix = Markup('')
        if message_to_show:
            prefix = self._message_block(Message.success(message_to_show), '', 'success')

        if not result.has_rows:
            if message_to_show:
                message = Message.success(message_to_show)
            else:
                message = Message.success('%s row(s) affected.')
                message.add_param(max(result.affected_rows, 0))
            return Query_Output(
                self._message_block(message, sql_query, 'success'), db, table, sql_query, printview, False,
            )

        unlim_num_rows, is_approximate = self.count_unlimited_rows(
            info, db, table, sql_query, result.num_rows, tmpval,
        )

        if result.num_rows == 0 and not info.is_show:
            message = Message.success('Your SQL query returned an empty result set (i.e. zero rows).')
            message.add_text('(')
            query_time = Message.notice('Query took %01.4f seconds.)')
            query_time.add_param(result.query_time)
            message.add_message(query_time, '')
            return Query_Output(
                prefix + self._message_block(message, sql_query, 'success'), db, table, sql_query, printview,
            )

        showtable = {
            'is_view': self.dbi.is_view(db, table) if table else False,
            'is_approximate': is_approximate,
        }

        display.set_properties(
            unlim_num_rows,
            result.fields,
            info.is_count,
            info.is_export,
            info.is_func,
            info.is_analyse,
            result.num_rows,
            result.query_time,
            'ltr',
            info.is_maint,
            info.is_explain,
            info.is_show,
            showtable,
            printview,
            self.is_editable(db, table, result),
            is_browse_distinct,
        )

        content = display.get_table(result, DisplayParts(), info)
        logger.info("Displayed %d of %d rows for %s", result.num_rows, unlim_num_rows, table or 'query')
        return Query_Output(prefix + content, db, display.table, sql_query, printview)

    # Row operations

    def _relation(self, db: str, table: str) -> pgsql.Composed:
        return pgsql.SQL('{}.{}').format(pgsql.Identifier(db), pgsql.Identifier(table))

    def get_row(self, db: str, table: str, where_clause: str) -> QueryResult:
        """The row named by a WHERE clause, or the columns of an empty row."""
        relation = f"{quote_identifier(db)}.{quote_identifier(table)}"
        if where_clause:
            return self.dbi.execute_result(f"SELECT * FROM {relation} WHERE {where_clause} LIMIT 1", db)
        return self.dbi.execute_result(f"SELECT * FROM {relation} LIMIT 0", db)

    def save_row(self, db: str, table: str, where_clause: str, default_action: str,
                 fields: Dict[str, Any], nulls: List[str]) -> int:
        """
        Store the values of the change form.

        Args:
            db: Schema of the table
            table: Table to change
            where_clause: Row to update (ignored for inserts)
            default_action: "update" or "insert"
            fields: Submitted values per column
            nulls: Columns set to NULL

        Returns:
            int: Number of affected rows
        """
        values = {name: (None if name in nulls else value) for name, value in fields.items()}
        for name in nulls:
            values.setdefault(name, None)
        if not values:
            return 0

        relation = self._relation(db, table)
        if default_action == 'update':
            assignments = pgsql.SQL(', ').join(
                pgsql.SQL('{} = {}').format(pgsql.Identifier(name), pgsql.Placeholder()) for name in values
            )
            # the statement runs with bound parameters, so literal % must be doubled
            query = pgsql.SQL('UPDATE {} SET {} WHERE ctid = (SELECT ctid FROM {} WHERE ').format(
                relation, assignments, relation,
            ) + pgsql.SQL(where_clause.replace('%', '%%')) + pgsql.SQL(' LIMIT 1)')
        else:
            query = pgsql.SQL('INSERT INTO {} ({}) VALUES ({})').format(
                relation,
                pgsql.SQL(', ').join(pgsql.Identifier(name) for name in values),
                pgsql.SQL(', ').join(pgsql.Placeholder() for _ in values),
            )
        return self.dbi.execute_statement(query, tuple(values.values()), db)

    def delete_rows(self, db: str, table: str, where_clauses: List[str]) -> int:
        """Delete the first row matching each WHERE clause."""
        relation = self._relation(db, table)
        deleted = 0
        for where_clause in where_clauses:
            query = pgsql.SQL('DELETE FROM {} WHERE ctid = (SELECT ctid FROM {} WHERE ').format(
                relation, relation,
            ) + pgsql.SQL(where_clause) + pgsql.SQL(' LIMIT 1)')
            deleted += self.dbi.execute_statement(query, None, db)
        logger.info("Deleted %d row(s) from %s.%s", deleted, db, table)
        return deleted

    def build_rows_query(self, db: str, table: str, where_clauses: List[str]) -> str:
        """SELECT of the rows named by several WHERE clauses."""
        relation = f"{quote_identifier(db)}.{quote_identifier(table)}"
        conditions = ' OR '.join(f"({where_clause})" for where_clause in where_clauses)
        return f"SELECT * FROM {relation} WHERE {conditions}"

    def export_csv(self, db: str, sql_query: str) -> str:
        """The complete result of a statement as CSV text."""
        result = self.dbi.execute_result(sql_query, db)
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([meta.name for meta in result.fields])
        for row in result:
            values = []
            for value, meta in zip(row, result.fields):
                formatted = self.formatter.format_value(value, is_json=meta.is_type(TYPE_JSON))
                if isinstance(formatted, bytes):
                    formatted = self.formatter.to_hex(formatted)
                values.append('NULL' if formatted is None else formatted)
            writer.writerow(values)
        return output.getvalue()
