"""
HTML rendering of a query result set.

Display_Results turns the rows of one executed statement into the results
table: navigation bar, sortable column headers, per-row edit/copy/delete
links, and cells formatted according to their column type and the user's
display options.
"""

import logging
import math
import random
import re
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from markupsafe import Markup, escape

from ..config.manager import DisplayConfig
from ..database.metadata import (
    FieldMetadata, ForeignKeyRelatedTable, TYPE_BLOB, TYPE_DATE, TYPE_DATETIME, TYPE_INT, TYPE_JSON,
    TYPE_REAL, TYPE_STRING, TYPE_TIME,
)
from ..database.result import QueryResult
from ..formatting.formatter import Result_Formatter
from ..formatting.geometry import GeometryError, wkb_to_wkt
from ..parsing.analyzer import (
    StatementInfo, get_clause, is_just_browsing, quote_identifier, remove_order_column, replace_clause,
)
from . import session as session_store
from .conditions import get_unique_condition
from .html import get_icon, get_image, show_hint
from .messages import Message
from .navigation import get_offsets, page_selector
from .parts import DeleteLink, DisplayParts
from .sorting import (
    fold_identifier_case, get_single_and_multi_sort_urls, get_sort_by_key_options, insert_order_by,
)
from .transformations import Transformation_Plugin, get_default_plugin, get_options, get_plugin, get_special_link
from .urls import Url_Builder

logger = logging.getLogger(__name__)

SHOW_STATEMENT_PATTERN = re.compile(
    r'^SHOW\s+(VARIABLES|(FULL\s+)?PROCESSLIST|STATUS|TABLE|GRANTS|CREATE|LOGS|DATABASES|FIELDS)',
    re.IGNORECASE,
)
SHOW_CREATE_TABLE_PATTERN = re.compile(r'CREATE\s+TABLE', re.IGNORECASE)

# Result sets up to this size always offer "Show all"
SHOW_ALL_THRESHOLD = 500
# Statements shorter than this are kept whole in row links
URL_SQL_QUERY_LENGTH = 200


class Display_Results:
    """
    Renders the results table of one statement.

    Usage:
        display = Display_Results(dbi, db, table, server, goto, sql_query,
                                  config, session, renderer, url_builder)
        display.set_config_params_for_display_table(info, request.values)
        display.set_properties(...)
        html = display.get_table(result, DisplayParts(), info)
    """

    POSITION_LEFT = 'left'
    POSITION_RIGHT = 'right'
    POSITION_BOTH = 'both'
    POSITION_NONE = 'none'

    ACTION_LINK_CONTENT_ICONS = 'icons'
    ACTION_LINK_CONTENT_TEXT = 'text'

    QUERY_TYPE_SELECT = 'SELECT'

    def __init__(
        self,
        dbi,
        db: str,
        table: str,
        server: Any,
        goto: str,
        sql_query: str,
        config: DisplayConfig,
        session: MutableMapping,
        renderer,
        url_builder: Url_Builder,
        formatter: Optional[Result_Formatter] = None,
    ):
        self.dbi = dbi
        self.db = db
        self.table = table
        self.server = server
        self.goto = goto
        self.sql_query = sql_query
        self.config = config
        self.session = session
        self.renderer = renderer
        self.url_builder = url_builder
        self.formatter = formatter or Result_Formatter()
        self.unique_id = random.randint(0, 2 ** 31 - 1)

        self.unlim_num_rows: int = 0
        self.fields_meta: List[FieldMetadata] = []
        self.fields_cnt = 0
        self.is_count = False
        self.is_export = False
        self.is_func = False
        self.is_analyse = False
        self.num_rows = 0
        self.querytime = 0.0
        self.text_dir = 'ltr'
        self.is_maint = False
        self.is_explain = False
        self.is_show = False
        self.showtable: Optional[Dict[str, Any]] = None
        self.printview = False
        self.editable = False
        self.is_browse_distinct = False

        self.highlight_columns: Dict[str, bool] = {}
        self.display_params: Optional[Dict[str, Any]] = None
        self.mime_map: Optional[Dict[str, Dict[str, str]]] = None
        self.where_clause_map: Dict[int, Dict[str, str]] = {}

    def set_properties(
        self,
        unlim_num_rows: int,
        fields_meta: List[FieldMetadata],
        is_count: bool,
        is_export: bool,
        is_func: bool,
        is_analyse: bool,
        num_rows: int,
        querytime: float,
        text_dir: str,
        is_maint: bool,
        is_explain: bool,
        is_show: bool,
        showtable: Optional[Dict[str, Any]],
        printview: bool,
        editable: bool,
        is_browse_distinct: bool,
    ) -> None:
        """Store the state of the executed statement."""
        self.unlim_num_rows = unlim_num_rows
        self.fields_meta = fields_meta
        self.fields_cnt = len(fields_meta)
        self.is_count = is_count
        self.is_export = is_export
        self.is_func = is_func
        self.is_analyse = is_analyse
        self.num_rows = num_rows
        self.querytime = querytime
        self.text_dir = text_dir
        self.is_maint = is_maint
        self.is_explain = is_explain
        self.is_show = is_show
        self.showtable = showtable
        self.printview = printview
        self.editable = editable
        self.is_browse_distinct = is_browse_distinct

    @property
    def tmpval(self) -> Dict[str, Any]:
        return self.session.setdefault('tmpval', {})

    def set_config_params_for_display_table(self, info: StatementInfo, request_values: Mapping) -> Dict[str, Any]:
        """Remember the display options sent with the request for this statement."""
        return session_store.set_config_params_for_display_table(
            self.session, self.server, self.db, self.sql_query, info.is_explain, request_values, self.config,
        )

    # Display parts

    def _set_display_parts_for_show(self, parts: DisplayParts) -> DisplayParts:
        match = SHOW_STATEMENT_PATTERN.match(self.sql_query.strip())
        is_process_list = bool(match) and 'PROCESSLIST' in match.group(1).upper()
        return parts.with_(
            has_edit_link=False,
            delete_link=DeleteLink.KILL_PROCESS if is_process_list else DeleteLink.NO_DELETE,
            has_sort_link=False,
            has_navigation_bar=False,
            has_bookmark_form=True,
            has_text_button=True,
            has_print_link=True,
        )

    def _set_display_parts_for_non_data(self, parts: DisplayParts) -> DisplayParts:
        # COUNT, ANALYSE, maintenance and EXPLAIN statements
        return parts.with_(
            has_edit_link=False,
            delete_link=DeleteLink.NO_DELETE,
            has_sort_link=False,
            has_navigation_bar=False,
            has_bookmark_form=True,
            has_text_button=self.is_maint,
            has_print_link=True,
        )

    def _set_display_parts_for_select(self, parts: DisplayParts) -> DisplayParts:
        has_edit_link = parts.has_edit_link
        delete_link = parts.delete_link
        previous_table = ''

        for meta in self.fields_meta:
            is_link = has_edit_link or delete_link is not DeleteLink.NO_DELETE or parts.has_sort_link
            if is_link and previous_table != '' and meta.table != '' and meta.table != previous_table:
                # columns of several tables: rows cannot be edited
                has_edit_link = False
                delete_link = DeleteLink.NO_DELETE
                break
            if meta.table == '':
                continue
            previous_table = meta.table

        if previous_table == '':
            has_edit_link = False
            delete_link = DeleteLink.NO_DELETE

        return parts.with_(
            has_edit_link=has_edit_link,
            delete_link=delete_link,
            has_text_button=True,
            has_print_link=True,
        )

    def set_display_parts_and_total(self, parts: DisplayParts) -> Tuple[DisplayParts, int]:
        """
        Decide which parts to show and the total number of rows.

        Returns:
            Tuple of (display parts, rows without the appended LIMIT)
        """
        if self.printview:
            parts = DisplayParts.none()
        elif self.is_count or self.is_analyse or self.is_maint or self.is_explain:
            parts = self._set_display_parts_for_non_data(parts)
        elif self.is_show:
            parts = self._set_display_parts_for_show(parts)
        else:
            parts = self._set_display_parts_for_select(parts)

        total = 0
        if self.unlim_num_rows > 0:
            total = self.unlim_num_rows
        elif (parts.has_navigation_bar or parts.has_sort_link) and self.db and self.table:
            total, _ = self.dbi.count_records(
                self.db, self.table, self.config.max_exact_count, self.config.max_exact_count_views
            )

        if self.is_count and self.num_rows > 1:
            # COUNT with GROUP BY
            parts = parts.with_(has_navigation_bar=True, has_sort_link=True)

        if parts.has_navigation_bar or parts.has_sort_link:
            # views may not have been counted, keep them sortable
            if self.unlim_num_rows < 2 and not self._is_view():
                parts = parts.with_(has_sort_link=False)

        return parts, int(total)

    def _is_view(self) -> bool:
        if self.showtable is not None and 'is_view' in self.showtable:
            return bool(self.showtable['is_view'])
        return bool(self.table) and self.dbi.is_view(self.db, self.table)

    def is_select(self, info: StatementInfo) -> bool:
        """True for ``SELECT ... FROM one_table`` without COUNT, export or aggregates."""
        return (
            not (self.is_count or self.is_export or self.is_func or self.is_analyse)
            and info.select_from
            and len(info.from_tables) == 1
            and bool(info.from_tables[0].table)
        )

    # Navigation

    def _sql_link_params(self, sql_query: str, **params) -> Dict[str, Any]:
        return self.url_builder.sql_params(sql_query, **params)

    def get_html_page_selector(self) -> Tuple[Markup, int]:
        max_rows = self.tmpval['max_rows']
        page_now = self.tmpval['pos'] // max_rows + 1
        total_pages = int(math.ceil(self.unlim_num_rows / max_rows))

        output = Markup('')
        if total_pages > 1:
            url_params = self._sql_link_params(
                self.sql_query, db=self.db, table=self.table, goto=self.goto,
                is_browse_distinct=self.is_browse_distinct,
            )
            output = self.renderer.render('display/results/page_selector.html', {
                'url_params': url_params,
                'page_selector': page_selector(max_rows, page_now, total_pages),
            })
        return output, total_pages

    def get_table_navigation(self, pos_next: int, pos_previous: int, is_approximate: bool,
                             sort_by_key_data: Dict[str, Any]) -> Dict[str, Any]:
        """Template data of the navigation bar."""
        tmpval = self.tmpval
        is_showing_all = tmpval['max_rows'] == session_store.ALL_ROWS

        selector = Markup('')
        number_total_page = 1
        if not is_showing_all:
            selector, number_total_page = self.get_html_page_selector()

        max_rows = 0 if is_showing_all else int(tmpval['max_rows'])
        pos = int(tmpval['pos'])

        is_last_page = self.unlim_num_rows != -1 and (
            is_showing_all
            or pos + max_rows >= self.unlim_num_rows
            or self.num_rows < max_rows
        )
        can_go_to_next = pos + max_rows < self.unlim_num_rows and self.num_rows >= max_rows

        pos_last = 0
        if not is_showing_all:
            pos_last = (int(math.ceil(self.unlim_num_rows / max_rows)) - 1) * max_rows

        hidden_fields = {
            'db': self.db,
            'table': self.table,
            'server': self.server,
            'sql_query': self.sql_query,
            'is_browse_distinct': self.is_browse_distinct,
            'goto': self.goto,
        }

        return {
            'page_selector': selector,
            'number_total_page': number_total_page,
            'has_show_all': self.config.show_all or self.unlim_num_rows <= SHOW_ALL_THRESHOLD,
            'hidden_fields': hidden_fields,
            'session_max_rows': self.config.max_rows if is_showing_all else session_store.ALL_ROWS,
            'is_showing_all': is_showing_all,
            'max_rows': tmpval['max_rows'],
            'pos': pos,
            'sort_by_key': sort_by_key_data,
            'pos_previous': pos_previous,
            'pos_next': pos_next,
            'pos_last': pos_last,
            'is_last_page': is_last_page,
            'is_last_page_known': self.unlim_num_rows != -1,
            'has_real_end_input': is_approximate and self.unlim_num_rows > self.config.max_exact_count,
            'can_go_to_next': can_go_to_next,
        }

    def get_sort_by_key_drop_down(self, sort_expression: Sequence[str], unsorted_sql_query: str) -> Dict[str, Any]:
        indexes = self.dbi.get_indexes(self.db, self.table)
        if not indexes:
            return {}

        hidden_fields = {
            'db': self.db,
            'table': self.table,
            'server': self.server,
            'sort_by_key': '1',
        }
        if 'max_rows' in self.tmpval:
            # keep the page size when changing the sort key
            hidden_fields['session_max_rows'] = self.tmpval['max_rows']

        return {
            'hidden_fields': hidden_fields,
            'options': get_sort_by_key_options(indexes, sort_expression, unsorted_sql_query),
        }

    # Headers

    def get_column_params(self, info: StatementInfo) -> Tuple[Optional[List[int]], Optional[List[Any]]]:
        """Stored column order and visibility, dropped when they no longer fit the result."""
        if not self.is_select(info):
            return None, None

        col_order = session_store.get_ui_prop(self.session, self.db, self.table, session_store.PROP_COLUMN_ORDER)
        if isinstance(col_order, list):
            if any(int(value) >= self.fields_cnt for value in col_order) or len(col_order) != self.fields_cnt:
                session_store.remove_ui_prop(self.session, self.db, self.table, session_store.PROP_COLUMN_ORDER)
                col_order = None
            else:
                col_order = [int(value) for value in col_order]
        else:
            col_order = None

        col_visib = session_store.get_ui_prop(self.session, self.db, self.table, session_store.PROP_COLUMN_VISIB)
        if isinstance(col_visib, list):
            if len(col_visib) != self.fields_cnt:
                session_store.remove_ui_prop(self.session, self.db, self.table, session_store.PROP_COLUMN_VISIB)
                col_visib = None
        else:
            col_visib = None

        return col_order, col_visib

    def get_data_for_resetting_column_order(self, info: StatementInfo) -> Dict[str, Any]:
        if not self.is_select(info):
            return {}
        col_order, col_visib = self.get_column_params(info)
        return {
            'order': col_order,
            'visibility': col_visib,
            'is_view': self._is_view(),
        }

    def get_options_block(self) -> Dict[str, Any]:
        tmpval = self.tmpval
        possible_as_geometry = any(meta.is_mapped_type_geometry for meta in self.fields_meta)
        tmpval['possible_as_geometry'] = possible_as_geometry
        if not possible_as_geometry and tmpval.get('geoOption') == session_store.GEOMETRY_DISP_GEOM:
            tmpval['geoOption'] = session_store.GEOMETRY_DISP_WKT

        return {
            'geo_option': tmpval.get('geoOption'),
            'hide_transformation': tmpval.get('hide_transformation'),
            'display_blob': tmpval.get('display_blob'),
            'display_binary': tmpval.get('display_binary'),
            'relational_display': tmpval.get('relational_display'),
            'possible_as_geometry': possible_as_geometry,
            'pftext': tmpval.get('pftext'),
        }

    def get_full_or_partial_text_button_or_link(self) -> Markup:
        params = self._sql_link_params(
            self.sql_query, db=self.db, table=self.table, goto=self.goto, full_text_button=1,
        )
        if self.tmpval.get('pftext') == session_store.DISPLAY_FULL_TEXT:
            # currently in full text mode: offer partial texts
            icon, text = 's_partialtext', 'Partial texts'
            params['pftext'] = session_store.DISPLAY_PARTIAL_TEXT
        else:
            icon, text = 's_fulltext', 'Full texts'
            params['pftext'] = session_store.DISPLAY_FULL_TEXT

        image = get_image(icon, text, {'class': 'fulltext'})
        return self.url_builder.link_or_button(self.url_builder.get_from_route('/sql'), params, image)

    def _row_action_links(self) -> str:
        return self.config.row_action_links

    def get_field_visibility_params(self, parts: DisplayParts, full_or_partial_text_link: Markup,
                                    colspan: str) -> Markup:
        """Left header cell holding the full/partial text switch, or an empty cell."""
        display_params = self.display_params
        button_html = Markup('')
        has_row_links = parts.has_edit_link or parts.delete_link is not DeleteLink.NO_DELETE
        empty_pre_condition = parts.has_edit_link and parts.delete_link is not DeleteLink.NO_DELETE
        left_or_both = self._row_action_links() in (self.POSITION_LEFT, self.POSITION_BOTH)

        if not parts.has_edit_link and parts.delete_link is DeleteLink.NO_DELETE and parts.has_text_button:
            display_params['emptypre'] = 0
        elif left_or_both and parts.has_text_button:
            display_params['emptypre'] = 4 if empty_pre_condition else 0
            button_html += Markup('<th class="column_action position-sticky bg-body d-print-none"%s>%s</th>') % (
                Markup(colspan), full_or_partial_text_link
            )
        elif left_or_both and has_row_links:
            display_params['emptypre'] = 4 if empty_pre_condition else 0
            button_html += Markup('<td%s></td>') % Markup(colspan)
        elif self._row_action_links() == self.POSITION_NONE:
            button_html += Markup('<th class="column_action position-sticky bg-body"></th>')

        return button_html

    def get_table_comments_array(self, info: StatementInfo) -> Dict[str, Dict[str, str]]:
        if not self.config.show_browse_comments or not info.from_tables:
            return {}
        comments = {}
        for table_ref in info.from_tables:
            if not table_ref.table:
                continue
            comments[table_ref.table] = self.dbi.get_column_comments(table_ref.schema or self.db, table_ref.table)
        return comments

    def set_highlighted_column_global_field(self, info: StatementInfo) -> None:
        self.highlight_columns = {identifier: True for identifier in info.where_identifiers}

    def _is_condition_field(self, name: str) -> bool:
        return name in self.highlight_columns or quote_identifier(name) in self.highlight_columns

    def get_comment_for_row(self, comments_map: Dict[str, Dict[str, str]], meta: FieldMetadata) -> Markup:
        return self.renderer.render('display/results/comment_for_row.html', {
            'comments_map': comments_map,
            'column_name': meta.name,
            'table_name': meta.table,
            'limit_chars': self.config.limit_chars,
        })

    @staticmethod
    def is_column_numeric(meta: FieldMetadata) -> bool:
        return meta.is_type(TYPE_REAL) or meta.is_mapped_type_bit or meta.is_type(TYPE_INT)

    def _session_max_rows(self, is_limited_display: bool) -> Any:
        if is_limited_display:
            return 0
        sql_md5 = session_store.query_hash(self.server, self.db, self.sql_query)
        remembered = self.tmpval.get('query', {}).get(sql_md5, {})
        max_rows = remembered.get('max_rows', self.config.max_rows)
        return max_rows if max_rows == session_store.ALL_ROWS else int(max_rows)

    def get_sort_order_link(self, order_img: Markup, meta: FieldMetadata, order_url_params: Dict[str, Any],
                            multi_order_url_params: Dict[str, Any]) -> Markup:
        url_path = self.url_builder.get_from_route('/sql')
        multi_url = url_path + self.url_builder.get_common(multi_order_url_params, '&' if '?' in url_path else '?')
        inner = escape(meta.name) + order_img + Markup('<input type="hidden" value="%s">') % multi_url
        return self.url_builder.link_or_button(url_path, order_url_params, inner, {'class': 'sortlink'})

    def get_sort_order_hidden_inputs(self, multiple_url_params: Dict[str, Any], name_to_use_in_sort: str) -> Markup:
        """URLs the header menu uses to drop the column from or add it to the ORDER BY."""
        sql_query = multiple_url_params['sql_query']
        sql_query_remove, remaining = remove_order_column(sql_query, name_to_use_in_sort)

        params = dict(multiple_url_params)
        params.update(self._sql_link_params(sql_query_remove))
        url_remove_order = self.url_builder.get_from_route('/sql', params)
        if remaining == 0:
            url_remove_order += '&discard_remembered_sort=1'

        params.update(self._sql_link_params(sql_query))
        url_add_order = self.url_builder.get_from_route('/sql', params)

        return (Markup('<input type="hidden" name="url-remove-order" value="%s">\n') % url_remove_order
                + Markup('<input type="hidden" name="url-add-order" value="%s">') % url_add_order)

    def get_order_link_and_sorted_header_html(
        self,
        meta: FieldMetadata,
        sort_expression: Sequence[str],
        sort_expression_no_direction: Sequence[str],
        unsorted_sql_query: str,
        session_max_rows: Any,
        comments: Markup,
        sort_direction: Sequence[str],
        col_visib: Optional[List[Any]],
        col_visib_element: Any,
    ) -> Dict[str, Any]:
        # columns of a JOIN need their table to be sorted on
        sort_table = quote_identifier(meta.table) + '.' if meta.table and meta.orgname == meta.name else ''

        single_sort_order, multi_sort_order, order_img = get_single_and_multi_sort_urls(
            sort_expression, sort_expression_no_direction, sort_table, meta.name, sort_direction, meta,
            self.config.order,
        )

        single_sorted_sql_query = insert_order_by(unsorted_sql_query, single_sort_order)
        multi_sorted_sql_query = insert_order_by(unsorted_sql_query, multi_sort_order)

        common = {
            'db': self.db,
            'table': self.table,
            'session_max_rows': session_max_rows,
            'is_browse_distinct': self.is_browse_distinct,
        }
        single_url_params = self._sql_link_params(single_sorted_sql_query, **common)
        multi_url_params = self._sql_link_params(multi_sorted_sql_query, **common)

        order_link = self.get_sort_order_link(order_img, meta, single_url_params, multi_url_params)
        order_link += self.get_sort_order_hidden_inputs(multi_url_params, meta.name)

        return {
            'column_name': meta.name,
            'order_link': order_link,
            'comments': comments,
            'is_browse_pointer_enabled': self.config.browse_pointer_enable,
            'is_browse_marker_enabled': self.config.browse_marker_enable,
            'is_column_hidden': bool(col_visib) and not col_visib_element,
            'is_column_numeric': self.is_column_numeric(meta),
        }

    def get_table_headers_for_columns(
        self,
        has_sort_link: bool,
        info: StatementInfo,
        sort_expression: Sequence[str],
        sort_expression_no_direction: Sequence[str],
        sort_direction: Sequence[str],
        is_limited_display: bool,
        unsorted_sql_query: str,
    ) -> Markup:
        session_max_rows = self._session_max_rows(is_limited_display)
        comments_map = self.get_table_comments_array(info)
        col_order, col_visib = self.get_column_params(info)
        is_sortable = has_sort_link and not is_limited_display

        columns = []
        descriptions = self.display_params.setdefault('desc', [])
        for j in range(self.fields_cnt):
            col_visib_current = col_visib[j] if col_visib and j < len(col_visib) else None
            i = col_order[j] if col_order else j
            meta = self.fields_meta[i]

            condition_field = self._is_condition_field(meta.name)
            comments = self.get_comment_for_row(comments_map, meta)

            if is_sortable:
                sorted_header = self.get_order_link_and_sorted_header_html(
                    meta, sort_expression, sort_expression_no_direction, unsorted_sql_query,
                    session_max_rows, comments, sort_direction, col_visib, col_visib_current,
                )
                columns.append(sorted_header)
                descriptions.append(
                    Markup('    <th class="draggable%s" data-column="%s">\n%s%s    </th>\n') % (
                        ' condition' if condition_field else '', meta.name, sorted_header['order_link'], comments,
                    )
                )
            else:
                columns.append({
                    'column_name': meta.name,
                    'comments': comments,
                    'is_column_hidden': bool(col_visib) and not col_visib_current,
                    'is_column_numeric': self.is_column_numeric(meta),
                    'has_condition': condition_field,
                })
                descriptions.append(
                    Markup('    <th class="draggable%s" data-column="%s">        %s%s    </th>') % (
                        ' condition' if condition_field else '', meta.name, meta.name, comments,
                    )
                )

        return self.renderer.render('display/results/table_headers_for_columns.html', {
            'is_sortable': is_sortable,
            'columns': columns,
        })

    def get_column_at_right_side(self, parts: DisplayParts, full_or_partial_text_link: Markup,
                                 colspan: str) -> Markup:
        """Right header cell: the full/partial text switch or an empty cell."""
        display_params = self.display_params
        right_column_html = Markup('')
        row_action_links = self._row_action_links()
        has_row_links = parts.has_edit_link or parts.delete_link is not DeleteLink.NO_DELETE
        empty_after = 4 if parts.has_edit_link and parts.delete_link is not DeleteLink.NO_DELETE else 1

        if row_action_links == self.POSITION_RIGHT or (
            row_action_links == self.POSITION_BOTH and has_row_links and parts.has_text_button
        ):
            display_params['emptyafter'] = empty_after
            right_column_html += Markup(
                '\n<th class="column_action position-sticky bg-body d-print-none"%s>%s</th>'
            ) % (Markup(colspan), full_or_partial_text_link)
        elif row_action_links == self.POSITION_LEFT or (
            row_action_links == self.POSITION_BOTH and not has_row_links
        ):
            display_params['emptyafter'] = empty_after
            right_column_html += Markup('\n<td class="position-sticky bg-body d-print-none"%s></td>') % Markup(colspan)

        return right_column_html

    def get_table_headers(
        self,
        parts: DisplayParts,
        info: StatementInfo,
        unsorted_sql_query: str,
        sort_expression: Sequence[str] = (),
        sort_expression_no_direction: Sequence[str] = (),
        sort_direction: Sequence[str] = (),
        is_limited_display: bool = False,
    ) -> Dict[str, Any]:
        """Template data of the table header."""
        column_order = self.get_data_for_resetting_column_order(info)

        self.display_params = self.display_params or {}
        self.display_params['emptypre'] = 0
        self.display_params['emptyafter'] = 0
        self.display_params['textbtn'] = ''

        options_block: Dict[str, Any] = {}
        full_or_partial_text_link = Markup('')
        if not self.printview and not is_limited_display:
            options_block = self.get_options_block()
            full_or_partial_text_link = self.get_full_or_partial_text_button_or_link()

        colspan = ' colspan="4"' if parts.has_edit_link and parts.delete_link is not DeleteLink.NO_DELETE else ''
        button_html = self.get_field_visibility_params(parts, full_or_partial_text_link, colspan)

        self.set_highlighted_column_global_field(info)

        table_headers_for_columns = self.get_table_headers_for_columns(
            parts.has_sort_link, info, sort_expression, sort_expression_no_direction, sort_direction,
            is_limited_display, unsorted_sql_query,
        )

        column_at_right_side = Markup('')
        if not self.printview:
            column_at_right_side = self.get_column_at_right_side(parts, full_or_partial_text_link, colspan)

        return {
            'column_order': column_order,
            'options': options_block,
            'has_bulk_actions_form': parts.delete_link in (DeleteLink.DELETE_ROW, DeleteLink.KILL_PROCESS),
            'button': button_html,
            'table_headers_for_columns': table_headers_for_columns,
            'column_at_right_side': column_at_right_side,
        }

    # Body

    def get_url_sql_query(self, info: StatementInfo) -> str:
        """The statement without its conditions when it is too long for a link."""
        if info.query_type != 'SELECT' or len(self.sql_query) < URL_SQL_QUERY_LENGTH:
            return self.sql_query

        query = 'SELECT ' + get_clause(info, 'SELECT')
        from_clause = get_clause(info, 'FROM')
        if from_clause:
            query += ' FROM ' + from_clause
        return query

    def get_repeating_headers(self, num_empty_columns_before: int, descriptions: Sequence[Markup],
                              num_empty_columns_after: int) -> Markup:
        header_html = Markup('<tr>\n')
        if num_empty_columns_before > 0:
            header_html += Markup('    <th colspan="%d">\n        &nbsp;</th>\n') % num_empty_columns_before
        elif self._row_action_links() == self.POSITION_NONE:
            header_html += Markup('    <th></th>\n')

        header_html += Markup('').join(descriptions)

        if num_empty_columns_after > 0:
            header_html += Markup('    <th colspan="%d">\n        &nbsp;</th>\n') % num_empty_columns_after

        return header_html + Markup('</tr>\n')

    def get_action_link_content(self, icon: str, display_text: str) -> Markup:
        row_action_type = self.config.row_action_type
        if row_action_type == self.ACTION_LINK_CONTENT_ICONS:
            return Markup('<span class="text-nowrap">') + get_image(icon, display_text) + Markup('</span>')
        if row_action_type == self.ACTION_LINK_CONTENT_TEXT:
            return Markup('<span class="text-nowrap">') + escape(display_text) + Markup('</span>')
        return get_icon(icon, display_text)

    def get_modified_links(self, where_clause: str, clause_is_unique: bool, url_sql_query: str) -> Tuple:
        """Edit and copy links of one row."""
        url_params = {
            'db': self.db,
            'table': self.table,
            'where_clause': where_clause,
            'where_clause_signature': self.url_builder.sign_where_clause(where_clause),
            'clause_is_unique': clause_is_unique,
            'sql_query': url_sql_query,
            'sql_signature': self.url_builder.sign_sql_query(url_sql_query),
            'goto': self.url_builder.get_from_route('/sql'),
        }
        edit_url = self.url_builder.get_from_route('/table/change')
        copy_url = self.url_builder.get_from_route('/table/change')
        edit_str = self.get_action_link_content('b_edit', 'Edit')
        copy_str = self.get_action_link_content('b_insrow', 'Copy')
        return edit_url, copy_url, edit_str, copy_str, url_params

    def build_delete_query(self, where_clause: str, clause_is_unique: bool) -> str:
        """DELETE for one row; a non-unique condition deletes the first matching row only."""
        table = quote_identifier(self.table)
        if clause_is_unique:
            return f"DELETE FROM {table} WHERE {where_clause}"
        return f"DELETE FROM {table} WHERE ctid = (SELECT ctid FROM {table} WHERE {where_clause} LIMIT 1)"

    def get_delete_and_kill_links(self, where_clause: str, clause_is_unique: bool, url_sql_query: str,
                                  delete_link: DeleteLink, process_id: Any) -> Tuple:
        """
        Delete (or kill) link of one row.

        Returns:
            Tuple of (url, link content, confirmation text, url parameters),
            all None when the row gets no such link
        """
        if delete_link is DeleteLink.DELETE_ROW:
            link_goto = self.url_builder.get_from_route('/sql', self._sql_link_params(
                url_sql_query, db=self.db, table=self.table,
                message_to_show='The row has been deleted.', goto=self.goto or '/sql',
            ))
            delete_query = self.build_delete_query(where_clause, clause_is_unique)
            url_params = self._sql_link_params(
                delete_query, db=self.db, table=self.table,
                message_to_show='The row has been deleted.', goto=link_goto,
            )
            delete_url = self.url_builder.get_from_route('/sql')
            js_conf = delete_query
            delete_string = self.get_action_link_content('b_drop', 'Delete')
        elif delete_link is DeleteLink.KILL_PROCESS:
            link_goto = self.url_builder.get_from_route('/sql', self._sql_link_params(
                url_sql_query, db=self.db, table=self.table, goto='/',
            ))
            try:
                kill = self.dbi.get_kill_query(int(process_id))
            except (TypeError, ValueError):
                return None, None, None, None
            url_params = self._sql_link_params(kill, db=self.db, goto=link_goto)
            delete_url = self.url_builder.get_from_route('/sql')
            js_conf = kill
            delete_string = get_icon('b_drop', 'Kill')
        else:
            return None, None, None, None

        return delete_url, delete_string, js_conf, url_params

    def _grid_edit_config(self, is_limited_display: bool) -> str:
        if is_limited_display or not self.editable or self.config.grid_editing == 'disabled':
            return 'disabled'
        if self.config.grid_editing == 'click':
            return 'click'
        return 'double-click'

    def _render_checkbox_and_links(self, position: str, parts: DisplayParts, links: Dict[str, Any],
                                   row_number: int, grid_edit_config: str) -> Markup:
        edit_params = dict(links['edit_params'] or {}, default_action='update')
        copy_params = dict(links['edit_params'] or {}, default_action='insert')
        return self.renderer.render('display/results/checkbox_and_links.html', {
            'position': position,
            'has_checkbox': bool(links['delete_url']) and parts.delete_link is not DeleteLink.KILL_PROCESS,
            'edit': {
                'url': links['edit_url'],
                'params': edit_params,
                'string': links['edit_string'],
                'clause_is_unique': links['clause_is_unique'],
            },
            'copy': {'url': links['copy_url'], 'params': copy_params, 'string': links['copy_string']},
            'delete': {'url': links['delete_url'], 'params': links['delete_params'], 'string': links['delete_string']},
            'row_number': row_number,
            'where_clause': links['where_clause'],
            'where_clause_signature': self.url_builder.sign_where_clause(links['where_clause']),
            'condition': links['condition'],
            'js_conf': links['js_conf'] or '',
            'grid_edit_config': grid_edit_config,
        })

    def get_table_body(self, result: QueryResult, parts: DisplayParts, relations: Dict[str, ForeignKeyRelatedTable],
                       info: StatementInfo, is_limited_display: bool = False) -> Markup:
        """Rows of the results table."""
        table_body_html = Markup('')
        url_sql_query = self.get_url_sql_query(info)

        display_params = self.display_params
        for key in ('edit', 'copy', 'delete', 'data', 'row_delete'):
            display_params[key] = []
        display_params['data'] = {}

        grid_edit_config = self._grid_edit_config(is_limited_display)
        col_order, col_visib = self.get_column_params(info)
        row_action_links = self._row_action_links()
        has_row_links = parts.has_edit_link or parts.delete_link is not DeleteLink.NO_DELETE

        if self.mime_map is None:
            self.set_mime_map()

        row_number = 0
        row = result.fetch_row()
        while row is not None:
            repeat_cells = int(self.tmpval.get('repeat_cells') or 0)
            if row_number != 0 and repeat_cells > 0 and row_number % repeat_cells == 0:
                table_body_html += self.get_repeating_headers(
                    display_params['emptypre'], display_params['desc'], display_params['emptyafter'],
                )

            tr_class = []
            if not self.config.browse_pointer_enable:
                tr_class.append('nopointer')
            if not self.config.browse_marker_enable:
                tr_class.append('nomarker')
            table_body_html += Markup('<tr class="%s">') % ' '.join(tr_class) if tr_class else Markup('<tr>')

            links: Dict[str, Any] = {
                'edit_url': None, 'copy_url': None, 'edit_string': None, 'copy_string': None,
                'edit_params': {}, 'delete_url': None, 'delete_string': None, 'js_conf': None,
                'delete_params': None, 'where_clause': '', 'clause_is_unique': True, 'condition': {},
            }

            if has_row_links:
                where_clause, clause_is_unique, condition_array = get_unique_condition(
                    self.fields_meta, row, self.formatter, False, self.table, info.select_expressions,
                )
                self.where_clause_map.setdefault(row_number, {})[self.table] = where_clause
                links.update(where_clause=where_clause, clause_is_unique=clause_is_unique, condition=condition_array)

                if parts.has_edit_link:
                    edit_url, copy_url, edit_string, copy_string, edit_params = self.get_modified_links(
                        where_clause, clause_is_unique, url_sql_query,
                    )
                    links.update(edit_url=edit_url, copy_url=copy_url, edit_string=edit_string,
                                 copy_string=copy_string, edit_params=edit_params)

                delete_url, delete_string, js_conf, delete_params = self.get_delete_and_kill_links(
                    where_clause, clause_is_unique, url_sql_query, parts.delete_link, row[0] if row else None,
                )
                links.update(delete_url=delete_url, delete_string=delete_string, js_conf=js_conf,
                             delete_params=delete_params)

                if row_action_links in (self.POSITION_LEFT, self.POSITION_BOTH):
                    table_body_html += self._render_checkbox_and_links(
                        self.POSITION_LEFT, parts, links, row_number, grid_edit_config,
                    )
                elif row_action_links == self.POSITION_NONE:
                    table_body_html += self._render_checkbox_and_links(
                        self.POSITION_NONE, parts, links, row_number, grid_edit_config,
                    )

            table_body_html += self.get_row_values(
                row, row_number, col_order, relations, grid_edit_config, col_visib, url_sql_query, info,
            )

            if has_row_links and row_action_links in (self.POSITION_RIGHT, self.POSITION_BOTH):
                table_body_html += self._render_checkbox_and_links(
                    self.POSITION_RIGHT, parts, links, row_number, grid_edit_config,
                )

            table_body_html += Markup('</tr>\n')
            row_number += 1
            row = result.fetch_row()

        return table_body_html

    # Transformations

    @staticmethod
    def _full_column_name(meta: FieldMetadata, db: str) -> str:
        if not meta.orgtable:
            return '..' + meta.name
        return f"{meta.schema or db}.{meta.orgtable}.{meta.orgname}"

    def set_mime_map(self) -> None:
        """Transformations configured for the columns of the result set."""
        mime_map: Dict[str, Dict[str, str]] = {}
        tmpval = self.tmpval

        if self.config.browse_mime and not tmpval.get('hide_transformation'):
            tables = {f"{meta.schema or self.db}.{meta.orgtable}." for meta in self.fields_meta if meta.orgtable}
            for column, entry in self.config.transformations.items():
                if any(column.startswith(prefix) for prefix in tables):
                    mime_map[column] = entry

        if self.is_show and not tmpval.get('hide_transformation'):
            match = SHOW_STATEMENT_PATTERN.match(self.sql_query.strip())
            if match:
                if 'PROCESSLIST' in match.group(1).upper():
                    mime_map['..Info'] = {'mimetype': 'Text_Plain', 'transformation': 'Text_Plain_Sql'}
                if SHOW_CREATE_TABLE_PATTERN.search(self.sql_query):
                    mime_map['..Create Table'] = {'mimetype': 'Text_Plain', 'transformation': 'Text_Plain_Sql'}

        self.mime_map = mime_map

    def get_special_link_url(self, link_relations: Dict[str, Any], column_value: Any,
                             row_info: Dict[str, Any]) -> str:
        params = {link_relations['link_param']: column_value}
        for new_param in link_relations.get('link_dependancy_params', []):
            column_name = new_param['column_name'].lower()
            if column_name in row_info:
                params[new_param['param_info']] = row_info[column_name]
        return self.url_builder.get_from_route(link_relations['default_page'], params)

    def get_row_info_for_special_links(self, row: Sequence[Any], col_order: Optional[List[int]]) -> Dict[str, Any]:
        row_info = {}
        for n in range(self.fields_cnt):
            m = col_order[n] if col_order else n
            row_info[self.fields_meta[m].orgname.lower()] = row[m]
        return row_info

    def _transformation_for(self, meta: FieldMetadata, value: Any, row_info: Dict[str, Any]
                            ) -> Tuple[Optional[Transformation_Plugin], Dict[Any, Any]]:
        plugin = None
        options: Dict[Any, Any] = {}
        full_name = self._full_column_name(meta, self.db)
        entry = (self.mime_map or {}).get(full_name)
        hide_transformation = self.tmpval.get('hide_transformation')

        if entry and entry.get('transformation') and (self.config.browse_mime or full_name.startswith('..')):
            plugin = get_plugin(entry['transformation'])
            if plugin is not None:
                options = get_options(entry.get('transformation_options', ''))
                meta.internal_media_type = entry['mimetype'].replace('_', '/')

        schema = meta.schema or self.db
        default_plugin = get_default_plugin(schema, meta.orgtable, meta.orgname)
        if (default_plugin is not None and value is not None and str(value).strip() != ''
                and not hide_transformation):
            plugin = default_plugin
            options = get_options(entry.get('transformation_options', '')) if entry else {}
            meta.internal_media_type = 'Text/Plain'

        special_link = get_special_link(schema, meta.orgtable, meta.orgname)
        if special_link and value is not None:
            plugin = get_plugin('Text_Plain_Link')
            options = {0: self.get_special_link_url(special_link, value, row_info), 2: True}
            meta.internal_media_type = 'Text/Plain'

        return plugin, options

    # Cells

    def add_class(self, css_class: str, condition_field: bool, meta: FieldMetadata, nowrap: str,
                  is_field_truncated: bool = False, has_transformation_plugin: bool = False) -> str:
        classes = [c for c in (css_class, nowrap) if c]
        if meta.internal_media_type is not None:
            classes.append(meta.internal_media_type.replace('/', '_'))
        if condition_field:
            classes.append('condition')
        if is_field_truncated:
            classes.append('truncated')
        if has_transformation_plugin:
            classes.append('transformed')
        if meta.is_enum:
            classes.append('enum')
        if meta.is_set():
            classes.append('set')
        if meta.is_mapped_type_bit:
            classes.append('bit')
        if meta.is_binary:
            classes.append('hex')
        return ' '.join(classes)

    def build_value_display(self, css_class: str, condition_field: bool, value: Markup) -> Markup:
        return self.renderer.render('display/results/value_display.html', {
            'class': css_class,
            'condition_field': condition_field,
            'value': value,
        })

    def build_null_display(self, css_class: str, condition_field: bool, meta: FieldMetadata) -> Markup:
        return self.renderer.render('display/results/null_display.html', {
            'data_decimals': meta.decimals,
            'data_type': meta.get_mapped_type(),
            'classes': self.add_class(css_class, condition_field, meta, ''),
        })

    def build_empty_display(self, css_class: str, condition_field: bool, meta: FieldMetadata) -> Markup:
        return self.renderer.render('display/results/empty_display.html', {
            'classes': self.add_class(css_class, condition_field, meta, 'text-nowrap'),
        })

    @staticmethod
    def get_class_for_date_time_related_fields(meta: FieldMetadata) -> str:
        if meta.is_mapped_type_timestamp or meta.is_type(TYPE_DATETIME):
            return 'datetimefield'
        if meta.is_type(TYPE_DATE):
            return 'datefield'
        if meta.is_type(TYPE_TIME):
            return 'timefield'
        if meta.is_type(TYPE_STRING):
            return 'text'
        return ''

    def get_partial_text(self, text: str) -> Tuple[bool, str, int]:
        return self.formatter.get_partial_text(text, self.config.limit_chars, self.tmpval.get('pftext'))

    def get_row_values(self, row: Sequence[Any], row_number: int, col_order: Optional[List[int]],
                       relations: Dict[str, ForeignKeyRelatedTable], grid_edit_config: str,
                       col_visib: Optional[List[Any]], url_sql_query: str, info: StatementInfo) -> Markup:
        """The data cells of one row."""
        row_values_html = Markup('')
        row_info = self.get_row_info_for_special_links(row, col_order)
        display_params = self.display_params

        for current_column in range(self.fields_cnt):
            i = col_order[current_column] if col_order else current_column
            meta = self.fields_meta[i]
            value = row[i]

            not_null_class = 'not_null' if meta.is_not_null else ''
            relation_class = 'relation' if meta.name in relations else ''
            hide_class = 'hide' if col_visib and current_column < len(col_visib) and not col_visib[current_column] else ''

            grid_edit = ''
            if meta.orgtable and grid_edit_config != 'disabled':
                grid_edit = 'grid_edit click1' if grid_edit_config == 'click' else 'grid_edit click2'

            css_class = ' '.join(c for c in (
                'data', grid_edit, not_null_class, relation_class, hide_class,
                self.get_class_for_date_time_related_fields(meta),
            ) if c)

            condition_field = self._is_condition_field(meta.name)
            plugin, transform_options = self._transformation_for(meta, value, row_info)

            # a result set may hold columns of several tables
            row_clauses = self.where_clause_map.setdefault(row_number, {})
            if meta.orgtable not in row_clauses:
                row_clauses[meta.orgtable], _, _ = get_unique_condition(
                    self.fields_meta, row, self.formatter, False, meta.orgtable, info.select_expressions,
                )
            where_clause = row_clauses[meta.orgtable]

            url_params = {
                'db': meta.schema or self.db,
                'table': meta.orgtable,
                'where_clause_sign': self.url_builder.sign_where_clause(where_clause),
                'where_clause': where_clause,
                'transform_key': meta.orgname,
            }
            if self.sql_query:
                url_params['sql_query'] = url_sql_query

            transform_options['wrapper_link'] = self.url_builder.get_common(url_params)
            transform_options['wrapper_params'] = url_params
            transform_options['wrapper_url'] = self.url_builder.get_from_route('/table/get-field', url_params)

            if meta.is_numeric:
                cell = self.get_data_cell_for_numeric_columns(
                    None if value is None else str(self.formatter.format_value(value)),
                    'text-end ' + css_class, condition_field, meta, relations, info, plugin, transform_options,
                )
            elif meta.is_mapped_type_geometry:
                # geometry is never edited inline
                css_class = re.sub(r'grid_edit( click\d)?', '', css_class)
                cell = self.get_data_cell_for_geometry_columns(
                    value, css_class, meta, relations, url_params, condition_field, plugin, transform_options, info,
                )
            else:
                cell = self.get_data_cell_for_non_numeric_columns(
                    None if value is None else self.formatter.format_value(value, is_json=meta.is_type(TYPE_JSON)),
                    css_class, meta, relations, url_params, condition_field, plugin, transform_options, info,
                )

            display_params['data'].setdefault(row_number, {})[i] = cell
            row_values_html += cell

        return row_values_html

    def get_data_cell_for_numeric_columns(self, column: Optional[str], css_class: str, condition_field: bool,
                                          meta: FieldMetadata, relations, info: StatementInfo,
                                          plugin: Optional[Transformation_Plugin], transform_options) -> Markup:
        if column is None:
            return self.build_null_display(css_class, condition_field, meta)
        if column == '':
            return self.build_empty_display(css_class, condition_field, meta)

        where_comparison = ' = ' + column
        return self.get_row_data(
            css_class, condition_field, info, meta, relations, column, column, plugin, 'text-nowrap',
            where_comparison, transform_options,
        )

    def get_data_cell_for_geometry_columns(self, column: Optional[bytes], css_class: str, meta: FieldMetadata,
                                           relations, url_params: Dict[str, Any], condition_field: bool,
                                           plugin: Optional[Transformation_Plugin], transform_options,
                                           info: StatementInfo) -> Markup:
        if column is None:
            return self.build_null_display(css_class, condition_field, meta)
        if column == b'' or column == '':
            return self.build_empty_display(css_class, condition_field, meta)

        content = column if isinstance(column, bytes) else str(column).encode('utf-8')
        geo_option = self.tmpval.get('geoOption')

        if geo_option == session_store.GEOMETRY_DISP_GEOM:
            geometry_text, _ = self.handle_non_printable_contents(
                'GEOMETRY', content, plugin, transform_options, meta, url_params,
            )
            return self.build_value_display(css_class, condition_field, geometry_text)

        where_comparison = " = '" + content.hex() + "'::geometry"

        if geo_option == session_store.GEOMETRY_DISP_WKT:
            try:
                wkt_value = wkb_to_wkt(content, include_srid=True)
            except GeometryError as e:
                logger.warning("Cannot convert geometry of column %s: %s", meta.name, e)
                wkt_value = self.formatter.to_hex(content)
            is_truncated, displayed, _ = self.get_partial_text(wkt_value)
            return self.get_row_data(
                css_class, condition_field, info, meta, relations, displayed, displayed, plugin, '',
                where_comparison, transform_options, is_truncated,
            )

        if self.tmpval.get('display_binary'):
            wkb_value = content.hex()
            is_truncated, displayed, _ = self.get_partial_text(wkb_value)
            return self.get_row_data(
                css_class, condition_field, info, meta, relations, displayed, displayed, plugin, '',
                where_comparison, transform_options, is_truncated,
            )

        wkb_value, _ = self.handle_non_printable_contents(
            'BINARY', content, plugin, transform_options, meta, url_params,
        )
        return self.build_value_display(css_class, condition_field, wkb_value)

    def _is_protected_binary(self, meta: FieldMetadata) -> bool:
        protect_binary = self.config.protect_binary
        is_type_blob = meta.is_type(TYPE_BLOB)
        return meta.is_binary and (
            protect_binary == 'all'
            or (protect_binary == 'noblob' and not is_type_blob)
            or (protect_binary == 'blob' and is_type_blob)
        )

    def get_data_cell_for_non_numeric_columns(self, column: Any, css_class: str, meta: FieldMetadata, relations,
                                              url_params: Dict[str, Any], condition_field: bool,
                                              plugin: Optional[Transformation_Plugin], transform_options,
                                              info: StatementInfo) -> Markup:
        original_length = 0
        is_non_text_plugin = plugin is not None and 'Text' not in plugin.get_mime_type()

        if self._is_protected_binary(meta) or is_non_text_plugin:
            css_class = re.sub(r'grid_edit( click\d)?', '', css_class)

        if column is None:
            return self.build_null_display(css_class, condition_field, meta)
        if column == '' or column == b'':
            return self.build_empty_display(css_class, condition_field, meta)

        if isinstance(column, bytes) and not meta.is_binary:
            column = column.decode('utf-8', errors='replace')

        original_data_for_where_clause = column
        displayed_column = column
        is_field_truncated = False
        is_link_plugin = plugin is not None and 'Link' in plugin.get_name()
        if not is_link_plugin and not meta.is_binary and isinstance(column, str):
            is_field_truncated, column, original_length = self.get_partial_text(column)

        if meta.is_mapped_type_bit:
            displayed_column = self.formatter.printable_bit_value(displayed_column, meta.length)
        elif meta.is_binary and not self.is_analyse:
            binary_or_blob = 'BINARY' if meta.is_type(TYPE_STRING) else 'BLOB'
            content = column if isinstance(column, bytes) else str(column).encode('utf-8')
            displayed, is_field_truncated = self.handle_non_printable_contents(
                binary_or_blob, content, plugin, transform_options, meta, url_params,
            )
            css_class = self.add_class(css_class, condition_field, meta, '', is_field_truncated, plugin is not None)
            if binary_or_blob.lower() in re.sub(r'<[^>]*>', '', str(displayed)).lower():
                # binary contents are not shown: nothing to edit
                css_class = re.sub(r'grid_edit( click\d)?', '', css_class)
            return self.build_value_display(css_class, condition_field, displayed)

        no_wrap_plugin = plugin is not None and plugin.apply_transformation_no_wrap(transform_options)
        nowrap = 'text-nowrap' if meta.is_date_time_type() or no_wrap_plugin else 'pre_wrap'

        if isinstance(original_data_for_where_clause, bytes):
            original_data_for_where_clause = original_data_for_where_clause.decode('utf-8', errors='replace')
        where_comparison = ' = ' + self.dbi.quote_string(str(original_data_for_where_clause))

        return self.get_row_data(
            css_class, condition_field, info, meta, relations, str(column), str(displayed_column), plugin, nowrap,
            where_comparison, transform_options, is_field_truncated, str(original_length) if original_length else '',
        )

    def handle_non_printable_contents(self, category: str, content: Optional[bytes],
                                      plugin: Optional[Transformation_Plugin], transform_options,
                                      meta: FieldMetadata, url_params: Optional[Dict[str, Any]] = None
                                      ) -> Tuple[Markup, bool]:
        """
        Placeholder, text or hex rendering of a binary value.

        Args:
            category: BLOB, BINARY or GEOMETRY
            content: The raw value
            plugin: Transformation applied to the value, if any
            transform_options: Options of the transformation
            meta: Column metadata
            url_params: Parameters of the download link, or None for no link

        Returns:
            Tuple of (cell content, whether it was truncated)
        """
        is_truncated = False
        if content is not None:
            size = len(content)
            value, unit = self.formatter.format_byte_down(size, 3, 1)
            placeholder = f"[{category} - {value} {unit}]"
        else:
            placeholder = f"[{category} - NULL]"
            size = 0
            content = b''

        result: Any = placeholder
        if plugin is not None:
            if 'Octetstream' in plugin.get_mime_subtype() or 'Text' in plugin.get_mime_type():
                # text transformations work on the raw bytes
                result = content

        if size <= 0:
            return escape(result) if isinstance(result, str) else escape(content.decode('utf-8', 'replace')), False

        if plugin is not None:
            return plugin.apply_transformation(result, transform_options, meta), False

        html = Markup(self.formatter.mime_default(placeholder))
        tmpval = self.tmpval
        if (tmpval.get('display_binary') and meta.is_type(TYPE_STRING)) or (
                tmpval.get('display_blob') and meta.is_type(TYPE_BLOB)):
            # show the value itself
            if self.formatter.is_printable_utf8(content):
                text = content.decode('utf-8')
            else:
                text = self.formatter.to_hex(content)
            is_truncated, text, _ = self.get_partial_text(text)
            html = escape(text)

        if url_params and self.db and meta.orgtable:
            url = self.url_builder.get_from_route('/table/get-field', url_params)
            html = Markup('<a href="%s" class="disableAjax">%s</a>') % (url, html)

        return html, is_truncated

    def get_from_foreign(self, relation: ForeignKeyRelatedTable, where_comparison: str) -> Optional[str]:
        """Display column of the row a foreign key points at."""
        query = (
            f"SELECT {quote_identifier(relation.display_field)} FROM "
            f"{quote_identifier(relation.schema)}.{quote_identifier(relation.table)} "
            f"WHERE {quote_identifier(relation.field)}{where_comparison}"
        )
        row = self.dbi.fetch_row(query)
        if row is None:
            return 'Link not found!'
        if row[0] is None:
            return None
        _, display_value, _ = self.get_partial_text(str(self.formatter.format_value(row[0])))
        return display_value

    def _apply(self, plugin: Optional[Transformation_Plugin], data: str, transform_options, meta) -> Markup:
        if plugin is not None:
            return Markup(plugin.apply_transformation(data, transform_options, meta))
        return Markup(self.formatter.mime_default(data))

    def get_row_data(self, css_class: str, condition_field: bool, info: StatementInfo, meta: FieldMetadata,
                     relations: Dict[str, ForeignKeyRelatedTable], data: str, displayed_data: str,
                     plugin: Optional[Transformation_Plugin], nowrap: str, where_comparison: str,
                     transform_options, is_field_truncated: bool = False, original_length: str = '') -> Markup:
        """A data cell, linked to the referenced row for foreign keys."""
        relational_display = self.tmpval.get('relational_display')
        td_class = self.add_class(css_class, condition_field, meta, nowrap, is_field_truncated, plugin is not None)

        name = meta.name
        for expression in info.select_expressions:
            if expression.alias and expression.column and expression.alias.lower() == meta.name.lower():
                name = expression.column

        if name in relations:
            relation = relations[name]
            display_value = ''
            if relation.display_field:
                display_value = self.get_from_foreign(relation, where_comparison)

            if self.printview:
                value = self._apply(plugin, data, transform_options, meta)
                value += Markup(' <code>[-&gt;%s]</code>') % (display_value or '')
            else:
                sql_query = (
                    f"SELECT * FROM {quote_identifier(relation.schema)}.{quote_identifier(relation.table)} "
                    f"WHERE {quote_identifier(relation.field)}{where_comparison}"
                )
                url_params = self._sql_link_params(sql_query, db=relation.schema, table=relation.table, pos='0')

                if plugin is not None:
                    # transformations apply to the real data, not the display column
                    shown = Markup(plugin.apply_transformation(data, transform_options, meta))
                elif relational_display == session_store.RELATIONAL_DISPLAY_COLUMN and relation.display_field:
                    shown = (Markup('<em>NULL</em>') if display_value is None
                             else Markup(self.formatter.mime_default(display_value)))
                else:
                    shown = Markup(self.formatter.mime_default(displayed_data))

                title = (display_value or '') if relational_display == session_store.RELATIONAL_KEY else data
                tag_params = {'title': title}
                if 'grid_edit' in css_class:
                    tag_params['class'] = 'ajax'

                value = self.url_builder.link_or_button(
                    self.url_builder.get_from_route('/sql'), url_params, shown, tag_params,
                )
        elif plugin is not None:
            value = Markup(plugin.apply_transformation(data, transform_options, meta))
        else:
            value = Markup(self.formatter.mime_default(data))

        return self.renderer.render('display/results/row_data.html', {
            'value': value,
            'td_class': td_class,
            'decimals': meta.decimals,
            'type': meta.get_mapped_type(),
            'original_length': original_length,
        })

    # Messages and operations

    def get_sorted_column_message(self, result: QueryResult, sort_expression_no_direction: str) -> Markup:
        """Values of the sorted column in the first and last row."""
        if not sort_expression_no_direction:
            return Markup('')

        if '.' not in sort_expression_no_direction:
            sort_table, sort_column = self.table, sort_expression_no_direction
        else:
            sort_table, sort_column = sort_expression_no_direction.split('.')[:2]
        sort_table = sort_table.strip('"')
        sort_column = sort_column.strip('"')

        sorted_column_index = None
        for key, meta in enumerate(self.fields_meta):
            if meta.table == sort_table and meta.name == sort_column:
                sorted_column_index = key
                break
        if sorted_column_index is None:
            return Markup('')

        meta = self.fields_meta[sorted_column_index]
        is_blob_or_geometry_or_binary = meta.is_type(TYPE_BLOB) or meta.is_mapped_type_geometry or meta.is_binary

        def column_text(row) -> str:
            value = row[sorted_column_index] if row else ''
            if is_blob_or_geometry_or_binary:
                content = value if isinstance(value, bytes) else None
                text, _ = self.handle_non_printable_contents(meta.get_mapped_type().upper(), content, None, {}, meta)
                text = text.unescape()
            else:
                text = '' if value is None else str(self.formatter.format_value(value))
            return (text[:self.config.limit_chars] + '...').upper()

        result.seek(0)
        first = column_text(result.fetch_row())
        result.seek(self.num_rows - 1 if self.num_rows > 0 else 0)
        last = column_text(result.fetch_row())
        # back to the first row for the table body
        result.seek(0)

        return Markup(' [%s: <strong>%s - %s</strong>]') % (sort_column, first, last)

    def set_message_information(self, sorted_column_message: Markup, info: StatementInfo, total: int,
                                pos_next: int, pre_count: str, after_count: Markup) -> Message:
        """The "Showing rows" message above the table."""
        tmpval = self.tmpval
        if info.limit is not None:
            first_shown_rec = info.limit.offset
            row_count = info.limit.row_count
            if row_count < total:
                last_shown_rec = first_shown_rec + row_count - 1
            else:
                last_shown_rec = first_shown_rec + total - 1
        elif tmpval['max_rows'] == session_store.ALL_ROWS or pos_next > total:
            first_shown_rec = tmpval['pos']
            last_shown_rec = total - 1
        else:
            first_shown_rec = tmpval['pos']
            last_shown_rec = pos_next - 1

        message_view_warning = None
        if (self.config.max_exact_count_views > 0 and self._is_view()
                and total == self.config.max_exact_count_views):
            warning = Message.notice('This view has at least this number of rows.')
            message_view_warning = show_hint(str(warning))

        message = Message.success('Showing rows %s - %s')
        message.add_param(first_shown_rec)
        if message_view_warning is not None:
            message.add_param_html(Markup('... ') + message_view_warning)
        else:
            message.add_param(last_shown_rec)

        message.add_text('(')

        if message_view_warning is None:
            if self.unlim_num_rows != total:
                message_total = Message.notice(pre_count + '%s total, %s in query')
                message_total.add_param(self.formatter.format_number(total))
                message_total.add_param(self.formatter.format_number(self.unlim_num_rows))
            else:
                message_total = Message.notice(pre_count + '%s total')
                message_total.add_param(self.formatter.format_number(total))

            if after_count:
                message_total.add_html(after_count)

            message.add_message(message_total, '')
            message.add_text(', ', '')

        message_query_time = Message.notice('Query took %01.4f seconds.)')
        message_query_time.add_param(self.querytime)

        message.add_message(message_query_time, '')
        message.add_html(sorted_column_message, '')
        return message

    def get_foreign_key_related_tables(self) -> Dict[str, ForeignKeyRelatedTable]:
        return self.dbi.get_foreign_keys(self.db, self.table)

    def is_clause_unique(self, result: QueryResult, info: StatementInfo, delete_link: DeleteLink) -> bool:
        """Whether the condition built from the last row identifies it uniquely."""
        if delete_link is not DeleteLink.DELETE_ROW:
            return False

        result.seek(self.num_rows - 1 if self.num_rows > 0 else 0)
        row = result.fetch_row() or ()
        _, clause_is_unique, _ = get_unique_condition(
            self.fields_meta, row, self.formatter, False, None, info.select_expressions,
        )
        result.seek(0)
        return clause_is_unique

    @staticmethod
    def has_export_button(info: StatementInfo, delete_link: DeleteLink) -> bool:
        return delete_link is DeleteLink.DELETE_ROW and info.query_type == 'SELECT'

    def get_results_operations(self, has_print_link: bool, info: StatementInfo) -> Dict[str, Any]:
        """Print view and export links below the table."""
        url_params: Dict[str, Any] = {
            'db': self.db,
            'table': self.table,
            'printview': '1',
        }

        geometry_found = False
        if info.query_type == self.QUERY_TYPE_SELECT and not info.is_procedure:
            if len(info.select_tables) == 1:
                url_params['single_table'] = 'true'
            if not info.select_tables:
                # no table involved: export the raw query
                url_params['raw_query'] = 'true'
            url_params['unlim_num_rows'] = self.unlim_num_rows

            if url_params['table'] == '' and url_params['db'] != '':
                url_params['table'] = self.dbi.get_first_table(self.db)

            geometry_found = any(meta.is_mapped_type_geometry for meta in self.fields_meta)

        url_params.update(self._sql_link_params(self.sql_query))
        return {
            'has_procedure': info.is_procedure,
            'has_geometry': geometry_found,
            'has_print_link': has_print_link,
            'has_export_link': info.query_type == self.QUERY_TYPE_SELECT,
            'url_params': url_params,
        }

    def get_message_block(self, message: Any, sql_query: str, message_type: str) -> Markup:
        if isinstance(message, Message):
            message = message.get_message()
        return self.renderer.render('message.html', {
            'message': message,
            'sql_query': sql_query,
            'message_type': message_type,
        })

    def get_table(self, result: QueryResult, display_parts: DisplayParts, info: StatementInfo,
                  is_limited_display: bool = False) -> Markup:
        """
        Render the complete results table.

        Args:
            result: Rows of the executed statement
            display_parts: Parts requested by the caller
            info: Analysis of the statement
            is_limited_display: Render without sort links, options and operations

        Returns:
            Markup: The results HTML
        """
        is_approximate = bool(self.showtable and self.showtable.get('is_approximate'))
        if is_approximate and is_just_browsing(info):
            pre_count = '~'
            after_count = show_hint('May be approximate. The row count of large tables is an estimate.')
        else:
            pre_count = ''
            after_count = Markup('')

        display_parts, total = self.set_display_parts_and_total(display_parts)

        pos_next, pos_prev = 0, 0
        if display_parts.has_navigation_bar:
            pos_next, pos_prev = get_offsets(self.tmpval)

        sort_expression: List[str] = []
        sort_expression_no_direction: List[str] = []
        sort_direction: List[str] = []
        if info.order:
            for order in info.order:
                expression = fold_identifier_case(order.expr)
                sort_expression.append(expression + ' ' + order.direction)
                sort_expression_no_direction.append(expression)
                sort_direction.append(order.direction)
        else:
            sort_expression.append('')
            sort_expression_no_direction.append('')
            sort_direction.append('')

        sorted_column_message = Markup('')
        for expression in sort_expression_no_direction:
            sorted_column_message += self.get_sorted_column_message(result, expression)

        sql_query_message = Markup('')
        if display_parts.has_navigation_bar:
            message = self.set_message_information(
                sorted_column_message, info, total, pos_next, pre_count, after_count,
            )
            sql_query_message = self.get_message_block(message, self.sql_query, 'success')
        elif not self.printview and not is_limited_display:
            sql_query_message = self.get_message_block(
                'Your SQL query has been executed successfully.', self.sql_query, 'success',
            )

        if self.table == '' and info.query_type == 'SELECT' and self.fields_meta:
            self.table = self.fields_meta[0].table

        unsorted_sql_query = ''
        sort_by_key_data: Dict[str, Any] = {}
        if display_parts.has_sort_link and info.query_type == 'SELECT':
            unsorted_sql_query = replace_clause(self.sql_query, 'ORDER BY', '')
            if self.is_select(info):
                # sorting by index only makes sense for one table
                sort_by_key_data = self.get_sort_by_key_drop_down(sort_expression, unsorted_sql_query)

        navigation: Dict[str, Any] = {}
        if display_parts.has_navigation_bar and info.limit is None:
            navigation = self.get_table_navigation(pos_next, pos_prev, is_approximate, sort_by_key_data)

        relations: Dict[str, ForeignKeyRelatedTable] = {}
        if self.table:
            relations = self.get_foreign_key_related_tables()
            if self.is_browse_distinct and self.fields_cnt > 1:
                # link the distinct values to the rows holding them
                relations[self.fields_meta[1].name] = ForeignKeyRelatedTable(
                    table=self.table, field=self.fields_meta[1].name, display_field='', schema=self.db,
                )

        self.display_params = {}
        headers = self.get_table_headers(
            display_parts, info, unsorted_sql_query, sort_expression, sort_expression_no_direction,
            sort_direction, is_limited_display,
        )
        body = self.get_table_body(result, display_parts, relations, info, is_limited_display)
        self.display_params = None

        clause_is_unique = self.is_clause_unique(result, info, display_parts.delete_link)

        operations: Dict[str, Any] = {}
        if not self.printview and not is_limited_display:
            operations = self.get_results_operations(display_parts.has_print_link, info)

        return self.renderer.render('display/results/table.html', {
            'sql_query_message': sql_query_message,
            'navigation': navigation,
            'headers': headers,
            'body': body,
            'has_bulk_links': display_parts.delete_link is DeleteLink.DELETE_ROW,
            'has_export_button': self.has_export_button(info, display_parts.delete_link),
            'clause_is_unique': clause_is_unique,
            'operations': operations,
            'db': self.db,
            'table': self.table,
            'unique_id': self.unique_id,
            'sql_query': self.sql_query,
            'sql_signature': self.url_builder.sign_sql_query(self.sql_query),
            'goto': self.goto,
            'unlim_num_rows': self.unlim_num_rows,
            'save_cells_at_once': self.config.save_cells_at_once,
            'default_sliders_state': self.config.initial_sliders_state,
            'text_dir': self.text_dir,
            'is_browse_distinct': self.is_browse_distinct,
            'grid_edit_config': self._grid_edit_config(is_limited_display),
        })
