"""ORDER BY links of the sortable column headers."""

import re
from typing import Any, Dict, List, Sequence, Tuple

from markupsafe import Markup

from ..database.metadata import FieldMetadata, Index, TYPE_DATE, TYPE_DATETIME, TYPE_TIME, TYPE_TIMESTAMP
from ..parsing.analyzer import quote_identifier
from .html import get_image

SMART_SORT_ORDER = 'SMART'
ASCENDING_SORT_DIR = 'ASC'
DESCENDING_SORT_DIR = 'DESC'

# Trailing clauses a new ORDER BY has to be inserted before
SORT_TAIL_PATTERN = re.compile(
    r'(.*)(\s(LIMIT (.*)|PROCEDURE (.*)|FOR UPDATE|LOCK IN SHARE MODE))',
    re.IGNORECASE | re.DOTALL,
)

_PLAIN_IDENTIFIER = re.compile(r'^("[^"]*"|[^".\s()]+)(\.("[^"]*"|[^".\s()]+))?$')


def split_unsorted_query(sql_query: str) -> Tuple[str, str]:
    """Split a statement before its trailing LIMIT/locking clause."""
    match = SORT_TAIL_PATTERN.match(sql_query)
    if match:
        return match.group(1), match.group(2)
    return sql_query, ''


def fold_identifier_case(expression: str) -> str:
    """Lower-case the unquoted parts of a plain (dotted) identifier.

    PostgreSQL folds unquoted names to lower case, so ``Name`` sorts the
    ``name`` column; expressions are left as written.
    """
    if not _PLAIN_IDENTIFIER.match(expression):
        return expression
    return '.'.join(part if part.startswith('"') else part.lower() for part in expression.split('.'))


def default_sort_direction(meta: FieldMetadata, order_setting: str) -> str:
    """Direction of a first click on a column header."""
    if order_setting != SMART_SORT_ORDER:
        return order_setting
    is_time_or_date = any(meta.is_type(t) for t in (TYPE_TIME, TYPE_DATE, TYPE_DATETIME, TYPE_TIMESTAMP))
    return DESCENDING_SORT_DIR if is_time_or_date else ASCENDING_SORT_DIR


def is_in_sorted(
    sort_expression: Sequence[str],
    sort_expression_no_direction: Sequence[str],
    sort_table: str,
    name_to_use_in_sort: str,
) -> bool:
    """
    Check whether a column is part of the current ORDER BY.

    Args:
        sort_expression: ORDER BY items with direction
        sort_expression_no_direction: ORDER BY items without direction
        sort_table: Quoted table prefix of the column ('"t".') or ''
        name_to_use_in_sort: Column name

    Returns:
        bool: True if the column is sorted on
    """
    index_in_expression = 0
    for index, clause in enumerate(sort_expression_no_direction):
        if '.' in clause:
            fragments = clause.split('.')
            candidate = fragments[0] + '.' + fragments[1].replace('"', '')
        else:
            candidate = sort_table + clause.replace('"', '')
        if candidate == sort_table + name_to_use_in_sort:
            index_in_expression = index
            break

    if not sort_expression or not sort_expression[index_in_expression].strip():
        return False

    current = sort_expression_no_direction[index_in_expression]
    no_sort_table = sort_table == '' or sort_table not in current
    no_open_parenthesis = '(' not in current
    if sort_table != '' and no_sort_table and no_open_parenthesis:
        qualified = sort_table + current
    else:
        qualified = current

    name = name_to_use_in_sort.replace('"', '')
    sort_name = sort_table.replace('"', '') + name

    return sort_name == qualified.replace('"', '') or sort_name == current.replace('"', '')


def get_sorting_url_params(sort_direction: str, sort_order: str) -> Tuple[str, Markup]:
    """Append the opposite direction to ``sort_order`` and build the arrow icons."""
    if sort_direction.strip().upper() == DESCENDING_SORT_DIR:
        sort_order += ASCENDING_SORT_DIR
        order_img = (Markup(' ') + get_image('s_desc', 'Descending', {'class': 'soimg', 'title': ''})
                     + Markup(' ') + get_image('s_asc', 'Ascending', {'class': 'soimg hide', 'title': ''}))
    else:
        sort_order += DESCENDING_SORT_DIR
        order_img = (Markup(' ') + get_image('s_asc', 'Ascending', {'class': 'soimg', 'title': ''})
                     + Markup(' ') + get_image('s_desc', 'Descending', {'class': 'soimg hide', 'title': ''}))
    return sort_order, order_img


def get_single_and_multi_sort_urls(
    sort_expression: Sequence[str],
    sort_expression_no_direction: Sequence[str],
    sort_table: str,
    name_to_use_in_sort: str,
    sort_direction: Sequence[str],
    meta: FieldMetadata,
    order_setting: str = SMART_SORT_ORDER,
) -> Tuple[str, str, Markup]:
    """
    ORDER BY clauses for a click on a column header.

    A plain click sorts on the column alone; the multi-sort clause keeps the
    current ORDER BY and adds (or flips) the column in it.

    Returns:
        Tuple of (single column ORDER BY, multi column ORDER BY, arrow icons)
    """
    is_in_sort = is_in_sorted(sort_expression, sort_expression_no_direction, sort_table, name_to_use_in_sort)
    current_name = name_to_use_in_sort
    no_direction = list(sort_expression_no_direction)
    directions = list(sort_direction)

    if no_direction[0] == '' or not is_in_sort:
        special_index = 0 if no_direction[0] == '' else len(no_direction)
        direction = default_sort_direction(meta, order_setting)
        if special_index == len(no_direction):
            no_direction.append(quote_identifier(current_name))
            directions.append(direction)
        else:
            no_direction[special_index] = quote_identifier(current_name)
            directions[special_index] = direction

    single_sort_order = ''
    order_img = Markup('')
    sort_order_columns: List[str] = []
    for index, expression in enumerate(no_direction):
        if not expression:
            continue
        sort_order = ''
        sort_table_new = sort_table
        name = expression
        if '.' in name and '(' not in name:
            table_part, name = name.split('.')[0], name.split('.')[1]
            sort_table_new = table_part

        name = name.replace(' )', ')').replace('""', '"').strip('"')

        if index == 0:
            sort_order += '\nORDER BY '

        if '(' in name:
            sort_order += name
        else:
            if sort_table_new != '' and not sort_table_new.endswith('.'):
                sort_table_new += '.'
            sort_order += sort_table_new + quote_identifier(name)

        if current_name == name:
            single_sort_order = '\nORDER BY '
            if '(' not in current_name:
                single_sort_order += sort_table
            single_sort_order += quote_identifier(current_name) + ' '
            if is_in_sort:
                single_sort_order, order_img = get_sorting_url_params(directions[index], single_sort_order)
            else:
                single_sort_order += directions[index].upper()

        sort_order += ' '
        if current_name == name and is_in_sort:
            sort_order, order_img = get_sorting_url_params(directions[index], sort_order)
            order_img += Markup(' <small>%d</small>') % (index + 1)
        else:
            sort_order += directions[index].upper()

        sort_order_columns.append(sort_order)

    return single_sort_order, ', '.join(sort_order_columns), order_img


def insert_order_by(unsorted_sql_query: str, order_by: str) -> str:
    """Put an ORDER BY clause in front of any trailing LIMIT/locking clause."""
    first, second = split_unsorted_query(unsorted_sql_query)
    return first + order_by + second


def get_sort_by_key_options(
    indexes: Sequence[Index],
    sort_expression: Sequence[str],
    unsorted_sql_query: str,
) -> List[Dict[str, Any]]:
    """Options of the "Sort by key" drop-down, one ASC and one DESC per index."""
    local_order = ', '.join(sort_expression)
    first, second = split_unsorted_query(unsorted_sql_query)

    options = []
    is_index_used = False
    for index in indexes:
        asc_sort = '"' + '" ASC, "'.join(index.columns) + '" ASC'
        desc_sort = '"' + '" DESC, "'.join(index.columns) + '" DESC'
        is_index_used = is_index_used or local_order in (asc_sort, desc_sort)

        options.append({
            'value': first + ' ORDER BY ' + asc_sort + second,
            'content': index.name + ' (ASC)',
            'is_selected': local_order == asc_sort,
        })
        options.append({
            'value': first + ' ORDER BY ' + desc_sort + second,
            'content': index.name + ' (DESC)',
            'is_selected': local_order == desc_sort,
        })

    options.append({'value': unsorted_sql_query, 'content': 'None', 'is_selected': not is_index_used})
    return options
