"""WHERE conditions identifying one row of a result set."""

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..database.metadata import FieldMetadata, TYPE_BLOB, TYPE_REAL
from ..formatting.formatter import Result_Formatter
from ..parsing.analyzer import SelectExpr, quote_identifier

# Binary values at least this long are left out of a condition
MAX_BINARY_CONDITION_LENGTH = 1000
MAX_GEOMETRY_CONDITION_LENGTH = 5000


def _quote_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _condition_value(
    value: Any,
    meta: FieldMetadata,
    fields_count: int,
    condition_key: str,
    condition: str,
    formatter: Result_Formatter,
) -> Tuple[Optional[str], str]:
    """Right hand side of the comparison for one column.

    Returns:
        Tuple of (comparison or None to leave the column out, condition prefix)
    """
    if value is None:
        return 'IS NULL', condition

    if meta.is_numeric and not meta.is_type(TYPE_REAL):
        return '= ' + str(value), condition

    if meta.is_type(TYPE_REAL):
        return '= ' + _quote_string(str(value)), condition

    if meta.is_type(TYPE_BLOB):
        content = value if isinstance(value, bytes) else str(value).encode('utf-8')
        if 0 < len(content) < MAX_BINARY_CONDITION_LENGTH:
            return "= '\\x" + content.hex() + "'::bytea", condition
        if fields_count == 1:
            # only column of the result: settle for its length
            return '= ' + str(len(content)), ' length(' + condition_key + ') '
        return None, condition

    if meta.is_mapped_type_geometry and value:
        content = value if isinstance(value, bytes) else str(value).encode('utf-8')
        if len(content) < MAX_GEOMETRY_CONDITION_LENGTH:
            return "= '" + content.hex() + "'::geometry", condition
        return None, condition

    if meta.is_mapped_type_bit:
        return "= B'" + formatter.printable_bit_value(value, meta.length) + "'", condition

    if meta.type_name == 'jsonb':
        return '= ' + _quote_string(str(formatter.format_value(value, is_json=True))) + '::jsonb', condition

    if meta.type_name == 'json':
        # json has no equality operator
        return None, condition

    return '= ' + _quote_string(str(formatter.format_value(value))), condition


def get_unique_condition(
    fields_meta: List[FieldMetadata],
    row: Sequence[Any],
    formatter: Optional[Result_Formatter] = None,
    force_unique: bool = False,
    restrict_to_table: Optional[str] = None,
    expressions: Sequence[SelectExpr] = (),
) -> Tuple[str, bool, Dict[str, str]]:
    """
    Build the WHERE clause that identifies ``row``.

    Primary key columns are preferred, then unique key columns; otherwise
    every usable column is compared and the clause may match several rows.

    Args:
        fields_meta: Column metadata of the result set
        row: Raw row values
        formatter: Value formatter
        force_unique: Return an empty clause rather than a non-unique one
        restrict_to_table: Only use columns of this table
        expressions: SELECT list, used to resolve column aliases

    Returns:
        Tuple of (where clause, whether it is unique, {column key: comparison})
    """
    formatter = formatter or Result_Formatter()
    fields_count = len(fields_meta)

    primary_key, unique_key, non_primary = '', '', ''
    primary_array: Dict[str, str] = {}
    unique_array: Dict[str, str] = {}
    non_primary_array: Dict[str, str] = {}

    for index, meta in enumerate(fields_meta):
        orgname = meta.orgname
        if orgname == '':
            orgname = meta.name
            # do not use a column alias in a condition
            for expression in expressions:
                if expression.alias and expression.column and expression.alias.lower() == meta.name.lower():
                    orgname = expression.column
                    break

        table = meta.orgtable or meta.table
        if restrict_to_table and restrict_to_table != table:
            continue

        condition_key = (quote_identifier(table) + '.' if table else '') + quote_identifier(orgname)
        if meta.is_type(TYPE_REAL):
            # float comparisons are imprecise, compare the text form
            condition_key = condition_key + '::text'
        condition = ' ' + condition_key + ' '

        value = row[index] if index < len(row) else None
        comparison, condition = _condition_value(value, meta, fields_count, condition_key, condition, formatter)
        if comparison is None:
            continue

        condition += comparison + ' AND'

        if meta.is_primary_key:
            primary_key += condition
            primary_array[condition_key] = comparison
        elif meta.is_unique_key:
            unique_key += condition
            unique_array[condition_key] = comparison

        non_primary += condition
        non_primary_array[condition_key] = comparison

    clause_is_unique = True
    preferred = ''
    condition_array: Dict[str, str] = {}
    if primary_key:
        preferred, condition_array = primary_key, primary_array
    elif unique_key:
        preferred, condition_array = unique_key, unique_array
    elif not force_unique:
        preferred, condition_array = non_primary, non_primary_array
        clause_is_unique = False

    where_clause = re.sub(r'\s?AND$', '', preferred).strip()
    return where_clause, clause_is_unique, condition_array
