# Statement introspection module

from .analyzer import (
    Statement_Analyzer, StatementInfo, StatementParseError, TableRef, SelectExpr, OrderBy, Limit,
    replace_clause, get_clause, is_just_browsing, remove_order_column, quote_identifier,
)

__all__ = [
    'Statement_Analyzer', 'StatementInfo', 'StatementParseError', 'TableRef', 'SelectExpr', 'OrderBy',
    'Limit', 'replace_clause', 'get_clause', 'is_just_browsing', 'remove_order_column', 'quote_identifier',
]
