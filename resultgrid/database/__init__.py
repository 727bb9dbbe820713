# Database connectivity module

from .connector import Database_Connector, DatabaseConnectionError, DatabaseQueryError
from .metadata import FieldMetadata, ForeignKeyRelatedTable, Index
from .result import QueryResult

__all__ = [
    'Database_Connector', 'DatabaseConnectionError', 'DatabaseQueryError',
    'FieldMetadata', 'ForeignKeyRelatedTable', 'Index', 'QueryResult',
]
