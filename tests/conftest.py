"""Shared fixtures: an in-memory stand-in for the PostgreSQL connector."""

import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from resultgrid.config.manager import Config_Manager, DisplayConfig
from resultgrid.database.metadata import FieldMetadata, ForeignKeyRelatedTable, Index
from resultgrid.database.result import QueryResult
from resultgrid.display.urls import Url_Builder
from resultgrid.rendering import Template_Renderer
from resultgrid.sql import Query_Runner

SECRET_KEY = 'test-secret-key'


def users_fields() -> List[FieldMetadata]:
    return [
        FieldMetadata('id', 'int4', table='users', orgtable='users', schema='public',
                      is_not_null=True, is_primary_key=True),
        FieldMetadata('name', 'text', table='users', orgtable='users', schema='public'),
        FieldMetadata('email', 'varchar', table='users', orgtable='users', schema='public'),
    ]


USERS_ROWS = [
    (1, 'Alice', 'alice@example.com'),
    (2, "O'Brien", None),
    (3, '<b>Carol</b>', 'carol@example.com'),
]


class FakeDatabase:
    """Connector double answering from registered result sets.

    ``add_result(pattern, fields, rows)`` registers a result for every
    statement containing ``pattern``; the first matching registration wins.
    Statements matching nothing behave like data changing statements.
    """

    default_schema = 'public'

    def __init__(self):
        self.results: List[Tuple[str, List[FieldMetadata], List[tuple]]] = []
        self.executed: List[str] = []
        self.statements: List[Tuple[Any, Optional[tuple], Optional[str]]] = []
        self.fetched: List[str] = []
        self.counts: Dict[str, Tuple[int, bool]] = {}
        self.query_row_count = 0
        self.views = set()
        self.indexes: Dict[str, List[Index]] = {}
        self.foreign_keys: Dict[str, Dict[str, ForeignKeyRelatedTable]] = {}
        self.comments: Dict[str, Dict[str, str]] = {}
        self.foreign_rows: Dict[str, tuple] = {}
        self.field_values: Dict[str, Any] = {}
        self.tables = ['orders', 'users']
        self.affected_rows = 1
        self.error: Optional[Exception] = None
        self.closed = False

    def add_result(self, pattern: str, fields: List[FieldMetadata], rows: List[tuple]) -> None:
        self.results.append((pattern, fields, rows))

    def execute_result(self, sql_query: str, schema: Optional[str] = None) -> QueryResult:
        self.executed.append(sql_query)
        if self.error is not None:
            raise self.error
        for pattern, fields, rows in self.results:
            if pattern in sql_query:
                return QueryResult(copy.deepcopy(fields), rows)
        return QueryResult([], [], affected_rows=self.affected_rows)

    def execute_statement(self, query, params=None, schema=None) -> int:
        if self.error is not None:
            raise self.error
        self.statements.append((query, params, schema))
        return self.affected_rows

    def fetch_row(self, query, params=None):
        self.fetched.append(query)
        for pattern, row in self.foreign_rows.items():
            if pattern in query:
                return row
        return None

    def fetch_field(self, schema, table, column, where_clause):
        return self.field_values[column]

    def count_records(self, schema, table, max_exact_count, max_exact_count_views=0):
        return self.counts.get(table, (0, False))

    def count_query_rows(self, sql_query, schema=None):
        return self.query_row_count

    def is_view(self, schema, table):
        return table in self.views

    def get_column_comments(self, schema, table):
        return self.comments.get(table, {})

    def get_foreign_keys(self, schema, table):
        return dict(self.foreign_keys.get(table, {}))

    def get_indexes(self, schema, table):
        return self.indexes.get(table, [])

    def get_first_table(self, schema):
        return self.tables[0] if self.tables else ''

    def list_tables(self, schema):
        return list(self.tables)

    @staticmethod
    def quote_string(value):
        return "'" + value.replace("'", "''") + "'"

    @staticmethod
    def get_kill_query(process_id):
        return f"SELECT pg_terminate_backend({int(process_id)})"

    def test_connection(self):
        return True

    def close_pool(self):
        self.closed = True


@pytest.fixture
def fake_db() -> FakeDatabase:
    db = FakeDatabase()
    db.add_result('FROM "public"."users"', users_fields(), USERS_ROWS)
    db.add_result('FROM users', users_fields(), USERS_ROWS)
    db.indexes['users'] = [Index('users_pkey', ['id'], is_unique=True, is_primary=True)]
    return db


@pytest.fixture
def display_config() -> DisplayConfig:
    return DisplayConfig()


@pytest.fixture
def url_builder() -> Url_Builder:
    return Url_Builder(SECRET_KEY)


@pytest.fixture
def renderer(url_builder) -> Template_Renderer:
    return Template_Renderer(url_builder)


@pytest.fixture
def runner(fake_db, display_config, url_builder, renderer) -> Query_Runner:
    return Query_Runner(fake_db, display_config, url_builder, renderer)


@pytest.fixture
def config_data() -> Dict[str, Any]:
    return {
        'database': {
            'host': 'localhost',
            'port': 5432,
            'username': 'postgres',
            'password': 'secret',
            'database': 'shop',
        },
        'app': {
            'host': '127.0.0.1',
            'port': 5000,
            'debug': False,
            'secret_key': SECRET_KEY,
        },
        'display': {
            'max_rows': 25,
        },
    }


@pytest.fixture
def config_manager(config_data) -> Config_Manager:
    manager = Config_Manager('unused.yaml')
    manager.load_dict(config_data)
    return manager
