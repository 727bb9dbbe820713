"""Database connectivity layer for PostgreSQL integration."""

import logging
import re
from typing import List, Dict, Any, Optional, Tuple
from contextlib import contextmanager
import psycopg2
from psycopg2 import OperationalError, DatabaseError, InterfaceError, sql
from psycopg2.pool import SimpleConnectionPool

from ..config.manager import DatabaseConfig
from .metadata import FieldMetadata, ForeignKeyRelatedTable, Index, TYPE_GEOMETRY
from .query_log import QueryTimer, log_statement
from .result import QueryResult

logger = logging.getLogger(__name__)

PROCESS_LIST_PATTERN = re.compile(r'^\s*SHOW\s+(FULL\s+)?PROCESSLIST\b', re.IGNORECASE)

# pg_stat_activity laid out like a MySQL process list, "Id" first so kill
# links can read the process id from the first column
PROCESS_LIST_QUERY = """
    SELECT
        pid AS "Id",
        usename AS "User",
        client_addr::text AS "Host",
        datname AS "db",
        backend_type AS "Command",
        EXTRACT(EPOCH FROM now() - query_start)::bigint AS "Time",
        state AS "State",
        {info} AS "Info"
    FROM pg_catalog.pg_stat_activity
    ORDER BY pid
"""

CHARACTER_TYPES = ('character varying', 'character', 'text', 'name', 'citext')


class DatabaseConnectionError(Exception):
    """Raised when database connection operations fail."""
    pass


class DatabaseQueryError(Exception):
    """Raised when database query execution fails."""
    pass


class Database_Connector:
    """Manages PostgreSQL database connections and query execution."""

    def __init__(self, database_config: DatabaseConfig, pool_size: int = 5,
                 display_fields: Optional[Dict[str, str]] = None):
        """Initialize the database connector.

        Args:
            database_config: Database configuration settings
            pool_size: Maximum number of connections in the pool
            display_fields: Configured display column per "schema.table"
        """
        self.config = database_config
        self.pool_size = pool_size
        self.display_fields = display_fields or {}
        self._connection_pool: Optional[SimpleConnectionPool] = None
        self._connection_string = self._build_connection_string()

    @property
    def default_schema(self) -> str:
        return self.config.schema

    def _build_connection_string(self) -> str:
        """Build PostgreSQL connection string from configuration.

        Returns:
            str: PostgreSQL connection string
        """
        return (
            f"host={self.config.host} "
            f"port={self.config.port} "
            f"dbname={self.config.database} "
            f"user={self.config.username} "
            f"password={self.config.password}"
        )

    def initialize_pool(self) -> None:
        """Initialize the connection pool.

        Raises:
            DatabaseConnectionError: If pool initialization fails
        """
        try:
            self._connection_pool = SimpleConnectionPool(
                minconn=1,
                maxconn=self.pool_size,
                dsn=self._connection_string
            )
            logger.info("Database connection pool initialized successfully")
        except (OperationalError, DatabaseError) as e:
            error_msg = self._sanitize_error_message(str(e))
            raise DatabaseConnectionError(f"Failed to initialize connection pool: {error_msg}")

    def _sanitize_error_message(self, error_msg: str) -> str:
        """Remove sensitive information from error messages.

        Args:
            error_msg: Original error message

        Returns:
            str: Sanitized error message
        """
        error_msg = error_msg.strip()

        # Remove password information
        if "password" in error_msg.lower():
            return "Authentication failed - please check username and password"
        elif "host" in error_msg.lower() or "connection" in error_msg.lower():
            return f"Cannot connect to database at {self.config.host}:{self.config.port}"
        elif "database" in error_msg.lower() and "does not exist" in error_msg.lower():
            return f"Database '{self.config.database}' does not exist or is not accessible"

        return error_msg

    @contextmanager
    def get_connection(self):
        """Get a database connection from the pool.

        Yields:
            psycopg2.connection: Database connection in autocommit mode

        Raises:
            DatabaseConnectionError: If connection cannot be obtained
        """
        if self._connection_pool is None:
            self.initialize_pool()

        connection = None
        try:
            connection = self._connection_pool.getconn()
            if connection is None:
                raise DatabaseConnectionError("No available connections in pool")

            # Test connection is still valid
            if connection.closed:
                raise DatabaseConnectionError("Connection is closed")

            connection.autocommit = True
            yield connection

        except (OperationalError, InterfaceError) as e:
            error_msg = self._sanitize_error_message(str(e))
            raise DatabaseConnectionError(f"Database connection error: {error_msg}")
        finally:
            if connection and self._connection_pool:
                self._connection_pool.putconn(connection)

    def _set_search_path(self, cursor, schema: Optional[str]) -> None:
        cursor.execute(
            sql.SQL("SET search_path TO {}, public").format(sql.Identifier(schema or self.config.schema))
        )

    def _fetch_all(self, query, params: Optional[Tuple] = None) -> List[Tuple]:
        """Run a catalog query and return all rows.

        Raises:
            DatabaseQueryError: If the query fails
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, params)
                    return cursor.fetchall() if cursor.description else []
        except (OperationalError, DatabaseError) as e:
            logger.error("Catalog query failed: %s", str(e).strip())
            raise DatabaseQueryError(f"Database query failed: {self._sanitize_error_message(str(e))}")

    def execute_result(self, sql_query: str, schema: Optional[str] = None) -> QueryResult:
        """Execute one statement and return its buffered result set.

        Args:
            sql_query: SQL statement to execute
            schema: Schema to put first on the search path

        Returns:
            QueryResult: Rows and column metadata (no fields for statements
            that do not return rows)

        Raises:
            DatabaseQueryError: If query execution fails
        """
        if not sql_query or not sql_query.strip():
            raise DatabaseQueryError("SQL query cannot be empty")

        process_list = PROCESS_LIST_PATTERN.match(sql_query)
        if process_list:
            info = 'query' if process_list.group(1) else 'left(query, 100)'
            sql_query = PROCESS_LIST_QUERY.format(info=info)

        timer = QueryTimer()
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    self._set_search_path(cursor, schema)
                    with timer:
                        cursor.execute(sql_query)
                        rows = cursor.fetchall() if cursor.description else []

                    if not cursor.description:
                        log_statement(sql_query, cursor.rowcount, timer.duration)
                        return QueryResult([], [], affected_rows=cursor.rowcount)

                    fields = self._build_fields(cursor, cursor.description)
                    rows = [self._convert_row(row, fields) for row in rows]

        except (OperationalError, DatabaseError) as e:
            error_msg = str(e).strip()
            log_statement(sql_query, duration=timer.duration, error=error_msg)
            # Database errors are shown to the user verbatim, like a SQL console
            raise DatabaseQueryError(error_msg)

        log_statement(sql_query, len(rows), timer.duration)
        result = QueryResult(fields, rows)
        result.query_time = timer.duration
        return result

    @staticmethod
    def _convert_row(row: Tuple, fields: List[FieldMetadata]) -> Tuple:
        converted = []
        for value, meta in zip(row, fields):
            if isinstance(value, memoryview):
                value = bytes(value)
            elif meta.is_type(TYPE_GEOMETRY) and isinstance(value, str):
                # PostGIS sends (E)WKB as a hex string
                try:
                    value = bytes.fromhex(value)
                except ValueError:
                    pass
            converted.append(value)
        return tuple(converted)

    def _build_fields(self, cursor, description) -> List[FieldMetadata]:
        """Resolve column origins, types and key flags from pg_catalog."""
        table_oids = sorted({col.table_oid for col in description if col.table_oid})
        type_oids = sorted({col.type_code for col in description})

        types: Dict[int, Tuple[str, str]] = {}
        cursor.execute(
            "SELECT oid, typname, typtype FROM pg_catalog.pg_type WHERE oid = ANY(%s::oid[])",
            (type_oids,)
        )
        for oid, typname, typtype in cursor.fetchall():
            types[oid] = (typname, typtype)

        relations: Dict[int, Tuple[str, str]] = {}
        attributes: Dict[Tuple[int, int], Tuple[str, bool]] = {}
        primary: Dict[int, set] = {}
        unique: Dict[int, set] = {}
        if table_oids:
            cursor.execute(
                "SELECT c.oid, n.nspname, c.relname FROM pg_catalog.pg_class c "
                "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
                "WHERE c.oid = ANY(%s::oid[])",
                (table_oids,)
            )
            for oid, nspname, relname in cursor.fetchall():
                relations[oid] = (nspname, relname)

            cursor.execute(
                "SELECT attrelid, attnum, attname, attnotnull FROM pg_catalog.pg_attribute "
                "WHERE attrelid = ANY(%s::oid[]) AND attnum > 0 AND NOT attisdropped",
                (table_oids,)
            )
            for attrelid, attnum, attname, attnotnull in cursor.fetchall():
                attributes[(attrelid, attnum)] = (attname, attnotnull)

            cursor.execute(
                "SELECT indrelid, indkey::int2[], indisprimary FROM pg_catalog.pg_index "
                "WHERE indisunique AND indrelid = ANY(%s::oid[])",
                (table_oids,)
            )
            for indrelid, indkey, indisprimary in cursor.fetchall():
                target = primary if indisprimary else unique
                target.setdefault(indrelid, set()).update(indkey or [])

        fields = []
        for col in description:
            typname, typtype = types.get(col.type_code, ('text', 'b'))
            schema, table = relations.get(col.table_oid, ('', ''))
            orgname, not_null = attributes.get((col.table_oid, col.table_column), ('', False))
            fields.append(FieldMetadata(
                name=col.name,
                type_name=typname,
                table=table,
                orgtable=table,
                orgname=orgname,
                schema=schema,
                length=col.internal_size if col.internal_size and col.internal_size > 0 else (col.display_size or 0),
                decimals=col.scale or 0,
                is_not_null=bool(not_null),
                is_primary_key=col.table_column in primary.get(col.table_oid, set()),
                is_unique_key=col.table_column in unique.get(col.table_oid, set()),
                is_enum=typtype == 'e',
            ))
        return fields

    def fetch_row(self, query, params: Optional[Tuple] = None) -> Optional[Tuple]:
        """Return the first row of a query, or None when it returns nothing."""
        rows = self._fetch_all(query, params)
        return rows[0] if rows else None

    def count_records(self, schema: str, table: str, max_exact_count: int,
                      max_exact_count_views: int = 0) -> Tuple[int, bool]:
        """Count the rows of a table, estimating large ones.

        Args:
            schema: Schema name
            table: Table or view name
            max_exact_count: Tables estimated above this size keep the estimate
            max_exact_count_views: Counting of views stops at this many rows (0 = no limit)

        Returns:
            Tuple of (row count, whether the count is approximate)
        """
        row = self.fetch_row(
            "SELECT c.reltuples::bigint, c.relkind FROM pg_catalog.pg_class c "
            "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
            "WHERE n.nspname = %s AND c.relname = %s",
            (schema, table)
        )
        if row is None:
            return 0, False

        estimate, relkind = row
        relation = sql.SQL("{}.{}").format(sql.Identifier(schema), sql.Identifier(table))
        if relkind in ('v', 'm'):
            if max_exact_count_views > 0:
                query = sql.SQL("SELECT COUNT(*) FROM (SELECT 1 FROM {} LIMIT {}) AS limited").format(
                    relation, sql.Literal(max_exact_count_views)
                )
            else:
                query = sql.SQL("SELECT COUNT(*) FROM {}").format(relation)
            return int(self.fetch_row(query)[0]), False

        if estimate is not None and estimate >= max_exact_count:
            return int(estimate), True

        return int(self.fetch_row(sql.SQL("SELECT COUNT(*) FROM {}").format(relation))[0]), False

    def count_query_rows(self, sql_query: str, schema: Optional[str] = None) -> int:
        """Count the rows an arbitrary SELECT returns without any LIMIT."""
        wrapped = f"SELECT COUNT(*) FROM ({sql_query.strip().rstrip(';')}) AS count_query"
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    self._set_search_path(cursor, schema)
                    cursor.execute(wrapped)
                    return int(cursor.fetchone()[0])
        except (OperationalError, DatabaseError) as e:
            raise DatabaseQueryError(str(e).strip())

    def is_view(self, schema: str, table: str) -> bool:
        if not table:
            return False
        row = self.fetch_row(
            "SELECT c.relkind FROM pg_catalog.pg_class c "
            "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
            "WHERE n.nspname = %s AND c.relname = %s",
            (schema, table)
        )
        return row is not None and row[0] in ('v', 'm')

    def get_column_comments(self, schema: str, table: str) -> Dict[str, str]:
        """Return the non-empty column comments of a table."""
        rows = self._fetch_all(
            "SELECT a.attname, col_description(c.oid, a.attnum) FROM pg_catalog.pg_attribute a "
            "JOIN pg_catalog.pg_class c ON c.oid = a.attrelid "
            "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
            "WHERE n.nspname = %s AND c.relname = %s AND a.attnum > 0 AND NOT a.attisdropped",
            (schema, table)
        )
        return {name: comment for name, comment in rows if comment}

    def get_display_field(self, schema: str, table: str) -> str:
        """Column shown in place of a foreign key value.

        The configured display field wins; otherwise the first character
        column of the referenced table is used.
        """
        configured = self.display_fields.get(f"{schema}.{table}")
        if configured:
            return configured

        row = self.fetch_row(
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = %s AND table_name = %s AND data_type = ANY(%s) "
            "ORDER BY ordinal_position LIMIT 1",
            (schema, table, list(CHARACTER_TYPES))
        )
        return row[0] if row else ''

    def get_foreign_keys(self, schema: str, table: str) -> Dict[str, ForeignKeyRelatedTable]:
        """Map each referencing column of ``table`` to the row it points at."""
        rows = self._fetch_all(
            """
            SELECT a.attname, fn.nspname, fc.relname, fa.attname
            FROM pg_catalog.pg_constraint con
            JOIN pg_catalog.pg_class c ON c.oid = con.conrelid
            JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_catalog.pg_class fc ON fc.oid = con.confrelid
            JOIN pg_catalog.pg_namespace fn ON fn.oid = fc.relnamespace
            CROSS JOIN LATERAL unnest(con.conkey, con.confkey) AS k(attnum, fattnum)
            JOIN pg_catalog.pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
            JOIN pg_catalog.pg_attribute fa ON fa.attrelid = con.confrelid AND fa.attnum = k.fattnum
            WHERE con.contype = 'f' AND n.nspname = %s AND c.relname = %s
            """,
            (schema, table)
        )
        relations = {}
        for column, foreign_schema, foreign_table, foreign_column in rows:
            relations[column] = ForeignKeyRelatedTable(
                table=foreign_table,
                field=foreign_column,
                display_field=self.get_display_field(foreign_schema, foreign_table),
                schema=foreign_schema,
            )
        return relations

    def get_indexes(self, schema: str, table: str) -> List[Index]:
        rows = self._fetch_all(
            """
            SELECT i.relname, ix.indisunique, ix.indisprimary,
                   array_agg(a.attname::text ORDER BY k.ord)
            FROM pg_catalog.pg_index ix
            JOIN pg_catalog.pg_class t ON t.oid = ix.indrelid
            JOIN pg_catalog.pg_namespace n ON n.oid = t.relnamespace
            JOIN pg_catalog.pg_class i ON i.oid = ix.indexrelid
            CROSS JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_catalog.pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
            WHERE n.nspname = %s AND t.relname = %s
            GROUP BY i.relname, ix.indisunique, ix.indisprimary
            ORDER BY ix.indisprimary DESC, i.relname
            """,
            (schema, table)
        )
        return [
            Index(name=name, columns=list(columns), is_unique=is_unique, is_primary=is_primary)
            for name, is_unique, is_primary, columns in rows
        ]

    def get_first_table(self, schema: str) -> str:
        row = self.fetch_row(
            "SELECT table_name FROM information_schema.tables WHERE table_schema = %s "
            "ORDER BY table_name LIMIT 1",
            (schema,)
        )
        return row[0] if row else ''

    def fetch_field(self, schema: str, table: str, column: str, where_clause: str) -> Any:
        """Fetch a single column of the row matched by a (signed) WHERE clause.

        Raises:
            DatabaseQueryError: If no row matches
        """
        query = sql.SQL("SELECT {} FROM {}.{} WHERE ").format(
            sql.Identifier(column), sql.Identifier(schema), sql.Identifier(table)
        ) + sql.SQL(where_clause) + sql.SQL(" LIMIT 1")
        row = self.fetch_row(query)
        if row is None:
            raise DatabaseQueryError("The requested row does not exist")
        value = row[0]
        return bytes(value) if isinstance(value, memoryview) else value

    def list_tables(self, schema: str) -> List[str]:
        rows = self._fetch_all(
            "SELECT table_name FROM information_schema.tables WHERE table_schema = %s ORDER BY table_name",
            (schema,)
        )
        return [row[0] for row in rows]

    def execute_statement(self, query, params: Optional[Tuple] = None, schema: Optional[str] = None) -> int:
        """Run a data changing statement with bound parameters.

        Returns:
            int: Number of affected rows

        Raises:
            DatabaseQueryError: If execution fails
        """
        timer = QueryTimer()
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    self._set_search_path(cursor, schema)
                    with timer:
                        cursor.execute(query, params)
                    preview = query if isinstance(query, str) else query.as_string(conn)
                    log_statement(preview, cursor.rowcount, timer.duration)
                    return cursor.rowcount
        except (OperationalError, DatabaseError) as e:
            error_msg = str(e).strip()
            logger.error("Statement failed: %s", error_msg)
            raise DatabaseQueryError(error_msg)

    @staticmethod
    def quote_string(value: str) -> str:
        """Quote a string literal (standard_conforming_strings is on)."""
        return "'" + value.replace("'", "''") + "'"

    @staticmethod
    def get_kill_query(process_id: int) -> str:
        return f"SELECT pg_terminate_backend({int(process_id)})"

    def test_connection(self) -> bool:
        """Test database connectivity.

        Returns:
            bool: True if connection is successful

        Raises:
            DatabaseConnectionError: If connection test fails
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT 1")
                    result = cursor.fetchone()
                    if result[0] != 1:
                        raise DatabaseConnectionError("Connection test query failed")

            logger.info("Database connection test successful")
            return True

        except (OperationalError, DatabaseError) as e:
            error_msg = self._sanitize_error_message(str(e))
            raise DatabaseConnectionError(f"Database connection test failed: {error_msg}")

    def close_pool(self) -> None:
        """Close all connections in the pool."""
        if self._connection_pool:
            self._connection_pool.closeall()
            self._connection_pool = None
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        self.initialize_pool()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close_pool()
