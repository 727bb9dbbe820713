"""Column metadata for result sets."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

TYPE_INT = 'int'
TYPE_REAL = 'real'
TYPE_STRING = 'string'
TYPE_BLOB = 'blob'
TYPE_DATE = 'date'
TYPE_TIME = 'time'
TYPE_DATETIME = 'datetime'
TYPE_TIMESTAMP = 'timestamp'
TYPE_GEOMETRY = 'geometry'
TYPE_BIT = 'bit'
TYPE_JSON = 'json'

# PostgreSQL type names (pg_type.typname) to display categories
PG_TYPE_CATEGORIES: Dict[str, str] = {
    'int2': TYPE_INT,
    'int4': TYPE_INT,
    'int8': TYPE_INT,
    'oid': TYPE_INT,
    'xid': TYPE_INT,
    'float4': TYPE_REAL,
    'float8': TYPE_REAL,
    'numeric': TYPE_REAL,
    'money': TYPE_REAL,
    'bytea': TYPE_BLOB,
    'date': TYPE_DATE,
    'time': TYPE_TIME,
    'timetz': TYPE_TIME,
    'timestamp': TYPE_DATETIME,
    'timestamptz': TYPE_TIMESTAMP,
    'geometry': TYPE_GEOMETRY,
    'geography': TYPE_GEOMETRY,
    'bit': TYPE_BIT,
    'varbit': TYPE_BIT,
    'json': TYPE_JSON,
    'jsonb': TYPE_JSON,
}


def category_for_type(type_name: str) -> str:
    """Map a PostgreSQL type name to its display category (string by default)."""
    return PG_TYPE_CATEGORIES.get((type_name or '').lower(), TYPE_STRING)


@dataclass
class FieldMetadata:
    """Meta information about one column of a result set.

    ``table``/``name`` are what the result set reports, ``orgtable``/``orgname``
    the underlying relation and attribute (empty for computed columns).
    """
    name: str
    type_name: str = 'text'
    table: str = ''
    orgtable: str = ''
    orgname: str = ''
    schema: str = ''
    length: int = 0
    decimals: int = 0
    is_not_null: bool = False
    is_primary_key: bool = False
    is_unique_key: bool = False
    is_enum: bool = False
    internal_media_type: Optional[str] = None
    category: str = field(init=False)

    def __post_init__(self):
        self.category = category_for_type(self.type_name)
        if self.orgname == '' and self.orgtable != '':
            self.orgname = self.name

    def is_type(self, category: str) -> bool:
        return self.category == category

    @property
    def is_numeric(self) -> bool:
        return self.category in (TYPE_INT, TYPE_REAL)

    @property
    def is_binary(self) -> bool:
        return self.category == TYPE_BLOB

    @property
    def is_mapped_type_bit(self) -> bool:
        return self.category == TYPE_BIT

    @property
    def is_mapped_type_geometry(self) -> bool:
        return self.category == TYPE_GEOMETRY

    @property
    def is_mapped_type_timestamp(self) -> bool:
        return self.category == TYPE_TIMESTAMP

    def is_date_time_type(self) -> bool:
        return self.category in (TYPE_DATE, TYPE_TIME, TYPE_DATETIME, TYPE_TIMESTAMP)

    def is_set(self) -> bool:
        # PostgreSQL has no SET columns; arrays are shown as plain text
        return False

    def get_mapped_type(self) -> str:
        return self.category


@dataclass
class ForeignKeyRelatedTable:
    """Target of a foreign key (or configured relation) of a result column."""
    table: str
    field: str
    display_field: str
    schema: str


@dataclass
class Index:
    """A table index, used for the sort-by-key drop-down."""
    name: str
    columns: List[str]
    is_unique: bool = False
    is_primary: bool = False
