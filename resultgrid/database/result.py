"""Buffered, seekable result set."""

from typing import Any, List, Optional, Sequence, Tuple

from .metadata import FieldMetadata


class QueryResult:
    """Rows of one executed statement together with their column metadata.

    The rows are fully fetched so the display code can look at the first and
    last row before walking the whole set.
    """

    def __init__(self, fields: List[FieldMetadata], rows: Sequence[Sequence[Any]], affected_rows: int = -1):
        self.fields = fields
        self.rows: List[Tuple[Any, ...]] = [tuple(row) for row in rows]
        self.affected_rows = affected_rows
        self.query_time = 0.0
        self._position = 0

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    @property
    def has_rows(self) -> bool:
        """True for statements that return a result set (even an empty one)."""
        return bool(self.fields)

    def fetch_row(self) -> Optional[Tuple[Any, ...]]:
        """Return the next row, or None once the set is exhausted."""
        if self._position >= len(self.rows):
            return None
        row = self.rows[self._position]
        self._position += 1
        return row

    def seek(self, offset: int) -> bool:
        """Move the cursor to ``offset``; returns False if out of range."""
        if offset < 0 or (offset >= len(self.rows) and offset != 0):
            return False
        self._position = offset
        return True

    def __iter__(self):
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)
