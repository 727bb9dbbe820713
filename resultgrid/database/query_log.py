"""Log lines for executed statements."""

import hashlib
import logging
import time
from typing import Optional

statement_logger = logging.getLogger("resultgrid.statements")

PREVIEW_LENGTH = 100


def statement_digest(sql_query: str) -> str:
    """Short digest that ties together log lines of the same statement."""
    return hashlib.md5(sql_query.encode('utf-8')).hexdigest()[:12]


def statement_preview(sql_query: str) -> str:
    preview = ' '.join(sql_query.split())
    if len(preview) > PREVIEW_LENGTH:
        preview = preview[:PREVIEW_LENGTH] + '...'
    return preview


def log_statement(
    sql_query: str,
    row_count: int = -1,
    duration: float = 0.0,
    error: Optional[str] = None,
) -> None:
    """Log one executed statement.

    Args:
        sql_query: Statement as sent to the server
        row_count: Rows returned or affected, -1 when unknown
        duration: Execution time in seconds
        error: Server error message if the statement failed
    """
    kind = sql_query.split(None, 1)[0].upper() if sql_query.strip() else ''
    digest = statement_digest(sql_query)

    if error is not None:
        statement_logger.error(
            "%s %s failed after %.4fs: %s | %s", kind, digest, duration, error, statement_preview(sql_query)
        )
        return

    statement_logger.info(
        "%s %s: %d row(s) in %.4fs | %s", kind, digest, row_count, duration, statement_preview(sql_query)
    )


class QueryTimer:
    """Context manager measuring the time spent in a block."""

    def __init__(self):
        self.start_time: float = 0.0
        self.duration: float = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time
