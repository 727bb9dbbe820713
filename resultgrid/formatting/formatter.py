"""
Value formatting for query results display.
"""

import json
import re
from typing import Any, Optional, Tuple, Union
from datetime import datetime, date, time, timedelta
from decimal import Decimal

BYTE_UNITS = ['B', 'KiB', 'MiB', 'GiB', 'TiB', 'PiB', 'EiB']

# C0 controls other than tab/newline/carriage return, and C1 controls
NON_PRINTABLE_PATTERN = re.compile('[\x00-\x08\x0b\x0c\x0e-\x1f\x80-\x9f]')


class Result_Formatter:
    """
    Formats single result values for web display with proper data type
    handling.
    """

    def format_value(self, value: Any, is_json: bool = False) -> Union[None, str, bytes]:
        """
        Convert a value fetched by psycopg2 into its display form.

        Args:
            value: The value to format
            is_json: Whether the column holds JSON (lists are then JSON arrays)

        Returns:
            None for NULL, bytes for binary values, text otherwise
        """
        if value is None:
            return None

        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)

        if isinstance(value, bool):
            return "true" if value else "false"

        if isinstance(value, datetime):
            return value.isoformat(sep=' ')

        if isinstance(value, (date, time)):
            return value.isoformat()

        if isinstance(value, Decimal):
            return str(value)

        if isinstance(value, float):
            return repr(value)

        if isinstance(value, timedelta):
            return str(value)

        if isinstance(value, dict) or (is_json and isinstance(value, list)):
            return json.dumps(value, ensure_ascii=False, separators=(',', ':'))

        if isinstance(value, list):
            # PostgreSQL array literal
            return '{' + ','.join('NULL' if v is None else str(self.format_value(v)) for v in value) + '}'

        return str(value)

    def escape_html(self, text: Any) -> str:
        """
        Escape HTML special characters in text.

        Args:
            text: Text to escape

        Returns:
            HTML-escaped text
        """
        if not isinstance(text, str):
            text = str(text)

        return (text
                .replace('&', '&amp;')
                .replace('<', '&lt;')
                .replace('>', '&gt;')
                .replace('"', '&quot;')
                .replace("'", '&#039;'))

    def mime_default(self, text: str) -> str:
        """Default rendering of a text value: escaped, spaces and newlines kept."""
        text = self.escape_html(text).replace('  ', ' &nbsp;')
        return re.sub(r'\r\n|\r|\n', '<br>\n', text)

    def get_partial_text(self, text: str, limit_chars: int, pftext: str) -> Tuple[bool, str, int]:
        """
        Truncate text in partial-text mode.

        Args:
            text: Text to truncate
            limit_chars: Number of characters kept
            pftext: 'P' for partial texts, 'F' for full texts

        Returns:
            Tuple of (is_truncated, text, original_length)
        """
        original_length = len(text)
        if original_length > limit_chars and pftext == 'P':
            return True, text[:limit_chars] + '...', original_length
        return False, text, original_length

    def format_number(self, value: Union[int, float], digits_right: int = 0) -> str:
        """Format a number with thousands separators."""
        if digits_right <= 0:
            return f"{int(round(value)):,}"
        return f"{value:,.{digits_right}f}"

    def format_byte_down(self, size: Union[int, float], limes: int = 6, comma: int = 0) -> Tuple[str, str]:
        """
        Express a byte count in the largest fitting binary unit.

        Args:
            size: Number of bytes
            limes: Scale down once the value reaches 10^limes in the next unit
            comma: Number of decimals

        Returns:
            Tuple of (formatted value, unit)
        """
        value = float(size)
        unit = BYTE_UNITS[0]
        factor = 10 ** comma
        for exponent in range(len(BYTE_UNITS) - 1, 0, -1):
            unit_size = 10 ** limes * 10 ** ((exponent - 1) * 3)
            if value >= unit_size:
                value = round(value / (1024 ** exponent / factor)) / factor
                unit = BYTE_UNITS[exponent]
                break

        if unit == BYTE_UNITS[0]:
            return self.format_number(value), unit
        return self.format_number(value, comma), unit

    def printable_bit_value(self, value: Any, length: int) -> str:
        """Render a bit-string value as zero padded binary digits."""
        if isinstance(value, str) and set(value) <= {'0', '1'}:
            return value.zfill(length)
        if isinstance(value, (bytes, bytearray)):
            value = int.from_bytes(value, 'big')
        return bin(int(value))[2:].zfill(length)

    def is_printable_utf8(self, content: bytes) -> bool:
        """True when the bytes decode as UTF-8 without control characters."""
        try:
            text = content.decode('utf-8')
        except UnicodeDecodeError:
            return False
        return NON_PRINTABLE_PATTERN.search(text) is None

    def to_hex(self, content: bytes) -> str:
        return '0x' + content.hex()
