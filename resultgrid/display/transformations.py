"""
Browser transformations: plugins rendering a column value differently
from the default escaped text (SQL highlighting, JSON, links, images).
"""

import csv
import json
import logging
import re
from typing import Any, Dict, Optional, Type

import sqlparse
from markupsafe import Markup, escape

from ..database.metadata import FieldMetadata
from ..formatting.formatter import Result_Formatter

logger = logging.getLogger(__name__)

_formatter = Result_Formatter()

SAFE_LINK_PATTERN = re.compile(r'^(https?://|/|\./|\?)', re.IGNORECASE)


class Transformation_Plugin:
    """Base class of the transformation plugins.

    ``MIME_TYPE`` and ``MIME_SUBTYPE`` name the column types a plugin is meant
    for; a plugin of a non-text type disables grid editing of its column.
    """

    MIME_TYPE = 'Text'
    MIME_SUBTYPE = 'Plain'

    def get_name(self) -> str:
        return type(self).__name__

    def get_mime_type(self) -> str:
        return self.MIME_TYPE

    def get_mime_subtype(self) -> str:
        return self.MIME_SUBTYPE

    def apply_transformation_no_wrap(self, options: Optional[Dict[Any, Any]] = None) -> bool:
        return False

    def apply_transformation(self, buffer: Any, options: Optional[Dict[Any, Any]] = None,
                             meta: Optional[FieldMetadata] = None) -> Markup:
        raise NotImplementedError


def _as_text(buffer: Any) -> str:
    if isinstance(buffer, (bytes, bytearray)):
        return bytes(buffer).decode('utf-8', errors='replace')
    return str(buffer)


class Text_Plain_Sql(Transformation_Plugin):
    """Shows the value as formatted SQL."""

    def apply_transformation(self, buffer, options=None, meta=None) -> Markup:
        formatted = sqlparse.format(_as_text(buffer), keyword_case='upper')
        return Markup('<code class="sql" dir="ltr"><pre>') + escape(formatted) + Markup('</pre></code>')


class Text_Octetstream_Sql(Text_Plain_Sql):
    """SQL stored in a binary column."""
    MIME_TYPE = 'Text'
    MIME_SUBTYPE = 'Octetstream'


class Text_Plain_Json(Transformation_Plugin):
    """Shows the value as indented JSON."""

    def apply_transformation(self, buffer, options=None, meta=None) -> Markup:
        text = _as_text(buffer)
        try:
            text = json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except ValueError:
            return Markup(_formatter.mime_default(text))
        return Markup('<code class="json" dir="ltr"><pre>') + escape(text) + Markup('</pre></code>')


class Text_Plain_Link(Transformation_Plugin):
    """
    Shows the value as a link.

    Options:
        0: URL prefix
        1: Link title (defaults to the value)
        2: Use the prefix alone as URL
    """

    def apply_transformation(self, buffer, options=None, meta=None) -> Markup:
        options = options or {}
        text = _as_text(buffer)
        url = str(options.get(0) or '') + ('' if options.get(2) else text)
        if not SAFE_LINK_PATTERN.match(url):
            return escape(url)
        title = options.get(1) or ''
        return Markup('<a href="{}" title="{}" target="_blank" rel="noopener noreferrer">{}</a>').format(
            url, title, title or text
        )


class Text_Plain_Substring(Transformation_Plugin):
    """
    Shows part of the value.

    Options:
        0: Start position
        1: Number of characters, or "all"
        2: Text appended when the value was cut
    """

    def apply_transformation(self, buffer, options=None, meta=None) -> Markup:
        options = options or {}
        text = _as_text(buffer)
        try:
            start = int(options.get(0) or 0)
        except ValueError:
            start = 0
        length = options.get(1, 'all')
        append = options.get(2, '...')

        if str(length) == 'all':
            new_text = text[start:]
        else:
            try:
                new_text = text[start:start + int(length)]
            except ValueError:
                new_text = text[start:]

        if len(new_text) != len(text):
            new_text += append
        return escape(new_text)


class Image_JPEG_Inline(Transformation_Plugin):
    """
    Shows a JPEG stored in a binary column as an inline image.

    Options:
        0: Width in pixels
        1: Height in pixels
    """

    MIME_TYPE = 'Image'
    MIME_SUBTYPE = 'JPEG'

    def apply_transformation(self, buffer, options=None, meta=None) -> Markup:
        options = options or {}
        width = options.get(0) or 100
        height = options.get(1) or 100
        wrapper_url = options.get('wrapper_url')
        if not wrapper_url:
            return escape('[' + _as_text(buffer)[:20] + ']')
        image_url = wrapper_url + ('&' if '?' in wrapper_url else '?') + 'mimetype=image/jpeg'
        return Markup(
            '<a href="{}" rel="noopener noreferrer" target="_blank">'
            '<img src="{}" alt="[{}]" width="{}" height="{}"></a>'
        ).format(image_url, image_url, meta.name if meta else '', width, height)


PLUGINS: Dict[str, Type[Transformation_Plugin]] = {
    cls.__name__: cls
    for cls in (Text_Plain_Sql, Text_Octetstream_Sql, Text_Plain_Json, Text_Plain_Link,
                Text_Plain_Substring, Image_JPEG_Inline)
}

# Columns of the system schemas that are always highlighted
DEFAULT_TRANSFORMATIONS: Dict[str, Dict[str, Dict[str, Type[Transformation_Plugin]]]] = {
    'information_schema': {
        'views': {'view_definition': Text_Plain_Sql},
        'routines': {'routine_definition': Text_Plain_Sql},
        'triggers': {'action_statement': Text_Plain_Sql},
    },
    'pg_catalog': {
        'pg_stat_activity': {'query': Text_Plain_Sql},
        'pg_views': {'definition': Text_Plain_Sql},
    },
}

# Columns of the system schemas linking to the object they name
SPECIAL_SCHEMA_LINKS: Dict[str, Dict[str, Dict[str, Dict[str, Any]]]] = {
    'information_schema': {
        'tables': {
            'table_name': {
                'link_param': 'table',
                'link_dependancy_params': [{'param_info': 'db', 'column_name': 'table_schema'}],
                'default_page': '/sql',
            },
        },
        'columns': {
            'table_name': {
                'link_param': 'table',
                'link_dependancy_params': [{'param_info': 'db', 'column_name': 'table_schema'}],
                'default_page': '/sql',
            },
        },
        'schemata': {
            'schema_name': {
                'link_param': 'db',
                'default_page': '/sql',
            },
        },
    },
}


def get_plugin(transformation: str) -> Optional[Transformation_Plugin]:
    """
    Instantiate a plugin by name.

    Accepts the class name ("Text_Plain_Sql") or a file style name
    ("output/Text_Plain_Sql.php").
    """
    if not transformation:
        return None
    name = transformation.rsplit('/', 1)[-1]
    if name.endswith('.php'):
        name = name[:-4]
    plugin_class = PLUGINS.get(name)
    if plugin_class is None:
        logger.warning("Unknown transformation plugin: %s", transformation)
        return None
    return plugin_class()


def get_options(option_string: str) -> Dict[int, str]:
    """
    Parse transformation options like ``'a','b,c',d``.

    Returns:
        Dict of option position to value
    """
    if not option_string:
        return {}
    reader = csv.reader([option_string], quotechar="'", escapechar='\\', skipinitialspace=True)
    values = next(reader, [])
    return {index: value.strip() for index, value in enumerate(values)}


def get_default_plugin(schema: str, table: str, column: str) -> Optional[Transformation_Plugin]:
    plugin_class = DEFAULT_TRANSFORMATIONS.get(schema.lower(), {}).get(table.lower(), {}).get(column.lower())
    return plugin_class() if plugin_class else None


def get_special_link(schema: str, table: str, column: str) -> Optional[Dict[str, Any]]:
    return SPECIAL_SCHEMA_LINKS.get(schema.lower(), {}).get(table.lower(), {}).get(column.lower())
