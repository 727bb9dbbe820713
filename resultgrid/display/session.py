"""Per-user display options kept in the session."""

import hashlib
import logging
from typing import Any, Dict, MutableMapping, Mapping

from ..config.manager import DisplayConfig

logger = logging.getLogger(__name__)

ALL_ROWS = 'all'

DISPLAY_FULL_TEXT = 'F'
DISPLAY_PARTIAL_TEXT = 'P'

RELATIONAL_KEY = 'K'
RELATIONAL_DISPLAY_COLUMN = 'D'

GEOMETRY_DISP_GEOM = 'GEOM'
GEOMETRY_DISP_WKT = 'WKT'
GEOMETRY_DISP_WKB = 'WKB'

PROP_COLUMN_ORDER = 'col_order'
PROP_COLUMN_VISIB = 'col_visib'
PROP_SORTED_COLUMN = 'sorted_col'


def query_hash(server: Any, db: str, sql_query: str) -> str:
    """Key of the remembered options of one statement."""
    return hashlib.md5(f"{server}{db}{sql_query}".encode('utf-8')).hexdigest()


def _is_numeric(value: Any) -> bool:
    if isinstance(value, int) and not isinstance(value, bool):
        return True
    try:
        int(str(value).strip())
    except (TypeError, ValueError):
        return False
    return True


def _mark_modified(session: MutableMapping) -> None:
    # Flask only notices changes to the top level of the session
    if hasattr(session, 'modified'):
        session.modified = True


def set_config_params_for_display_table(
    session: MutableMapping,
    server: Any,
    db: str,
    sql_query: str,
    is_explain: bool,
    request_values: Mapping,
    config: DisplayConfig,
) -> Dict[str, Any]:
    """
    Merge the display options of a request into the remembered options of
    its statement and publish the active ones as ``session["tmpval"]``.

    Args:
        session: The user's session
        server: Server identifier (part of the remembered options key)
        db: Current schema
        sql_query: Statement being displayed
        is_explain: EXPLAIN output defaults to full texts
        request_values: Query string and form values of the request
        config: Display settings

    Returns:
        Dict: The active options (``session["tmpval"]``)
    """
    tmpval = session.setdefault('tmpval', {})
    remembered = tmpval.setdefault('query', {})
    sql_md5 = query_hash(server, db, sql_query)
    query = dict(remembered.get(sql_md5) or {})

    if not query.get('repeat_cells'):
        query['repeat_cells'] = config.repeat_cells

    session_max_rows = request_values.get('session_max_rows', '')
    if _is_numeric(session_max_rows) and int(session_max_rows) > 0:
        query['max_rows'] = int(session_max_rows)
    elif session_max_rows == ALL_ROWS:
        query['max_rows'] = ALL_ROWS
    elif not query.get('max_rows'):
        query['max_rows'] = config.max_rows

    pos = request_values.get('pos')
    if pos is not None and _is_numeric(pos):
        query['pos'] = max(0, int(pos))
    elif not query.get('pos'):
        query['pos'] = 0

    pftext = request_values.get('pftext')
    if pftext in (DISPLAY_PARTIAL_TEXT, DISPLAY_FULL_TEXT):
        query['pftext'] = pftext
    elif is_explain:
        query['pftext'] = DISPLAY_FULL_TEXT
    elif not query.get('pftext'):
        query['pftext'] = DISPLAY_PARTIAL_TEXT

    relational_display = request_values.get('relational_display')
    if relational_display in (RELATIONAL_KEY, RELATIONAL_DISPLAY_COLUMN):
        query['relational_display'] = relational_display
    elif not query.get('relational_display'):
        query['relational_display'] = config.relational_display

    geo_option = request_values.get('geoOption')
    if geo_option in (GEOMETRY_DISP_WKT, GEOMETRY_DISP_WKB, GEOMETRY_DISP_GEOM):
        query['geoOption'] = geo_option
    elif not query.get('geoOption'):
        query['geoOption'] = GEOMETRY_DISP_GEOM

    if 'display_binary' in request_values:
        query['display_binary'] = True
    elif 'display_options_form' in request_values:
        # unchecked checkbox
        query.pop('display_binary', None)
    elif 'full_text_button' not in request_values:
        # on by default: functions and maintenance statements return binary strings
        query['display_binary'] = True

    for option in ('display_blob', 'hide_transformation'):
        if option in request_values:
            query[option] = True
        elif 'display_options_form' in request_values:
            query.pop(option, None)

    # the current statement moves to the end so the least recently used is evicted first
    remembered.pop(sql_md5, None)
    remembered[sql_md5] = query
    while len(remembered) > config.remembered_queries:
        oldest = next(iter(remembered))
        del remembered[oldest]

    tmpval['pftext'] = query['pftext']
    tmpval['relational_display'] = query['relational_display']
    tmpval['geoOption'] = query['geoOption']
    tmpval['display_binary'] = bool(query.get('display_binary'))
    tmpval['display_blob'] = bool(query.get('display_blob'))
    tmpval['hide_transformation'] = bool(query.get('hide_transformation'))
    tmpval['pos'] = query['pos']
    tmpval['max_rows'] = query['max_rows']
    tmpval['repeat_cells'] = query['repeat_cells']
    _mark_modified(session)

    logger.debug("Display options for %s: max_rows=%s pos=%s pftext=%s",
                 sql_md5, query['max_rows'], query['pos'], query['pftext'])
    return tmpval


def _ui_key(db: str, table: str) -> str:
    return f"{db}.{table}"


def get_ui_prop(session: Mapping, db: str, table: str, prop: str) -> Any:
    """Stored column order, column visibility or sort of a table, if any."""
    return session.get('ui_prefs', {}).get(_ui_key(db, table), {}).get(prop)


def set_ui_prop(session: MutableMapping, db: str, table: str, prop: str, value: Any) -> None:
    prefs = session.setdefault('ui_prefs', {})
    prefs.setdefault(_ui_key(db, table), {})[prop] = value
    _mark_modified(session)


def remove_ui_prop(session: MutableMapping, db: str, table: str, prop: str) -> None:
    table_prefs = session.get('ui_prefs', {}).get(_ui_key(db, table))
    if table_prefs and table_prefs.pop(prop, None) is not None:
        _mark_modified(session)
