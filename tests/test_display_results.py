import struct

import pytest

from resultgrid.database.metadata import FieldMetadata
from resultgrid.display import session as session_store
from resultgrid.display.parts import DeleteLink, DisplayParts
from resultgrid.display.results import Display_Results
from resultgrid.parsing.analyzer import Statement_Analyzer

from conftest import users_fields

BROWSE_USERS = 'SELECT * FROM "public"."users"'


def _display(fake_db, display_config, url_builder, renderer, sql_query=BROWSE_USERS, table='users', session=None):
    return Display_Results(
        fake_db, 'public', table, 1, '', sql_query, display_config,
        {} if session is None else session, renderer, url_builder,
    )


def _set_properties(display, fields=None, unlim_num_rows=3, num_rows=3, is_count=False, is_show=False,
                    printview=False, editable=True):
    display.set_properties(
        unlim_num_rows, fields if fields is not None else users_fields(), is_count, False, False, False,
        num_rows, 0.01, 'ltr', False, False, is_show, {'is_view': False, 'is_approximate': False},
        printview, editable, False,
    )


@pytest.fixture
def display(fake_db, display_config, url_builder, renderer):
    display = _display(fake_db, display_config, url_builder, renderer)
    display.set_config_params_for_display_table(Statement_Analyzer().analyze(BROWSE_USERS), {})
    _set_properties(display)
    return display


# Display parts

def test_select_keeps_row_links(display):
    parts, total = display.set_display_parts_and_total(DisplayParts())

    assert parts.has_edit_link
    assert parts.delete_link is DeleteLink.DELETE_ROW
    assert parts.has_sort_link
    assert total == 3


def test_print_view_hides_everything(display):
    _set_properties(display, printview=True)

    parts, _ = display.set_display_parts_and_total(DisplayParts())

    assert parts == DisplayParts.none()


def test_count_has_no_row_links(display):
    _set_properties(display, is_count=True, num_rows=1, unlim_num_rows=1)

    parts, _ = display.set_display_parts_and_total(DisplayParts())

    assert not parts.has_edit_link
    assert parts.delete_link is DeleteLink.NO_DELETE
    assert not parts.has_navigation_bar


def test_process_list_gets_kill_links(fake_db, display_config, url_builder, renderer):
    display = _display(fake_db, display_config, url_builder, renderer, sql_query='SHOW PROCESSLIST', table='')
    _set_properties(display, fields=[FieldMetadata('Id', 'int4')], is_show=True)

    parts, _ = display.set_display_parts_and_total(DisplayParts())

    assert parts.delete_link is DeleteLink.KILL_PROCESS
    assert not parts.has_edit_link


def test_columns_of_several_tables_are_not_editable(display):
    fields = users_fields()
    fields.append(FieldMetadata('total', 'numeric', table='orders', orgtable='orders'))
    _set_properties(display, fields=fields)

    parts, _ = display.set_display_parts_and_total(DisplayParts())

    assert not parts.has_edit_link
    assert parts.delete_link is DeleteLink.NO_DELETE


def test_unknown_total_is_counted(display, fake_db):
    fake_db.counts['users'] = (120, False)
    _set_properties(display, unlim_num_rows=0)

    _, total = display.set_display_parts_and_total(DisplayParts())

    assert total == 120


# Row links

def test_delete_query(display):
    assert display.build_delete_query('"users"."id" = 1', True) == 'DELETE FROM "users" WHERE "users"."id" = 1'
    assert display.build_delete_query('"users"."name" = \'x\'', False) == (
        'DELETE FROM "users" WHERE ctid = (SELECT ctid FROM "users" WHERE "users"."name" = \'x\' LIMIT 1)'
    )


def test_delete_link_carries_signed_statement(display, url_builder):
    url, content, js_conf, params = display.get_delete_and_kill_links(
        '"users"."id" = 1', True, BROWSE_USERS, DeleteLink.DELETE_ROW, 1,
    )

    assert url == '/sql'
    assert js_conf == 'DELETE FROM "users" WHERE "users"."id" = 1'
    assert params['sql_query'] == js_conf
    assert url_builder.check_sql_query_signature(js_conf, params['sql_signature'])
    assert params['message_to_show'] == 'The row has been deleted.'
    assert params['goto'].startswith('/sql?')
    assert 'Delete' in content


def test_kill_link(display):
    _, _, js_conf, params = display.get_delete_and_kill_links('', True, 'SHOW PROCESSLIST', DeleteLink.KILL_PROCESS, '42')

    assert js_conf == 'SELECT pg_terminate_backend(42)'
    assert params['sql_query'] == js_conf

    assert display.get_delete_and_kill_links('', True, '', DeleteLink.KILL_PROCESS, 'abc') == (None, None, None, None)
    assert display.get_delete_and_kill_links('', True, '', DeleteLink.NO_DELETE, 1) == (None, None, None, None)


def test_edit_links_sign_the_condition(display, url_builder):
    edit_url, copy_url, _, _, params = display.get_modified_links('"users"."id" = 1', True, BROWSE_USERS)

    assert edit_url == copy_url == '/table/change'
    assert params['table'] == 'users'
    assert url_builder.check_where_clause_signature('"users"."id" = 1', params['where_clause_signature'])
    assert url_builder.check_sql_query_signature(BROWSE_USERS, params['sql_signature'])


def test_long_statement_is_shortened_for_links(display):
    long_query = BROWSE_USERS + ' WHERE ' + ' OR '.join(f'"id" = {n}' for n in range(60))
    display.sql_query = long_query

    assert display.get_url_sql_query(Statement_Analyzer().analyze(long_query)) == BROWSE_USERS


# Cells

def test_blob_placeholder(display):
    meta = FieldMetadata('data', 'bytea', table='users', orgtable='users', schema='public')

    html, is_truncated = display.handle_non_printable_contents('BLOB', b'\x00\x01', None, {}, meta)

    assert str(html) == '[BLOB - 2 B]'
    assert not is_truncated


def test_blob_placeholder_links_to_download(display):
    meta = FieldMetadata('data', 'bytea', table='users', orgtable='users', schema='public')

    html, _ = display.handle_non_printable_contents('BLOB', b'\x00\x01', None, {}, meta, {'db': 'public'})

    assert str(html) == '<a href="/table/get-field?db=public" class="disableAjax">[BLOB - 2 B]</a>'


def test_blob_contents_when_requested(display):
    display.tmpval['display_blob'] = True
    meta = FieldMetadata('data', 'bytea')

    text, _ = display.handle_non_printable_contents('BLOB', b'hello', None, {}, meta)
    hex_text, _ = display.handle_non_printable_contents('BLOB', b'\x00\xff', None, {}, meta)

    assert str(text) == 'hello'
    assert str(hex_text) == '0x00ff'


def test_empty_blob(display):
    html, _ = display.handle_non_printable_contents('BLOB', None, None, {}, FieldMetadata('data', 'bytea'))

    assert str(html) == '[BLOB - NULL]'


def test_geometry_as_wkt(display):
    display.tmpval['geoOption'] = session_store.GEOMETRY_DISP_WKT
    meta = FieldMetadata('location', 'geometry', table='users', orgtable='users', schema='public')
    point = struct.pack('<BIdd', 1, 1, 1.0, 2.0)

    cell = display.get_data_cell_for_geometry_columns(
        point, 'data', meta, {}, {}, False, None, {}, Statement_Analyzer().analyze(BROWSE_USERS),
    )

    assert 'POINT(1 2)' in cell


def test_geometry_placeholder(display):
    meta = FieldMetadata('location', 'geometry')
    point = struct.pack('<BIdd', 1, 1, 1.0, 2.0)

    cell = display.get_data_cell_for_geometry_columns(
        point, 'data', meta, {}, None, False, None, {}, Statement_Analyzer().analyze(BROWSE_USERS),
    )

    assert '[GEOMETRY - 21 B]' in cell


def test_null_cell(display):
    cell = display.get_data_cell_for_non_numeric_columns(
        None, 'data', FieldMetadata('email', 'varchar'), {}, {}, False, None, {},
        Statement_Analyzer().analyze(BROWSE_USERS),
    )

    assert '<em>NULL</em>' in cell


def test_long_text_is_truncated(display, display_config):
    display.tmpval['pftext'] = 'P'
    long_text = 'x' * (display_config.limit_chars + 10)

    cell = display.get_data_cell_for_non_numeric_columns(
        long_text, 'data', FieldMetadata('name', 'text'), {}, {}, False, None, {},
        Statement_Analyzer().analyze(BROWSE_USERS),
    )

    assert 'class="data pre_wrap truncated"' in cell
    assert f'data-originallength="{display_config.limit_chars + 10}"' in cell
    assert 'x' * display_config.limit_chars + '...</td>' in cell


def test_full_text_is_not_truncated(display, display_config):
    display.tmpval['pftext'] = 'F'
    long_text = 'x' * (display_config.limit_chars + 10)

    cell = display.get_data_cell_for_non_numeric_columns(
        long_text, 'data', FieldMetadata('name', 'text'), {}, {}, False, None, {},
        Statement_Analyzer().analyze(BROWSE_USERS),
    )

    assert 'truncated' not in cell
    assert long_text + '</td>' in cell
