import pytest
from psycopg2 import sql as pgsql

from resultgrid.database.metadata import FieldMetadata, ForeignKeyRelatedTable, Index
from resultgrid.display import session as session_store
from resultgrid.parsing.analyzer import StatementParseError

from conftest import USERS_ROWS

BROWSE_USERS = 'SELECT * FROM "public"."users"'


def orders_fields():
    return [
        FieldMetadata('id', 'int4', table='orders', orgtable='orders', schema='public',
                      is_not_null=True, is_primary_key=True),
        FieldMetadata('user_id', 'int4', table='orders', orgtable='orders', schema='public'),
    ]


def test_resolve_query(runner):
    assert runner.resolve_query('public', 'users', '  SELECT 1 ') == ('SELECT 1', 'users')
    assert runner.resolve_query('public', 'users', '') == (BROWSE_USERS, 'users')
    # first table of the schema when nothing is given
    assert runner.resolve_query('public', '', '') == ('SELECT * FROM "public"."orders"', 'orders')

    with pytest.raises(StatementParseError):
        runner.resolve_query('', '', '')


def test_browse_table(runner, fake_db):
    output = runner.run({}, 'public', 'users', '', {})

    assert fake_db.executed == [BROWSE_USERS + ' LIMIT 25 OFFSET 0']
    assert output.table == 'users'
    assert output.has_rows
    assert not output.printview

    content = str(output.content)
    assert 'Showing rows 0 - 2' in content
    assert '(3 total, Query took 0.0000 seconds.)' in content
    assert '&lt;b&gt;Carol&lt;/b&gt;' in content
    assert '<em>NULL</em>' in content
    assert 'name="rows_to_delete[0]"' in content
    assert '/table/change?db=public' in content
    assert 'users_pkey (ASC)' in content


def test_statement_with_limit_is_run_as_given(runner, fake_db):
    output = runner.run({}, 'public', '', BROWSE_USERS + ' LIMIT 2', {})

    assert fake_db.executed == [BROWSE_USERS + ' LIMIT 2']
    assert output.table == 'users'
    assert 'Showing rows 0 - 1' in str(output.content)


def test_second_page_counts_rows(runner, fake_db):
    fake_db.counts['users'] = (60, False)

    output = runner.run({}, 'public', 'users', '', {'pos': '25'})

    assert fake_db.executed[0].endswith('LIMIT 25 OFFSET 25')
    assert 'Showing rows 25 - 49 (60 total' in str(output.content)


def test_approximate_count(runner, fake_db):
    fake_db.counts['users'] = (100000, True)

    content = str(runner.run({}, 'public', 'users', '', {'pos': '25'}).content)

    assert '~100,000 total' in content
    assert 'May be approximate' in content


def test_filtered_statement(runner, fake_db):
    output = runner.run({}, 'public', '', 'SELECT * FROM users WHERE id = 1', {})

    assert fake_db.executed == ['SELECT * FROM users WHERE id = 1 LIMIT 25 OFFSET 0']
    assert output.table == 'users'
    content = str(output.content)
    assert 'Showing rows 0 - 2' in content
    # cells of the filtered column are highlighted
    assert 'text-nowrap condition"' in content


def test_filtered_statement_counts_matching_rows(runner, fake_db):
    fake_db.counts['users'] = (100000, True)
    fake_db.query_row_count = 60

    content = str(runner.run({}, 'public', '', 'SELECT * FROM users WHERE id > 1', {'pos': '25'}).content)

    assert '(60 total,' in content
    assert 'May be approximate' not in content


def test_order_by_position(runner, fake_db):
    output = runner.run({}, 'public', '', 'SELECT * FROM users ORDER BY 1', {})

    assert fake_db.executed == ['SELECT * FROM users ORDER BY 1 LIMIT 25 OFFSET 0']
    assert 'Showing rows 0 - 2' in str(output.content)


def test_find_real_end_jumps_to_last_page(runner, fake_db):
    fake_db.counts['users'] = (60, False)
    session = {}

    runner.run(session, 'public', 'users', '', {'pos': '25', 'find_real_end': '1'})

    assert fake_db.executed[0].endswith('LIMIT 25 OFFSET 50')
    remembered = session['tmpval']['query'][session_store.query_hash(1, 'public', BROWSE_USERS)]
    assert remembered['pos'] == 50


def test_empty_result(runner, fake_db):
    fake_db.add_result('FROM "public"."orders"', orders_fields(), [])

    output = runner.run({}, 'public', 'orders', '', {})

    assert output.has_rows
    assert 'Your SQL query returned an empty result set' in str(output.content)


def test_data_changing_statement(runner, fake_db):
    fake_db.affected_rows = 4

    output = runner.run({}, 'public', '', 'UPDATE "public"."users" SET email = NULL', {})

    assert not output.has_rows
    assert '4 row(s) affected.' in str(output.content)


def test_message_to_show(runner):
    output = runner.run({}, 'public', '', 'DELETE FROM "users" WHERE "users"."id" = 1',
                        {'message_to_show': 'The row has been deleted.'})

    assert 'The row has been deleted.' in str(output.content)
    assert 'row(s) affected' not in str(output.content)


def test_sort_is_remembered_per_table(runner, fake_db):
    session = {}
    sorted_query = BROWSE_USERS + ' ORDER BY "name" DESC'

    content = str(runner.run(session, 'public', 'users', sorted_query, {}).content)
    assert '[name: <strong>ALICE... - &lt;B&gt;CAROL&lt;/B&gt;...</strong>]' in content

    runner.run(session, 'public', 'users', '', {})
    assert fake_db.executed[-1] == sorted_query + ' LIMIT 25 OFFSET 0'

    runner.run(session, 'public', 'users', '', {'discard_remembered_sort': '1'})
    assert fake_db.executed[-1] == BROWSE_USERS + ' LIMIT 25 OFFSET 0'
    assert session_store.get_ui_prop(session, 'public', 'users', session_store.PROP_SORTED_COLUMN) is None


def test_print_view_has_no_row_links(runner):
    output = runner.run({}, 'public', 'users', '', {'printview': '1'})

    assert output.printview
    assert 'rows_to_delete' not in str(output.content)


def test_process_list_gets_kill_links(runner, fake_db):
    fake_db.add_result('PROCESSLIST', [
        FieldMetadata('Id', 'int4'),
        FieldMetadata('User', 'text'),
        FieldMetadata('Info', 'text'),
    ], [(42, 'postgres', 'select 1')])

    content = str(runner.run({}, 'public', '', 'SHOW PROCESSLIST', {}).content)

    assert 'SELECT pg_terminate_backend(42)' in content
    assert 'SELECT 1' in content
    assert 'rows_to_delete' not in content


def test_foreign_key_display_column(runner, fake_db):
    fake_db.add_result('FROM "public"."orders"', orders_fields(), [(10, 1)])
    fake_db.foreign_keys['orders'] = {
        'user_id': ForeignKeyRelatedTable('users', 'id', 'name', 'public'),
    }
    fake_db.foreign_rows['FROM "public"."users" WHERE "id" = 1'] = ('Alice',)

    content = str(runner.run({}, 'public', 'orders', '', {'relational_display': 'D'}).content)

    assert fake_db.fetched == ['SELECT "name" FROM "public"."users" WHERE "id" = 1']
    assert 'Alice</a>' in content


def test_column_order_from_session(runner):
    session = {}
    session_store.set_ui_prop(session, 'public', 'users', session_store.PROP_COLUMN_ORDER, [2, 1, 0])

    content = str(runner.run(session, 'public', 'users', '', {}).content)

    assert 'class="col_order" type="hidden" value="2,1,0"' in content


def test_is_editable(runner, fake_db):
    result = fake_db.execute_result(BROWSE_USERS)
    assert runner.is_editable('public', 'users', result)
    assert not runner.is_editable('public', '', result)

    result.fields = result.fields[1:]
    assert not runner.is_editable('public', 'users', result)

    fake_db.indexes['users'] = [Index('users_email_idx', ['email'])]
    assert not runner.is_editable('public', 'users', fake_db.execute_result(BROWSE_USERS))


def test_get_row(runner, fake_db):
    runner.get_row('public', 'users', '"users"."id" = 1')
    runner.get_row('public', 'users', '')

    assert fake_db.executed == [
        BROWSE_USERS + ' WHERE "users"."id" = 1 LIMIT 1',
        BROWSE_USERS + ' LIMIT 0',
    ]


def test_save_row_update(runner, fake_db):
    affected = runner.save_row('public', 'users', '"users"."id" = 2', 'update',
                               {'name': 'Bob', 'email': 'x'}, ['email'])

    assert affected == 1
    query, params, schema = fake_db.statements[0]
    assert isinstance(query, pgsql.Composed)
    assert params == ('Bob', None)
    assert schema == 'public'


def test_save_row_condition_with_percent_sign(runner, fake_db):
    runner.save_row('public', 'users', '"users"."name" = \'50% off\'', 'update', {'email': 'x'}, [])

    query, params, _ = fake_db.statements[0]
    assert pgsql.SQL('"users"."name" = \'50%% off\'') in query.seq
    assert params == ('x',)


def test_save_row_insert_with_only_nulls(runner, fake_db):
    runner.save_row('public', 'users', '', 'insert', {}, ['email'])

    _, params, _ = fake_db.statements[0]
    assert params == (None,)


def test_save_row_without_values(runner, fake_db):
    assert runner.save_row('public', 'users', '', 'insert', {}, []) == 0
    assert fake_db.statements == []


def test_delete_rows(runner, fake_db):
    deleted = runner.delete_rows('public', 'users', ['"users"."id" = 1', '"users"."id" = 3'])

    assert deleted == 2
    assert len(fake_db.statements) == 2
    assert all(params is None for _, params, _ in fake_db.statements)


def test_build_rows_query(runner):
    query = runner.build_rows_query('public', 'users', ['"users"."id" = 1', '"users"."id" = 3'])

    assert query == BROWSE_USERS + ' WHERE ("users"."id" = 1) OR ("users"."id" = 3)'


def test_export_csv(runner):
    lines = runner.export_csv('public', BROWSE_USERS).splitlines()

    assert lines[0] == 'id,name,email'
    assert lines[1] == '1,Alice,alice@example.com'
    assert lines[2] == "2,O'Brien,NULL"
    assert len(lines) == len(USERS_ROWS) + 1
