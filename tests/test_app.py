import pytest

from app import create_app
from resultgrid.database.connector import DatabaseQueryError
from resultgrid.display.urls import Url_Builder

from conftest import SECRET_KEY

BROWSE_USERS = 'SELECT * FROM "public"."users"'
FIRST_ROW = '"users"."id" = 1'
FORM_TOKEN = 'form-token'


@pytest.fixture
def app(config_manager, fake_db):
    app = create_app(config_manager, fake_db)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signer():
    return Url_Builder(SECRET_KEY)


@pytest.fixture
def token(client):
    with client.session_transaction() as sess:
        sess['token'] = FORM_TOKEN
    return FORM_TOKEN


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    data = response.get_json()
    assert data['status'] == 'healthy'
    assert data['components']['config']['status'] == 'healthy'
    assert data['components']['database']['status'] == 'healthy'
    assert data['initialization_errors'] == []


def test_index_lists_tables(client):
    response = client.get('/')

    assert response.status_code == 200
    assert b'orders' in response.data
    assert b'users' in response.data


def test_browse_table(client):
    response = client.get('/sql?db=public&table=users')

    assert response.status_code == 200
    assert b'Showing rows 0 - 2' in response.data
    assert b'&lt;b&gt;Carol&lt;/b&gt;' in response.data


def test_unsigned_statement_in_url_is_rejected(client, fake_db):
    response = client.get('/sql', query_string={'db': 'public', 'sql_query': BROWSE_USERS})

    assert response.status_code == 400
    assert fake_db.executed == []


def test_signed_statement_in_url(client, signer):
    response = client.get('/sql', query_string=signer.sql_params(BROWSE_USERS, db='public'))

    assert response.status_code == 200
    assert b'Showing rows 0 - 2' in response.data


def test_posted_statement_redirects_to_goto(client, fake_db, token):
    response = client.post('/sql', data={
        'token': token,
        'db': 'public',
        'sql_query': 'UPDATE "public"."users" SET email = NULL',
        'goto': '/sql?db=public&table=users',
    })

    assert response.status_code == 302
    assert response.headers['Location'].endswith('/sql?db=public&table=users')
    assert fake_db.executed == ['UPDATE "public"."users" SET email = NULL']


def test_external_goto_is_ignored(client, token):
    response = client.post('/sql', data={
        'token': token,
        'db': 'public',
        'sql_query': 'UPDATE "public"."users" SET email = NULL',
        'goto': '//example.com/',
    })

    assert response.status_code == 200
    assert b'1 row(s) affected.' in response.data


def test_query_error(client, fake_db, token):
    fake_db.error = DatabaseQueryError('relation "nope" does not exist')

    response = client.post('/sql', data={'db': 'public', 'sql_query': 'SELECT * FROM nope', 'token': token})

    assert response.status_code == 400
    assert b'relation &#34;nope&#34; does not exist' in response.data


def test_delete_checked_rows(client, fake_db, signer):
    response = client.post('/table/delete-rows', data={
        'db': 'public',
        'table': 'users',
        'rows_to_delete[0]': FIRST_ROW,
        'rows_signature[0]': signer.sign_where_clause(FIRST_ROW),
        'sql_query': BROWSE_USERS,
        'sql_signature': signer.sign_sql_query(BROWSE_USERS),
    })

    assert response.status_code == 302
    assert 'message_to_show' in response.headers['Location']
    assert len(fake_db.statements) == 1


def test_delete_rejects_forged_condition(client, fake_db, signer):
    response = client.post('/table/delete-rows', data={
        'db': 'public',
        'table': 'users',
        'rows_to_delete[0]': 'true',
        'rows_signature[0]': signer.sign_where_clause(FIRST_ROW),
    })

    assert response.status_code == 400
    assert fake_db.statements == []


def test_delete_without_rows(client):
    response = client.post('/table/delete-rows', data={'db': 'public', 'table': 'users'})

    assert response.status_code == 400
    assert b'No rows selected.' in response.data


def _field_args(signer, **extra):
    args = {
        'db': 'public',
        'table': 'users',
        'transform_key': 'photo',
        'where_clause': FIRST_ROW,
        'where_clause_sign': signer.sign_where_clause(FIRST_ROW),
    }
    args.update(extra)
    return args


def test_get_field_inline_image(client, fake_db, signer):
    fake_db.field_values['photo'] = b'\xff\xd8'

    response = client.get('/table/get-field', query_string=_field_args(signer, mimetype='image/jpeg'))

    assert response.status_code == 200
    assert response.mimetype == 'image/jpeg'
    assert response.data == b'\xff\xd8'


def test_get_field_download(client, fake_db, signer):
    fake_db.field_values['photo'] = b'\x00\x01'

    response = client.get('/table/get-field', query_string=_field_args(signer, mimetype='text/html'))

    assert response.mimetype == 'application/octet-stream'
    assert response.headers['Content-Disposition'] == 'attachment; filename="users-photo.bin"'


def test_get_field_needs_signature(client, fake_db, signer):
    fake_db.field_values['photo'] = b'\x00'

    response = client.get('/table/get-field', query_string=_field_args(signer, where_clause='true'))

    assert response.status_code == 400


def test_change_form(client, signer):
    response = client.get('/table/change', query_string={
        'db': 'public',
        'table': 'users',
        'where_clause': FIRST_ROW,
        'where_clause_signature': signer.sign_where_clause(FIRST_ROW),
    })

    assert response.status_code == 200
    assert b'name="fields[name]"' in response.data
    assert b'value="Alice"' in response.data
    assert b'name="default_action" value="update"' in response.data


def test_change_form_for_missing_row(client, fake_db, signer):
    fake_db.results = []

    response = client.get('/table/change', query_string={
        'db': 'public',
        'table': 'users',
        'where_clause': FIRST_ROW,
        'where_clause_signature': signer.sign_where_clause(FIRST_ROW),
    })

    assert response.status_code == 404


def test_change_form_needs_signature(client):
    response = client.get('/table/change', query_string={
        'db': 'public', 'table': 'users', 'where_clause': 'true',
    })

    assert response.status_code == 400


def test_save_changed_row(client, fake_db, signer, token):
    response = client.post('/table/change', data={
        'token': token,
        'db': 'public',
        'table': 'users',
        'where_clause': FIRST_ROW,
        'where_clause_signature': signer.sign_where_clause(FIRST_ROW),
        'default_action': 'update',
        'fields[name]': 'Bob',
        'fields[email]': '',
        'fields_null[email]': 'on',
        'sql_query': BROWSE_USERS,
        'sql_signature': signer.sign_sql_query(BROWSE_USERS),
    })

    assert response.status_code == 302
    assert '/sql?' in response.headers['Location']
    _, params, _ = fake_db.statements[0]
    assert params == ('Bob', None)


def test_insert_row_without_return_statement(client, fake_db, token):
    response = client.post('/table/change', data={
        'token': token,
        'db': 'public',
        'table': 'users',
        'default_action': 'insert',
        'fields[name]': 'Dave',
    })

    assert response.status_code == 200
    assert b'1 row(s) affected.' in response.data
    assert fake_db.statements[0][1] == ('Dave',)


def test_column_preferences_are_used_when_browsing(client):
    response = client.post('/sql/column-preferences', json={
        'db': 'public', 'table': 'users', 'col_order': [2, 1, 0],
    })

    assert response.get_json() == {'success': True, 'stored': ['col_order']}

    page = client.get('/sql?db=public&table=users')
    assert b'class="col_order" type="hidden" value="2,1,0"' in page.data


@pytest.mark.parametrize('payload', [
    {'db': 'public', 'col_order': [0]},
    {'db': 'public', 'table': 'users', 'col_order': 'a,b'},
])
def test_invalid_column_preferences(client, payload):
    response = client.post('/sql/column-preferences', json=payload)

    assert response.status_code == 400
    assert response.get_json()['error']['code'] == 'INVALID_REQUEST'


def test_export_statement(client, signer):
    response = client.post('/sql/export', data={
        'db': 'public',
        'table': 'users',
        'sql_query': BROWSE_USERS,
        'sql_signature': signer.sign_sql_query(BROWSE_USERS),
    })

    assert response.status_code == 200
    assert response.mimetype == 'text/csv'
    assert response.headers['Content-Disposition'] == 'attachment; filename="users.csv"'
    assert response.data.decode('utf-8').splitlines()[0] == 'id,name,email'


def test_export_checked_rows(client, fake_db, signer):
    response = client.post('/sql/export', data={
        'db': 'public',
        'table': 'users',
        'rows_to_delete[0]': FIRST_ROW,
        'rows_signature[0]': signer.sign_where_clause(FIRST_ROW),
    })

    assert response.status_code == 200
    assert fake_db.executed == [BROWSE_USERS + ' WHERE ("users"."id" = 1)']


def test_export_needs_signature(client):
    response = client.get('/sql/export', query_string={'db': 'public', 'sql_query': BROWSE_USERS})

    assert response.status_code == 400


def test_unexpected_error_is_reported(client, fake_db, token):
    fake_db.error = RuntimeError('connection reset')

    response = client.post('/sql', data={'db': 'public', 'sql_query': 'SELECT 1', 'token': token})

    assert response.status_code == 500
    assert b'An unexpected error occurred' in response.data


def test_filtered_statement(client, fake_db, token):
    response = client.post('/sql', data={
        'db': 'public', 'sql_query': 'SELECT * FROM users WHERE id = 1', 'token': token,
    })

    assert response.status_code == 200
    assert b'Showing rows 0 - 2' in response.data
    assert fake_db.executed == ['SELECT * FROM users WHERE id = 1 LIMIT 25 OFFSET 0']


def test_query_form_carries_session_token(client):
    response = client.get('/')

    with client.session_transaction() as sess:
        expected = sess['token']
    assert f'name="token" value="{expected}"'.encode('utf-8') in response.data


def test_posted_statement_needs_form_token(client, fake_db):
    response = client.post('/sql', data={'db': 'public', 'sql_query': 'DELETE FROM "public"."users"'})

    assert response.status_code == 400
    assert fake_db.executed == []


def test_posted_statement_with_wrong_token(client, fake_db, token):
    response = client.post('/sql', data={
        'db': 'public', 'sql_query': 'DELETE FROM "public"."users"', 'token': 'other-token',
    })

    assert response.status_code == 400
    assert fake_db.executed == []


def test_posted_signed_statement_needs_no_token(client, signer):
    response = client.post('/sql', data=signer.sql_params(BROWSE_USERS, db='public'))

    assert response.status_code == 200
    assert b'Showing rows 0 - 2' in response.data


def test_change_needs_form_token(client, fake_db):
    response = client.post('/table/change', data={
        'db': 'public',
        'table': 'users',
        'default_action': 'insert',
        'fields[name]': 'Mallory',
    })

    assert response.status_code == 400
    assert b'the form token is invalid' in response.data
    assert fake_db.statements == []
