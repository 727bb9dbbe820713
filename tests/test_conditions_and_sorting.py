from markupsafe import Markup

from resultgrid.database.metadata import FieldMetadata, Index
from resultgrid.display.conditions import get_unique_condition
from resultgrid.display.sorting import (
    default_sort_direction, fold_identifier_case, get_single_and_multi_sort_urls, get_sort_by_key_options,
    insert_order_by, is_in_sorted,
)
from resultgrid.parsing.analyzer import SelectExpr

from conftest import users_fields


def test_primary_key_condition():
    where_clause, is_unique, condition = get_unique_condition(users_fields(), (1, "O'Brien", None))

    assert where_clause == '"users"."id" = 1'
    assert is_unique is True
    assert condition == {'"users"."id"': '= 1'}


def test_condition_without_key_uses_all_columns():
    fields = users_fields()
    fields[0].is_primary_key = False

    where_clause, is_unique, _ = get_unique_condition(fields, (2, "O'Brien", None))

    assert where_clause == '"users"."id" = 2 AND "users"."name" = \'O\'\'Brien\' AND "users"."email" IS NULL'
    assert is_unique is False


def test_force_unique_without_key():
    fields = users_fields()
    fields[0].is_primary_key = False

    where_clause, is_unique, _ = get_unique_condition(fields, (2, 'x', None), force_unique=True)

    assert where_clause == ''
    assert is_unique is True


def test_condition_resolves_alias_and_blob():
    fields = [
        FieldMetadata('label', 'text', table='t'),
        FieldMetadata('data', 'bytea', table='t'),
    ]
    expressions = [SelectExpr(expr='name AS label', alias='label', column='name')]

    where_clause, _, _ = get_unique_condition(fields, ('a', b'\x01\xff'), expressions=expressions)

    assert where_clause == '"t"."name" = \'a\' AND "t"."data" = \'\\x01ff\'::bytea'


def test_condition_compares_floats_as_text():
    fields = [FieldMetadata('price', 'float8', table='p', orgtable='p', is_unique_key=True)]

    where_clause, is_unique, _ = get_unique_condition(fields, (1.5,))

    assert where_clause == '"p"."price"::text = \'1.5\''
    assert is_unique is True


def test_default_sort_direction():
    date_column = FieldMetadata('created', 'timestamptz')
    text_column = FieldMetadata('name', 'text')

    assert default_sort_direction(date_column, 'SMART') == 'DESC'
    assert default_sort_direction(text_column, 'SMART') == 'ASC'
    assert default_sort_direction(date_column, 'ASC') == 'ASC'


def test_fold_identifier_case():
    assert fold_identifier_case('Users.Name') == 'users.name'
    assert fold_identifier_case('"Users".Name') == '"Users".name'
    assert fold_identifier_case('lower(Name)') == 'lower(Name)'


def test_is_in_sorted():
    assert is_in_sorted(['"name" DESC'], ['"name"'], '', 'name')
    assert not is_in_sorted(['"name" DESC'], ['"name"'], '', 'email')
    assert not is_in_sorted([''], [''], '"users".', 'name')


def test_first_click_sorts_ascending():
    meta = FieldMetadata('name', 'text', table='users', orgtable='users')

    single, multi, image = get_single_and_multi_sort_urls([''], [''], '"users".', 'name', [''], meta)

    assert single == '\nORDER BY "users"."name" ASC'
    assert multi == '\nORDER BY "users"."name" ASC'
    assert image == Markup('')


def test_click_on_sorted_column_flips_direction():
    meta = FieldMetadata('name', 'text')

    single, multi, image = get_single_and_multi_sort_urls(['"name" DESC'], ['"name"'], '', 'name', ['DESC'], meta)

    assert single == '\nORDER BY "name" ASC'
    assert multi == '\nORDER BY "name" ASC'
    assert 'ic_s_desc' in image
    assert '<small>1</small>' in image


def test_multi_sort_adds_column():
    meta = FieldMetadata('email', 'text')

    single, multi, _ = get_single_and_multi_sort_urls(['"name" DESC'], ['"name"'], '', 'email', ['DESC'], meta)

    assert single == '\nORDER BY "email" ASC'
    assert multi == '\nORDER BY "name" DESC, "email" ASC'


def test_insert_order_by_before_limit():
    assert insert_order_by('SELECT * FROM t LIMIT 5', ' ORDER BY a') == 'SELECT * FROM t ORDER BY a LIMIT 5'
    assert insert_order_by('SELECT * FROM t', ' ORDER BY a') == 'SELECT * FROM t ORDER BY a'


def test_sort_by_key_options():
    indexes = [Index('users_pkey', ['id'], is_unique=True, is_primary=True)]

    options = get_sort_by_key_options(indexes, ['"id" DESC'], 'SELECT * FROM users')

    assert [option['content'] for option in options] == ['users_pkey (ASC)', 'users_pkey (DESC)', 'None']
    assert options[0]['value'] == 'SELECT * FROM users ORDER BY "id" ASC'
    assert options[1]['is_selected'] is True
    assert options[2]['is_selected'] is False
