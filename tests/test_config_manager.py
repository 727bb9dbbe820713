import pytest

from resultgrid.config.manager import Config_Manager, ConfigurationError


def test_load_config_from_yaml(tmp_path):
    config_file = tmp_path / 'config.yaml'
    config_file.write_text(
        """
database:
  host: db.internal
  port: "5433"
  username: reader
  password: secret
  database: shop
  schema: sales
app:
  host: 0.0.0.0
  port: 8080
  debug: true
  secret_key: abc
display:
  max_rows: 50
  order: desc
  protect_binary: false
relations:
  display_fields:
    sales.customers: name
transformations:
  sales.orders.notes:
    mimetype: text/plain
    transformation: Text_Plain_Substring
    transformation_options: "0,10"
""",
        encoding='utf-8',
    )

    manager = Config_Manager(str(config_file))
    manager.load_config()

    assert manager.database_config.port == 5433
    assert manager.database_config.schema == 'sales'
    assert manager.app_config.debug is True
    display = manager.display_config
    assert display.max_rows == 50
    assert display.order == 'DESC'
    assert display.protect_binary == 'false'
    assert display.display_fields == {'sales.customers': 'name'}
    assert display.transformations['sales.orders.notes']['transformation'] == 'Text_Plain_Substring'
    assert manager.validate_required_fields() is True


def test_display_defaults(config_manager):
    display = config_manager.display_config
    assert display.limit_chars == 50
    assert display.row_action_links == 'left'
    assert display.grid_editing == 'double-click'
    assert display.max_exact_count == 50000
    assert display.transformations == {}
    assert config_manager.database_config.schema == 'public'


def test_missing_file_raises():
    with pytest.raises(ConfigurationError, match='not found'):
        Config_Manager('/nonexistent/config.yaml').load_config()


def test_missing_database_fields(config_data):
    del config_data['database']['password']
    with pytest.raises(ConfigurationError, match='password'):
        Config_Manager().load_dict(config_data)


@pytest.mark.parametrize('key, value', [
    ('row_action_links', 'top'),
    ('max_rows', 0),
    ('repeat_cells', -1),
    ('show_all', 'yes'),
])
def test_invalid_display_settings(config_data, key, value):
    config_data['display'][key] = value
    with pytest.raises(ConfigurationError, match=key):
        Config_Manager().load_dict(config_data)


def test_transformation_needs_mimetype(config_data):
    config_data['transformations'] = {'public.users.bio': {'transformation': 'Text_Plain_Json'}}
    with pytest.raises(ConfigurationError, match='mimetype'):
        Config_Manager().load_dict(config_data)


def test_properties_before_loading():
    manager = Config_Manager()
    with pytest.raises(ConfigurationError):
        manager.display_config
