"""Configuration management for the Query Results Browser."""

import os
import yaml
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


@dataclass
class DatabaseConfig:
    """Database configuration settings."""
    host: str
    port: int
    username: str
    password: str
    database: str
    schema: str


@dataclass
class AppConfig:
    """Application configuration settings."""
    host: str
    port: int
    debug: bool
    secret_key: str


@dataclass
class DisplayConfig:
    """Settings controlling how query results are browsed."""
    max_rows: int = 25
    limit_chars: int = 50
    row_action_links: str = "left"
    row_action_type: str = "both"
    order: str = "SMART"
    repeat_cells: int = 100
    show_all: bool = False
    protect_binary: str = "blob"
    grid_editing: str = "double-click"
    relational_display: str = "K"
    browse_pointer_enable: bool = True
    browse_marker_enable: bool = True
    show_browse_comments: bool = True
    browse_mime: bool = True
    max_exact_count: int = 50000
    max_exact_count_views: int = 0
    save_cells_at_once: bool = False
    initial_sliders_state: str = "closed"
    remembered_queries: int = 10
    display_fields: Dict[str, str] = field(default_factory=dict)
    transformations: Dict[str, Dict[str, str]] = field(default_factory=dict)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


# Allowed values for the enumerated display settings
DISPLAY_CHOICES = {
    'row_action_links': {'left', 'right', 'both', 'none'},
    'row_action_type': {'icons', 'text', 'both'},
    'order': {'ASC', 'DESC', 'SMART'},
    'protect_binary': {'blob', 'noblob', 'all', 'false'},
    'grid_editing': {'double-click', 'click', 'disabled'},
    'relational_display': {'K', 'D'},
    'initial_sliders_state': {'open', 'closed', 'disabled'},
}

DISPLAY_POSITIVE_INTS = ('max_rows', 'limit_chars', 'max_exact_count', 'remembered_queries')
DISPLAY_NON_NEGATIVE_INTS = ('repeat_cells', 'max_exact_count_views')
DISPLAY_BOOLS = (
    'show_all', 'browse_pointer_enable', 'browse_marker_enable', 'show_browse_comments',
    'browse_mime', 'save_cells_at_once',
)


class Config_Manager:
    """Manages application configuration from YAML files."""

    def __init__(self, config_path: str = "config.yaml"):
        """Initialize the configuration manager.

        Args:
            config_path: Path to the configuration YAML file
        """
        self.config_path = config_path
        self._config_data: Optional[Dict[str, Any]] = None
        self._database_config: Optional[DatabaseConfig] = None
        self._app_config: Optional[AppConfig] = None
        self._display_config: Optional[DisplayConfig] = None

    def load_config(self) -> None:
        """Load configuration from the YAML file.

        Raises:
            ConfigurationError: If config file is missing or invalid
        """
        if not os.path.exists(self.config_path):
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config_data = yaml.safe_load(file)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error reading configuration file: {e}")

        self.load_dict(config_data)
        logger.info("Configuration loaded successfully from %s", self.config_path)

    def load_dict(self, config_data: Optional[Dict[str, Any]]) -> None:
        """Load configuration from an already parsed mapping.

        Args:
            config_data: Parsed configuration, same layout as the YAML file

        Raises:
            ConfigurationError: If any section is missing or invalid
        """
        if not config_data:
            raise ConfigurationError("Configuration file is empty")
        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration root must be a mapping")

        self._config_data = config_data

        # Validate and load each configuration section
        self._load_database_config()
        self._load_app_config()
        self._load_display_config()

    def _load_database_config(self) -> None:
        """Load and validate database configuration."""
        db_config = self._config_data.get('database')
        if not db_config:
            raise ConfigurationError("Missing 'database' section in configuration")

        required_fields = ['host', 'port', 'username', 'password', 'database']
        missing_fields = [field for field in required_fields if field not in db_config]

        if missing_fields:
            raise ConfigurationError(
                f"Missing required database configuration fields: {', '.join(missing_fields)}"
            )

        # Validate port is an integer
        try:
            port = int(db_config['port'])
        except (ValueError, TypeError):
            raise ConfigurationError("Database port must be a valid integer")

        # Validate required string fields are not empty
        string_fields = ['host', 'username', 'password', 'database']
        empty_fields = [field for field in string_fields
                       if not db_config.get(field) or not str(db_config[field]).strip()]

        if empty_fields:
            raise ConfigurationError(
                f"Database configuration fields cannot be empty: {', '.join(empty_fields)}"
            )

        self._database_config = DatabaseConfig(
            host=str(db_config['host']).strip(),
            port=port,
            username=str(db_config['username']).strip(),
            password=str(db_config['password']).strip(),
            database=str(db_config['database']).strip(),
            schema=str(db_config.get('schema') or 'public').strip()
        )

    def _load_app_config(self) -> None:
        """Load and validate application configuration."""
        app_config = self._config_data.get('app')
        if not app_config:
            raise ConfigurationError("Missing 'app' section in configuration")

        # Validate required fields
        required_fields = ['host', 'port', 'debug', 'secret_key']
        missing_fields = [field for field in required_fields if field not in app_config]

        if missing_fields:
            raise ConfigurationError(
                f"Missing required app configuration fields: {', '.join(missing_fields)}"
            )

        # Validate port is an integer
        try:
            port = int(app_config['port'])
        except (ValueError, TypeError):
            raise ConfigurationError("App port must be a valid integer")

        # Validate debug is a boolean
        debug = app_config['debug']
        if not isinstance(debug, bool):
            raise ConfigurationError("App debug setting must be a boolean (true/false)")

        # Validate host and secret_key are not empty
        host = app_config.get('host')
        secret_key = app_config.get('secret_key')

        if not host or not str(host).strip():
            raise ConfigurationError("App host cannot be empty")

        if not secret_key or not str(secret_key).strip():
            raise ConfigurationError("App secret_key cannot be empty")

        self._app_config = AppConfig(
            host=str(host).strip(),
            port=port,
            debug=debug,
            secret_key=str(secret_key).strip()
        )

    def _load_display_config(self) -> None:
        """Load and validate result display settings (all optional)."""
        display_config = self._config_data.get('display') or {}
        if not isinstance(display_config, dict):
            raise ConfigurationError("'display' section must be a mapping")

        defaults = DisplayConfig()
        values: Dict[str, Any] = {}

        for key, choices in DISPLAY_CHOICES.items():
            value = display_config.get(key, getattr(defaults, key))
            if key in ('order', 'relational_display'):
                value = str(value).upper()
            elif isinstance(value, bool) and key == 'protect_binary':
                # YAML reads an unquoted false as a boolean
                value = 'false'
            else:
                value = str(value).lower()
            if value not in choices:
                raise ConfigurationError(
                    f"Display setting '{key}' must be one of: {', '.join(sorted(choices))}"
                )
            values[key] = value

        for key in DISPLAY_POSITIVE_INTS + DISPLAY_NON_NEGATIVE_INTS:
            try:
                value = int(display_config.get(key, getattr(defaults, key)))
            except (ValueError, TypeError):
                raise ConfigurationError(f"Display setting '{key}' must be an integer")
            if key in DISPLAY_POSITIVE_INTS and value <= 0:
                raise ConfigurationError(f"Display setting '{key}' must be positive")
            if value < 0:
                raise ConfigurationError(f"Display setting '{key}' cannot be negative")
            values[key] = value

        for key in DISPLAY_BOOLS:
            value = display_config.get(key, getattr(defaults, key))
            if not isinstance(value, bool):
                raise ConfigurationError(f"Display setting '{key}' must be a boolean (true/false)")
            values[key] = value

        relations = self._config_data.get('relations') or {}
        display_fields = relations.get('display_fields') or {}
        if not isinstance(display_fields, dict):
            raise ConfigurationError("'relations.display_fields' must be a mapping")
        values['display_fields'] = {str(k): str(v) for k, v in display_fields.items()}

        transformations = self._config_data.get('transformations') or {}
        if not isinstance(transformations, dict):
            raise ConfigurationError("'transformations' section must be a mapping")
        for column, entry in transformations.items():
            if not isinstance(entry, dict) or not entry.get('mimetype'):
                raise ConfigurationError(
                    f"Transformation for '{column}' needs at least a 'mimetype'"
                )
        values['transformations'] = {
            str(column): {
                'mimetype': str(entry['mimetype']),
                'transformation': str(entry.get('transformation') or ''),
                'transformation_options': str(entry.get('transformation_options') or ''),
            }
            for column, entry in transformations.items()
        }

        self._display_config = DisplayConfig(**values)

    @property
    def database_config(self) -> DatabaseConfig:
        """Get database configuration.

        Returns:
            DatabaseConfig: Database configuration object

        Raises:
            ConfigurationError: If configuration hasn't been loaded
        """
        if self._database_config is None:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._database_config

    @property
    def app_config(self) -> AppConfig:
        """Get application configuration.

        Returns:
            AppConfig: Application configuration object

        Raises:
            ConfigurationError: If configuration hasn't been loaded
        """
        if self._app_config is None:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._app_config

    @property
    def display_config(self) -> DisplayConfig:
        """Get result display configuration.

        Returns:
            DisplayConfig: Display configuration object

        Raises:
            ConfigurationError: If configuration hasn't been loaded
        """
        if self._display_config is None:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._display_config

    def validate_required_fields(self) -> bool:
        """Validate that all required configuration fields are present and valid.

        Returns:
            bool: True if all fields are valid

        Raises:
            ConfigurationError: If any required field is missing or invalid
        """
        if self._config_data is None:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")

        # Sections are validated while loading
        return True
