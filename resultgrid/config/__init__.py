# Configuration management module

from .manager import Config_Manager, ConfigurationError, DatabaseConfig, DisplayConfig, AppConfig

__all__ = ['Config_Manager', 'ConfigurationError', 'DatabaseConfig', 'DisplayConfig', 'AppConfig']
