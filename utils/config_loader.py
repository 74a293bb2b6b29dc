"""Configuration loader for the API test suite."""
import os
import configparser
from typing import Dict, Any, Optional, Tuple
from pathlib import Path
import json
import yaml
from dataclasses import dataclass, field
import re
from datetime import datetime, timedelta
import threading

from utils.custom_exceptions import ConfigurationError


@dataclass
class ApiConfig:
    """Connection settings for the API under test."""
    base_url: str
    timeout: float = 30
    step_timeout: float = 30
    verify_ssl: bool = True
    user_agent: str = 'API-BDD-Tests/1.0'
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.base_url:
            raise ConfigurationError("API base_url cannot be empty", config_key="base_url")
        if not re.match(r'^https?://', self.base_url):
            raise ConfigurationError(f"API base_url must be http(s): {self.base_url}",
                                     config_key="base_url")
        if self.timeout <= 0:
            raise ConfigurationError(f"Invalid request timeout: {self.timeout}", config_key="timeout")
        if self.step_timeout <= 0:
            raise ConfigurationError(f"Invalid step timeout: {self.step_timeout}",
                                     config_key="step_timeout")
        self.base_url = self.base_url.rstrip('/')


@dataclass
class AuthConfig:
    """Credentials made available to the 'configured credentials' steps."""
    bearer_token: Optional[str] = None
    api_key: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class ConfigLoader:
    """INI/JSON/YAML configuration loader with caching and env-var resolution."""

    # Values of these keys may name an environment variable instead of holding the secret
    SENSITIVE_FIELDS = {'username', 'password', 'pwd', 'token', 'key', 'secret'}

    VALIDATION_RULES = {
        'timeout': lambda x: float(x) > 0,
        'step_timeout': lambda x: float(x) > 0,
    }

    # Environment variables that override [API] keys
    ENV_OVERRIDES = {
        'base_url': 'API_BASE_URL',
        'timeout': 'API_TIMEOUT',
        'step_timeout': 'API_STEP_TIMEOUT',
    }

    def __init__(self, config_dir: Optional[str] = None, config_file: str = "config.ini",
                 cache_timeout: int = 300):
        """
        Initialize the ConfigLoader.

        Args:
            config_dir: The directory where configuration files are located
            config_file: Default file read by the typed accessors
            cache_timeout: Cache timeout in seconds
        """
        self.config_dir = Path(config_dir or os.getenv("API_CONFIG_DIR", "config"))
        self.config_file = config_file
        self.cache_timeout = cache_timeout

        self._config_cache: Dict[str, Tuple[Dict[str, Any], datetime]] = {}
        self._cache_lock = threading.RLock()

        from utils.logger import get_logger
        self.logger = get_logger("config_loader")

    def _is_cache_valid(self, cache_time: datetime) -> bool:
        return datetime.now() - cache_time < timedelta(seconds=self.cache_timeout)

    def _should_resolve_from_env(self, key: str, value: Any) -> bool:
        """Check if a configuration value names an environment variable."""
        if not isinstance(value, str):
            return False
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in self.SENSITIVE_FIELDS):
            return bool(re.match(r'^[A-Z][A-Z0-9_]*$', value))
        return False

    def _resolve_value(self, key: str, value: Any, context: str = "") -> Any:
        """Resolve a sensitive value from the environment if it references a variable."""
        if self._should_resolve_from_env(key, value):
            env_value = os.getenv(value)
            if env_value:
                return env_value
            raise ConfigurationError(
                f"Environment variable '{value}' not found. "
                f"Please set it as a system environment variable. "
                f"Context: {context}",
                config_key=value
            )
        return value

    def _validate_value(self, key: str, value: Any, context: str = "") -> Any:
        """Validate configuration value according to rules."""
        key_lower = key.lower()
        for rule_key, rule_func in self.VALIDATION_RULES.items():
            if key_lower == rule_key:
                try:
                    if not rule_func(value):
                        raise ConfigurationError(f"Validation failed for {context}: {key}={value}",
                                                 config_key=context)
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(f"Invalid value for {context}: {key}={value} ({e})",
                                             config_key=context)
        return value

    def load_config_file(self, filename: Optional[str] = None, force_reload: bool = False) -> Dict[str, Any]:
        """
        Load a configuration file into a dict of sections.

        Sensitive values are left unresolved here; accessors resolve them on read
        so a missing secret only fails the scenario that needs it.
        """
        filename = filename or self.config_file

        with self._cache_lock:
            if not force_reload and filename in self._config_cache:
                cached_data, cache_time = self._config_cache[filename]
                if self._is_cache_valid(cache_time):
                    return cached_data

            file_path = self.config_dir / filename
            if not file_path.exists():
                raise ConfigurationError(f"Configuration file not found: {file_path}",
                                         config_file=str(file_path))

            try:
                if filename.endswith('.ini'):
                    data = self._load_ini_config(file_path)
                elif filename.endswith('.json'):
                    data = self._load_json_config(file_path)
                elif filename.endswith(('.yml', '.yaml')):
                    data = self._load_yaml_config(file_path)
                else:
                    raise ConfigurationError(f"Unsupported config format: {filename}",
                                             config_file=filename)
            except ConfigurationError:
                raise
            except (OSError, ValueError, configparser.Error, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config file: {e}",
                                         config_file=str(file_path))

            self._config_cache[filename] = (data, datetime.now())
            self.logger.debug(f"Loaded config from {file_path}: sections {list(data.keys())}")
            return data

    def _load_ini_config(self, file_path: Path) -> Dict[str, Any]:
        config = configparser.ConfigParser(interpolation=None)
        config.read(file_path, encoding='utf-8')

        result: Dict[str, Any] = {}
        for section in config.sections():
            result[section] = {}
            for key, value in config[section].items():
                result[section][key] = self._validate_value(key, value, f"{section}.{key}")
        return result

    def _load_json_config(self, file_path: Path) -> Dict[str, Any]:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _load_yaml_config(self, file_path: Path) -> Dict[str, Any]:
        with open(file_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    def get_api_config(self, section_name: str = "API") -> ApiConfig:
        """
        Get API configuration, applying environment overrides.

        Args:
            section_name: API section name in config file (default: "API")

        Returns:
            ApiConfig for the section
        """
        config = self.load_config_file()

        if section_name not in config:
            available_sections = [s for s in config.keys() if 'API' in s.upper()]
            raise ConfigurationError(
                f"API configuration section '{section_name}' not found. "
                f"Available API sections: {available_sections}",
                config_key=section_name
            )

        api_config = dict(config[section_name])
        for key, env_name in self.ENV_OVERRIDES.items():
            if os.getenv(env_name):
                api_config[key] = self._validate_value(key, os.getenv(env_name), env_name)

        try:
            headers = api_config.get('headers') or '{}'
            return ApiConfig(
                base_url=api_config.get('base_url', ''),
                timeout=float(api_config.get('timeout', 30)),
                step_timeout=float(api_config.get('step_timeout', 30)),
                verify_ssl=str(api_config.get('verify_ssl', 'true')).lower() == 'true',
                user_agent=api_config.get('user_agent', 'API-BDD-Tests/1.0'),
                headers=json.loads(headers) if isinstance(headers, str) else dict(headers)
            )
        except ConfigurationError:
            raise
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid API configuration in section '{section_name}': {e}",
                                     config_key=section_name)

    def get_auth_config(self, section_name: str = "AUTH") -> AuthConfig:
        """
        Get credentials, resolving environment-variable references.

        A credential whose variable is not set comes back as None so that only
        the style a scenario actually uses has to be configured.
        """
        section = self.get_custom_config(section_name, default={})
        resolved = {}
        for key in ('bearer_token', 'api_key', 'username', 'password'):
            value = section.get(key)
            try:
                resolved[key] = self._resolve_value(key, value, f"{section_name}.{key}") if value else None
            except ConfigurationError as e:
                self.logger.debug(f"Credential '{key}' not configured: {e.message}")
                resolved[key] = None
        return AuthConfig(**resolved)

    def get_custom_config(self, section: str, key: Optional[str] = None, default: Any = None) -> Any:
        """
        Get a whole section, or one key within it.

        Args:
            section: Section name in config file
            key: Optional specific key within section
            default: Default value if key/section not found

        Returns:
            Configuration value, section dict, or default
        """
        config = self.load_config_file()

        if section not in config:
            if default is not None:
                return default
            raise ConfigurationError(
                f"Section '{section}' not found in config. "
                f"Available sections: {list(config.keys())}",
                config_key=section
            )

        if key is None:
            return config[section]

        if key not in config[section]:
            if default is not None:
                return default
            raise ConfigurationError(
                f"Key '{key}' not found in section '{section}'. "
                f"Available keys: {list(config[section].keys())}",
                config_key=f"{section}.{key}"
            )
        return self._resolve_value(key, config[section][key], f"{section}.{key}")

    def reload_config(self) -> None:
        """Clear cache so the next read goes to disk."""
        with self._cache_lock:
            self._config_cache.clear()
        self.logger.info("Configuration cache cleared")


config_loader = ConfigLoader()
