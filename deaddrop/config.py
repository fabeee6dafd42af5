#!/usr/bin/env python3
"""
Dead Drop Configuration Manager
Handles the JSON config file, environment variables and .env files centrally.

Priority (highest to lowest):
1. Environment variables (DEAD_DROP_*)
2. .env file (loaded into os.environ before config creation)
3. JSON config file (DEAD_DROP_CONFIG or an explicit path)
4. DeadDropConfig dataclass defaults
"""

import copy
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from deaddrop.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PATTERN = re.compile(r'\$\{([^}:]+)(?::([^}]*))?\}')

DEFAULT_STORAGE = {
    'disk': 'local',
    'path': 'dead-drop',
    'delete_local_after_upload': False,
    'disks': {},
}

DEFAULT_QUEUE = {
    'connection': 'sync',
    'queue_name': 'default',
    'max_workers': 2,
}

DEFAULT_PERFORMANCE = {
    'chunk_size': 1000,
    'batch_size': 100,
}

DEFAULT_CENSOR = {
    'locale': 'en_US',
    'seed': None,
    'password_rounds': 10,
}

SECRET_KEYS = ('password', 'secret', 'aws_secret_access_key', 'token')


def resolve_environment_variables(value: Any) -> Any:
    """Resolve ${VAR} and ${VAR:default} placeholders recursively"""
    if isinstance(value, str):
        def replace_env_var(match):
            default_value = match.group(2) if match.group(2) is not None else ''
            return os.environ.get(match.group(1), default_value)
        return ENV_PATTERN.sub(replace_env_var, value)
    elif isinstance(value, dict):
        return {k: resolve_environment_variables(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_environment_variables(item) for item in value]
    return value


def _merged(defaults: Dict[str, Any], values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    merged.update(values or {})
    return merged


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class DeadDropConfig:
    """Dead Drop configuration settings"""

    output_path: Path = None
    default_connection: str = "default"
    connections: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    tables: Dict[str, Any] = field(default_factory=dict)
    storage: Dict[str, Any] = field(default_factory=dict)
    queue: Dict[str, Any] = field(default_factory=dict)
    performance: Dict[str, Any] = field(default_factory=dict)
    censor: Dict[str, Any] = field(default_factory=dict)
    status_path: Path = None
    temp_path: Path = None
    log_level: str = "INFO"

    def __post_init__(self):
        """Apply defaults and environment overrides"""
        base_dir = Path(os.environ.get('DEAD_DROP_HOME', os.getcwd()))

        self.output_path = Path(os.environ.get(
            'DEAD_DROP_OUTPUT_PATH', self.output_path or base_dir / 'storage' / 'dead-drop'))
        self.status_path = Path(os.environ.get(
            'DEAD_DROP_STATUS_PATH', self.status_path or base_dir / 'storage' / 'dead-drop-status.db'))
        self.temp_path = Path(os.environ.get(
            'DEAD_DROP_TEMP_PATH', self.temp_path or base_dir / 'storage' / 'temp'))
        self.default_connection = os.environ.get('DEAD_DROP_CONNECTION', self.default_connection)
        self.log_level = os.environ.get('DEAD_DROP_LOG_LEVEL', self.log_level)

        self.storage = _merged(DEFAULT_STORAGE, self.storage)
        self.storage['disk'] = os.environ.get('DEAD_DROP_STORAGE_DISK', self.storage['disk'])
        self.storage['path'] = os.environ.get('DEAD_DROP_STORAGE_PATH', self.storage['path'])
        self.storage['delete_local_after_upload'] = _env_bool(
            'DEAD_DROP_DELETE_LOCAL', bool(self.storage['delete_local_after_upload']))

        self.queue = _merged(DEFAULT_QUEUE, self.queue)
        self.queue['connection'] = os.environ.get('DEAD_DROP_QUEUE_CONNECTION', self.queue['connection'])
        self.queue['queue_name'] = os.environ.get('DEAD_DROP_QUEUE', self.queue['queue_name'])

        self.performance = _merged(DEFAULT_PERFORMANCE, self.performance)
        self.performance['chunk_size'] = int(os.environ.get(
            'DEAD_DROP_CHUNK_SIZE', self.performance['chunk_size']))
        self.performance['batch_size'] = int(os.environ.get(
            'DEAD_DROP_BATCH_SIZE', self.performance['batch_size']))

        self.censor = _merged(DEFAULT_CENSOR, self.censor)

        if not self.connections:
            self.connections = {
                self.default_connection: {
                    'type': 'sqlite',
                    'path': os.environ.get('DEAD_DROP_DB_PATH', str(base_dir / 'database.sqlite')),
                    'timeout': 30,
                }
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeadDropConfig':
        """Build a config from a parsed JSON document"""
        known = {
            'output_path', 'default_connection', 'connections', 'tables', 'storage',
            'queue', 'performance', 'censor', 'status_path', 'temp_path', 'log_level',
        }
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @property
    def chunk_size(self) -> int:
        return int(self.performance['chunk_size'])

    @property
    def batch_size(self) -> int:
        return int(self.performance['batch_size'])

    @property
    def storage_disk(self) -> str:
        return self.storage['disk']

    @property
    def storage_path(self) -> str:
        return self.storage['path']

    @property
    def delete_local_after_upload(self) -> bool:
        return bool(self.storage['delete_local_after_upload'])

    def connection_config(self, name: Optional[str] = None) -> Dict[str, Any]:
        """Get the definition of a named connection"""
        name = name or self.default_connection
        if name not in self.connections:
            raise ConfigurationError(f"Connection '{name}' is not configured")
        return self.connections[name]

    def get_safe_dict(self) -> Dict[str, Any]:
        """Get configuration as dict without sensitive values"""
        def redact(value):
            if isinstance(value, dict):
                return {
                    k: '***' if any(s in k.lower() for s in SECRET_KEYS) and v else redact(v)
                    for k, v in value.items()
                }
            return value

        return {
            'output_path': str(self.output_path),
            'default_connection': self.default_connection,
            'connections': redact(self.connections),
            'tables': sorted(self.tables),
            'storage': redact(self.storage),
            'queue': dict(self.queue),
            'performance': dict(self.performance),
            'status_path': str(self.status_path),
            'temp_path': str(self.temp_path),
            'log_level': self.log_level,
        }


class ConfigManager:
    """Singleton configuration manager.

    Nothing is read until ``load_config`` is called or ``config`` is first
    accessed.
    """

    _instance: Optional['ConfigManager'] = None
    _config: Optional[DeadDropConfig] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load_config(self, config_file: Optional[Path] = None) -> DeadDropConfig:
        """Load configuration from the .env file, the JSON file and the environment"""
        base_dir = Path(os.environ.get('DEAD_DROP_HOME', os.getcwd()))
        env_file = base_dir / '.env'
        if env_file.exists():
            self._load_env_file(env_file)

        if config_file is None and os.environ.get('DEAD_DROP_CONFIG'):
            config_file = Path(os.environ['DEAD_DROP_CONFIG'])

        if config_file is not None:
            config_file = Path(config_file)
            if not config_file.exists():
                raise ConfigurationError(f"Config file not found: {config_file}")
            try:
                with open(config_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {config_file}: {e}") from e
            self._config = DeadDropConfig.from_dict(resolve_environment_variables(data))
            logger.debug(f"Loaded configuration from {config_file}")
        else:
            self._config = DeadDropConfig()

        return self._config

    def _load_env_file(self, env_file: Path):
        """Load environment variables from .env file.

        Only sets values for keys not already in os.environ,
        ensuring exported env vars take precedence over .env file.
        """
        try:
            with open(env_file, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        key = key.strip()
                        if key not in os.environ:
                            os.environ[key] = value.strip().strip('"').strip("'")
        except OSError as e:
            logger.warning(f"Could not load .env file: {e}")

    @property
    def config(self) -> DeadDropConfig:
        """Get the current configuration"""
        if self._config is None:
            self.load_config()
        return self._config

    @classmethod
    def reset(cls):
        """Forget the loaded configuration (used by tests)"""
        cls._config = None
        cls._instance = None


def get_config() -> DeadDropConfig:
    """Get the global configuration instance"""
    return ConfigManager().config
