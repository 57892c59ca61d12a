import copy
import os
import yaml
import logging
from typing import Dict, Any, Optional

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = 'search-config.yaml'

BACKEND_NAMES = ('auto', 'fanout', 'pool')
VOLUME_TYPE_NAMES = ('local', 'removable', 'network', 'optical')

DEFAULT_CONFIG: Dict[str, Any] = {
    'search': {
        'max_concurrent': 5,
        'poll_interval_ms': 500,
        'progress_every': 1000,
        'backend': 'auto',
        'ignore_case': True,
    },
    'volumes': {
        'include_types': ['local', 'removable', 'network'],
    },
    'logging': {
        'level': 'INFO',
        'file': 'logs/fs-volume-search.log',
        'max_size_mb': 10,
        'backup_count': 5,
        'console': True,
    },
}

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

def deep_update(d: Dict[str, Any], u: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``u`` into ``d``."""
    for k, v in u.items():
        if isinstance(v, dict):
            d[k] = deep_update(d.get(k, {}) or {}, v)
        else:
            d[k] = v
    return d

def find_config_file() -> Optional[str]:
    """Return the first existing config file from the default locations."""
    config_locations = [
        os.path.join(PROJECT_DIR, 'config', CONFIG_FILENAME),  # Project config directory
        os.path.join(os.getcwd(), CONFIG_FILENAME),          # Current directory
        os.path.join(os.path.dirname(__file__), CONFIG_FILENAME),  # Package directory
    ]
    for loc in config_locations:
        if os.path.exists(loc):
            return loc
    return None

def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from file and merge it over the defaults.

    Args:
        config_path: Explicit config file. When omitted the default locations
            are searched and the built-in defaults are used if none exists.

    Returns:
        Validated configuration dictionary

    Raises:
        FileNotFoundError: An explicit config path does not exist
        ConfigurationError: The file is malformed or holds invalid values
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
    else:
        config_path = find_config_file()

    if config_path:
        try:
            with open(config_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse {config_path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
        deep_update(config, loaded)
        config['config_path'] = config_path

    validate_config(config)
    return config

def validate_config(config: Dict[str, Any]) -> None:
    """Check value ranges and names, raising ConfigurationError on the first problem."""
    search = config.get('search', {})

    def _int(key: str, minimum: int) -> int:
        value = search.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
            raise ConfigurationError(f"search.{key} must be an integer >= {minimum}, got {value!r}")
        return value

    _int('max_concurrent', 1)
    _int('progress_every', 1)
    _int('poll_interval_ms', 1)

    backend = search.get('backend')
    if backend not in BACKEND_NAMES:
        raise ConfigurationError(f"search.backend must be one of {', '.join(BACKEND_NAMES)}, got {backend!r}")

    include_types = config.get('volumes', {}).get('include_types', [])
    if not isinstance(include_types, list):
        raise ConfigurationError("volumes.include_types must be a list")
    unknown = [t for t in include_types if t not in VOLUME_TYPE_NAMES]
    if unknown:
        raise ConfigurationError(f"Unknown volume types in volumes.include_types: {unknown}")
