"""
Platform configuration: defaults, then an optional JSON file, then the environment.
"""

import copy
import json
import os
from typing import Any, Dict, Optional

from .core.enums import SyncMode
from .core.exceptions import ConfigurationError


DEFAULT_CONFIG: Dict[str, Any] = {
    'store_type': 'memory',
    'store_config': {},
    'policy_type': 'rules',
    'policy_config': {},
    'identity_type': 'static',
    'identity_config': {},
    'collections': {
        'courses': 'courses',
        'assignments': 'assignments',
        'submissions': 'submissions',
    },
    'request_timeout': 5.0,
    'max_retries': 3,
    'retry_backoff': 0.05,
    'max_workers': 4,
    'sync_mode': SyncMode.INLINE.value,
    'audit_max_entries': 1000,
    'cors_origins': ['*'],
    'host': '0.0.0.0',
    'port': 8080,
    'log_level': 'INFO',
}


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    return value if value else None


def _apply_environment(config: Dict[str, Any]) -> None:
    """Overlay the variables used by the hosted deployment."""
    store = config['store_config']
    identity = config['identity_config']
    policy = config['policy_config']

    endpoint = _env('APPWRITE_ENDPOINT')
    project = _env('APPWRITE_PROJECT') or _env('APPWRITE_FUNCTION_PROJECT_ID')
    if endpoint:
        store['endpoint'] = endpoint
        identity['endpoint'] = endpoint
    if project:
        store['project_id'] = project
        identity['project_id'] = project
    if _env('APPWRITE_API_KEY'):
        store['api_key'] = _env('APPWRITE_API_KEY')
    if _env('APPWRITE_DATABASE_ID'):
        store['database_id'] = _env('APPWRITE_DATABASE_ID')
    if _env('APPWRITE_COLLECTION_ID'):
        config['collections']['courses'] = _env('APPWRITE_COLLECTION_ID')

    for variable, key in (('PERMIT_TOKEN', 'token'), ('PERMIT_PDP_URL', 'pdp_url'),
                          ('PERMIT_API_URL', 'api_url'), ('PERMIT_PROJECT', 'project'),
                          ('PERMIT_ENV', 'environment')):
        if _env(variable):
            policy[key] = _env(variable)

    for variable, key in (('ATHENA_STORE_TYPE', 'store_type'), ('ATHENA_POLICY_TYPE', 'policy_type'),
                          ('ATHENA_IDENTITY_TYPE', 'identity_type'), ('ATHENA_SYNC_MODE', 'sync_mode'),
                          ('ATHENA_LOG_LEVEL', 'log_level')):
        if _env(variable):
            config[key] = _env(variable)

    if _env('PORT'):
        try:
            config['port'] = int(_env('PORT'))
        except ValueError:
            raise ConfigurationError(f"PORT must be an integer, got {_env('PORT')!r}")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None,
                use_environment: bool = True) -> Dict[str, Any]:
    """Build the platform configuration dict."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if path:
        try:
            with open(path, 'r') as f:
                _merge(config, json.load(f))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {str(e)}")

    if use_environment:
        _apply_environment(config)

    if overrides:
        _merge(config, overrides)

    try:
        SyncMode(config['sync_mode'])
    except ValueError:
        raise ConfigurationError(f"Unsupported sync mode: {config['sync_mode']}")
    return config
