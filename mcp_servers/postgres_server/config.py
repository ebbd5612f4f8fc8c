"""
Configuration for the PostgreSQL MCP server

Reads connection and SSH tunnel settings from environment variables
(a .env file is loaded by server_project.settings). Every loader accepts
an optional mapping so configuration can be built without touching
os.environ.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

REQUIRED_DATABASE_VARS = (
    'POSTGRES_HOST',
    'POSTGRES_DATABASE',
    'POSTGRES_USER',
    'POSTGRES_PASSWORD',
)

REQUIRED_SSH_VARS = ('SSH_HOST', 'SSH_USERNAME')

SSH_AUTH_VARS = ('SSH_PASSWORD', 'SSH_PRIVATE_KEY_PATH', 'SSH_PRIVATE_KEY')

DEFAULT_POSTGRES_PORT = 5432
DEFAULT_MAX_CONNECTIONS = 10
DEFAULT_SSH_PORT = 22


class ConfigurationError(Exception):
    """Missing or invalid configuration"""
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str
    database: str
    username: str
    password: str
    port: int = DEFAULT_POSTGRES_PORT
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    insecure: bool = False

    def __repr__(self):
        return (f"DatabaseConfig(host={self.host!r}, port={self.port}, "
                f"database={self.database!r}, username={self.username!r}, "
                f"max_connections={self.max_connections}, insecure={self.insecure})")


@dataclass(frozen=True)
class SSHTunnelConfig:
    host: str
    username: str
    target_host: str
    target_port: int
    port: int = DEFAULT_SSH_PORT
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key: Optional[str] = None
    passphrase: Optional[str] = None
    local_port: int = 0
    known_hosts: Optional[str] = None

    @property
    def auth_method(self) -> str:
        if self.private_key_path:
            return 'privateKey'
        if self.private_key:
            return 'privateKey (env)'
        return 'password'

    def __repr__(self):
        return (f"SSHTunnelConfig(host={self.host!r}, port={self.port}, "
                f"username={self.username!r}, auth_method={self.auth_method!r}, "
                f"target={self.target_host}:{self.target_port}, local_port={self.local_port})")


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name) or str(default)
    try:
        return int(raw, 10)
    except ValueError:
        raise ConfigurationError(f"Invalid {name}: {raw}. Must be an integer") from None


def _parse_port(env: Mapping[str, str], name: str, default: int, allow_zero: bool = False) -> int:
    port = _parse_int(env, name, default)
    lower = 0 if allow_zero else 1
    if port < lower or port > 65535:
        raise ConfigurationError(
            f"Invalid {name}: {env.get(name)}. Must be between {lower} and 65535"
        )
    return port


def _is_enabled(value: Optional[str]) -> bool:
    return (value or '').strip().lower() == 'true'


def load_database_config(env: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
    """
    Load database configuration from environment variables

    Args:
        env: Mapping to read from, defaults to os.environ

    Returns:
        DatabaseConfig

    Raises:
        ConfigurationError: if required variables are missing (all of them
            are listed) or a numeric value is out of range
    """
    env = os.environ if env is None else env

    missing = [name for name in REQUIRED_DATABASE_VARS if not env.get(name)]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}\n"
            "Please configure these in your MCP client configuration or .env file"
        )

    port = _parse_port(env, 'POSTGRES_PORT', DEFAULT_POSTGRES_PORT)

    max_connections = _parse_int(env, 'POSTGRES_MAX_CONNECTIONS', DEFAULT_MAX_CONNECTIONS)
    if max_connections < 1:
        raise ConfigurationError(
            f"Invalid POSTGRES_MAX_CONNECTIONS: {env.get('POSTGRES_MAX_CONNECTIONS')}. "
            "Must be at least 1"
        )

    return DatabaseConfig(
        host=env['POSTGRES_HOST'],
        port=port,
        database=env['POSTGRES_DATABASE'],
        username=env['POSTGRES_USER'],
        password=env['POSTGRES_PASSWORD'],
        max_connections=max_connections,
        insecure=_is_enabled(env.get('POSTGRES_INSECURE')),
    )


def load_ssh_tunnel_config(env: Optional[Mapping[str, str]] = None) -> Optional[SSHTunnelConfig]:
    """
    Load SSH tunnel configuration from environment variables

    Returns:
        SSHTunnelConfig, or None when SSH_TUNNEL_ENABLED is not 'true'

    Raises:
        ConfigurationError: if the tunnel is enabled but incompletely or
            ambiguously configured
    """
    env = os.environ if env is None else env

    if not _is_enabled(env.get('SSH_TUNNEL_ENABLED')):
        return None

    missing = [name for name in REQUIRED_SSH_VARS if not env.get(name)]
    if missing:
        raise ConfigurationError(
            f"SSH tunnel enabled but missing required variables: {', '.join(missing)}"
        )

    credentials = [name for name in SSH_AUTH_VARS if env.get(name)]
    if not credentials:
        raise ConfigurationError(
            'SSH tunnel requires one authentication method: '
            'SSH_PASSWORD, SSH_PRIVATE_KEY_PATH, or SSH_PRIVATE_KEY'
        )
    if len(credentials) > 1:
        raise ConfigurationError(
            f"SSH tunnel accepts exactly one authentication method, got: {', '.join(credentials)}"
        )

    return SSHTunnelConfig(
        host=env['SSH_HOST'],
        port=_parse_port(env, 'SSH_PORT', DEFAULT_SSH_PORT),
        username=env['SSH_USERNAME'],
        password=env.get('SSH_PASSWORD') or None,
        private_key_path=env.get('SSH_PRIVATE_KEY_PATH') or None,
        private_key=env.get('SSH_PRIVATE_KEY') or None,
        passphrase=env.get('SSH_PASSPHRASE') or None,
        target_host=env.get('SSH_TARGET_HOST') or env.get('POSTGRES_HOST') or 'localhost',
        target_port=_parse_port(
            env,
            'SSH_TARGET_PORT' if env.get('SSH_TARGET_PORT') else 'POSTGRES_PORT',
            DEFAULT_POSTGRES_PORT
        ),
        local_port=_parse_port(env, 'SSH_LOCAL_PORT', 0, allow_zero=True),
        known_hosts=env.get('SSH_KNOWN_HOSTS') or None,
    )
