"""
SSH tunnel for database connections

Forwards a local port on 127.0.0.1 to the database through an SSH
bastion / jump host, so the pool can connect to a database that is only
reachable from inside a private network.
"""

import logging

import asyncssh

from .config import SSHTunnelConfig

logger = logging.getLogger(__name__)

LOCAL_HOST = '127.0.0.1'


class SSHTunnelError(Exception):
    """SSH tunnel could not be established"""
    pass


class SSHTunnel:
    """An open SSH connection plus the local listener forwarding through it"""

    def __init__(self, connection: asyncssh.SSHClientConnection,
                 listener: asyncssh.SSHListener, config: SSHTunnelConfig):
        self._connection = connection
        self._listener = listener
        self.config = config
        self.local_host = LOCAL_HOST
        self.local_port = listener.get_port()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def close(self):
        """Stop forwarding and close the SSH connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        logger.info('Closing SSH tunnel')
        self._listener.close()
        await self._listener.wait_closed()
        self._connection.close()
        await self._connection.wait_closed()
        logger.info('SSH tunnel closed')


def _client_keys(config: SSHTunnelConfig):
    if config.private_key_path:
        try:
            key = asyncssh.read_private_key(config.private_key_path, config.passphrase)
        except (OSError, asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
            logger.error(f"Failed to load SSH private key from {config.private_key_path}: {e}")
            raise SSHTunnelError(f"Failed to load SSH private key: {e}") from e
        logger.debug(f"Loaded SSH private key from file: {config.private_key_path}")
        return [key]

    if config.private_key:
        try:
            key = asyncssh.import_private_key(config.private_key, config.passphrase)
        except (asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
            raise SSHTunnelError(f"Failed to load SSH private key: {e}") from e
        logger.debug('Using SSH private key from environment variable')
        return [key]

    return None


async def create_ssh_tunnel(config: SSHTunnelConfig) -> SSHTunnel:
    """
    Create an SSH tunnel to the database server

    Args:
        config: SSH tunnel configuration

    Returns:
        SSHTunnel whose local_port forwards to config.target_host:target_port

    Raises:
        SSHTunnelError: if the key cannot be loaded, the SSH connection
            fails, or the local port cannot be bound
    """
    logger.info(
        f"Creating SSH tunnel via {config.username}@{config.host}:{config.port} "
        f"to {config.target_host}:{config.target_port} (auth: {config.auth_method})"
    )

    client_keys = _client_keys(config)
    if config.known_hosts is None:
        logger.warning('SSH_KNOWN_HOSTS not set, SSH host key will not be verified')

    try:
        connection = await asyncssh.connect(
            config.host,
            port=config.port,
            username=config.username,
            password=config.password if client_keys is None else None,
            client_keys=client_keys,
            known_hosts=config.known_hosts,
        )
    except (OSError, asyncssh.Error) as e:
        logger.error(f"SSH connection error: {e}")
        raise SSHTunnelError(f"SSH connection failed: {e}") from e

    logger.info('SSH connection established')

    try:
        listener = await connection.forward_local_port(
            LOCAL_HOST, config.local_port, config.target_host, config.target_port
        )
    except (OSError, asyncssh.Error) as e:
        logger.error(f"SSH port forwarding failed: {e}")
        connection.close()
        await connection.wait_closed()
        raise SSHTunnelError(f"SSH port forwarding failed: {e}") from e

    tunnel = SSHTunnel(connection, listener, config)
    logger.info(
        f"SSH tunnel created successfully: {LOCAL_HOST}:{tunnel.local_port} -> "
        f"{config.target_host}:{config.target_port}"
    )
    return tunnel
