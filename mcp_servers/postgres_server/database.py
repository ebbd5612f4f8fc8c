"""
Database connection lifecycle and bounded query execution

DatabaseManager owns the single asyncpg pool of the process, the optional
SSH tunnel it connects through and the insecure-mode flag. Tool handlers
borrow the pool per call, either immediately (get_pool) or by waiting for
a startup that is still in progress (wait_for_ready).

QueryExecutor runs statements against a borrowed pool with a wall-clock
timeout and a row cap. A statement that times out is abandoned, not
cancelled: the caller stops waiting, the driver call may still finish and
its outcome is discarded.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import asyncpg

from security.audit import log_query_event, query_preview
from security.query_validator import QUERY_LIMITS, QueryLimits

from .config import (
    ConfigurationError,
    DatabaseConfig,
    SSHTunnelConfig,
    load_database_config,
    load_ssh_tunnel_config,
)
from .ssh_tunnel import SSHTunnel, create_ssh_tunnel

logger = logging.getLogger(__name__)

PROBE_QUERY = 'SELECT 1 AS test'


class DatabaseError(Exception):
    """Base exception for database errors"""
    pass


class InitializationError(DatabaseError):
    """Configuration, tunnel or connection probe failed during initialization"""
    pass


class InitializationNotStartedError(InitializationError):
    """wait_for_ready() called before initialize()"""
    pass


class DatabaseNotInitializedError(DatabaseError):
    """Pool requested while the database is not ready"""
    pass


class DatabaseTimeoutError(DatabaseError, TimeoutError):
    """Waiting for initialization or for a statement took too long"""
    pass


class QueryExecutionError(DatabaseError):
    """The driver rejected or failed a statement"""
    pass


class InitializationState(Enum):
    NOT_STARTED = 'not_started'
    INITIALIZING = 'initializing'
    READY = 'ready'
    FAILED = 'failed'


def _discard_outcome(future: asyncio.Future):
    # Marks the exception as retrieved so abandoned work does not log
    # "exception was never retrieved" when it eventually fails.
    if not future.cancelled():
        future.exception()


async def race_with_timeout(awaitable: Awaitable, timeout: float, message: str) -> Any:
    """
    Await `awaitable` for at most `timeout` seconds

    On timeout the operation is left running and its eventual result is
    discarded; DatabaseTimeoutError is raised immediately. A cancelled
    caller abandons the operation the same way.
    """
    future = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({future}, timeout=timeout)
    finally:
        # Covers the caller being cancelled as well as the timeout
        if not future.done():
            future.add_done_callback(_discard_outcome)
    if not done:
        raise DatabaseTimeoutError(message)
    return future.result()


class QueryExecutor:
    """Runs statements with a timeout, a row cap and uniform error wrapping"""

    def __init__(self, limits: QueryLimits = QUERY_LIMITS):
        self.limits = limits

    async def execute(self, pool: asyncpg.Pool, query: str) -> List[Dict[str, Any]]:
        """
        Execute a SQL statement

        Args:
            pool: Pool borrowed from DatabaseManager
            query: Statement that already passed validation

        Returns:
            Rows as dictionaries, at most limits.max_rows of them

        Raises:
            DatabaseTimeoutError: statement did not finish in time
            QueryExecutionError: the driver failed
        """
        logger.info(f"[QUERY] Executing SQL query ({len(query)} chars): {query_preview(query)}")
        rows, _ = await self._run(pool, query)
        return rows

    async def execute_page(self, pool: asyncpg.Pool, query: str) -> Tuple[List[Dict[str, Any]], bool]:
        """Like execute(), also reporting whether rows were cut at max_rows"""
        logger.info(f"[QUERY] Executing SQL query ({len(query)} chars): {query_preview(query)}")
        return await self._run(pool, query)

    async def fetch(self, pool: asyncpg.Pool, query: str, *args) -> List[Dict[str, Any]]:
        """Execute a parameterized statement ($1, $2, ...) with the same bounds"""
        rows, _ = await self._run(pool, query, *args)
        return rows

    async def _run(self, pool: asyncpg.Pool, query: str, *args) -> Tuple[List[Dict[str, Any]], bool]:
        start_time = time.monotonic()

        try:
            records = await race_with_timeout(
                pool.fetch(query, *args),
                self.limits.timeout_seconds,
                f"Query timeout: exceeded {self.limits.timeout_ms}ms"
            )
        except DatabaseTimeoutError as e:
            log_query_event('TIMEOUT', len(query), self._elapsed_ms(start_time), error=str(e))
            raise
        except Exception as e:
            duration = self._elapsed_ms(start_time)
            log_query_event('FAILED', len(query), duration, error=str(e))
            raise QueryExecutionError(f"Query execution failed: {e}") from e

        duration = self._elapsed_ms(start_time)
        rows = [dict(record) for record in records or []]
        truncated = len(rows) > self.limits.max_rows

        if truncated:
            logger.warning(
                f"Query result limit applied: {len(rows)} rows returned, "
                f"limited to {self.limits.max_rows} ({duration:.0f}ms)"
            )
            rows = rows[:self.limits.max_rows]

        log_query_event('EXECUTED', len(query), duration, row_count=len(rows))
        return rows, truncated

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.monotonic() - start_time) * 1000


class DatabaseManager:
    """
    Owns the connection pool, its initialization future and the SSH tunnel

    State moves NOT_STARTED -> INITIALIZING -> READY | FAILED. READY and
    FAILED are final until close(), which resets to NOT_STARTED.
    initialize() and close() are serialized by one lock, so at most one
    initialization runs at a time and close() never sees half-built state.
    """

    def __init__(self,
                 config_loader: Callable[[], DatabaseConfig] = load_database_config,
                 tunnel_config_loader: Callable[[], Optional[SSHTunnelConfig]] = load_ssh_tunnel_config,
                 pool_factory: Optional[Callable[..., Awaitable[asyncpg.Pool]]] = None,
                 tunnel_factory: Callable[[SSHTunnelConfig], Awaitable[SSHTunnel]] = create_ssh_tunnel,
                 limits: QueryLimits = QUERY_LIMITS,
                 close_timeout: float = 10.0):
        self._config_loader = config_loader
        self._tunnel_config_loader = tunnel_config_loader
        self._pool_factory = pool_factory or asyncpg.create_pool
        self._tunnel_factory = tunnel_factory
        self._close_timeout = close_timeout
        self.limits = limits
        self.executor = QueryExecutor(limits)

        self._state = InitializationState.NOT_STARTED
        self._pool: Optional[asyncpg.Pool] = None
        self._tunnel: Optional[SSHTunnel] = None
        self._config: Optional[DatabaseConfig] = None
        self._insecure: Optional[bool] = None
        self._init_future: Optional[asyncio.Future] = None
        self._init_error: Optional[InitializationError] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> InitializationState:
        return self._state

    @property
    def insecure(self) -> bool:
        """
        True when write statements are allowed

        Read from configuration on first access, so statements can be
        checked before the pool is ready. An unreadable configuration
        counts as read-only; initialize() reports the error itself.
        """
        if self._insecure is None:
            try:
                self._insecure = bool(self._config_loader().insecure)
            except ConfigurationError as e:
                logger.debug(f"Configuration unavailable, treating connection as read-only: {e}")
                return False
        return self._insecure

    @property
    def via_ssh_tunnel(self) -> bool:
        return self._tunnel is not None

    def is_ready(self) -> bool:
        return self._state is InitializationState.READY and self._pool is not None

    def _begin_attempt(self):
        self._init_future = asyncio.get_running_loop().create_future()
        self._init_future.add_done_callback(_discard_outcome)
        self._init_error = None
        self._state = InitializationState.INITIALIZING

    async def initialize(self):
        """
        Open the tunnel (if configured) and the pool, then probe the database

        Concurrent callers share a single attempt. A failed attempt is not
        retried: later calls re-raise the same InitializationError until
        close() resets the manager.

        Raises:
            InitializationError: configuration, tunnel or probe failure
        """
        if self._state is InitializationState.READY:
            logger.debug('Database already initialized')
            return

        # Publish the attempt before waiting on the lock so wait_for_ready()
        # callers see that initialization has started.
        if self._init_future is None:
            self._begin_attempt()

        async with self._lock:
            if self._state is InitializationState.READY:
                return
            if self._state is InitializationState.FAILED:
                raise self._init_error
            if self._init_future is None:
                self._begin_attempt()

            await self._open()

    async def _open(self):
        tunnel = None
        pool = None
        try:
            tunnel_config = self._tunnel_config_loader()
            if tunnel_config is not None:
                tunnel = await self._tunnel_factory(tunnel_config)

            config = self._config_loader()

            host = tunnel.local_host if tunnel else config.host
            port = tunnel.local_port if tunnel else config.port

            logger.info(
                f"Initializing database connection: {host}:{port}/{config.database} "
                f"(max connections: {config.max_connections}, via SSH tunnel: {tunnel is not None}, "
                f"insecure: {config.insecure})"
            )

            if config.insecure:
                logger.warning(
                    'INSECURE MODE ENABLED: write operations (INSERT, UPDATE, DELETE, etc.) are allowed'
                )

            pool = await self._pool_factory(
                host=host,
                port=port,
                database=config.database,
                user=config.username,
                password=config.password,
                min_size=1,
                max_size=config.max_connections,
                timeout=self.limits.timeout_seconds,
            )

            await race_with_timeout(
                pool.fetchval(PROBE_QUERY),
                self.limits.timeout_seconds,
                f"Connection probe timeout: exceeded {self.limits.timeout_ms}ms"
            )
        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            await self._release(pool, tunnel)

            error = InitializationError(f"Failed to initialize database connection: {e}")
            self._init_error = error
            self._state = InitializationState.FAILED
            self._init_future.set_exception(error)
            raise error from e
        except asyncio.CancelledError:
            logger.warning('Database initialization cancelled')

            # Waiters are told first; the next initialize() starts a fresh attempt
            self._init_future.set_exception(InitializationError('Database initialization cancelled'))
            self._init_future = None
            self._state = InitializationState.NOT_STARTED
            await self._release(pool, tunnel)
            raise

        self._pool = pool
        self._tunnel = tunnel
        self._config = config
        self._insecure = config.insecure
        self._state = InitializationState.READY
        self._init_future.set_result(None)

        if tunnel is not None:
            logger.info(
                f"Database connected via SSH tunnel: {config.host}:{config.port}/{config.database}"
            )
        else:
            logger.info(f"Database connected: {config.host}:{config.port}/{config.database}")

    @staticmethod
    async def _release(pool: Optional[asyncpg.Pool], tunnel: Optional[SSHTunnel]):
        """Drop what a failed attempt managed to open"""
        if pool is not None:
            pool.terminate()

        if tunnel is not None:
            try:
                await tunnel.close()
            except Exception as close_error:
                logger.error(f"Failed to close SSH tunnel during cleanup: {close_error}")

    def get_pool(self) -> asyncpg.Pool:
        """
        Return the pool without waiting

        Raises:
            DatabaseNotInitializedError: if the database is not ready
        """
        if not self.is_ready():
            raise DatabaseNotInitializedError('Database not initialized. Call initialize() first')
        return self._pool

    async def wait_for_ready(self, timeout: float = 10.0) -> asyncpg.Pool:
        """
        Wait for an initialization in progress and return the pool

        Tool calls can arrive before startup finishes; they wait here
        instead of failing.

        Args:
            timeout: Seconds to wait

        Raises:
            InitializationNotStartedError: initialize() was never called
            InitializationError: the initialization attempt failed
            DatabaseTimeoutError: initialization did not finish in time
        """
        if self.is_ready():
            return self._pool

        if self._init_future is None:
            raise InitializationNotStartedError(
                'Database initialization not started. Call initialize() first'
            )

        await race_with_timeout(
            self._init_future,
            timeout,
            f"Database initialization timeout after {timeout * 1000:.0f}ms"
        )

        return self.get_pool()

    async def execute_query(self, query: str) -> List[Dict[str, Any]]:
        """Execute a statement on the ready pool (does not wait for startup)"""
        return await self.executor.execute(self.get_pool(), query)

    async def close(self):
        """
        Close the pool, then the tunnel, and reset to NOT_STARTED

        Idempotent. Waits for an initialization in progress to finish first.
        """
        async with self._lock:
            pool, tunnel = self._pool, self._tunnel
            self._pool = None
            self._tunnel = None

            try:
                if pool is not None:
                    logger.info('Closing database connection')
                    try:
                        await asyncio.wait_for(pool.close(), timeout=self._close_timeout)
                    except asyncio.TimeoutError:
                        logger.warning(
                            f"Pool did not close within {self._close_timeout}s, terminating connections"
                        )
                        pool.terminate()
                    logger.info('Database connection closed')
            finally:
                if tunnel is not None:
                    await tunnel.close()

                # An initializer queued on the lock keeps its attempt
                if self._state is not InitializationState.INITIALIZING:
                    self._state = InitializationState.NOT_STARTED
                    self._init_future = None
                    self._init_error = None
                    self._config = None
                    self._insecure = None
