#!/usr/bin/env python
"""
PostgreSQL MCP server entry point

Starts the database initialization and the stdio transport side by side:
the client handshake does not wait for the database, tool calls wait for
it instead. Exits with status 1 when configuration or initialization fails.
"""

import asyncio
import logging
import signal
import sys

from server_project import settings
from mcp_servers.stdio_transport import StdioTransport
from mcp_servers.postgres_server import DatabaseManager, PostgresMCPServer
from mcp_servers.postgres_server.config import (
    ConfigurationError,
    load_database_config,
    load_ssh_tunnel_config,
)

logger = logging.getLogger('mcp_servers.run_server')


async def serve() -> int:
    """Run until stdin closes or a termination signal arrives"""
    database = DatabaseManager(close_timeout=settings.DB_CLOSE_TIMEOUT_MS / 1000)
    server = PostgresMCPServer(database)
    transport = StdioTransport(server)

    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Not available on Windows event loops; Ctrl+C raises KeyboardInterrupt there
            logger.debug(f"Signal handler for {sig.name} not supported")

    init_task = asyncio.create_task(database.initialize())
    transport_task = asyncio.create_task(transport.serve())
    stop_task = asyncio.create_task(stop.wait())

    exit_code = 0
    pending = {init_task, transport_task, stop_task}
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)

            if init_task in done:
                error = init_task.exception()
                if error is not None:
                    logger.error(f"Failed to start server: {error}")
                    exit_code = 1
                    break
                logger.info('Database ready')

            if transport_task in done:
                error = transport_task.exception()
                if error is not None:
                    logger.error(f"Transport failed: {error}")
                    exit_code = 1
                break

            if stop_task in done:
                logger.info('Shutting down server')
                break
    finally:
        for task in (transport_task, stop_task):
            if not task.done():
                task.cancel()

        # close() waits for an initialization still holding the lock
        await database.close()

        if init_task.done() and not init_task.cancelled() and init_task.exception() is not None:
            exit_code = 1

    return exit_code


def main():
    settings.configure_logging()

    try:
        load_database_config()
        load_ssh_tunnel_config()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info(f"Starting {settings.SERVER_NAME} v{settings.SERVER_VERSION}")
    sys.exit(asyncio.run(serve()))


if __name__ == '__main__':
    main()
