"""
Stdio transport for MCP servers

Reads newline-delimited JSON-RPC messages from stdin and writes responses
to stdout, one JSON document per line. Each request is handled in its own
task so a slow tool call does not hold up ping or tools/list.
"""

import asyncio
import logging
import sys
from typing import Callable, Optional, Set

from .base_mcp_server import BaseMCPServer

logger = logging.getLogger(__name__)

STREAM_LIMIT = 1024 * 1024


class StdioTransport:
    """Connects a BaseMCPServer to a line-oriented byte stream"""

    def __init__(self, server: BaseMCPServer,
                 reader: Optional[asyncio.StreamReader] = None,
                 write: Optional[Callable[[str], None]] = None):
        self.server = server
        self._reader = reader
        self._write = write or self._write_stdout
        self._write_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @staticmethod
    def _write_stdout(line: str):
        sys.stdout.write(line)
        sys.stdout.flush()

    async def _open_stdin(self) -> asyncio.StreamReader:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=STREAM_LIMIT)
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
        return reader

    async def serve(self):
        """Process messages until the input stream closes"""
        if self._reader is None:
            self._reader = await self._open_stdin()

        logger.info(f"{self.server.name} listening on stdio")

        while True:
            try:
                line = await self._reader.readline()
            except ValueError as e:
                # Over the reader limit; the reader has already dropped the line
                logger.warning(f"Discarded oversized message: {e}")
                await self._send(self.server.parse_error("message exceeds the line length limit"))
                continue
            if not line:
                break

            # Undecodable bytes become U+FFFD and fail JSON parsing downstream
            message = line.decode('utf-8', errors='replace').strip()
            if not message:
                continue

            task = asyncio.create_task(self._dispatch(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        logger.info('Input stream closed')

    async def _dispatch(self, message: str):
        response = await self.server.handle_request(message)
        if response is None:
            return
        await self._send(response)

    async def _send(self, response):
        async with self._write_lock:
            self._write(response.json + '\n')
