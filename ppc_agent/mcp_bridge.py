"""
Google Ads MCP Bridge

Spawns the Google Ads MCP server as a child process and speaks
line-delimited JSON-RPC 2.0 with it over stdin/stdout.

Lifecycle:
- UNINITIALIZED: constructed, no process
- STARTING: process spawned, reader tasks attached
- INITIALIZING: `initialize` handshake in flight
- READY: tool calls accepted
- TERMINATED: process gone (exited or stopped); build a new bridge to reconnect

Every request gets a fresh integer id and an asyncio.Future held in the
pending map until the matching response arrives, the per-request timeout
fires, or the process goes away. Responses may arrive in any order.

Usage:
    bridge = McpBridge(env=credentials.as_env())
    await bridge.start()
    rows = await bridge.query('SELECT campaign.id FROM campaign')
    await bridge.stop()
"""

import asyncio
import json
import logging
import os
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from . import __version__
from .errors import (
    BridgeClosedError,
    NotStartedError,
    RemoteError,
    RpcTimeoutError,
    StartupError,
)

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ['npx', '-y', '@channel47/google-ads-mcp@latest']
DEFAULT_REQUEST_TIMEOUT = 60.0
PROTOCOL_VERSION = '2024-11-05'
STOP_GRACE_SECONDS = 5.0
READ_CHUNK_SIZE = 65536
# Pipe buffer for the child's stdio streams
SUBPROCESS_STREAM_LIMIT = 16 * 1024 * 1024
# Unterminated stderr is flushed to the log past this size
MAX_STDERR_LINE_BYTES = 1024 * 1024
MAX_LOGGED_STDERR_CHARS = 2000


class BridgeState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    STARTING = 'starting'
    INITIALIZING = 'initializing'
    READY = 'ready'
    TERMINATED = 'terminated'


class McpBridge:
    """
    Client side of one MCP server subprocess.

    Concurrent calls are independent; the bridge does not serialise callers.
    """

    def __init__(
        self,
        command: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        default_customer_id: Optional[str] = None,
        client_name: str = 'ppc-agent',
    ):
        self.command = list(command or DEFAULT_COMMAND)
        self.env = dict(env or {})
        self.request_timeout = request_timeout
        self.default_customer_id = (
            default_customer_id
            or self.env.get('GOOGLE_ADS_DEFAULT_CUSTOMER_ID')
            or None
        )
        self.client_name = client_name
        self.server_info: Optional[Dict[str, Any]] = None

        self._process: Optional[asyncio.subprocess.Process] = None
        self._state = BridgeState.UNINITIALIZED
        self._next_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._buffer = b''
        self._tasks: List[asyncio.Task] = []
        self._write_lock = asyncio.Lock()
        self._started_at: Optional[float] = None

    # -------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    async def start(self) -> None:
        """
        Spawn the MCP server and complete the initialize handshake.

        Raises:
            StartupError: already running, terminated, or spawn failed
            BridgeError: the handshake failed (the child is stopped first)
        """
        if self._state == BridgeState.TERMINATED:
            raise StartupError('MCP bridge was terminated; create a new bridge')
        if self._process is not None:
            raise StartupError('MCP server already running')

        self._state = BridgeState.STARTING
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **self.env},
                limit=SUBPROCESS_STREAM_LIMIT,
            )
        except (OSError, ValueError) as e:
            self._state = BridgeState.UNINITIALIZED
            raise StartupError(f'Failed to start MCP server: {e}') from e

        self._process = process
        self._started_at = time.monotonic()
        logger.info(
            'MCP server started: %s (pid=%s)', ' '.join(self.command), process.pid
        )

        stdout_task = asyncio.create_task(self._read_stdout(process))
        self._tasks = [
            stdout_task,
            asyncio.create_task(self._read_stderr(process)),
            asyncio.create_task(self._watch_exit(process, stdout_task)),
        ]

        try:
            await self.initialize()
        except Exception:
            await self.stop()
            raise

    async def stop(self) -> None:
        """Terminate the child and reject anything still pending. Idempotent."""
        process = self._process
        self._process = None
        self._state = BridgeState.TERMINATED
        self._fail_pending(BridgeClosedError('MCP server stopped'))

        if process is not None and process.returncode is None:
            if process.stdin is not None:
                process.stdin.close()
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=STOP_GRACE_SECONDS)
            except asyncio.TimeoutError:
                logger.warning('MCP server did not exit after SIGTERM; killing')
                process.kill()
                await process.wait()
            logger.info('MCP server stopped')

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------
    # JSON-RPC
    # -------------------------------------------------------------------

    async def call(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Send a JSON-RPC request and wait for its response.

        Raises:
            NotStartedError: no live connection
            RpcTimeoutError: no response within the timeout
            RemoteError: the server answered with an error object
            BridgeClosedError: the process went away first
        """
        if self._process is None:
            raise NotStartedError()

        self._next_id += 1
        request_id = self._next_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        wait = self.request_timeout if timeout is None else timeout
        try:
            await self._write({
                'jsonrpc': '2.0',
                'id': request_id,
                'method': method,
                'params': params if params is not None else {},
            })
            return await asyncio.wait_for(future, timeout=wait)
        except asyncio.TimeoutError:
            logger.warning('MCP request %d (%s) timed out after %ss', request_id, method, wait)
            raise RpcTimeoutError(method, wait) from None
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification (no id, no response)."""
        if self._process is None:
            raise NotStartedError()
        message: Dict[str, Any] = {'jsonrpc': '2.0', 'method': method}
        if params is not None:
            message['params'] = params
        await self._write(message)

    async def initialize(self) -> Dict[str, Any]:
        """Perform the MCP handshake and mark the bridge READY."""
        self._state = BridgeState.INITIALIZING
        result = await self.call('initialize', {
            'protocolVersion': PROTOCOL_VERSION,
            'capabilities': {},
            'clientInfo': {'name': self.client_name, 'version': __version__},
        })
        if isinstance(result, dict):
            self.server_info = result.get('serverInfo')
        await self.notify('notifications/initialized')
        self._state = BridgeState.READY
        logger.info('MCP server initialized: %s', self.server_info)
        return result if isinstance(result, dict) else {}

    async def _write(self, message: Dict[str, Any]) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise NotStartedError()
        data = (json.dumps(message) + '\n').encode('utf-8')
        async with self._write_lock:
            try:
                process.stdin.write(data)
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise BridgeClosedError(f'MCP server stdin closed: {e}') from e

    # -------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------

    def _feed(self, chunk: bytes) -> None:
        """Append raw stdout bytes and dispatch every complete line."""
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(b'\n')
        for raw in lines:
            line = raw.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError:
                logger.debug('Ignoring non-JSON output from MCP server: %r', line[:200])
                continue
            self._dispatch(message)

    def _dispatch(self, message: Any) -> None:
        if not isinstance(message, dict):
            return
        request_id = message.get('id')
        if not isinstance(request_id, int) or isinstance(request_id, bool):
            # Server notification or server->client request
            logger.debug('Ignoring MCP message without request id: %s', message.get('method'))
            return

        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            logger.debug('Discarding MCP response for unknown id %d', request_id)
            return

        error = message.get('error')
        if error is not None:
            if not isinstance(error, dict):
                error = {'message': str(error)}
            future.set_exception(RemoteError(
                error.get('message') or 'Unknown MCP error',
                code=error.get('code'),
                data=error.get('data'),
            ))
        else:
            future.set_result(message.get('result'))

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        while True:
            chunk = await process.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            self._feed(chunk)

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        # Stderr lines have no length bound; read in chunks like stdout
        assert process.stderr is not None
        partial = b''
        while True:
            chunk = await process.stderr.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            partial += chunk
            *lines, partial = partial.split(b'\n')
            for raw in lines:
                self._log_stderr(raw)
            if len(partial) > MAX_STDERR_LINE_BYTES:
                self._log_stderr(partial)
                partial = b''
        if partial:
            self._log_stderr(partial)

    @staticmethod
    def _log_stderr(raw: bytes) -> None:
        line = raw.decode('utf-8', errors='replace').rstrip()
        if not line:
            return
        if len(line) > MAX_LOGGED_STDERR_CHARS:
            line = f'{line[:MAX_LOGGED_STDERR_CHARS]}... [{len(line)} chars]'
        if 'started' in line.lower():
            logger.debug('MCP server: %s', line)
        else:
            logger.warning('MCP server stderr: %s', line)

    async def _watch_exit(
        self,
        process: asyncio.subprocess.Process,
        stdout_task: asyncio.Task,
    ) -> None:
        returncode = await process.wait()
        # Let responses already written before exit reach their callers
        await asyncio.wait([stdout_task], timeout=1.0)
        if self._process is not process:
            return
        self._process = None
        self._state = BridgeState.TERMINATED
        logger.warning('MCP server exited with code %s', returncode)
        self._fail_pending(
            BridgeClosedError(f'MCP server exited with code {returncode}')
        )

    def _fail_pending(self, exc: Exception) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)

    # -------------------------------------------------------------------
    # Tool calls
    # -------------------------------------------------------------------

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        """
        Invoke an MCP tool and unwrap its first text content block.

        JSON text is decoded; any other text is returned as a plain string.
        A result flagged `isError` raises RemoteError with the tool's message.
        """
        if self._state != BridgeState.READY:
            raise NotStartedError()
        result = await self.call('tools/call', {
            'name': name,
            'arguments': arguments or {},
        })
        return self._unwrap_tool_result(result)

    @staticmethod
    def _unwrap_tool_result(result: Any) -> Any:
        if not isinstance(result, dict):
            return result

        text = None
        content = result.get('content')
        if isinstance(content, list) and content and isinstance(content[0], dict):
            text = content[0].get('text')

        if result.get('isError'):
            raise RemoteError(
                text if isinstance(text, str) and text else 'MCP tool returned an error',
                data=result,
            )
        if not isinstance(text, str):
            return result
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def list_accounts(self) -> Any:
        return await self.call_tool('list_accounts', {})

    async def query(self, gaql: str, customer_id: Optional[str] = None) -> Any:
        """Run a read-only GAQL query."""
        arguments: Dict[str, Any] = {'query': gaql}
        customer_id = customer_id or self.default_customer_id
        if customer_id:
            arguments['customer_id'] = customer_id
        return await self.call_tool('query', arguments)

    async def mutate(
        self,
        operations: List[Dict[str, Any]],
        customer_id: Optional[str] = None,
        dry_run: bool = True,
        partial_failure: bool = False,
    ) -> Any:
        """
        Apply Google Ads operations.

        Nothing changes in the account unless dry_run is explicitly False.
        """
        arguments: Dict[str, Any] = {
            'operations': operations,
            'dry_run': dry_run,
            'partial_failure': partial_failure,
        }
        customer_id = customer_id or self.default_customer_id
        if customer_id:
            arguments['customer_id'] = customer_id
        logger.info(
            'MCP mutate: %d operation(s), dry_run=%s, partial_failure=%s',
            len(operations), dry_run, partial_failure,
        )
        return await self.call_tool('mutate', arguments)

    def get_health(self) -> Dict[str, Any]:
        uptime = None
        if self._started_at is not None and self._process is not None:
            uptime = round(time.monotonic() - self._started_at, 1)
        return {
            'state': self._state.value,
            'running': self.is_running,
            'pid': self._process.pid if self._process is not None else None,
            'pending_requests': len(self._pending),
            'server_info': self.server_info,
            'uptime_seconds': uptime,
        }
