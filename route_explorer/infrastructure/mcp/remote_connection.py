"""
Remote tool client.

One RemoteConnection wraps exactly one transport (a spawned process over
stdio, or an HTTP event stream) to one MCP server. Every public operation
checks the connection state first and connects on demand.

    disconnected -> connecting -> connected -> disconnected
                        |
                        +-> disconnected (connect error, no automatic retry)
"""

from typing import Dict, Any, List, Optional
import asyncio
from contextlib import AsyncExitStack
from enum import Enum

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import CallToolResult, Tool
import structlog

from route_explorer.domain.models.agent_state import ConnectionKind, RemoteServerConfig
from route_explorer.domain.models.errors import RemoteConnectionError

logger = structlog.get_logger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def render_call_result(result: CallToolResult) -> str:
    """Join the text parts of a tool result, or fall back to its JSON form"""

    texts = [
        item.text for item in (result.content or [])
        if getattr(item, "type", None) == "text" and getattr(item, "text", None)
    ]
    if texts:
        return "\n".join(texts)
    return result.model_dump_json(by_alias=True, exclude_none=True)


class RemoteConnection:
    """Stateful client to a single MCP tool server"""

    def __init__(self, config: RemoteServerConfig):
        self.config = config
        self.state = ConnectionState.DISCONNECTED
        self.session: Optional[ClientSession] = None
        self.last_error: Optional[str] = None
        self._owner: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Event] = None

    @property
    def identifier(self) -> str:
        return self.config.identifier

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED and self.session is not None

    async def connect(self) -> None:
        """Open the transport and perform the protocol handshake"""

        if self.is_connected:
            logger.debug("Already connected to MCP server", server=self.identifier)
            return

        self.state = ConnectionState.CONNECTING
        logger.info("Connecting to MCP server", server=self.identifier, kind=self.config.kind.value)

        ready: asyncio.Future = asyncio.get_running_loop().create_future()
        closing = asyncio.Event()
        owner = asyncio.create_task(self._hold_transport(ready, closing))

        try:
            session = await ready
        except asyncio.CancelledError:
            closing.set()
            owner.cancel()
            self.state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:
            await asyncio.wait({owner})
            self.state = ConnectionState.DISCONNECTED
            self.last_error = str(e) or type(e).__name__
            logger.error("Failed to connect to MCP server", server=self.identifier, error=self.last_error)
            raise RemoteConnectionError(
                f"Failed to connect to {self.identifier}: {self.last_error}"
            ) from e

        self._owner = owner
        self._closing = closing
        self.session = session
        self.state = ConnectionState.CONNECTED
        self.last_error = None
        logger.info("Connected to MCP server", server=self.identifier)

    async def _hold_transport(self, ready: asyncio.Future, closing: asyncio.Event):
        # The transport holds anyio cancel scopes, so it is entered and exited in this task only.
        try:
            async with AsyncExitStack() as stack:
                read, write = await self._open_transport(stack)
                session = await stack.enter_async_context(ClientSession(read, write))
                await session.initialize()

                ready.set_result(session)
                await closing.wait()

        except asyncio.CancelledError:
            if not ready.done():
                ready.cancel()
            raise
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.error("Error disconnecting MCP client", server=self.identifier, error=str(e))

        finally:
            if self._owner is asyncio.current_task():
                self._owner = None
                self._closing = None
                self.session = None
                self.state = ConnectionState.DISCONNECTED

    async def _open_transport(self, stack: AsyncExitStack):
        if self.config.kind == ConnectionKind.HTTP_STREAM:
            if not self.config.url:
                raise ValueError("URL is required for http-stream connections")
            return await stack.enter_async_context(sse_client(self.config.url))

        if not self.config.command:
            raise ValueError("Command is required for process connections")
        params = StdioServerParameters(
            command=self.config.command,
            args=list(self.config.args),
            env=self.config.env
        )
        return await stack.enter_async_context(stdio_client(params))

    async def list_tools(self) -> List[Tool]:
        """Tools advertised by the server; empty when the server cannot answer"""

        try:
            if not self.is_connected:
                await self.connect()
            response = await self.session.list_tools()
        except Exception as e:
            logger.error("Error listing MCP tools", server=self.identifier, error=str(e))
            await self._reset_after(e)
            return []

        tools = list(response.tools or [])
        logger.info(
            "Received MCP tools",
            server=self.identifier,
            count=len(tools),
            tools=[tool.name for tool in tools]
        )
        return tools

    async def invoke(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        """Call a remote tool; failures come back as an error description"""

        try:
            if not self.is_connected:
                await self.connect()
            result = await self.session.call_tool(name, arguments or {})
        except Exception as e:
            message = f"Error executing tool {name}: {e}"
            logger.error("MCP tool call failed", server=self.identifier, tool_name=name, error=str(e))
            await self._reset_after(e)
            return message

        if result.isError:
            logger.warning("MCP tool reported an error", server=self.identifier, tool_name=name)
        return render_call_result(result)

    async def disconnect(self) -> None:
        """Close the transport from any task; idempotent, close errors are logged"""

        owner, closing = self._owner, self._closing
        self._owner = None
        self._closing = None
        self.session = None

        if owner is not None:
            closing.set()
            await asyncio.wait({owner})
            if owner.cancelled():
                logger.warning("MCP transport task was cancelled", server=self.identifier)
            logger.info("Disconnected from MCP server", server=self.identifier)

        self.state = ConnectionState.DISCONNECTED

    async def _reset_after(self, error: Exception):
        # Application errors leave the session usable; anything else drops the transport.
        if isinstance(error, (McpError, RemoteConnectionError)):
            return
        if self._owner is not None:
            await self.disconnect()
