from typing import List, Optional, Sequence, Set
from dataclasses import dataclass, field

import structlog

from route_explorer.domain.streaming.events import ProgressStep
from route_explorer.domain.streaming.streaming_handler import ProgressReporter
from route_explorer.infrastructure.mcp.remote_connection import RemoteConnection
from .tool_registry import ToolDescriptor
from .tool_validator import translate_json_schema

logger = structlog.get_logger(__name__)


@dataclass
class FederationResult:
    """Merged tool set plus the connections that contribute to it"""
    tools: List[ToolDescriptor] = field(default_factory=list)
    connections: List[RemoteConnection] = field(default_factory=list)
    failed_servers: List[str] = field(default_factory=list)

    @property
    def tool_names(self) -> List[str]:
        return [tool.name for tool in self.tools]


class ToolFederation:
    """Merges local tools with the tools advertised by remote MCP servers"""

    def __init__(self, reporter: Optional[ProgressReporter] = None):
        self.reporter = reporter or ProgressReporter()

    async def federate(
        self,
        local_tools: Sequence[ToolDescriptor],
        connections: Sequence[RemoteConnection]
    ) -> FederationResult:
        """
        Connect to each server in order and append its tools after the local ones.

        A server that fails to connect is logged and skipped. Tool names stay
        unique: a remote tool whose name is already taken is rejected.
        """

        result = FederationResult(tools=list(local_tools))
        names: Set[str] = set(result.tool_names)

        for connection in connections:
            server = connection.identifier

            self.reporter.emit(
                ProgressStep.CONNECTING,
                f"Connecting to MCP server {server}...",
                {"server": server, "kind": connection.config.kind.value}
            )

            try:
                await connection.connect()
            except Exception as e:
                logger.warning("Skipping MCP server", server=server, error=str(e))
                result.failed_servers.append(server)
                self.reporter.emit(
                    ProgressStep.CONNECT_FAILED,
                    f"Failed to connect to MCP server {server}",
                    {"server": server, "error": str(e)}
                )
                continue

            added = await self._federate_server(connection, names)

            if added:
                result.tools.extend(added)
                result.connections.append(connection)
            else:
                # Nothing to offer; release the transport right away.
                await connection.disconnect()

            self.reporter.emit(
                ProgressStep.CONNECTED,
                f"Connected to MCP server {server}, loaded {len(added)} tools",
                {"server": server, "tool_count": len(added), "tools": [tool.name for tool in added]}
            )

        logger.info(
            "Tool federation complete",
            total_tools=len(result.tools),
            remote_servers=len(result.connections),
            failed_servers=result.failed_servers
        )
        return result

    async def _federate_server(self, connection: RemoteConnection, names: Set[str]) -> List[ToolDescriptor]:
        server = connection.identifier
        remote_tools = await connection.list_tools()

        if not remote_tools:
            logger.warning("No tools received from MCP server", server=server)
            return []

        allowed = connection.config.allowed_tools
        if allowed:
            filtered = [tool for tool in remote_tools if tool.name in allowed]
            logger.info(
                "Filtered MCP tools",
                server=server,
                allowed=allowed,
                before=len(remote_tools),
                after=len(filtered)
            )
            if not filtered:
                logger.warning("No tools matched the allowed list", server=server)
                return []
            remote_tools = filtered

        added: List[ToolDescriptor] = []
        for tool in remote_tools:
            if tool.name in names:
                logger.warning("Rejecting duplicate tool name", server=server, tool_name=tool.name)
                continue

            try:
                descriptor = ToolDescriptor.remote(
                    name=tool.name,
                    description=tool.description or f"MCP tool: {tool.name}",
                    connection=connection,
                    parameters=translate_json_schema(tool.inputSchema)
                )
            except Exception as e:
                logger.error("Error converting MCP tool", server=server, tool_name=tool.name, error=str(e))
                continue

            added.append(descriptor)
            names.add(tool.name)

        return added
