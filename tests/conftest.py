"""
Shared fixtures: a scripted chat model, fake MCP connections and a seeded route store.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
from langchain_core.messages import AIMessage
from mcp.types import Tool

from route_explorer.domain.context.store.route_store import InMemoryRouteStore, Project
from route_explorer.domain.models.agent_state import AgentConfig, ConnectionKind, RemoteServerConfig
from route_explorer.infrastructure.mcp.remote_connection import ConnectionState


class ScriptedChatModel:
    """Replays a fixed list of responses; the last one repeats once the script runs out"""

    def __init__(self, responses: List[Any], delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls: List[List[Any]] = []
        self.bound_tools: List[Any] = []

    def bind_tools(self, tools):
        self.bound_tools = list(tools)
        return self

    async def ainvoke(self, messages):
        self.calls.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return response


def tool_call(name: str, args: Optional[Dict[str, Any]] = None, call_id: str = "call_1") -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": name, "args": args or {}, "id": call_id}])


def answer(text: str) -> AIMessage:
    return AIMessage(content=text)


def mcp_tool(name: str, description: str = "", schema: Optional[Dict[str, Any]] = None) -> Tool:
    return Tool(
        name=name,
        description=description or None,
        inputSchema=schema or {"type": "object", "properties": {}},
    )


class FakeConnection:
    """Stands in for RemoteConnection in federation and engine tests"""

    def __init__(
        self,
        config: RemoteServerConfig,
        tools: Optional[List[Tool]] = None,
        fail_connect: bool = False,
        results: Optional[Dict[str, str]] = None
    ):
        self.config = config
        self.tools = tools or []
        self.fail_connect = fail_connect
        self.results = results or {}
        self.state = ConnectionState.DISCONNECTED
        self.invocations: List[tuple] = []
        self.disconnect_calls = 0

    @property
    def identifier(self) -> str:
        return self.config.identifier

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    async def connect(self):
        if self.fail_connect:
            raise ConnectionError(f"cannot reach {self.identifier}")
        self.state = ConnectionState.CONNECTED

    async def list_tools(self):
        return list(self.tools)

    async def invoke(self, name, arguments=None):
        self.invocations.append((name, arguments))
        return self.results.get(name, f"{name} ok")

    async def disconnect(self):
        self.disconnect_calls += 1
        self.state = ConnectionState.DISCONNECTED


def server_config(name: str, allowed_tools: Optional[List[str]] = None) -> RemoteServerConfig:
    return RemoteServerConfig(
        kind=ConnectionKind.HTTP_STREAM,
        name=name,
        url=f"http://{name}.local/sse",
        allowed_tools=allowed_tools
    )


@pytest.fixture
def agent_config():
    return AgentConfig(name="TestAgent", max_iterations=5, tools=[], mcp_servers=[])


@pytest.fixture
def progress_events():
    return []


@pytest.fixture
async def route_store():
    store = InMemoryRouteStore()
    await store.add_project(Project(id="proj1", name="Demo", url="https://demo.example"))
    return store
