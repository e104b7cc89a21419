from route_explorer.domain.streaming.events import ProgressStep
from route_explorer.domain.streaming.streaming_handler import ProgressReporter
from route_explorer.domain.tool import ToolDescriptor, ToolFederation, ToolSource
from route_explorer.domain.tool.tool_validator import ParameterType

from conftest import FakeConnection, mcp_tool, server_config


def _local(name):
    return ToolDescriptor.local(name=name, description=name, handler=lambda: name)


class TestToolFederation:

    async def test_local_tools_first_then_servers_in_order(self):
        first = FakeConnection(server_config("one"), tools=[mcp_tool("browser_navigate")])
        second = FakeConnection(server_config("two"), tools=[mcp_tool("read_file")])

        result = await ToolFederation().federate([_local("create_route")], [first, second])

        assert result.tool_names == ["create_route", "browser_navigate", "read_file"]
        assert result.connections == [first, second]
        assert result.tools[1].source == ToolSource.REMOTE
        assert result.tools[1].connection is first

    async def test_failed_server_is_skipped(self):
        events = []
        healthy = FakeConnection(server_config("healthy"), tools=[mcp_tool("browser_click")])
        broken = FakeConnection(server_config("broken"), fail_connect=True)
        other = FakeConnection(server_config("other"), tools=[mcp_tool("read_file")])

        result = await ToolFederation(ProgressReporter(events.append)).federate([], [healthy, broken, other])

        assert result.tool_names == ["browser_click", "read_file"]
        assert result.failed_servers == ["broken"]
        assert broken not in result.connections
        assert [e.step for e in events if e.details.get("server") == "broken"] == [
            ProgressStep.CONNECTING, ProgressStep.CONNECT_FAILED
        ]

    async def test_allow_list_filters_remote_tools(self):
        connection = FakeConnection(
            server_config("fs", allowed_tools=["b"]),
            tools=[mcp_tool("a"), mcp_tool("b"), mcp_tool("c")]
        )

        result = await ToolFederation().federate([], [connection])

        assert result.tool_names == ["b"]

    async def test_empty_allow_list_means_no_filter(self):
        connection = FakeConnection(server_config("fs", allowed_tools=[]), tools=[mcp_tool("a"), mcp_tool("b")])
        result = await ToolFederation().federate([], [connection])
        assert result.tool_names == ["a", "b"]

    async def test_duplicate_names_are_rejected(self):
        first = FakeConnection(server_config("one"), tools=[mcp_tool("search_information"), mcp_tool("x")])
        second = FakeConnection(server_config("two"), tools=[mcp_tool("x"), mcp_tool("y")])

        result = await ToolFederation().federate([_local("search_information")], [first, second])

        assert result.tool_names == ["search_information", "x", "y"]
        assert result.tools[0].source == ToolSource.LOCAL
        assert result.tools[1].connection is first

    async def test_server_without_tools_is_released(self):
        events = []
        empty = FakeConnection(server_config("empty"), tools=[])

        result = await ToolFederation(ProgressReporter(events.append)).federate([], [empty])

        assert result.tools == []
        assert result.connections == []
        assert empty.disconnect_calls == 1
        connected = [e for e in events if e.step == ProgressStep.CONNECTED]
        assert connected[0].details["tool_count"] == 0

    async def test_schema_and_description_translation(self):
        connection = FakeConnection(server_config("browser"), tools=[
            mcp_tool("browser_type", schema={
                "type": "object",
                "properties": {"text": {"type": "string"}, "submit": {"type": "boolean"}},
                "required": ["text"],
            })
        ])

        result = await ToolFederation().federate([], [connection])
        tool = result.tools[0]

        assert tool.description == "MCP tool: browser_type"
        assert tool.parameters["text"].required
        assert tool.parameters["submit"].type == ParameterType.BOOLEAN

    async def test_connected_event_lists_tools(self):
        events = []
        connection = FakeConnection(server_config("browser"), tools=[mcp_tool("a"), mcp_tool("b")])

        await ToolFederation(ProgressReporter(events.append)).federate([], [connection])

        connected = [e for e in events if e.step == ProgressStep.CONNECTED][0]
        assert connected.details == {"server": "browser", "tool_count": 2, "tools": ["a", "b"]}
