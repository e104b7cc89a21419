import pytest
from langchain_core.messages import AIMessage, SystemMessage, ToolMessage

from route_explorer.domain.models.agent_state import AgentConfig, ExecutionStatus, ToolConfig
from route_explorer.domain.models.errors import AgentSetupError
from route_explorer.domain.orchestration.core import main_agent
from route_explorer.domain.orchestration.core.main_agent import AgentExecutionEngine
from route_explorer.domain.streaming.events import ProgressStep
from route_explorer.domain.tool import ToolDescriptor, ToolRegistry
from route_explorer.domain.tool.tool_validator import ParameterSpec, ParameterType
from route_explorer.infrastructure.config.settings import Settings

from conftest import FakeConnection, ScriptedChatModel, answer, mcp_tool, server_config, tool_call


def _registry(**handlers):
    registry = ToolRegistry()
    for name, handler in handlers.items():
        registry.register(name, lambda name=name, handler=handler: ToolDescriptor.local(
            name=name,
            description=f"{name} tool",
            handler=handler,
            parameters={"text": ParameterSpec(type=ParameterType.STRING)}
        ))
    return registry


def _config(**overrides):
    values = {"name": "TestAgent", "max_iterations": 5}
    values.update(overrides)
    return AgentConfig(**values)


def _steps(events):
    return [e.step for e in events]


class TestAgentExecutionEngine:

    async def test_final_answer(self, agent_config, progress_events):
        model = ScriptedChatModel([answer("All routes registered")])
        engine = AgentExecutionEngine(agent_config, model=model, progress_sink=progress_events.append)

        result = await engine.run("Explore the app")

        assert result.success
        assert result.data["output"] == "All routes registered"
        assert len(result.data["messages"]) == 2
        assert result.execution_metadata.iteration_count == 1
        assert result.execution_metadata.status == ExecutionStatus.COMPLETED
        assert result.execution_metadata.duration_ms is not None
        assert ProgressStep.RUN_COMPLETE in _steps(progress_events)

    async def test_system_prompt_is_prepended(self, agent_config):
        model = ScriptedChatModel([answer("ok")])
        engine = AgentExecutionEngine(agent_config, model=model, system_prompt="Be thorough")

        await engine.run("hi")

        first_call = model.calls[0]
        assert isinstance(first_call[0], SystemMessage)
        assert first_call[0].content == "Be thorough"

    async def test_accepts_role_content_messages(self, agent_config):
        model = ScriptedChatModel([answer("ok")])
        engine = AgentExecutionEngine(agent_config, model=model)

        result = await engine.run([{"role": "user", "content": "hi"}])

        assert result.success
        assert model.calls[0][0].content == "hi"

    async def test_local_tool_round_trip(self, progress_events):
        registry = _registry(echo=lambda text: f"echo: {text}")
        model = ScriptedChatModel([tool_call("echo", {"text": "x"}), answer("done")])
        engine = AgentExecutionEngine(
            _config(tools=[ToolConfig(name="echo")]),
            tool_registry=registry,
            model=model,
            progress_sink=progress_events.append
        )

        result = await engine.run("go")

        assert result.success
        assert [t["function"]["name"] for t in model.bound_tools] == ["echo"]
        tool_messages = [m for m in model.calls[1] if isinstance(m, ToolMessage)]
        assert tool_messages[0].content == "echo: x"
        assert tool_messages[0].tool_call_id == "call_1"

        invoked = [e for e in progress_events if e.step == ProgressStep.TOOL_INVOKED][0]
        assert invoked.details == {"message_type": "tool", "tool_name": "echo", "arguments": {"text": "x"}}

    async def test_tool_failure_is_fed_back_while_running(self):
        def explode(text=None):
            raise RuntimeError("selector not found")

        snapshots = []
        model = ScriptedChatModel([tool_call("explode"), answer("recovered")])
        engine = AgentExecutionEngine(
            _config(tools=[ToolConfig(name="explode")]),
            tool_registry=_registry(explode=explode),
            model=model,
            progress_sink=lambda event: snapshots.append((event, engine.metadata.status))
        )

        result = await engine.run("go")

        assert result.success
        tool_message = [m for m in model.calls[1] if isinstance(m, ToolMessage)][0]
        assert tool_message.content == "Error executing tool explode: selector not found"
        assert tool_message.status == "error"

        failed = [(e, status) for e, status in snapshots if e.step == ProgressStep.TOOL_RESULT]
        assert failed[0][0].details["success"] is False
        assert failed[0][1] == ExecutionStatus.RUNNING

    async def test_unknown_tool(self, agent_config):
        model = ScriptedChatModel([tool_call("ghost"), answer("ok")])
        engine = AgentExecutionEngine(agent_config, model=model)

        result = await engine.run("go")

        assert result.success
        tool_message = [m for m in model.calls[1] if isinstance(m, ToolMessage)][0]
        assert tool_message.content == "Error: tool 'ghost' is not available"

    async def test_iteration_ceiling(self, progress_events):
        calls = []
        model = ScriptedChatModel([tool_call("echo", {"text": "again"})])
        engine = AgentExecutionEngine(
            _config(max_iterations=3, tools=[ToolConfig(name="echo")]),
            tool_registry=_registry(echo=lambda text: calls.append(text)),
            model=model,
            progress_sink=progress_events.append
        )

        result = await engine.run("loop forever")

        assert not result.success
        assert result.error == "Iteration limit of 3 reached"
        assert result.execution_metadata.iteration_count == 3
        assert result.execution_metadata.status == ExecutionStatus.FAILED
        assert len(model.calls) == 3
        assert len(calls) == 2
        assert _steps(progress_events).count(ProgressStep.RUN_ERROR) == 1

    async def test_final_answer_on_last_iteration_succeeds(self):
        model = ScriptedChatModel([tool_call("echo"), answer("just in time")])
        engine = AgentExecutionEngine(
            _config(max_iterations=2, tools=[ToolConfig(name="echo")]),
            tool_registry=_registry(echo=lambda text=None: "ok"),
            model=model
        )

        result = await engine.run("go")

        assert result.success
        assert result.execution_metadata.iteration_count == 2

    async def test_model_error_recovery(self, agent_config, progress_events):
        model = ScriptedChatModel([RuntimeError("quota exceeded"), answer("second try")])
        engine = AgentExecutionEngine(agent_config, model=model, progress_sink=progress_events.append)

        result = await engine.run("go")

        assert result.success
        assert result.data["output"] == "second try"
        assert ProgressStep.MODEL_ERROR in _steps(progress_events)
        errors = [m for m in model.calls[1] if isinstance(m, AIMessage)]
        assert errors[0].content == "Model error: quota exceeded"
        assert errors[0].additional_kwargs["error"] == "quota exceeded"

    async def test_model_timeout(self, progress_events):
        model = ScriptedChatModel([answer("too slow")], delay=0.2)
        engine = AgentExecutionEngine(
            _config(max_iterations=2, model_timeout=0.01),
            model=model,
            progress_sink=progress_events.append
        )

        result = await engine.run("go")

        assert not result.success
        assert result.error == "Iteration limit of 2 reached"
        model_errors = [e for e in progress_events if e.step == ProgressStep.MODEL_ERROR]
        assert len(model_errors) == 2
        assert model_errors[0].details["error_kind"] == "ModelTimeoutError"

    async def test_message_limit_bounds_model_input(self):
        model = ScriptedChatModel([
            tool_call("echo", call_id="c1"),
            tool_call("echo", call_id="c2"),
            tool_call("echo", call_id="c3"),
            answer("done"),
        ])
        engine = AgentExecutionEngine(
            _config(message_limit=1, tools=[ToolConfig(name="echo")]),
            tool_registry=_registry(echo=lambda text=None: "ok"),
            model=model,
            system_prompt="sys"
        )

        await engine.run("go")

        last_input = model.calls[-1]
        assert [m.type for m in last_input] == ["system", "human", "tool", "ai"]
        assert last_input[2].tool_call_id == "c3"

    async def test_remote_tools_and_cleanup(self, progress_events):
        created = []

        def factory(config):
            connection = FakeConnection(config, tools=[mcp_tool("browser_navigate")], results={"browser_navigate": "ok"})
            created.append(connection)
            return connection

        model = ScriptedChatModel([tool_call("browser_navigate", {"url": "https://demo.example"}), answer("done")])
        engine = AgentExecutionEngine(
            _config(mcp_servers=[server_config("browser")]),
            model=model,
            progress_sink=progress_events.append,
            connection_factory=factory
        )

        result = await engine.run("go")

        assert result.success
        assert created[0].invocations == [("browser_navigate", {"url": "https://demo.example"})]
        assert created[0].disconnect_calls >= 1
        assert not created[0].is_connected
        assert _steps(progress_events)[-1] == ProgressStep.CLEANUP

    async def test_cleanup_after_failure(self):
        created = []

        def factory(config):
            connection = FakeConnection(config, tools=[mcp_tool("browser_click")])
            created.append(connection)
            return connection

        engine = AgentExecutionEngine(
            _config(max_iterations=1, mcp_servers=[server_config("browser")]),
            model=ScriptedChatModel([tool_call("browser_click")]),
            connection_factory=factory
        )

        result = await engine.run("go")

        assert not result.success
        assert created[0].disconnect_calls >= 1

    async def test_unreachable_server_does_not_abort_run(self):
        engine = AgentExecutionEngine(
            _config(mcp_servers=[server_config("down")]),
            model=ScriptedChatModel([answer("fine without browser")]),
            connection_factory=lambda config: FakeConnection(config, fail_connect=True)
        )

        result = await engine.run("go")

        assert result.success
        assert engine.tools == []

    async def test_cancel_before_run(self, agent_config, progress_events):
        model = ScriptedChatModel([answer("never")])
        engine = AgentExecutionEngine(agent_config, model=model, progress_sink=progress_events.append)

        await engine.cancel()
        result = await engine.run("go")

        assert not result.success
        assert result.error == "Run cancelled"
        assert result.execution_metadata.status == ExecutionStatus.CANCELLED
        assert model.calls == []
        assert ProgressStep.RUN_CANCELLED in _steps(progress_events)

    async def test_cancel_outside_run_releases_connections(self, progress_events):
        created = []

        def factory(config):
            connection = FakeConnection(config, tools=[mcp_tool("browser_snapshot")])
            created.append(connection)
            return connection

        engine = AgentExecutionEngine(
            _config(mcp_servers=[server_config("browser")]),
            model=ScriptedChatModel([answer("unused")]),
            progress_sink=progress_events.append,
            connection_factory=factory
        )
        await engine.initialize()

        await engine.cancel()

        assert created[0].disconnect_calls == 1
        assert ProgressStep.CLEANUP in _steps(progress_events)

    async def test_cancel_during_run(self, progress_events):
        created = []
        disconnects_during_run = []

        def factory(config):
            connection = FakeConnection(config, tools=[mcp_tool("browser_snapshot")])
            created.append(connection)
            return connection

        async def stop(text=None):
            await engine.cancel()
            disconnects_during_run.append(created[0].disconnect_calls)
            return "stopping"

        model = ScriptedChatModel([tool_call("stop"), answer("never reached")])
        engine = AgentExecutionEngine(
            _config(tools=[ToolConfig(name="stop")], mcp_servers=[server_config("browser")]),
            tool_registry=_registry(stop=stop),
            model=model,
            progress_sink=progress_events.append,
            connection_factory=factory
        )

        result = await engine.run("go")

        assert not result.success
        assert result.execution_metadata.status == ExecutionStatus.CANCELLED
        assert len(model.calls) == 1
        assert disconnects_during_run == [0]
        assert created[0].disconnect_calls >= 1
        assert ProgressStep.RUN_COMPLETE not in _steps(progress_events)

    async def test_missing_api_key(self, agent_config, monkeypatch, progress_events):
        monkeypatch.setattr(main_agent, "get_settings", lambda: Settings(google_api_key=None))
        engine = AgentExecutionEngine(agent_config, progress_sink=progress_events.append)

        with pytest.raises(AgentSetupError):
            await engine.initialize()

        result = await engine.run("go")

        assert not result.success
        assert "No Google API key" in result.error
        assert result.execution_metadata.status == ExecutionStatus.FAILED
        assert ProgressStep.RUN_ERROR in _steps(progress_events)

    async def test_progress_order_and_iterations(self, progress_events):
        model = ScriptedChatModel([tool_call("echo"), tool_call("echo"), answer("done")])
        engine = AgentExecutionEngine(
            _config(tools=[ToolConfig(name="echo")]),
            tool_registry=_registry(echo=lambda text=None: "ok"),
            model=model,
            progress_sink=progress_events.append
        )

        await engine.run("go")

        steps = _steps(progress_events)
        assert steps[0] == ProgressStep.INITIALIZATION
        assert steps.index(ProgressStep.MODEL_THINKING) < steps.index(ProgressStep.MODEL_RESPONSE)
        assert steps.index(ProgressStep.TOOL_INVOKED) < steps.index(ProgressStep.TOOL_RESULT)
        assert steps[-1] == ProgressStep.RUN_COMPLETE

        iterations = [e.iteration for e in progress_events if e.iteration is not None]
        assert iterations == sorted(iterations)
        assert max(iterations) == 3

    async def test_failing_sink_does_not_break_run(self, agent_config):
        def broken_sink(event):
            raise RuntimeError("sink down")

        engine = AgentExecutionEngine(agent_config, model=ScriptedChatModel([answer("ok")]), progress_sink=broken_sink)

        result = await engine.run("go")

        assert result.success
