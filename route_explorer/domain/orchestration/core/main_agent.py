from typing import TypedDict, Annotated, List, Dict, Any, Optional, Literal, Callable, Sequence, Union
from langgraph.graph import StateGraph, END
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage,
    convert_to_messages, messages_to_dict
)
import asyncio
import uuid
import structlog

from route_explorer.domain.context.memory.bounded_history import make_history_reducer
from route_explorer.domain.models.agent_state import (
    AgentConfig, AgentResult, EnginePhase, ExecutionMetadata, ExecutionStatus, RemoteServerConfig
)
from route_explorer.domain.models.errors import IterationLimitError, ModelTimeoutError
from route_explorer.domain.streaming.events import ProgressStep
from route_explorer.domain.streaming.streaming_handler import ProgressReporter, ProgressSink
from route_explorer.domain.tool.tool_executor import ToolExecutor
from route_explorer.domain.tool.tool_federation import ToolFederation
from route_explorer.domain.tool.tool_registry import ToolDescriptor, ToolRegistry
from route_explorer.infrastructure.config.settings import get_settings
from route_explorer.infrastructure.llm.model_factory import create_chat_model
from route_explorer.infrastructure.mcp.remote_connection import RemoteConnection
from route_explorer.infrastructure.observability.logging import metrics, run_logger

logger = structlog.get_logger(__name__)

AgentInput = Union[str, Sequence[Any]]


def _build_state_schema(message_limit: int):
    """State for the reasoning graph, with the history channel capped per role"""

    reducer = make_history_reducer(message_limit)

    class RunState(TypedDict):
        messages: Annotated[List[BaseMessage], reducer]
        iteration: int
        pending_tool_calls: List[Dict[str, Any]]
        model_error: bool
        final_answer: Optional[str]

    return RunState


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


class AgentExecutionEngine:
    """
    Streaming react-style reasoning loop over a federated tool set.

    A run alternates ``reasoning`` (model call) and ``tools`` (sequential tool
    execution) nodes of a LangGraph state graph until the model answers
    without requesting tools, the iteration ceiling is hit, or the run is
    cancelled. Remote connections are released on every exit path.
    """

    def __init__(
        self,
        config: AgentConfig,
        tool_registry: Optional[ToolRegistry] = None,
        model: Optional[BaseChatModel] = None,
        progress_sink: Optional[ProgressSink] = None,
        system_prompt: Optional[str] = None,
        api_key: Optional[str] = None,
        connection_factory: Callable[[RemoteServerConfig], RemoteConnection] = RemoteConnection
    ):
        self.config = config
        self.tool_registry = tool_registry or ToolRegistry()
        self.system_prompt = system_prompt
        self.api_key = api_key
        self.connection_factory = connection_factory

        self.reporter = ProgressReporter(progress_sink)
        self.executor = ToolExecutor(timeout=config.tool_timeout)
        self.metadata = ExecutionMetadata(agent_name=config.name)
        self.phase = EnginePhase.IDLE

        self.tools: List[ToolDescriptor] = []
        self.connections: List[RemoteConnection] = []
        self.graph = None

        self._model = model
        self._bound_model = None
        self._tools_by_name: Dict[str, ToolDescriptor] = {}
        self._initialized = False
        self._cancelled = False
        self._running = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def _log(self, event: str, **fields):
        # verbose agents report lifecycle at info level
        (logger.info if self.config.verbose else logger.debug)(event, **fields)

    def get_metadata(self) -> ExecutionMetadata:
        """Snapshot of the current run's metadata"""

        return self.metadata.model_copy()

    async def initialize(self) -> None:
        """Resolve the model, federate local and remote tools, and build the graph"""

        if self._initialized:
            return

        self.phase = EnginePhase.INITIALIZING
        self.reporter.emit(ProgressStep.INITIALIZATION, "Initializing LLM model...")

        try:
            model = self._model or create_chat_model(
                self.config, self.api_key or get_settings().google_api_key
            )

            self.reporter.emit(ProgressStep.INITIALIZATION, "Initializing tools and MCP servers...")
            local_tools = self.tool_registry.collect_local_tools(self.config.tools)
            self.connections = [self.connection_factory(server) for server in self.config.mcp_servers]

            federation = await ToolFederation(self.reporter).federate(local_tools, self.connections)
            self.tools = federation.tools
            self._tools_by_name = {tool.name: tool for tool in self.tools}

            if self.tools:
                self._bound_model = model.bind_tools([tool.to_model_tool() for tool in self.tools])
            else:
                self._bound_model = model

            self.graph = self._build_graph()

        except Exception:
            self.phase = EnginePhase.FAILED
            await self.cleanup()
            raise

        self._initialized = True
        self.phase = EnginePhase.IDLE
        self._log(
            "Agent initialized",
            agent_name=self.config.name,
            tools=[tool.name for tool in self.tools],
            remote_servers=len(federation.connections)
        )

    def _build_graph(self):
        """Create the reasoning loop graph"""

        workflow = StateGraph(_build_state_schema(self.config.message_limit))

        workflow.add_node("reasoning", self.reasoning_node)
        workflow.add_node("tools", self.tool_execution_node)

        workflow.set_entry_point("reasoning")

        workflow.add_conditional_edges(
            "reasoning",
            self.route_after_reasoning,
            {
                "tools": "tools",
                "retry": "reasoning",
                "end": END
            }
        )
        workflow.add_conditional_edges(
            "tools",
            self.route_after_tools,
            {
                "reasoning": "reasoning",
                "end": END
            }
        )

        return workflow.compile()

    async def reasoning_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Present the bounded history and tool set to the model"""

        iteration = state["iteration"] + 1
        self.metadata.iteration_count = iteration
        self.phase = EnginePhase.REASONING

        self.reporter.emit(
            ProgressStep.MODEL_THINKING,
            f"Reasoning (iteration {iteration})...",
            {"message_type": "ai", "history_size": len(state["messages"]), "tool_count": len(self.tools)},
            iteration=iteration
        )

        try:
            response = await self._invoke_model(state["messages"])
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("Model inference failed", iteration=iteration, error=error)
            self.reporter.emit(
                ProgressStep.MODEL_ERROR,
                "Model call failed",
                {"message_type": "ai", "error": error, "error_kind": type(e).__name__},
                iteration=iteration
            )
            return {
                "messages": [AIMessage(content=f"Model error: {error}", additional_kwargs={"error": error})],
                "iteration": iteration,
                "pending_tool_calls": [],
                "model_error": True,
                "final_answer": None
            }

        tool_calls = [dict(call) for call in (getattr(response, "tool_calls", None) or [])]
        answer = None if tool_calls else _message_text(response)

        self.reporter.emit(
            ProgressStep.MODEL_RESPONSE,
            "Model requested tools" if tool_calls else "Model produced a final answer",
            {
                "message_type": "ai",
                "tool_calls": [{"name": call.get("name"), "args": call.get("args", {})} for call in tool_calls],
                "final": not tool_calls
            },
            iteration=iteration
        )

        return {
            "messages": [response],
            "iteration": iteration,
            "pending_tool_calls": tool_calls,
            "model_error": False,
            "final_answer": answer
        }

    async def _invoke_model(self, messages: List[BaseMessage]) -> BaseMessage:
        if self.config.model_timeout:
            try:
                return await asyncio.wait_for(self._bound_model.ainvoke(messages), timeout=self.config.model_timeout)
            except asyncio.TimeoutError:
                raise ModelTimeoutError(f"Model call timed out after {self.config.model_timeout}s")
        return await self._bound_model.ainvoke(messages)

    async def tool_execution_node(self, state: Dict[str, Any]) -> Dict[str, Any]:
        """Run requested tools one at a time, folding each result into the history"""

        self.phase = EnginePhase.TOOL_EXECUTION
        iteration = state["iteration"]
        results: List[BaseMessage] = []

        for call in state["pending_tool_calls"]:
            if self._cancelled:
                break

            name = call.get("name") or ""
            arguments = call.get("args") or {}
            call_id = call.get("id") or f"call_{uuid.uuid4().hex[:12]}"

            self.reporter.emit(
                ProgressStep.TOOL_INVOKED,
                f"Executing tool {name}",
                {"message_type": "tool", "tool_name": name, "arguments": arguments},
                iteration=iteration
            )

            tool = self._tools_by_name.get(name)
            if tool is None:
                logger.warning("Model requested unknown tool", tool_name=name)
                content, success = f"Error: tool '{name}' is not available", False
            else:
                result = await self.executor.execute(tool, arguments)
                content, success = result.content, result.success

            results.append(ToolMessage(
                content=content,
                tool_call_id=call_id,
                name=name,
                status="success" if success else "error"
            ))

            self.reporter.emit(
                ProgressStep.TOOL_RESULT,
                f"Tool {name} {'completed' if success else 'failed'}",
                {"message_type": "tool", "tool_name": name, "success": success, "preview": content[:500]},
                iteration=iteration
            )

        return {"messages": results, "pending_tool_calls": []}

    def route_after_reasoning(self, state: Dict[str, Any]) -> Literal["tools", "retry", "end"]:
        """Decide whether the loop continues after a model turn"""

        iteration = state["iteration"]

        if self._cancelled:
            route = "end"
        elif state["model_error"]:
            route = "retry" if iteration < self.config.max_iterations else "end"
        elif state["pending_tool_calls"]:
            route = "tools" if iteration < self.config.max_iterations else "end"
        else:
            route = "end"

        run_logger.log_transition("reasoning", route, iteration)
        return route

    def route_after_tools(self, state: Dict[str, Any]) -> Literal["reasoning", "end"]:
        route = "end" if self._cancelled else "reasoning"
        run_logger.log_transition("tools", route, state["iteration"])
        return route

    def _prepare_messages(self, agent_input: AgentInput) -> List[BaseMessage]:
        if isinstance(agent_input, str):
            messages = [HumanMessage(content=agent_input)]
        else:
            messages = convert_to_messages(list(agent_input))

        if self.system_prompt and not any(isinstance(m, SystemMessage) for m in messages):
            messages = [SystemMessage(content=self.system_prompt)] + messages
        return messages

    async def run(self, agent_input: AgentInput) -> AgentResult:
        """Execute the reasoning loop; always returns an envelope and always cleans up"""

        if self._cancelled:
            return AgentResult(success=False, error="Run cancelled", execution_metadata=self.get_metadata())

        run_id = uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(run_id=run_id, agent_name=self.config.name)
        self.metadata.start()
        run_logger.log_run_event("run_started", self.config.name, run_id=run_id)
        self._running = True

        try:
            await self.initialize()

            messages = self._prepare_messages(agent_input)
            self._log("Executing agent", agent_name=self.config.name, input_messages=len(messages))

            final_state = await self._execute(messages)

            if self._cancelled:
                return self._cancelled_result()

            if final_state["pending_tool_calls"] or final_state["model_error"]:
                raise IterationLimitError(self.config.max_iterations)

            self.phase = EnginePhase.FINALIZING
            self.metadata.finish(ExecutionStatus.COMPLETED)
            self.phase = EnginePhase.COMPLETED
            metrics.increment_counter("agent_runs", tags={"status": "completed"})

            self.reporter.emit(
                ProgressStep.RUN_COMPLETE,
                "Agent run completed",
                {"iterations": self.metadata.iteration_count, "duration_ms": self.metadata.duration_ms},
                iteration=self.metadata.iteration_count
            )
            self._log("Execution completed", duration_ms=self.metadata.duration_ms,
                      iterations=self.metadata.iteration_count)

            return AgentResult(
                success=True,
                data={
                    "output": final_state["final_answer"],
                    "messages": messages_to_dict(final_state["messages"])
                },
                execution_metadata=self.get_metadata()
            )

        except asyncio.CancelledError:
            if not self._cancelled:
                raise
            return self._cancelled_result()

        except Exception as e:
            if self._cancelled:
                return self._cancelled_result()

            error = str(e) or type(e).__name__
            self.metadata.finish(ExecutionStatus.FAILED, error)
            self.phase = EnginePhase.FAILED
            metrics.increment_counter("agent_runs", tags={"status": "failed"})
            logger.error("Agent run failed", error=error, error_kind=type(e).__name__)

            self.reporter.emit(
                ProgressStep.RUN_ERROR,
                "Agent run failed",
                {"error": error, "error_kind": type(e).__name__},
                iteration=self.metadata.iteration_count
            )
            return AgentResult(success=False, error=error, execution_metadata=self.get_metadata())

        finally:
            self._running = False
            await self.cleanup()
            structlog.contextvars.unbind_contextvars("run_id", "agent_name")

    async def _execute(self, messages: List[BaseMessage]) -> Dict[str, Any]:
        initial_state = {
            "messages": messages,
            "iteration": 0,
            "pending_tool_calls": [],
            "model_error": False,
            "final_answer": None
        }
        final_state = initial_state

        async for chunk in self.graph.astream(
            initial_state,
            config={"recursion_limit": 2 * self.config.max_iterations + 5},
            stream_mode="values"
        ):
            final_state = chunk
            if self._cancelled:
                break

        return final_state

    def _cancelled_result(self) -> AgentResult:
        if self.metadata.status != ExecutionStatus.CANCELLED:
            self.metadata.finish(ExecutionStatus.CANCELLED)
        self.phase = EnginePhase.CANCELLED
        metrics.increment_counter("agent_runs", tags={"status": "cancelled"})
        return AgentResult(success=False, error="Run cancelled", execution_metadata=self.get_metadata())

    async def cancel(self) -> None:
        """Request cooperative cancellation; an active run releases its own connections"""

        self._cancelled = True
        self.metadata.finish(ExecutionStatus.CANCELLED)
        self.phase = EnginePhase.CANCELLED
        self.reporter.emit(
            ProgressStep.RUN_CANCELLED,
            "Agent run cancelled",
            iteration=self.metadata.iteration_count
        )
        if not self._running:
            await self.cleanup()

    async def cleanup(self) -> None:
        """Disconnect every remote connection opened during initialization"""

        active = sum(1 for connection in self.connections if connection.is_connected)

        for connection in self.connections:
            try:
                await connection.disconnect()
            except Exception as e:
                logger.error("Error disconnecting MCP client", server=connection.identifier, error=str(e))

        if active:
            self.reporter.emit(
                ProgressStep.CLEANUP,
                "Released remote connections",
                {"connections": active}
            )
