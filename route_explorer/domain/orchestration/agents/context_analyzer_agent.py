from typing import Dict, Any, Optional, Union

from route_explorer.domain.models.agent_state import AgentConfig, ConnectionKind, RemoteServerConfig, ToolConfig
from route_explorer.domain.orchestration.core.main_agent import AgentExecutionEngine
from route_explorer.domain.tool.builtin import default_tool_registry
from .route_agent import merge_config

SYSTEM_PROMPT = (
    "You are an intelligent analysis agent. Work out which of the available tools the request "
    "needs and in which order, call them, then give a clear executive summary with the key points."
)

PLAYWRIGHT_PROCESS_SERVER = RemoteServerConfig(
    kind=ConnectionKind.PROCESS,
    name="playwright-local",
    command="npx",
    args=["-y", "@playwright/mcp@latest"]
)


def default_context_analyzer_config(with_browser: bool = False) -> AgentConfig:
    return AgentConfig(
        name="ContextAnalyzer",
        model="gemini-2.5-flash",
        temperature=0.7,
        max_iterations=5,
        tools=[
            ToolConfig(name="analyze_context", description="Analyze context in depth"),
            ToolConfig(name="search_information", description="Search for additional information"),
            ToolConfig(name="process_data", description="Process and structure data"),
        ],
        mcp_servers=[PLAYWRIGHT_PROCESS_SERVER] if with_browser else [],
        verbose=True
    )


class ContextAnalyzerAgent(AgentExecutionEngine):
    """Analyzes free-form context with the simulated analysis tools"""

    def __init__(
        self,
        config: Optional[Union[AgentConfig, Dict[str, Any]]] = None,
        with_browser: bool = False,
        **kwargs
    ):
        kwargs.setdefault("tool_registry", default_tool_registry())
        kwargs.setdefault("system_prompt", SYSTEM_PROMPT)
        super().__init__(merge_config(default_context_analyzer_config(with_browser), config), **kwargs)
