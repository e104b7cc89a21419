from typing import Dict, Any, Optional, Union

from route_explorer.domain.context.store.route_store import RouteStore
from route_explorer.domain.models.agent_state import AgentConfig, ConnectionKind, RemoteServerConfig, ToolConfig
from route_explorer.domain.orchestration.core.main_agent import AgentExecutionEngine
from route_explorer.domain.tool.builtin import default_tool_registry
from route_explorer.infrastructure.config.settings import Settings, get_settings

SYSTEM_PROMPT = """
You are an agent specialized in exploring web applications and registering their routes.

## Your main goal:
1. Navigate the web application using the browser tools
2. Identify the different routes/URLs of the application
3. Register every route you find with the create_route tool
4. The description of each route matters: another agent will use it as context to understand
what the page contains and which actions can be performed there, so write a detailed description
for every route.

## Important instructions:
- ALWAYS use the available tools to perform actions
- Do NOT produce example code or prints, call the tools directly
- After closing the browser, give an answer the user can understand stating that the analysis of
the web application is finished

## Note:
Only register routes that have not been registered before. For routes that take parameters or
vary per user (e.g. /profile/5f27a52b-cc10-4ea7-baca-53b3100522d9?var=123), register the base
route without the values (e.g. /profile/[id]?var=[value]).
"""


def default_route_agent_config(settings: Optional[Settings] = None) -> AgentConfig:
    settings = settings or get_settings()
    return AgentConfig(
        name="RouteAgent",
        model="gemini-2.5-flash",
        temperature=0.7,
        max_iterations=settings.agent_max_iterations,
        message_limit=settings.agent_message_limit,
        tools=[
            ToolConfig(name="create_route", description="Create routes for web projects"),
            ToolConfig(name="list_routes", description="List the routes of a project"),
            ToolConfig(name="update_route", description="Update the information of a route"),
        ],
        mcp_servers=[
            RemoteServerConfig(
                kind=ConnectionKind.HTTP_STREAM,
                name="playwright",
                url=settings.playwright_mcp_url
            )
        ],
        verbose=True
    )


def merge_config(base: AgentConfig, overrides: Optional[Union[AgentConfig, Dict[str, Any]]]) -> AgentConfig:
    """Shallow-merge caller overrides over a preset's defaults"""

    if overrides is None:
        return base
    if isinstance(overrides, AgentConfig):
        overrides = overrides.model_dump(exclude_unset=True)
    return AgentConfig(**{**base.model_dump(), **overrides})


class RouteAgent(AgentExecutionEngine):
    """Explores a web application through a browser MCP server and records its routes"""

    def __init__(
        self,
        config: Optional[Union[AgentConfig, Dict[str, Any]]] = None,
        route_store: Optional[RouteStore] = None,
        **kwargs
    ):
        kwargs.setdefault("tool_registry", default_tool_registry(route_store))
        kwargs.setdefault("system_prompt", SYSTEM_PROMPT)
        super().__init__(merge_config(default_route_agent_config(), config), **kwargs)
