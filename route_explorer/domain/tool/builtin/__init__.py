from typing import Optional

from route_explorer.domain.context.store.route_store import InMemoryRouteStore, RouteStore
from route_explorer.domain.tool.tool_registry import ToolRegistry
from .route_tools import route_creation_tool, route_list_tool, route_update_tool
from .simulated_tools import context_analysis_tool, data_processing_tool, search_tool


def default_tool_registry(route_store: Optional[RouteStore] = None) -> ToolRegistry:
    """Registry with every built-in local tool"""

    store = route_store or InMemoryRouteStore()
    registry = ToolRegistry()

    registry.register("create_route", lambda: route_creation_tool(store))
    registry.register("list_routes", lambda: route_list_tool(store))
    registry.register("update_route", lambda: route_update_tool(store))

    registry.register("analyze_context", context_analysis_tool)
    registry.register("search_information", search_tool)
    registry.register("process_data", data_processing_tool)

    return registry


__all__ = ["default_tool_registry"]
