"""
Route tools - let the agent record and query the routes it discovers.

Every handler returns a JSON document shaped ``{"success": ..., ...}``;
store failures are reported in that document instead of being raised.
"""

from typing import Dict, Any, Optional
import json

import structlog

from route_explorer.domain.context.store.route_store import Route, RouteStore
from route_explorer.domain.tool.tool_registry import ToolDescriptor
from route_explorer.domain.tool.tool_validator import ParameterSpec, ParameterType

logger = structlog.get_logger(__name__)

ROUTE_CREATION_TOOL = """Register a new route (URL) of a web application.

Parameters:
- projectId: ID of the project the route belongs to
- path: Route path within the application (e.g. '/login', '/profile/[id]?var=[value]')
- url: Full, valid URL of the route (e.g. 'https://example.com/login')
- title: Short title of the route (e.g. 'Login Page')
- description: A detailed description of what the page contains and which actions a user can
perform there. Another agent will rely on this description as context, so be thorough.

Use this tool whenever you identify a new page or endpoint in the application you are exploring."""

ROUTE_LIST_TOOL = (
    "List the routes registered for a project. Shows the ID, URL, description and exploration "
    "state of each route. Useful to check what has already been registered and avoid duplicates."
)

ROUTE_UPDATE_TOOL = (
    "Update an existing route. You can change its URL or description, or mark it as explored. "
    "Requires the ID of the route to update."
)


def _dump(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=str, ensure_ascii=False)


def route_creation_tool(store: RouteStore) -> ToolDescriptor:
    """create_route"""

    async def create_route(
        projectId: str,
        path: str,
        url: str,
        title: str = "",
        description: str = ""
    ) -> str:
        try:
            project = await store.get_project(projectId)
            if project is None:
                return _dump({"success": False, "error": f"Project with ID {projectId} not found"})

            existing = await store.find_route(projectId, url)
            if existing is not None:
                return _dump({
                    "success": False,
                    "error": f'The route "{url}" already exists for this project',
                    "existingRoute": {
                        "id": existing.id,
                        "path": existing.path,
                        "url": existing.url,
                        "title": existing.title,
                    },
                })

            route = await store.create_route(Route(
                project_id=projectId,
                path=path,
                url=url,
                title=title or "",
                description=description or ""
            ))
            logger.info("Route created", project_id=projectId, url=url)

            return _dump({
                "success": True,
                "message": "Route created",
                "route": {
                    "id": route.id,
                    "projectId": route.project_id,
                    "path": route.path,
                    "url": route.url,
                    "title": route.title,
                    "description": route.description,
                    "createdAt": route.created_at,
                },
                "project": {"id": project.id, "name": project.name},
            })
        except Exception as e:
            logger.error("Error creating route", error=str(e))
            return _dump({"success": False, "error": str(e) or "Unknown error creating the route"})

    return ToolDescriptor.local(
        name="create_route",
        description=ROUTE_CREATION_TOOL,
        handler=create_route,
        parameters={
            "projectId": ParameterSpec(type=ParameterType.STRING, required=True,
                                       description="ID of the project the route belongs to"),
            "path": ParameterSpec(type=ParameterType.STRING, required=True,
                                  description="Relative path of the route, e.g. '/login' or '/profile/[id]?var=[value]'"),
            "url": ParameterSpec(type=ParameterType.STRING, required=True,
                                 description="Full URL of the route"),
            "title": ParameterSpec(type=ParameterType.STRING, required=True,
                                   description="Title of the route"),
            "description": ParameterSpec(type=ParameterType.STRING, required=True,
                                         description="Full description of the route's purpose and available actions"),
        }
    )


def route_list_tool(store: RouteStore) -> ToolDescriptor:
    """list_routes"""

    async def list_routes(projectId: str, limit: Optional[float] = None) -> str:
        try:
            project = await store.get_project(projectId)
            if project is None:
                return _dump({"success": False, "error": f"Project with ID {projectId} not found"})

            routes = await store.list_routes(projectId, limit=int(limit) if limit else 50)
            total = await store.count_routes(projectId)
            unexplored = await store.count_routes(projectId, explored=False)

            return _dump({
                "success": True,
                "project": {"id": project.id, "name": project.name, "url": project.url},
                "statistics": {"total": total, "unexplored": unexplored},
                "routes": [
                    {
                        "id": route.id,
                        "url": route.url,
                        "description": route.description,
                        "createdAt": route.created_at,
                    }
                    for route in routes
                ],
                "count": len(routes),
            })
        except Exception as e:
            logger.error("Error listing routes", error=str(e))
            return _dump({"success": False, "error": str(e) or "Unknown error listing routes"})

    return ToolDescriptor.local(
        name="list_routes",
        description=ROUTE_LIST_TOOL,
        handler=list_routes,
        parameters={
            "projectId": ParameterSpec(type=ParameterType.STRING, required=True,
                                       description="ID of the project whose routes to list"),
            "limit": ParameterSpec(type=ParameterType.NUMBER,
                                   description="Maximum number of routes to return (default: 50)"),
        }
    )


def route_update_tool(store: RouteStore) -> ToolDescriptor:
    """update_route"""

    async def update_route(
        routeId: str,
        description: Optional[str] = None,
        url: Optional[str] = None,
        explored: Optional[bool] = None
    ) -> str:
        try:
            if await store.get_route(routeId) is None:
                return _dump({"success": False, "error": f"Route with ID {routeId} not found"})

            changes: Dict[str, Any] = {}
            if description is not None:
                changes["description"] = description
            if url is not None:
                changes["url"] = url
            if explored is not None:
                changes["explored"] = explored

            if not changes:
                return _dump({"success": False, "error": "No fields were provided to update"})

            route = await store.update_route(routeId, changes)
            return _dump({
                "success": True,
                "message": "Route updated",
                "route": {
                    "id": route.id,
                    "projectId": route.project_id,
                    "url": route.url,
                    "description": route.description,
                    "explored": route.explored,
                    "updatedAt": route.updated_at,
                },
                "changes": changes,
            })
        except Exception as e:
            logger.error("Error updating route", error=str(e))
            return _dump({"success": False, "error": str(e) or "Unknown error updating the route"})

    return ToolDescriptor.local(
        name="update_route",
        description=ROUTE_UPDATE_TOOL,
        handler=update_route,
        parameters={
            "routeId": ParameterSpec(type=ParameterType.STRING, required=True,
                                     description="ID of the route to update"),
            "description": ParameterSpec(type=ParameterType.STRING, description="New description"),
            "url": ParameterSpec(type=ParameterType.STRING, description="New URL"),
            "explored": ParameterSpec(type=ParameterType.BOOLEAN, description="Mark the route as explored"),
        }
    )
