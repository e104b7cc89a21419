from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from datetime import datetime
import asyncio
import uuid

from pydantic import BaseModel, Field


def _new_id() -> str:
    return uuid.uuid4().hex[:24]


class Project(BaseModel):
    """A web application under exploration"""
    id: str = Field(default_factory=_new_id)
    name: str
    url: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Route(BaseModel):
    """A route discovered in a project"""
    id: str = Field(default_factory=_new_id)
    project_id: str
    path: str
    url: str
    title: str = ""
    description: str = ""
    explored: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class RouteStore(ABC):
    """Narrow interface over the project/route document store"""

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        pass

    @abstractmethod
    async def get_route(self, route_id: str) -> Optional[Route]:
        pass

    @abstractmethod
    async def find_route(self, project_id: str, url: str) -> Optional[Route]:
        pass

    @abstractmethod
    async def create_route(self, route: Route) -> Route:
        pass

    @abstractmethod
    async def list_routes(self, project_id: str, limit: int = 50) -> List[Route]:
        """Newest first"""
        pass

    @abstractmethod
    async def count_routes(self, project_id: str, explored: Optional[bool] = None) -> int:
        pass

    @abstractmethod
    async def update_route(self, route_id: str, changes: Dict[str, Any]) -> Optional[Route]:
        pass


class InMemoryRouteStore(RouteStore):
    """Process-local store used in development and tests"""

    def __init__(self):
        self.projects: Dict[str, Project] = {}
        self.routes: Dict[str, Route] = {}
        self._lock = asyncio.Lock()

    async def add_project(self, project: Project) -> Project:
        async with self._lock:
            self.projects[project.id] = project
            return project

    async def get_project(self, project_id: str) -> Optional[Project]:
        async with self._lock:
            return self.projects.get(project_id)

    async def get_route(self, route_id: str) -> Optional[Route]:
        async with self._lock:
            return self.routes.get(route_id)

    async def find_route(self, project_id: str, url: str) -> Optional[Route]:
        async with self._lock:
            for route in self.routes.values():
                if route.project_id == project_id and route.url == url:
                    return route
            return None

    async def create_route(self, route: Route) -> Route:
        async with self._lock:
            self.routes[route.id] = route
            return route

    async def list_routes(self, project_id: str, limit: int = 50) -> List[Route]:
        async with self._lock:
            routes = [r for r in self.routes.values() if r.project_id == project_id]
        routes.sort(key=lambda r: r.created_at, reverse=True)
        return routes[:limit]

    async def count_routes(self, project_id: str, explored: Optional[bool] = None) -> int:
        async with self._lock:
            return sum(
                1 for r in self.routes.values()
                if r.project_id == project_id and (explored is None or r.explored == explored)
            )

    async def update_route(self, route_id: str, changes: Dict[str, Any]) -> Optional[Route]:
        async with self._lock:
            route = self.routes.get(route_id)
            if route is None:
                return None
            updated = route.model_copy(update={**changes, "updated_at": datetime.utcnow()})
            self.routes[route_id] = updated
            return updated
