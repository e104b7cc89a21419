from typing import Dict, List, Any, Optional, Callable, Iterable, Union, TYPE_CHECKING
from dataclasses import dataclass, field
from enum import Enum
import inspect

import structlog

from route_explorer.domain.models.agent_state import ToolConfig
from .tool_validator import ParameterSpec, to_json_schema

if TYPE_CHECKING:
    from route_explorer.infrastructure.mcp.remote_connection import RemoteConnection

logger = structlog.get_logger(__name__)


class ToolSource(str, Enum):
    """Where a tool is implemented"""
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class ToolDescriptor:
    """A named capability offered to the model, either local or proxied to a remote server"""
    name: str
    description: str
    parameters: Dict[str, ParameterSpec] = field(default_factory=dict)
    source: ToolSource = ToolSource.LOCAL
    handler: Optional[Callable[..., Any]] = None
    connection: Optional["RemoteConnection"] = None
    remote_name: Optional[str] = None

    def __post_init__(self):
        if self.source == ToolSource.LOCAL and self.handler is None:
            raise ValueError(f"Local tool '{self.name}' needs a handler")
        if self.source == ToolSource.REMOTE and self.connection is None:
            raise ValueError(f"Remote tool '{self.name}' needs a connection")

    @classmethod
    def local(
        cls,
        name: str,
        description: str,
        handler: Callable[..., Any],
        parameters: Optional[Dict[str, ParameterSpec]] = None
    ) -> "ToolDescriptor":
        return cls(name=name, description=description, parameters=parameters or {},
                   source=ToolSource.LOCAL, handler=handler)

    @classmethod
    def remote(
        cls,
        name: str,
        description: str,
        connection: "RemoteConnection",
        parameters: Optional[Dict[str, ParameterSpec]] = None,
        remote_name: Optional[str] = None
    ) -> "ToolDescriptor":
        return cls(name=name, description=description, parameters=parameters or {},
                   source=ToolSource.REMOTE, connection=connection,
                   remote_name=remote_name or name)

    async def invoke(self, arguments: Dict[str, Any]) -> Any:
        """Dispatch a call to the local handler or the owning remote connection"""

        if self.source == ToolSource.REMOTE:
            return await self.connection.invoke(self.remote_name, arguments)

        result = self.handler(**arguments)
        if inspect.isawaitable(result):
            result = await result
        return result

    def to_model_tool(self) -> Dict[str, Any]:
        """Function-calling schema bound to the model, with argument names as declared"""

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": to_json_schema(self.parameters),
            },
        }


ToolFactory = Callable[[], ToolDescriptor]


class ToolRegistry:
    """Statically known local tools, looked up by name"""

    def __init__(self):
        self.factories: Dict[str, ToolFactory] = {}

    def register(self, name: str, factory: ToolFactory):
        """Register a factory producing the descriptor for ``name``"""

        self.factories[name] = factory

    def known_tools(self) -> List[str]:
        return list(self.factories.keys())

    def collect_local_tools(self, enabled: Iterable[Union[ToolConfig, str]]) -> List[ToolDescriptor]:
        """Build descriptors for enabled, known tool names in configuration order"""

        tools: List[ToolDescriptor] = []
        seen = set()

        for entry in enabled:
            if isinstance(entry, ToolConfig):
                if not entry.enabled:
                    continue
                name = entry.name
            else:
                name = entry

            if name in seen:
                continue

            factory = self.factories.get(name)
            if factory is None:
                logger.debug("Ignoring unknown local tool", tool_name=name)
                continue

            tools.append(factory())
            seen.add(name)

        return tools
