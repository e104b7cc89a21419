from .tool_registry import ToolDescriptor, ToolRegistry, ToolSource
from .tool_executor import ToolExecutor, ToolResult
from .tool_federation import FederationResult, ToolFederation

__all__ = [
    "ToolDescriptor",
    "ToolRegistry",
    "ToolSource",
    "ToolExecutor",
    "ToolResult",
    "FederationResult",
    "ToolFederation",
]
