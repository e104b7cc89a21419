# Tool execution with timeout & result normalisation
from typing import Dict, Any, Optional
import asyncio
import json
import time

from pydantic import BaseModel
import structlog

from route_explorer.domain.models.errors import ToolTimeoutError
from route_explorer.infrastructure.observability.logging import metrics, run_logger
from .tool_registry import ToolDescriptor, ToolSource
from .tool_validator import validate_arguments

logger = structlog.get_logger(__name__)


class ToolResult(BaseModel):
    """Outcome of one tool call; failures are carried as content, not raised"""
    tool_name: str
    success: bool
    content: str
    error: Optional[str] = None
    error_kind: Optional[str] = None
    duration_ms: float = 0.0


def render_tool_output(output: Any) -> str:
    """Canonical string form of a tool's return value"""

    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if isinstance(output, BaseModel):
        return output.model_dump_json()
    return json.dumps(output, default=str, ensure_ascii=False)


class ToolExecutor:
    """Runs tool descriptors one at a time and never raises"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    async def execute(self, tool: ToolDescriptor, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        arguments = arguments or {}
        start = time.perf_counter()

        if tool.source == ToolSource.LOCAL:
            problems = validate_arguments(tool.parameters, arguments)
            if problems:
                message = f"Error executing tool {tool.name}: invalid arguments: {'; '.join(problems)}"
                return self._finish(tool, arguments, start, ToolResult(
                    tool_name=tool.name, success=False, content=message,
                    error=message, error_kind="validation"
                ))

        try:
            if self.timeout:
                output = await asyncio.wait_for(tool.invoke(arguments), timeout=self.timeout)
            else:
                output = await tool.invoke(arguments)

            result = ToolResult(tool_name=tool.name, success=True, content=render_tool_output(output))

        except asyncio.TimeoutError:
            error = ToolTimeoutError(f"timed out after {self.timeout}s")
            message = f"Error executing tool {tool.name}: {error}"
            result = ToolResult(
                tool_name=tool.name, success=False, content=message,
                error=str(error), error_kind="timeout"
            )
        except Exception as e:
            message = f"Error executing tool {tool.name}: {e}"
            result = ToolResult(
                tool_name=tool.name, success=False, content=message,
                error=str(e), error_kind=type(e).__name__
            )

        return self._finish(tool, arguments, start, result)

    def _finish(self, tool: ToolDescriptor, arguments: Dict[str, Any], start: float, result: ToolResult) -> ToolResult:
        result.duration_ms = (time.perf_counter() - start) * 1000

        metrics.record_latency("tool_execution", result.duration_ms, tags={"tool": tool.name})
        run_logger.log_tool_call(
            tool_name=tool.name,
            source=tool.source.value,
            arguments=arguments,
            output=result.content,
            duration_ms=result.duration_ms,
            success=result.success,
            error=result.error
        )
        return result
