from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from enum import Enum


class MessageRole(str, Enum):
    """Roles tracked by the bounded history"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    OTHER = "other"


class ExecutionStatus(str, Enum):
    """Run status exposed to callers"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EnginePhase(str, Enum):
    """Engine state machine phases"""
    IDLE = "idle"
    INITIALIZING = "initializing"
    REASONING = "reasoning"
    TOOL_EXECUTION = "tool_execution"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ConnectionKind(str, Enum):
    """Transport used to reach a remote tool server"""
    PROCESS = "process"
    HTTP_STREAM = "http-stream"


class ToolConfig(BaseModel):
    """Enable flag for a locally defined tool"""
    name: str = Field(description="Name of a tool known to the local registry")
    description: Optional[str] = Field(None, description="Operator-facing note")
    enabled: bool = Field(default=True)


class RemoteServerConfig(BaseModel):
    """Connection settings for one remote tool server"""
    kind: ConnectionKind = Field(default=ConnectionKind.PROCESS)
    name: Optional[str] = Field(None, description="Label used in logs and progress events")
    command: Optional[str] = Field(None, description="Executable for process servers")
    args: List[str] = Field(default_factory=list)
    env: Optional[Dict[str, str]] = None
    url: Optional[str] = Field(None, description="Event-stream endpoint for http-stream servers")
    allowed_tools: Optional[List[str]] = Field(
        None, description="If set, only these remote tools are federated"
    )

    @model_validator(mode="after")
    def check_endpoint(self) -> "RemoteServerConfig":
        if self.kind == ConnectionKind.PROCESS and not self.command:
            raise ValueError("command is required for process servers")
        if self.kind == ConnectionKind.HTTP_STREAM and not self.url:
            raise ValueError("url is required for http-stream servers")
        return self

    @property
    def identifier(self) -> str:
        if self.name:
            return self.name
        if self.kind == ConnectionKind.HTTP_STREAM:
            return self.url or "http-stream"
        return " ".join([self.command or ""] + self.args).strip()


class AgentConfig(BaseModel):
    """Construction-time configuration of an execution engine"""
    name: str
    model: str = Field(default="gemini-2.5-flash")
    temperature: float = Field(default=0.7)
    max_iterations: int = Field(default=20, ge=1)
    message_limit: int = Field(default=10, ge=0, description="Messages kept per role")
    tools: List[ToolConfig] = Field(default_factory=list)
    mcp_servers: List[RemoteServerConfig] = Field(default_factory=list)
    verbose: bool = False
    model_timeout: Optional[float] = Field(None, gt=0, description="Seconds per model call")
    tool_timeout: Optional[float] = Field(None, gt=0, description="Seconds per tool call")

    @property
    def enabled_tool_names(self) -> List[str]:
        return [tool.name for tool in self.tools if tool.enabled]


class ExecutionMetadata(BaseModel):
    """Per-run bookkeeping"""
    agent_name: str
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    iteration_count: int = 0
    status: ExecutionStatus = Field(default=ExecutionStatus.RUNNING)
    error: Optional[str] = None

    def start(self):
        """Reset timing and counters for a new run"""
        self.start_time = datetime.utcnow()
        self.end_time = None
        self.duration_ms = None
        self.iteration_count = 0
        self.status = ExecutionStatus.RUNNING
        self.error = None

    def finish(self, status: ExecutionStatus, error: Optional[str] = None):
        """Record a terminal status"""
        self.end_time = datetime.utcnow()
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000
        self.status = status
        if error is not None:
            self.error = error


class AgentResult(BaseModel):
    """Envelope returned by every run"""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    execution_metadata: ExecutionMetadata
