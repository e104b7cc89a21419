from typing import Dict, Any, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum


class ProgressStep(str, Enum):
    """Phase transitions reported while an agent runs"""
    INITIALIZATION = "initialization"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CONNECT_FAILED = "connect_failed"
    MODEL_THINKING = "model_thinking"
    MODEL_RESPONSE = "model_response"
    MODEL_ERROR = "model_error"
    TOOL_INVOKED = "tool_invoked"
    TOOL_RESULT = "tool_result"
    RUN_COMPLETE = "run_complete"
    RUN_ERROR = "run_error"
    RUN_CANCELLED = "run_cancelled"
    CLEANUP = "cleanup"


class ProgressEvent(BaseModel):
    """Observability-only notification; emitted, never stored"""
    step: ProgressStep
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    iteration: Optional[int] = Field(None, description="Reasoning iteration the event belongs to")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
