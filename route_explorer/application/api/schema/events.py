from typing import Dict, Any, Optional, List, Union
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum


class StreamEventType(str, Enum):
    """Server-sent event names"""
    START = "start"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


class AgentRunRequest(BaseModel):
    """Body of an agent run request"""
    input: Optional[Union[str, List[Dict[str, Any]]]] = Field(
        None, description="User prompt, or a list of {role, content} messages"
    )
    config: Optional[Dict[str, Any]] = Field(None, description="Overrides merged over the agent's defaults")


class BaseStreamPayload(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class StartPayload(BaseStreamPayload):
    message: str


class CompletePayload(BaseStreamPayload):
    """Final envelope of a run plus its metadata"""
    result: Dict[str, Any]
    metadata: Dict[str, Any]


class ErrorPayload(BaseStreamPayload):
    error: str
    details: str = "Unknown error"
