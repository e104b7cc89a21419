from typing import Optional
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    """Environment-driven service settings"""
    google_api_key: Optional[str] = Field(None, description="Credentials for the Gemini chat model")
    playwright_mcp_url: str = Field(default="http://localhost:3001/sse")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    environment: str = Field(default="development")
    service_version: str = Field(default="unknown")
    agent_max_iterations: int = Field(default=80, ge=1)
    agent_message_limit: int = Field(default=10, ge=0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the process environment (and .env, if present)"""

        return cls(
            google_api_key=os.getenv("GOOGLE_API_KEY") or None,
            playwright_mcp_url=os.getenv("PLAYWRIGHT_MCP_URL", "http://localhost:3001/sse"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            environment=os.getenv("ENVIRONMENT", "development"),
            service_version=os.getenv("SERVICE_VERSION", "unknown"),
            agent_max_iterations=int(os.getenv("AGENT_MAX_ITERATIONS", "80")),
            agent_message_limit=int(os.getenv("AGENT_MESSAGE_LIMIT", "10")),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, loaded on first use"""

    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
