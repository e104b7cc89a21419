from typing import Optional

from langchain_core.language_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI
import structlog

from route_explorer.domain.models.agent_state import AgentConfig
from route_explorer.domain.models.errors import AgentSetupError

logger = structlog.get_logger(__name__)


def create_chat_model(config: AgentConfig, api_key: Optional[str]) -> BaseChatModel:
    """Build the Gemini chat model for an agent; missing credentials are fatal"""

    if not api_key:
        raise AgentSetupError(f"[{config.name}] No Google API key provided, the model is not available")

    model = ChatGoogleGenerativeAI(
        model=config.model,
        temperature=config.temperature,
        google_api_key=api_key
    )
    logger.info("Initialized chat model", agent_name=config.name, model=config.model)
    return model
