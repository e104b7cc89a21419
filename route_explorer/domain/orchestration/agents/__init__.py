from .route_agent import RouteAgent, default_route_agent_config
from .context_analyzer_agent import ContextAnalyzerAgent, default_context_analyzer_config

__all__ = [
    "RouteAgent",
    "default_route_agent_config",
    "ContextAnalyzerAgent",
    "default_context_analyzer_config",
]
