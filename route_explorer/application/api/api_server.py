from typing import Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import structlog
import uvicorn

from route_explorer import __version__
from route_explorer.application.api.route.agent import AgentFactory, router as agent_router
from route_explorer.domain.context.store.route_store import InMemoryRouteStore, RouteStore
from route_explorer.domain.orchestration.agents import ContextAnalyzerAgent, RouteAgent
from route_explorer.infrastructure.config.settings import Settings, get_settings
from route_explorer.infrastructure.observability.logging import metrics, setup_logging

logger = structlog.get_logger(__name__)


def default_agent_factories(route_store: RouteStore) -> Dict[str, AgentFactory]:
    return {
        "route-agent": lambda config, sink: RouteAgent(config, route_store=route_store, progress_sink=sink),
        "context-analyzer": lambda config, sink: ContextAnalyzerAgent(config, progress_sink=sink),
    }


def create_app(
    settings: Optional[Settings] = None,
    agent_factories: Optional[Dict[str, AgentFactory]] = None,
    route_store: Optional[RouteStore] = None
) -> FastAPI:
    """Build the HTTP surface hosting the agents"""

    settings = settings or get_settings()
    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        environment=settings.environment,
        version=settings.service_version
    )

    app = FastAPI(title="Route Explorer Agent Server", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.route_store = route_store or InMemoryRouteStore()
    app.state.agent_factories = agent_factories or default_agent_factories(app.state.route_store)

    app.include_router(agent_router)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "version": __version__,
            "environment": settings.environment,
            "metrics": metrics.get_metrics_summary()
        }

    logger.info("Agent server configured", agents=sorted(app.state.agent_factories))
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
