from typing import Dict, Any, Callable, Optional
import asyncio

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
import structlog

from route_explorer.application.api.schema.events import (
    AgentRunRequest, CompletePayload, ErrorPayload, StartPayload, StreamEventType
)
from route_explorer.application.api.stream.event_stream import EventChannel
from route_explorer.domain.orchestration.core.main_agent import AgentExecutionEngine
from route_explorer.domain.streaming.streaming_handler import ProgressSink

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/agents", tags=["agents"])

# (config overrides, progress sink) -> engine
AgentFactory = Callable[[Optional[Dict[str, Any]], Optional[ProgressSink]], AgentExecutionEngine]


def get_agent_factory(request: Request, agent: str) -> AgentFactory:
    return request.app.state.agent_factories[agent]


def _input_required() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Input is required"})


@router.post("/route-agent")
async def run_route_agent(body: AgentRunRequest, request: Request):
    """Run the route exploration agent, streaming its progress as server-sent events"""

    if not body.input:
        return _input_required()

    factory = get_agent_factory(request, "route-agent")
    channel = EventChannel()

    async def execute():
        agent = None
        try:
            channel.send_event(StreamEventType.START, StartPayload(message="Starting agent..."))

            agent = factory(body.config, channel.progress_sink)
            result = await agent.run(body.input)

            channel.send_event(
                StreamEventType.COMPLETE,
                CompletePayload(
                    result=result.model_dump(mode="json"),
                    metadata=agent.get_metadata().model_dump(mode="json")
                )
            )

        except Exception as e:
            logger.error("Error executing RouteAgent", error=str(e))
            channel.send_event(
                StreamEventType.ERROR,
                ErrorPayload(error="Failed to execute agent", details=str(e) or type(e).__name__)
            )

        finally:
            if agent is not None:
                try:
                    await agent.cleanup()
                except Exception as e:
                    logger.error("Error during cleanup", error=str(e))
            channel.close()

    async def event_stream():
        task = asyncio.create_task(execute())
        try:
            async for frame in channel.drain():
                yield frame
        finally:
            if not task.done():
                logger.info("Client went away, cancelling agent run")
                task.cancel()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/context-analyzer")
async def run_context_analyzer(body: AgentRunRequest, request: Request):
    """Run the context analyzer agent and return its result in one response"""

    if not body.input:
        return _input_required()

    agent = None
    try:
        agent = get_agent_factory(request, "context-analyzer")(body.config, None)
        result = await agent.run(body.input)
        return {
            "result": result.model_dump(mode="json"),
            "metadata": agent.get_metadata().model_dump(mode="json"),
        }

    except Exception as e:
        logger.error("Error executing context analyzer agent", error=str(e))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to execute agent", "details": str(e) or type(e).__name__}
        )

    finally:
        if agent is not None:
            await agent.cleanup()
