from typing import Dict, Any, Optional, Callable, Set
import asyncio
import inspect
import structlog

from .events import ProgressEvent, ProgressStep

logger = structlog.get_logger(__name__)

ProgressSink = Callable[[ProgressEvent], Any]


class ProgressReporter:
    """Delivers progress events to at most one subscriber, fire-and-forget"""

    def __init__(self, sink: Optional[ProgressSink] = None):
        self.sink = sink
        self._pending: Set[asyncio.Future] = set()

    def emit(
        self,
        step: ProgressStep,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        iteration: Optional[int] = None
    ) -> Optional[ProgressEvent]:
        """Build and deliver an event; never raises"""

        try:
            event = ProgressEvent(
                step=step,
                message=message,
                details=details or {},
                iteration=iteration
            )
        except Exception as e:
            logger.error("Invalid progress event", step=step, error=str(e))
            return None

        logger.debug("Progress", step=event.step.value, message=message, iteration=iteration)

        if self.sink is None:
            return event

        try:
            outcome = self.sink(event)
            if inspect.isawaitable(outcome):
                self._schedule(outcome)
        except Exception as e:
            logger.error("Error in progress sink", step=event.step.value, error=str(e))

        return event

    def _schedule(self, awaitable):
        """Run an async sink in the background without awaiting it"""

        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)
        future.add_done_callback(self._on_sink_done)

    def _on_sink_done(self, future: asyncio.Future):
        self._pending.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("Error in progress sink", error=str(error))
