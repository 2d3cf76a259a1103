"""
Practice Session Controller

Asyncio driver around the pure session state machine. It feeds events to
``transition``, executes the commands the new state puts on its outbox and
turns their completions back into events:

- ``FetchChart`` runs the chart provider under a timeout; a newer fetch
  cancels the older one and stale completions are ignored by request id.
- ``ValidateDrawings`` runs the (stateless) validation engine off the event
  loop under the same timeout.
- ``ClearOverlays`` is forwarded to the rendering sink.
"""

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Callable, Optional

from backend.assessments.chart_annotations.data_providers.base import ChartDataProvider
from backend.assessments.chart_annotations.session_state import (
    SessionState, Event, Command, FetchChart, ValidateDrawings, ClearOverlays,
    FetchStarted, ChartLoaded, ChartLoadFailed, ValidationSucceeded, ValidationFailed,
    transition
)
from backend.assessments.chart_annotations.validation_engine import ValidationEngine
from backend.config import settings
from backend.common.error_handling import (
    ChartIQError, DataUnavailableError, RequestTimeoutError, log_error
)
from backend.common.logger import LoggerAdapter, get_logger

logger = get_logger(__name__)

RenderSink = Callable[[Command], Any]


@dataclass(frozen=True)
class SessionContext:
    """Who is practicing and how the chart is themed."""
    user_id: Optional[str] = None
    dark_mode: bool = False


class PracticeSessionController:
    """
    Runs one learner's practice session on the current event loop.

    Args:
        provider: Chart data collaborator
        engine: Validation engine (a default one is created if omitted)
        context: Learner identity and theme
        render: Callable (sync or async) receiving ``ClearOverlays`` commands
        timeout_seconds: Time budget for each fetch and validation
    """

    def __init__(
        self,
        provider: ChartDataProvider,
        engine: Optional[ValidationEngine] = None,
        context: Optional[SessionContext] = None,
        render: Optional[RenderSink] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.provider = provider
        self.engine = engine or ValidationEngine()
        self.context = context or SessionContext()
        self.render = render
        self.timeout_seconds = timeout_seconds or settings.REQUEST_TIMEOUT_SECONDS
        self.state = SessionState()
        self.logger = LoggerAdapter(logger, {
            "user_id": self.context.user_id,
            "dark_mode": self.context.dark_mode,
        })
        self._fetch_task: Optional[asyncio.Task] = None
        self._validate_task: Optional[asyncio.Task] = None

    async def dispatch(self, event: Event) -> SessionState:
        """
        Apply an event and start whatever work it requested.

        Raises:
            InvalidTransitionError: If the event is illegal in the current state
        """
        self.state = transition(self.state, event)
        if self.state.message:
            self.logger.info(f"{type(event).__name__}: {self.state.message}")
        for command in self.state.outbox:
            await self._execute(command)
        return self.state

    async def _execute(self, command: Command) -> None:
        if isinstance(command, ClearOverlays):
            await self._render(command)
        elif isinstance(command, FetchChart):
            if self._fetch_task is not None and not self._fetch_task.done():
                self.logger.debug("Cancelling superseded chart fetch")
                self._fetch_task.cancel()
            self._fetch_task = asyncio.create_task(self._fetch(command))
        elif isinstance(command, ValidateDrawings):
            self._validate_task = asyncio.create_task(self._validate(command))

    async def _render(self, command: Command) -> None:
        if self.render is None:
            return
        outcome = self.render(command)
        if asyncio.iscoroutine(outcome):
            await outcome

    async def _fetch(self, command: FetchChart) -> None:
        await self.dispatch(FetchStarted(command.request_id))
        try:
            candles = await asyncio.wait_for(
                self.provider.fetch_chart(command.asset, command.asset_type, command.timeframe),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            error = RequestTimeoutError("Chart fetch", self.timeout_seconds, cause=e)
            log_error(error, context={"asset": command.asset, "timeframe": command.timeframe})
            await self.dispatch(ChartLoadFailed(command.request_id, error.message))
        except ChartIQError as e:
            log_error(e, context={"asset": command.asset, "timeframe": command.timeframe})
            await self.dispatch(ChartLoadFailed(command.request_id, f"Error fetching chart data: {e.message}"))
        except Exception as e:
            error = DataUnavailableError(
                "Failed to fetch chart data", asset=command.asset, timeframe=command.timeframe, cause=e
            )
            log_error(error, include_stack_trace=True)
            await self.dispatch(ChartLoadFailed(command.request_id, error.message))
        else:
            await self.dispatch(ChartLoaded(command.request_id, tuple(candles)))

    async def _validate(self, command: ValidateDrawings) -> None:
        loop = asyncio.get_running_loop()
        call = functools.partial(
            self.engine.validate,
            command.tool,
            command.part,
            command.drawings,
            command.series,
            include_multi_part=command.include_multi_part,
            no_patterns_found=command.no_patterns_found
        )
        try:
            result = await asyncio.wait_for(loop.run_in_executor(None, call), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            error = RequestTimeoutError("Validation", self.timeout_seconds, cause=e)
            log_error(error, context={"tool": command.tool.value})
            await self.dispatch(ValidationFailed(command.request_id, error.message))
        except Exception as e:
            log_error(e, include_stack_trace=True, context={"tool": command.tool.value})
            await self.dispatch(ValidationFailed(command.request_id, "Validation failed"))
        else:
            await self.dispatch(ValidationSucceeded(command.request_id, result))

    async def wait_idle(self) -> SessionState:
        """Wait until no fetch or validation is running."""
        while True:
            pending = [t for t in (self._fetch_task, self._validate_task) if t is not None and not t.done()]
            if not pending:
                return self.state
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding work and release the provider."""
        for task in (self._fetch_task, self._validate_task):
            if task is not None and not task.done():
                task.cancel()
        await self.provider.close()
