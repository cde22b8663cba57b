"""Asynchronous analysis job controller.

The controller owns one ``JobState`` value and drives it through
``Idle -> Running(0) -> ... -> Succeeded | Failed | TimedOut``. A run waits for
the submission delay, then polls the analysis backend every ``poll_interval``
up to ``max_attempts`` times. Every transition is pushed, in order, to all
current subscribers.

Each run carries a CancellationToken. ``cancel()`` and a new ``start()`` flag
the token and cancel the run's task before anything else is published, and a
run never publishes once its token is flagged, so a stale poll cannot
overwrite the state of a newer run.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from uuid import uuid4

from receipt_insights.core.errors import NoDataToAnalyzeError
from receipt_insights.core.models import (
    ExpenseRecord,
    Failed,
    Idle,
    JobState,
    Running,
    Succeeded,
    TimedOut,
)
from receipt_insights.core.settings import Settings
from receipt_insights.core.utils import get_logger
from receipt_insights.services.analysis_backend import AnalysisBackend
from receipt_insights.services.expense_analyzer import ExpenseAnalyzer
from receipt_insights.workers.scheduling import Scheduler

logger = get_logger("receipt-insights.analysis")


class CancellationToken:
    """Per-run flag checked at every suspension point."""

    def __init__(self) -> None:
        """Create an unflagged token."""
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        """Whether the run has been cancelled."""
        return self._cancelled

    def cancel(self) -> None:
        """Flag the run as cancelled."""
        self._cancelled = True


@dataclass
class _JobRun:
    job_id: str
    expenses: tuple[ExpenseRecord, ...]
    token: CancellationToken = field(default_factory=CancellationToken)
    task: asyncio.Task | None = None


def is_settled(state: JobState) -> bool:
    """Whether no further transition is expected without a new ``start()``."""
    return state.terminal or isinstance(state, Idle)


class StateSubscription:
    """Ordered, unbounded feed of the controller's state transitions."""

    def __init__(self, controller: "AnalysisJobController") -> None:
        """Create an empty feed registered with ``controller``."""
        self._controller = controller
        self._queue: asyncio.Queue[JobState] = asyncio.Queue()

    def push(self, state: JobState) -> None:
        """Queue one transition."""
        self._queue.put_nowait(state)

    def drain(self) -> list[JobState]:
        """Return every queued transition without waiting."""
        states = []
        while not self._queue.empty():
            states.append(self._queue.get_nowait())
        return states

    async def get(self) -> JobState:
        """Wait for the next transition."""
        return await self._queue.get()

    async def until_settled(self) -> AsyncIterator[JobState]:
        """Yield transitions up to and including the next terminal or Idle state."""
        while True:
            state = await self.get()
            yield state
            if is_settled(state):
                return

    def close(self) -> None:
        """Stop receiving transitions."""
        self._controller.unsubscribe(self)

    def __aiter__(self) -> "StateSubscription":
        return self

    async def __anext__(self) -> JobState:
        return await self.get()

    def __enter__(self) -> "StateSubscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AnalysisJobController:
    """Owns the lifecycle of one analysis run at a time and publishes its state."""

    def __init__(
        self,
        backend: AnalysisBackend,
        scheduler: Scheduler,
        analyzer: ExpenseAnalyzer | None = None,
        max_attempts: int = 5,
        poll_interval: float = 1.0,
        submission_delay: float = 1.0,
    ) -> None:
        """Initialize the controller in the Idle state."""
        if max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {max_attempts}"
            raise ValueError(msg)
        self.backend = backend
        self.scheduler = scheduler
        self.analyzer = analyzer or ExpenseAnalyzer()
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        self.submission_delay = submission_delay
        self._state: JobState = Idle()
        self._subscribers: list[StateSubscription] = []
        self._run: _JobRun | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, backend: AnalysisBackend, scheduler: Scheduler
    ) -> "AnalysisJobController":
        """Build a controller with the retry and timing settings."""
        return cls(
            backend,
            scheduler,
            max_attempts=settings.analysis_max_attempts,
            poll_interval=settings.analysis_poll_interval,
            submission_delay=settings.analysis_submission_delay,
        )

    @property
    def state(self) -> JobState:
        """The current job state."""
        return self._state

    @property
    def job_id(self) -> str | None:
        """Id of the most recently started run, if any."""
        return self._run.job_id if self._run else None

    def subscribe(self) -> StateSubscription:
        """Register a feed that receives every transition from now on."""
        subscription = StateSubscription(self)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: StateSubscription) -> None:
        """Remove a feed. Unknown feeds are ignored."""
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def start(self, expenses: Iterable[ExpenseRecord]) -> str:
        """Start analyzing ``expenses`` and return the job id.

        Must be called from a running event loop. Raises NoDataToAnalyzeError or
        InvalidRecordError synchronously and leaves the state untouched in that
        case. Backend failures only surface as a published Failed state.
        """
        records = tuple(expenses)
        if not records:
            raise NoDataToAnalyzeError()
        self.analyzer.validate(records)
        loop = asyncio.get_running_loop()
        self._cancel_active()
        run = _JobRun(job_id=str(uuid4()), expenses=records)
        self._run = run
        logger.info(f"Starting analysis job {run.job_id} over {len(records)} expenses")
        self._publish(run, Running(attempt=0))
        run.task = loop.create_task(self._drive(run), name=f"analysis-{run.job_id}")
        return run.job_id

    def cancel(self) -> None:
        """Cancel the running job and return to Idle. No-op unless Running."""
        if not isinstance(self._state, Running):
            return
        job_id = self.job_id
        self._cancel_active()
        logger.info(f"Cancelled analysis job {job_id}")
        self._set_state(Idle())

    async def wait(self) -> None:
        """Wait until the current run's task has finished."""
        run = self._run
        if run is not None and run.task is not None:
            await asyncio.wait([run.task])

    async def aclose(self) -> None:
        """Cancel any running job, drop all subscribers and close the backend."""
        self.cancel()
        self._subscribers.clear()
        self.backend.close()

    def _cancel_active(self) -> None:
        run = self._run
        if run is None or run.token.cancelled:
            return
        run.token.cancel()
        if run.task is not None and not run.task.done():
            run.task.cancel()

    def _publish(self, run: _JobRun, state: JobState) -> None:
        if run.token.cancelled:
            logger.debug(f"Suppressed {state.status} from cancelled job {run.job_id}")
            return
        self._set_state(state)

    def _set_state(self, state: JobState) -> None:
        self._state = state
        logger.info(f"Analysis state -> {state.status} {_describe(state)}".rstrip())
        for subscription in list(self._subscribers):
            subscription.push(state)

    async def _drive(self, run: _JobRun) -> None:
        try:
            await self._poll(run)
        except asyncio.CancelledError:
            # Our own cancellation ends the run quietly; anything else propagates
            if not run.token.cancelled:
                raise
            logger.debug(f"Analysis job {run.job_id} stopped after cancellation")
        except Exception as exc:
            if run.token.cancelled:
                return
            logger.exception(f"Analysis job {run.job_id} failed")
            self._publish(run, Failed(reason=str(exc) or type(exc).__name__))

    async def _poll(self, run: _JobRun) -> None:
        await self.scheduler.sleep(self.submission_delay)
        if run.token.cancelled:
            return
        handle = await self.backend.submit_job(run.job_id, run.expenses)
        attempt = 0
        while True:
            await self.scheduler.sleep(self.poll_interval)
            if run.token.cancelled:
                return
            report = await self.backend.query_job_status(handle.model_copy(update={"attempt": attempt}))
            if run.token.cancelled:
                return
            if report.complete:
                result = self.analyzer.analyze(run.expenses)
                self._publish(run, Succeeded(result=result))
                return
            if attempt + 1 >= self.max_attempts:
                logger.warning(f"Analysis job {run.job_id} timed out after {self.max_attempts} attempts")
                self._publish(run, TimedOut())
                return
            attempt += 1
            self._publish(run, Running(attempt=attempt))


def _describe(state: JobState) -> str:
    if isinstance(state, Running):
        return f"(attempt {state.attempt})"
    if isinstance(state, Failed):
        return f"({state.reason})"
    if isinstance(state, Succeeded):
        return f"(total {state.result.total_spent:.2f}, top {state.result.top_category})"
    return ""

