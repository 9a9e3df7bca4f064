"""
Daily digest scheduling.

The digest job moves through Idle -> Triggered -> Loading Subscribers ->
Rendering Content -> Delivering -> Idle on every run. Failures are logged
and the job always returns to Idle. Overlapping runs are not prevented and
the same day's digest can be sent more than once.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol

import schedule

from .config import parse_send_time
from .email_service.models import BatchResult, local_now

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = 'idle'
    TRIGGERED = 'triggered'
    LOADING_SUBSCRIBERS = 'loading_subscribers'
    RENDERING_CONTENT = 'rendering_content'
    DELIVERING = 'delivering'


def next_run_after(now: datetime, send_time: str) -> datetime:
    """Next occurrence of the daily HH:MM send time strictly after `now`."""
    hour, minute = (int(part) for part in parse_send_time(send_time).split(':'))
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DigestJob:
    """One full digest run: load subscribers, render one digest, deliver it."""

    def __init__(self, subscriptions, market_data, renderer, engine, narrator=None,
                 clock: Callable[[], datetime] = local_now):
        self.subscriptions = subscriptions
        self.market_data = market_data
        self.renderer = renderer
        self.engine = engine
        self.narrator = narrator
        self.clock = clock
        self.state = SchedulerState.IDLE
        self.history: List[SchedulerState] = []

    def _enter(self, state: SchedulerState) -> None:
        self.state = state
        self.history.append(state)

    async def run(self, now: Optional[datetime] = None, only_email: Optional[str] = None) -> Optional[BatchResult]:
        """
        Deliver the digest to every active subscriber.

        Args:
            now: Time of the trigger, defaults to the job clock
            only_email: Restrict delivery to this active subscriber

        Returns:
            BatchResult, or None if the run failed before delivery finished
        """
        now = now or self.clock()
        self.history = []
        self._enter(SchedulerState.TRIGGERED)
        logger.info(f"Running newsletter delivery at {now.isoformat()}")
        try:
            self._enter(SchedulerState.LOADING_SUBSCRIBERS)
            subscribers = await self.subscriptions.list(active_only=True)
            if only_email:
                subscribers = [s for s in subscribers if s.email == only_email]
            if not subscribers:
                logger.info("No subscribers to send newsletter to")
                return BatchResult()
            logger.info(f"Found {len(subscribers)} active subscribers")

            self._enter(SchedulerState.RENDERING_CONTENT)
            snapshot = await asyncio.to_thread(self.market_data.fetch_snapshot)
            narrative = None
            if self.narrator is not None:
                narrative = await asyncio.to_thread(self.narrator.write, snapshot)
            # Local date; the daily trigger fires on local wall-clock time
            digest = self.renderer.render_digest(snapshot, narrative, now.astimezone().date())

            self._enter(SchedulerState.DELIVERING)
            result = await self.engine.send_batch([digest.to(s.email) for s in subscribers])
            logger.info(f"Newsletter delivery completed: {result.summary()}")
            return result
        except Exception as e:
            logger.error(f"Error in newsletter delivery during {self.state.value}: {e}", exc_info=True)
            return None
        finally:
            self._enter(SchedulerState.IDLE)


class Trigger(Protocol):
    async def wait(self) -> Optional[datetime]:
        """Block until the next run is due; return the trigger time if known."""


class DailyTrigger:
    """
    Fires once a day at a fixed wall-clock time (local time), driven by a
    `schedule.Scheduler` polled from the event loop.
    """

    def __init__(self, send_time: str, poll_interval: float = 30.0,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None,
                 clock: Callable[[], datetime] = local_now):
        self.send_time = parse_send_time(send_time)
        self.poll_interval = poll_interval
        self._sleep = sleep or asyncio.sleep
        self._clock = clock
        self._fired = False
        self.jobs = schedule.Scheduler()
        self.jobs.every().day.at(self.send_time).do(self._mark)

    def _mark(self) -> None:
        self._fired = True

    async def wait(self) -> Optional[datetime]:
        while True:
            self.jobs.run_pending()
            if self._fired:
                self._fired = False
                return self._clock()
            idle = self.jobs.idle_seconds
            delay = self.poll_interval if idle is None else min(max(idle, 0.0), self.poll_interval)
            await self._sleep(delay)


class ManualTrigger:
    """Trigger fired explicitly, e.g. by tests or an admin action."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    def fire(self, when: Optional[datetime] = None) -> None:
        self._queue.put_nowait(when)

    async def wait(self) -> Optional[datetime]:
        return await self._queue.get()


class DigestScheduler:
    """Runs the digest job every time its trigger fires."""

    def __init__(self, job: DigestJob, trigger: Trigger, clock: Callable[[], datetime] = local_now,
                 retry_delay: float = 30.0, sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        """
        Args:
            job: Digest job run on every trigger
            trigger: Source of run times
            clock: Time source for manual runs and next-run logging
            retry_delay: Seconds to wait after the trigger itself fails
            sleep: Replacement for asyncio.sleep
        """
        self.job = job
        self.trigger = trigger
        self.clock = clock
        self.retry_delay = retry_delay
        self._sleep = sleep or asyncio.sleep
        self.runs = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        send_time = getattr(self.trigger, 'send_time', None)
        if send_time:
            next_run = next_run_after(self.clock(), send_time)
            logger.info(f"Newsletter delivery scheduled daily at {send_time}; next run at {next_run.isoformat()}")
        else:
            logger.info("Newsletter delivery scheduler started")

    async def _loop(self) -> None:
        while True:
            try:
                fired_at = await self.trigger.wait()
            except Exception as e:
                logger.error(f"Newsletter trigger failed, retrying in {self.retry_delay:g}s: {e}", exc_info=True)
                await self._sleep(self.retry_delay)
                continue
            await self.job.run(fired_at or self.clock())
            self.runs += 1

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Newsletter delivery scheduler stopped")

    async def trigger_now(self, only_email: Optional[str] = None) -> Optional[BatchResult]:
        """Run the digest immediately, independent of the trigger."""
        return await self.job.run(self.clock(), only_email=only_email)
