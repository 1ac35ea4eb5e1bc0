"""TickDriver -- fixed-interval background maintenance.

Each tick runs a fixed sequence of steps. Steps are isolated: one raising
is logged with its name and the rest still run. A tick always completes
before the next sleep starts, so ticks never overlap.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple, Union

import structlog

from ..brain.budget import EPOCH_STRESS_RELIEF, stress_for_usage
from ..brain.context import BrainContext
from ..calendar.digest import DigestScheduler
from ..calendar.pending import PendingContactTags
from ..sessions.store import SessionStore

logger = structlog.get_logger()

SendFn = Callable[[str, str], Awaitable[None]]
StepFn = Callable[[datetime], Union[None, Awaitable[None]]]


class TickDriver:
    """Runs mood, budget, reminder, digest and cache maintenance."""

    def __init__(
        self,
        ctx: BrainContext,
        send: SendFn,
        sessions: Optional[SessionStore] = None,
        digests: Optional[DigestScheduler] = None,
        pending_tags: Optional[PendingContactTags] = None,
        interval: float = 30.0,
    ) -> None:
        self.ctx = ctx
        self.send = send
        self.sessions = sessions
        self.digests = digests
        self.pending_tags = pending_tags
        self.interval = interval
        self._task: Optional["asyncio.Task[None]"] = None
        self.steps: List[Tuple[str, StepFn]] = [
            ("mood_regulation", self.regulate_mood),
            ("budget_epoch", self.check_budget_epoch),
            ("stress_accrual", self.accrue_stress),
            ("reminders", self.dispatch_reminders),
            ("calendar_digests", self.dispatch_digests),
            ("pending_tags", self.sweep_pending_tags),
            ("cache_pruning", self.prune_caches),
        ]

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="tick-driver")
        logger.info("Tick driver started", interval=self.interval)

    async def stop(self) -> None:
        """Stop the background loop."""
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Tick driver stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.tick(self.ctx.now())

    async def tick(self, now: datetime) -> None:
        """Run every step once at ``now``."""
        for name, step in self.steps:
            try:
                result = step(now)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                logger.error("Tick step failed", step=name, error=str(exc))

    # --- Steps ---

    def regulate_mood(self, now: datetime) -> None:
        self.ctx.mood.regulate(self.ctx.rng)

    def check_budget_epoch(self, now: datetime) -> None:
        if self.ctx.budget.check_reset(now, self.ctx.tz):
            self.ctx.mood.adjust(stress=-EPOCH_STRESS_RELIEF)

    def accrue_stress(self, now: datetime) -> None:
        stress = stress_for_usage(self.ctx.usage_ratio)
        if stress:
            self.ctx.mood.adjust(stress=stress)

    async def dispatch_reminders(self, now: datetime) -> None:
        await self.ctx.reminders.dispatch(now, self.send)

    async def dispatch_digests(self, now: datetime) -> None:
        if self.digests:
            await self.digests.process(now, self.send)

    def sweep_pending_tags(self, now: datetime) -> None:
        if self.pending_tags:
            self.pending_tags.sweep(now)

    def prune_caches(self, now: datetime) -> None:
        dropped = self.ctx.last_responses.prune()
        if dropped:
            logger.debug("Pruned last responses", dropped=dropped)
        if self.sessions:
            self.sessions.evict()
