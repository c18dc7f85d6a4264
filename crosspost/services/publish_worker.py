"""
Background loop that publishes due scheduled posts and runs due retries.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from crosspost.models.oauth import utcnow
from crosspost.services.publish_orchestrator import PublishOrchestrator
from crosspost.services.scheduler import SchedulerService

logger = logging.getLogger(__name__)


class PublishWorker:
    """Polls for scheduled posts and publish retries that are due."""

    def __init__(
        self,
        *,
        scheduler: SchedulerService,
        publisher: PublishOrchestrator,
        poll_interval_seconds: float = 60.0,
        batch_size: int = 50,
    ) -> None:
        self._scheduler = scheduler
        self._publisher = publisher
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._metrics: Dict[str, Any] = {
            "posts_processed": 0,
            "retries_attempted": 0,
            "last_poll_at": None,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def metrics(self) -> Dict[str, Any]:
        return {**self._metrics, "is_running": self._running}

    async def start(self) -> None:
        if self._running:
            logger.warning("Publish worker is already running")
            return
        self._running = True
        logger.info("Starting publish worker (poll_interval=%ss)", self._poll_interval)
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop polling, letting an in-flight tick finish within ``timeout``."""
        if not self._running:
            return
        self._running = False

        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Publish worker stop timed out, tick cancelled")
            self._task = None
        logger.info("Publish worker stopped")

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run one polling tick: due scheduled posts first, then due retries."""
        now = now or utcnow()
        posts = await self._scheduler.process_due_posts(now)
        retries = await self._publisher.retry_due(now, limit=self._batch_size)

        self._metrics["posts_processed"] += posts
        self._metrics["retries_attempted"] += retries
        self._metrics["last_poll_at"] = now
        if posts or retries:
            logger.info("Publish worker tick: posts=%d retries=%d", posts, retries)
        return {"posts": posts, "retries": retries}

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Publish worker tick failed")
            await self._sleep()

    async def _sleep(self) -> None:
        # Wakes early once stop() clears the running flag.
        remaining = self._poll_interval
        while self._running and remaining > 0:
            step = min(remaining, 1.0)
            await asyncio.sleep(step)
            remaining -= step


__all__ = ["PublishWorker"]
