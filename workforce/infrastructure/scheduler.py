"""Background jobs — periodic queue sweeps and stale-escalation checks.

Both jobs are plain asyncio tasks owned by the FastAPI lifespan. Running more
than one instance is safe: every assignment goes through the optimistic
version check, so two sweeps never double-assign an item.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress

from workforce.config import settings
from workforce.infrastructure.api.dependencies import (
    get_engine,
    get_escalation_machine,
    get_gateway,
    get_policy,
    get_queue_manager,
    get_uow_factory,
)

logger = logging.getLogger(__name__)


async def run_periodically(
    name: str,
    interval_seconds: float,
    job: Callable[[], Awaitable[dict]],
) -> None:
    """Run *job* every *interval_seconds* until cancelled. A failing run never stops the loop."""
    logger.info("Background job '%s' started (every %ss)", name, interval_seconds)
    while True:
        try:
            summary = await job()
            logger.debug("Background job '%s' finished: %s", name, summary)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background job '%s' failed", name)
        await asyncio.sleep(interval_seconds)


class BackgroundJobs:
    def __init__(self):
        self._tasks: list[asyncio.Task] = []

    def start(self) -> None:
        uow_factory = get_uow_factory()
        gateway = get_gateway()
        engine = get_engine(uow_factory, gateway, get_policy())
        queue = get_queue_manager(uow_factory, gateway, engine)
        escalations = get_escalation_machine(uow_factory, gateway, engine)

        self._tasks = [
            asyncio.create_task(
                run_periodically(
                    "process-queue", settings.queue_process_interval_seconds, queue.process_queue
                )
            ),
            asyncio.create_task(
                run_periodically(
                    "auto-escalate",
                    settings.escalation_check_interval_seconds,
                    escalations.auto_escalate_stale,
                )
            ),
        ]

    async def stop(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("Background jobs stopped")
