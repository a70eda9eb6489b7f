"""Periodic deployment trigger."""

import asyncio
from typing import Optional

import structlog

from nixdeploy.deploy.gate import TriggerGate

logger = structlog.get_logger()


class PollScheduler:
    """Triggers the gate at start-up and then every ``interval_seconds``."""

    def __init__(self, gate: TriggerGate, interval_seconds: float):
        self.gate = gate
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            logger.info("Starting deployment scheduler", interval_seconds=self.interval_seconds)
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            if not self.gate.trigger():
                logger.info("Scheduled deployment skipped, a deployment is already running")
            await asyncio.sleep(self.interval_seconds)
