import asyncio
from typing import Optional

from logging_config import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """Runs ``run_once`` every ``interval_ms`` on the event loop until stopped.

    A failing cycle is logged and the schedule carries on.
    """

    name = "periodic task"

    def __init__(self, interval_ms: int):
        self.interval = interval_ms / 1000.0
        self._task: Optional[asyncio.Task] = None

    async def run_once(self):
        raise NotImplementedError

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self._run())
            logger.info(f"Started {self.name} (every {self.interval:g}s)")
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Stopped {self.name}")

    async def _run(self):
        loop = asyncio.get_running_loop()
        next_run = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            next_run += self.interval
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in {self.name}: {e}", exc_info=True)
