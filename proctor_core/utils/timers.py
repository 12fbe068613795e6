"""
Interval Timers - Recurring work on the event loop

Each timer is one asyncio task. A tick is awaited before the next sleep
starts, so ticks of one timer never overlap. An exception in a tick is
logged and the loop carries on with the next tick.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class IntervalTimer:
    """Runs a callback every ``interval`` seconds until cancelled"""

    def __init__(self, interval: float, callback: Callable[[], Any], name: str = "timer"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Schedule the timer on the running loop. Starting twice is a no-op."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self.name)

    def cancel(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = self.callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"{self.name} tick failed: {e}", exc_info=True)
