
import asyncio
from typing import Awaitable, Optional, Set
from gatehouse import logger


class DetachedTasks:
    """
    Fire-and-forget tasks that outlive the request which spawned them.
    Each task runs under its own deadline, failures are logged and never re-raised.
    """

    def __init__(self, default_timeout: float = 5.0):
        self.default_timeout = default_timeout
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, *, name: str, timeout: Optional[float] = None) -> asyncio.Task:
        deadline = self.default_timeout if timeout is None else timeout
        task = asyncio.create_task(self._run(coro, name, deadline), name=name)
        # strong reference until done, the loop itself only keeps a weak one
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Awaitable, name: str, deadline: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=deadline)
            logger.debug("background.task.done", extra={"task": name})
        except asyncio.TimeoutError:
            logger.error("background.task.timeout", extra={"task": name, "timeout": deadline})
        except asyncio.CancelledError:
            logger.warning("background.task.cancelled", extra={"task": name})
        except Exception:
            logger.exception("background.task.failed", extra={"task": name})

    async def shutdown(self, wait_timeout: float = 10.0) -> None:
        """Wait for in-flight tasks, cancel whatever is left after `wait_timeout`."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, still_running = await asyncio.wait(tasks, timeout=wait_timeout)
        for t in still_running:
            logger.warning("background.task.cancel_on_shutdown", extra={"task": t.get_name()})
            t.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
