"""
In-process event bus between user management and the sync subsystem.
User routes publish UserChanged after committing; the scheduler subscribes and
runs a single-user pass, so user management never calls sync directly.
"""
import asyncio
import enum
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class UserEventKind(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    VERIFIED = "verified"
    DELETED = "deleted"


@dataclass(frozen=True)
class UserChanged:
    user_id: str
    kind: UserEventKind


Handler = Callable[[UserChanged], Awaitable[object]]


class EventBus:

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event) -> list[asyncio.Task]:
        """Schedule every handler for `event` on the running loop; does not wait for them."""
        handlers = self._handlers.get(type(event), [])
        if not handlers:
            return []
        loop = asyncio.get_running_loop()
        tasks = []
        for handler in handlers:
            task = loop.create_task(self._dispatch(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    async def emit(self, event) -> None:
        """Coroutine form of publish(), for FastAPI BackgroundTasks in sync routes."""
        self.publish(event)

    async def _dispatch(self, handler: Handler, event) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Event handler %r failed for %r", handler, event)

    async def drain(self) -> None:
        """Wait for handlers still running (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
