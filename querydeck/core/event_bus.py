import asyncio
from typing import Any, Dict, Set

# Pending events kept per subscriber before the oldest are dropped
DEFAULT_QUEUE_SIZE = 256


class TabEventBus:
    """
    In-process fan-out of tab change events, keyed by workspace id.

    Publishing never blocks: tab state transitions happen in synchronous
    code, and a slow stream consumer loses its oldest events instead of
    stalling the workspace. The app shares the module-level
    ``tab_event_bus``; a separate instance gives a workspace its own bus.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    def publish(self, channel: str, data: Dict[str, Any]) -> None:
        for queue in list(self._subscribers.get(channel, ())):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(data)

    def subscribe(self, channel: str, maxsize: int = DEFAULT_QUEUE_SIZE) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subscribers.setdefault(channel, set()).add(queue)
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(channel)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))


tab_event_bus = TabEventBus()
