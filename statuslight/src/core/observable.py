"""Most-recent-wins observable cells published by the engine."""

import asyncio
import inspect
from typing import Any, Callable, Generic, List, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Listener = Callable[[Any], Any]


class ObservableValue(Generic[T]):
    """Single value cell with change listeners.

    ``set()`` replaces the value and notifies listeners synchronously.
    Coroutine listeners are scheduled on the running loop. A failing
    listener is logged and never affects the publisher or its siblings.
    """

    def __init__(self, name: str, initial: T):
        self.name = name
        self._value = initial
        self._listeners: List[Listener] = []
        self._tasks: set = set()

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener, returns an unsubscribe callable."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set(self, value: T) -> None:
        self._value = value
        for listener in list(self._listeners):
            try:
                result = listener(value)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
            except Exception as e:
                logger.warning(
                    "observable_listener_failed",
                    observable=self.name,
                    error=str(e),
                )

    def __repr__(self) -> str:
        return "ObservableValue(%s=%r)" % (self.name, self._value)
