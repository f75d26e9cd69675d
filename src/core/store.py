"""Observable state container with tracked background tasks.

Each pipeline stage (session, tenancy, entitlement) keeps an immutable
state dataclass, replaces it on change and notifies listeners
synchronously. Async work started by a stage runs as tracked tasks so
``close()`` can cancel whatever is still in flight.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Coroutine
from typing import Any, Callable, Generic, TypeVar

from src.core.logging import get_logger

log = get_logger(__name__)

S = TypeVar("S")

Listener = Callable[[S], None]


class ObservableStore(Generic[S]):
    """Base class for reactive pipeline stages."""

    def __init__(self, initial: S) -> None:
        self._state: S = initial
        self._listeners: list[Listener[S]] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._generation = 0

    @property
    def state(self) -> S:
        return self._state

    def subscribe(self, listener: Listener[S]) -> Callable[[], None]:
        """Register ``listener``; it is called with every new state."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_state(self, **changes: Any) -> None:
        new_state = dataclasses.replace(self._state, **changes)  # type: ignore[type-var]
        if new_state == self._state:
            return
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as exc:
                log.error(
                    "state_listener_failed",
                    store=type(self).__name__,
                    error=str(exc),
                    exc_info=True,
                )

    # ── Generations ──────────────────────────────────────────────

    def _next_generation(self) -> int:
        """Invalidate every in-flight resolution and return the new token."""
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    # ── Background Tasks ─────────────────────────────────────────

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "background_task_failed",
                store=type(self).__name__,
                task=task.get_name(),
                error=str(exc),
            )

    @property
    def busy(self) -> bool:
        return bool(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until no background task of this stage is pending."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel pending work and drop listeners."""
        self._next_generation()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()
