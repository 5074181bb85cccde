"""Debounced recomputation of the active projection.

``ViewScheduler`` is the only stateful piece of the derived-data engine. It
owns the active view selector and a cancellable timer, and decides which
projection is recomputed when:

* a ledger change marks every projection stale and (re)arms the debounce
  timer; only the last change inside the window produces a recompute;
* when the timer fires, the active projection alone is recomputed and the
  other two stay stale;
* switching view is immediate, and a stale target is recomputed on demand;
* a currency change behaves like a ledger change.

Timers are injected. ``LoopTimer`` schedules on the running asyncio loop
(the HTTP host); ``VirtualTimer`` keeps a virtual clock that tests advance
explicitly.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from wallettrack.logging_setup import get_logger
from wallettrack.projection_cache import Projection, ProjectionCache, ProjectionName

DEFAULT_DEBOUNCE_SECONDS = 0.15

logger = get_logger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Timer(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


class LoopTimer:
    """Timer backed by ``loop.call_later`` on the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback, *args)


@dataclass
class VirtualTimerHandle:
    when: float
    sequence: int
    callback: Callable[..., Any]
    args: tuple = ()
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class VirtualTimer:
    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[VirtualTimerHandle] = []
        self._sequence = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for handle in self._queue if not handle.cancelled)

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> VirtualTimerHandle:
        handle = VirtualTimerHandle(
            when=self._now + max(delay, 0.0),
            sequence=next(self._sequence),
            callback=callback,
            args=args,
        )
        self._queue.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running every callback that falls due."""
        target = self._now + seconds
        while True:
            due = [h for h in self._queue if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.sequence))
            self._queue.remove(handle)
            self._now = handle.when
            handle.callback(*handle.args)
        self._now = target
        self._queue = [h for h in self._queue if not h.cancelled]


class SchedulerState(str, Enum):
    IDLE = "idle"
    PENDING_RECOMPUTE = "pending_recompute"
    COMPUTING = "computing"


class ViewScheduler:
    def __init__(
        self,
        cache: ProjectionCache,
        recompute: Callable[[ProjectionName], Projection],
        timer: Timer,
        *,
        is_stale: Optional[Callable[[ProjectionName], bool]] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        active_view: ProjectionName | str = ProjectionName.CATEGORY,
    ) -> None:
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must not be negative.")
        self._cache = cache
        self._recompute = recompute
        self._timer = timer
        self._is_stale = is_stale or cache.is_stale
        self._debounce_seconds = debounce_seconds
        self._active_view = ProjectionName.validate(active_view)
        self._state = SchedulerState.IDLE
        self._handle: Optional[TimerHandle] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def active_view(self) -> ProjectionName:
        return self._active_view

    @property
    def debounce_seconds(self) -> float:
        return self._debounce_seconds

    @property
    def has_pending(self) -> bool:
        return self._handle is not None

    def data_changed(self) -> None:
        self._cache.invalidate_all()
        superseded = self._cancel_pending()
        self._state = SchedulerState.PENDING_RECOMPUTE
        self._handle = self._timer.call_later(self._debounce_seconds, self._on_timer)
        logger.debug(
            "recompute_scheduled",
            view=self._active_view.value,
            superseded=superseded,
            delay=self._debounce_seconds,
        )

    def currency_changed(self) -> None:
        self._cache.invalidate_all()
        self.data_changed()

    def switch_view(self, target: ProjectionName | str) -> ProjectionName:
        target = ProjectionName.validate(target)
        self._active_view = target
        logger.debug("view_switched", view=target.value, state=self._state.value)
        if self._is_stale(target):
            self._compute(target, reason="view_switch")
        return target

    def read(self, name: ProjectionName | str) -> Projection:
        """Return a projection, recomputing it first when it is stale."""
        name = ProjectionName.validate(name)
        if self._is_stale(name):
            self._compute(name, reason="stale_read")
        return self._cache.get(name).value

    def flush(self) -> None:
        """Run a pending debounced recompute now instead of waiting for the timer."""
        if self._handle is None:
            return
        self._cancel_pending()
        self._fire()

    def close(self) -> None:
        self._cancel_pending()
        self._state = SchedulerState.IDLE

    def _on_timer(self) -> None:
        self._handle = None
        self._fire()

    def _fire(self) -> None:
        if self._state != SchedulerState.PENDING_RECOMPUTE:
            return
        active = self._active_view
        if self._is_stale(active):
            self._compute(active, reason="debounce")
        else:
            self._state = SchedulerState.IDLE
        self._cache.invalidate_except(active)

    def _compute(self, name: ProjectionName, *, reason: str) -> None:
        self._state = SchedulerState.COMPUTING
        try:
            self._recompute(name)
            logger.debug("recompute_completed", view=name.value, reason=reason)
        finally:
            # a timer armed before an on-demand recompute stays armed
            if self._handle is not None:
                self._state = SchedulerState.PENDING_RECOMPUTE
            else:
                self._state = SchedulerState.IDLE

    def _cancel_pending(self) -> bool:
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True
