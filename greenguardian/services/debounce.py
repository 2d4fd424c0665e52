"""
debounce.py — Delayed, cancellable re-evaluation on the asyncio loop.

Each schedule() call cancels whatever is pending and arms a single new
timer, so a burst of edits produces one evaluation `delay` seconds after
the last edit. There is no cap on how often a pending call can be
cancelled.

    debouncer = Debouncer(delay=1.0)
    token = debouncer.schedule(session.check_duplicates)
    ...
    token.cancel()          # or debouncer.cancel()
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class DebounceToken:
    """Handle for one scheduled call."""

    def __init__(self) -> None:
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


class Debouncer:
    def __init__(self, delay: float):
        self.delay = delay
        self._current: Optional[DebounceToken] = None

    @property
    def pending(self) -> bool:
        return self._current is not None and not self._current.done

    def schedule(self, fn: Callable[..., Any], *args: Any) -> DebounceToken:
        """Cancel any pending call and run fn(*args) after `delay` seconds."""
        self.cancel()
        token = DebounceToken()
        token._task = asyncio.get_running_loop().create_task(self._fire(token, fn, args))
        self._current = token
        return token

    def cancel(self) -> None:
        if self._current is not None:
            self._current.cancel()
            self._current = None

    async def wait(self) -> None:
        """Block until the pending call (if any) has run or been cancelled."""
        token = self._current
        if token is None or token._task is None:
            return
        try:
            await token._task
        except asyncio.CancelledError:
            pass

    async def _fire(self, token: DebounceToken, fn: Callable[..., Any], args: tuple) -> None:
        await asyncio.sleep(self.delay)
        if token.cancelled:
            return
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Debounced call %s failed", getattr(fn, "__name__", fn))
