"""
Idle-session countdown for the portal client
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[None]]]

DEFAULT_TIMEOUT_SECONDS = 15 * 60
DEFAULT_WARNING_SECONDS = 60


async def _call(callback: Optional[Callback]) -> None:
    if callback is None:
        return
    result = callback()
    if asyncio.iscoroutine(result):
        await result


class InactivityMonitor:
    """
    Warns once at ``timeout - warning`` seconds of inactivity and logs out at ``timeout``.

    ``touch()`` records activity and restarts the countdown; ``stop()`` cancels it.
    """

    def __init__(
        self,
        on_warning: Optional[Callback] = None,
        on_logout: Optional[Callback] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        warning_seconds: float = DEFAULT_WARNING_SECONDS,
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if warning_seconds < 0 or warning_seconds >= timeout_seconds:
            raise ValueError("warning_seconds must be between 0 and timeout_seconds")
        self.on_warning = on_warning
        self.on_logout = on_logout
        self.timeout_seconds = timeout_seconds
        self.warning_seconds = warning_seconds
        self.warning_shown = False
        self.logged_out = False
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: dict, on_warning: Optional[Callback] = None,
                      on_logout: Optional[Callback] = None) -> "InactivityMonitor":
        """Build from the /api/session-settings/public payload"""
        return cls(
            on_warning=on_warning,
            on_logout=on_logout,
            timeout_seconds=settings.get("session_timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
            warning_seconds=settings.get("session_warning_seconds", DEFAULT_WARNING_SECONDS),
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.touch()

    def touch(self) -> None:
        """Activity seen: hide any warning and restart the countdown"""
        if self.logged_out:
            return
        self._cancel()
        self.warning_shown = False
        self._task = asyncio.ensure_future(self._countdown())

    def stop(self) -> None:
        self._cancel()

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _countdown(self) -> None:
        await asyncio.sleep(self.timeout_seconds - self.warning_seconds)
        if not self.warning_shown:
            self.warning_shown = True
            logger.debug("Session idle warning shown")
            await _call(self.on_warning)
        await asyncio.sleep(self.warning_seconds)
        self.logged_out = True
        logger.info("Session ended after %s seconds of inactivity", self.timeout_seconds)
        await _call(self.on_logout)

    async def wait(self) -> None:
        """Wait for the current countdown to finish or be cancelled"""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
