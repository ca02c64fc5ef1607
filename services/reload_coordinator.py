"""
Reload coordination for the gap/task view.

A full reload is an async loader call. Only the newest reload may apply its
result:
    - starting a reload cancels the in-flight one (cooperatively, through
      its CancelToken)
    - a late result from a superseded or cancelled reload is discarded
    - hiding the view aborts the in-flight reload
    - a reload running longer than the watchdog interval is abandoned, the
      loading flag is cleared and a fresh attempt is scheduled
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
import asyncio
import structlog

from config import settings
from exceptions import ReloadTimeoutError

logger = structlog.get_logger(__name__)


class ReloadCancelled(Exception):
    """Raised inside a loader when its token has been cancelled."""


class CancelToken:
    """Cooperative cancellation flag handed to each loader call."""

    def __init__(self):
        self.cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "superseded") -> None:
        if not self.cancelled:
            self.cancelled = True
            self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ReloadCancelled(self.reason)


class ReloadStatus(str, Enum):
    APPLIED = "applied"
    DISCARDED = "discarded"  # finished, but a newer reload or an abort won
    CANCELLED = "cancelled"  # loader stopped at a cancellation check
    TIMED_OUT = "timed_out"


@dataclass
class ReloadOutcome:
    generation: int
    status: ReloadStatus
    result: Any = None
    error: Optional[str] = None


Loader = Callable[[CancelToken], Awaitable[Any]]


class ReloadCoordinator:
    """
    Serializes reloads so stale responses never clobber fresher state.

    Args:
        loader: Async callable doing the reads; should call
            token.raise_if_cancelled() between queries
        apply: Receives the result of the newest completed reload
        watchdog_seconds: Defaults to settings.reload_watchdog_seconds
        retry_delay_seconds: Delay before the retry after a watchdog reset;
            None disables the retry
    """

    def __init__(
        self,
        loader: Loader,
        apply: Callable[[Any], None],
        watchdog_seconds: Optional[float] = None,
        retry_delay_seconds: Optional[float] = 1.0,
    ):
        self.loader = loader
        self.apply = apply
        self.watchdog_seconds = watchdog_seconds or settings.reload_watchdog_seconds
        self.retry_delay_seconds = retry_delay_seconds

        self.generation = 0
        self.loading = False
        self.anomalies = 0
        self._token: Optional[CancelToken] = None
        self._aborted_while_hidden = False
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self.retry_task: Optional[asyncio.Task] = None

    def _is_current(self, generation: int) -> bool:
        return generation == self.generation

    async def reload(self) -> ReloadOutcome:
        """Run one reload, superseding whatever is in flight."""
        if self._token is not None:
            self._token.cancel("superseded")

        self.generation += 1
        generation = self.generation
        token = CancelToken()
        self._token = token
        self.loading = True

        logger.debug("reload_started", generation=generation)

        try:
            result = await asyncio.wait_for(self.loader(token), timeout=self.watchdog_seconds)
        except asyncio.TimeoutError:
            token.cancel("watchdog")
            error = ReloadTimeoutError(self.watchdog_seconds)
            if self._is_current(generation):
                self.loading = False
                self._token = None
                self.anomalies += 1
                logger.error(
                    "reload_watchdog_reset",
                    generation=generation,
                    timeout_seconds=self.watchdog_seconds,
                )
                self._schedule_retry()
            return ReloadOutcome(generation, ReloadStatus.TIMED_OUT, error=error.message)
        except ReloadCancelled:
            logger.debug("reload_cancelled", generation=generation, reason=token.reason)
            if self._is_current(generation):
                self.loading = False
                self._token = None
            return ReloadOutcome(generation, ReloadStatus.CANCELLED)
        except Exception:
            if self._is_current(generation):
                self.loading = False
                self._token = None
            raise

        if token.cancelled or not self._is_current(generation):
            logger.info(
                "stale_reload_discarded",
                generation=generation,
                current=self.generation,
                reason=token.reason,
            )
            if self._is_current(generation):
                self.loading = False
                self._token = None
            return ReloadOutcome(generation, ReloadStatus.DISCARDED)

        self.apply(result)
        self.loading = False
        self._token = None
        logger.debug("reload_applied", generation=generation)
        return ReloadOutcome(generation, ReloadStatus.APPLIED, result=result)

    def visibility_changed(self, hidden: bool) -> Optional[asyncio.Task]:
        """
        React to the view being hidden or shown.

        Hiding aborts the in-flight reload and any pending retry. Showing
        again restarts a reload that was aborted that way.

        Returns:
            The restarted reload task, if one was started
        """
        if hidden:
            if self._retry_handle is not None:
                self._retry_handle.cancel()
                self._retry_handle = None
            if self._token is not None:
                self._token.cancel("hidden")
                self._aborted_while_hidden = True
                logger.info("reload_aborted_hidden", generation=self.generation)
            return None

        if self._aborted_while_hidden:
            self._aborted_while_hidden = False
            return asyncio.ensure_future(self.reload())
        return None

    def _schedule_retry(self) -> None:
        if self.retry_delay_seconds is None:
            return
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(self.retry_delay_seconds, self._start_retry)

    def _start_retry(self) -> None:
        self._retry_handle = None
        logger.info("reload_retry_started", after_generation=self.generation)
        self.retry_task = asyncio.ensure_future(self.reload())
