"""
screen.py: state container for the single weather screen.

The screen owns exactly one UiState. Network calls run on a worker pool and
their results come back through the locked transition methods below; views
only ever see immutable ScreenSnapshot objects.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Union

from weather_client import (
    DecodeError,
    FetchError,
    InvalidInput,
    NetworkError,
    WeatherClient,
    WeatherDetail,
    WeatherSummary,
)

logger = logging.getLogger(__name__)

BUSY_IGNORE = "ignore"
BUSY_RESTART = "restart"
BUSY_POLICIES = (BUSY_IGNORE, BUSY_RESTART)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Loaded:
    summary: WeatherSummary
    icon: Optional[bytes] = None


@dataclass(frozen=True)
class Error:
    message: str


UiState = Union[Idle, Loading, Loaded, Error]

PANEL_HIDDEN = "hidden"
PANEL_LOADING = "loading"
PANEL_SHOWN = "shown"


@dataclass(frozen=True)
class ScreenSnapshot:
    state: UiState
    city: str = ""
    panel: str = PANEL_HIDDEN
    detail: Optional[WeatherDetail] = None
    revision: int = 0

    @property
    def busy(self) -> bool:
        return isinstance(self.state, Loading) or self.panel == PANEL_LOADING

    @property
    def details_label(self) -> str:
        return "Show more details" if self.panel == PANEL_HIDDEN else "Hide more details"


def error_message(err: Optional[FetchError]) -> str:
    if isinstance(err, InvalidInput):
        return "Invalid URL"
    if isinstance(err, DecodeError):
        return "Failed to decode response"
    if isinstance(err, NetworkError):
        return f"Error: {err}"
    return "Error: Unknown error"


def format_temperature(celsius: float) -> str:
    # int() truncates toward zero: 18.7 -> 18, -3.9 -> -3
    return f"{int(celsius)}°C"


def format_description(text: str) -> str:
    return text.title()


def format_clock(epoch_seconds: int) -> str:
    return datetime.fromtimestamp(epoch_seconds).strftime("%H:%M")


def visibility_km(meters: int) -> int:
    return meters // 1000


class Screen:
    def __init__(self, client: WeatherClient, executor: Executor | None = None,
                 busy_policy: str = BUSY_IGNORE) -> None:
        if busy_policy not in BUSY_POLICIES:
            raise ValueError(f"unknown busy policy {busy_policy!r}")
        self.client = client
        self.busy_policy = busy_policy
        self._executor = executor or ThreadPoolExecutor(max_workers=3, thread_name_prefix="weather")
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending = 0
        self._generation = 0
        self._detail_inflight = None
        self._delivered_revision = 0
        self._publish_lock = threading.RLock()
        self._snapshot = ScreenSnapshot(state=Idle())
        self._subscribers: List[Callable[[ScreenSnapshot], None]] = []

    # -- read side -----------------------------------------------------------

    def snapshot(self) -> ScreenSnapshot:
        with self._lock:
            return self._snapshot

    def subscribe(self, callback: Callable[[ScreenSnapshot], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def wait_idle(self, timeout: float | None = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    # -- transitions ---------------------------------------------------------

    def submit(self, city: str) -> bool:
        """Start a fetch cycle for ``city``; returns False if the submit was ignored."""
        with self._lock:
            if isinstance(self._snapshot.state, Loading) and self.busy_policy == BUSY_IGNORE:
                logger.info("Ignoring submit for %r: a fetch is already in flight", city)
                return False
            self._generation += 1
            generation = self._generation
            self._commit(state=Loading(), city=city, panel=PANEL_HIDDEN, detail=None)
        self._publish()
        self._dispatch(self._run_summary, generation, city)
        return True

    def toggle_details(self) -> None:
        with self._lock:
            current = self._snapshot
            if current.panel != PANEL_HIDDEN:
                self._commit(panel=PANEL_HIDDEN, detail=None)
                start = None
            elif isinstance(current.state, Loaded):
                self._commit(panel=PANEL_LOADING)
                start = None
                # a detail fetch for this cycle may still be running after a hide
                if self._detail_inflight != self._generation:
                    self._detail_inflight = self._generation
                    start = (self._generation, current.state.summary.city_name)
            else:
                return
        self._publish()
        if start:
            self._dispatch(self._run_detail, *start)

    # -- workers -------------------------------------------------------------

    def _run_summary(self, generation: int, city: str) -> None:
        try:
            summary = self.client.fetch_summary(city)
        except FetchError as e:
            logger.warning("Weather fetch for %r failed: %s", city, e)
            failed = Error(error_message(e))
            self._apply(generation, lambda s: {"state": failed})
            return
        except Exception:
            logger.exception("Unexpected error fetching weather for %r", city)
            failed = Error(error_message(None))
            self._apply(generation, lambda s: {"state": failed})
            return
        if self._apply(generation, lambda s: {"state": Loaded(summary)}):
            self._dispatch(self._run_icon, generation, summary.icon_code)

    def _run_icon(self, generation: int, icon_code: str) -> None:
        icon = self.client.fetch_icon(icon_code)
        if icon is None:
            return

        def attach(s: ScreenSnapshot):
            if isinstance(s.state, Loaded):
                return {"state": replace(s.state, icon=icon)}
            return None

        self._apply(generation, attach)

    def _run_detail(self, generation: int, city_name: str) -> None:
        try:
            detail = self.client.fetch_detail(city_name)
        except FetchError as e:
            logger.warning("Detail fetch for %r failed: %s", city_name, e)
            detail = None
        except Exception:
            logger.exception("Unexpected error fetching details for %r", city_name)
            detail = None

        def finish(s: ScreenSnapshot):
            # runs under self._lock, so a re-opened panel never races a second fetch
            self._detail_inflight = None
            if s.panel != PANEL_LOADING:
                return None
            if detail is None:
                return {"panel": PANEL_HIDDEN}
            return {"panel": PANEL_SHOWN, "detail": detail}

        self._apply(generation, finish)

    # -- plumbing ------------------------------------------------------------

    def _dispatch(self, fn, *args) -> None:
        with self._lock:
            self._pending += 1

        def run() -> None:
            try:
                fn(*args)
            except Exception:
                logger.exception("Unexpected error in weather worker")
                raise
            finally:
                with self._idle:
                    self._pending -= 1
                    self._idle.notify_all()

        self._executor.submit(run)

    def _apply(self, generation: int, change) -> bool:
        """Apply ``change(snapshot)`` if ``generation`` is still current."""
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping result from stale fetch cycle %d", generation)
                return False
            fields = change(self._snapshot)
            if not fields:
                return False
            self._commit(**fields)
        self._publish()
        return True

    def _commit(self, **fields) -> ScreenSnapshot:
        # caller holds self._lock
        self._snapshot = replace(self._snapshot, revision=self._snapshot.revision + 1, **fields)
        return self._snapshot

    def _publish(self) -> None:
        """Deliver the latest snapshot to subscribers, in commit order."""
        with self._publish_lock:
            with self._lock:
                latest = self._snapshot
                subscribers = list(self._subscribers)
            if latest.revision <= self._delivered_revision:
                return
            self._delivered_revision = latest.revision
            for callback in subscribers:
                # a subscriber that triggered a newer transition already delivered it
                if self._delivered_revision != latest.revision:
                    return
                try:
                    callback(latest)
                except Exception:
                    logger.exception("Screen subscriber failed")

    def shutdown(self) -> None:
        if isinstance(self._executor, ThreadPoolExecutor):
            self._executor.shutdown(wait=False)
