"""
Foreground app detection: the collaborator interface, a detector fed by
device reports, and the merged event stream the usage sensors consume
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Iterable, List, Optional

from lifesync.config import (
    BACKUP_POLL_INTERVAL,
    DEDUP_WINDOW_SECONDS,
    EVENT_STALE_AFTER,
    SAVED_HISTORY_SIZE,
)
from lifesync.models import AppUsageEvent, PermissionStatus

logger = logging.getLogger(__name__)

ForegroundCallback = Callable[[AppUsageEvent], None]


class ForegroundDetector(ABC):
    """Platform service that knows which app is in the foreground."""

    @abstractmethod
    async def check_permission(self) -> PermissionStatus:
        ...

    @abstractmethod
    async def get_current_foreground_app(self) -> Optional[str]:
        """Package name of the foreground app, or None when the device is idle."""

    @abstractmethod
    def on_foreground_changed(self, callback: ForegroundCallback) -> Callable[[], None]:
        """Subscribe to foreground changes. Returns an unsubscribe function."""

    # Optional capabilities; platforms without them keep these no-ops

    async def get_saved_history(self) -> List[AppUsageEvent]:
        return []

    async def save_active_sensors(self, sensor_ids: List[str]) -> None:
        return None

    async def start_background_polling(self) -> None:
        return None

    async def stop_background_polling(self) -> None:
        return None


class ReportedForegroundDetector(ForegroundDetector):
    """
    Detector fed by the device through the HTTP API.
    While background polling is enabled every report is also kept in a bounded
    history so it can be replayed after the engine resumes.
    """

    def __init__(self, clock: Callable[[], float] = time.time, history_size: int = SAVED_HISTORY_SIZE):
        self.clock = clock
        self.permission = PermissionStatus(granted=False, simulation=False, method="reported")
        self.current_package: Optional[str] = None
        self.polling_clients = 0
        self.active_sensor_ids: List[str] = []
        self._listeners: List[ForegroundCallback] = []
        self._saved: deque = deque(maxlen=history_size)

    def set_permission(self, granted: bool, simulation: bool = False, method: Optional[str] = None):
        self.permission = PermissionStatus(
            granted=granted,
            simulation=simulation,
            method=method or "reported",
        )
        logger.info(f"[Detection] Permission updated: granted={granted} simulation={simulation}")

    def report(self, package_name: str, timestamp: Optional[float] = None) -> AppUsageEvent:
        """Record a foreground change and notify subscribers."""
        event = AppUsageEvent(
            package_name=package_name,
            timestamp=self.clock() if timestamp is None else timestamp,
        )
        self.current_package = package_name
        if self.background_polling:
            self._saved.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"[Detection] Listener failed for {package_name}")
        return event

    def report_idle(self):
        """The screen went off or the device is locked."""
        self.current_package = None

    async def check_permission(self) -> PermissionStatus:
        return self.permission

    async def get_current_foreground_app(self) -> Optional[str]:
        return self.current_package

    def on_foreground_changed(self, callback: ForegroundCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def get_saved_history(self) -> List[AppUsageEvent]:
        """Drain the events recorded while polling in the background."""
        history = list(self._saved)
        self._saved.clear()
        return history

    async def save_active_sensors(self, sensor_ids: List[str]) -> None:
        self.active_sensor_ids = list(sensor_ids)

    @property
    def background_polling(self) -> bool:
        return self.polling_clients > 0

    async def start_background_polling(self) -> None:
        self.polling_clients += 1

    async def stop_background_polling(self) -> None:
        self.polling_clients = max(0, self.polling_clients - 1)


class ForegroundStream:
    """
    Single stream of foreground events for one consumer.

    Push events from the detector are delivered as they arrive. A fallback
    poll runs every `poll_interval` seconds but only queries the detector when
    no push event has been seen for more than `stale_after` seconds. An event
    for the same package as the last delivered one within `dedup_window`
    seconds is dropped, as is any event older than the last delivered one.
    """

    def __init__(
        self,
        detector: ForegroundDetector,
        clock: Callable[[], float] = time.time,
        poll_interval: float = BACKUP_POLL_INTERVAL,
        stale_after: float = EVENT_STALE_AFTER,
        dedup_window: float = DEDUP_WINDOW_SECONDS,
    ):
        self.detector = detector
        self.clock = clock
        self.poll_interval = poll_interval
        self.stale_after = stale_after
        self.dedup_window = dedup_window

        self.last_event_at: Optional[float] = None
        self.last_delivered: Optional[AppUsageEvent] = None

        self._callback: Optional[ForegroundCallback] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._callback is not None

    def open(self, callback: ForegroundCallback):
        if self.is_open:
            raise RuntimeError("Foreground stream already open")
        self._callback = callback
        self.last_event_at = self.clock()
        self._unsubscribe = self.detector.on_foreground_changed(self._on_push)
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def close(self):
        # Unsubscribe first so nothing is delivered while the poller winds down
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._callback = None

        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _on_push(self, event: AppUsageEvent):
        self.last_event_at = self.clock()
        self._deliver(event)

    async def _poll_loop(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            if self.last_event_at is None or self.clock() - self.last_event_at > self.stale_after:
                try:
                    await self.poll_now()
                except Exception:
                    logger.exception("[Detection] Fallback poll failed")

    async def poll_now(self) -> bool:
        """Ask the detector for the current app and deliver it. Returns True if delivered."""
        package = await self.detector.get_current_foreground_app()
        if not package:
            return False
        return self._deliver(AppUsageEvent(package_name=package, timestamp=self.clock()))

    def replay(self, events: Iterable[AppUsageEvent]) -> int:
        """Deliver saved events in time order. Returns how many were delivered."""
        delivered = 0
        for event in sorted(events, key=lambda e: e.timestamp):
            if self._deliver(event):
                delivered += 1
        if delivered:
            logger.info(f"[Detection] Replayed {delivered} saved events")
        return delivered

    def _deliver(self, event: AppUsageEvent) -> bool:
        if self._callback is None:
            return False

        last = self.last_delivered
        if last is not None:
            if event.timestamp < last.timestamp:
                return False
            if (event.package_name == last.package_name
                    and event.timestamp - last.timestamp < self.dedup_window):
                return False

        self.last_delivered = event
        try:
            self._callback(event)
        except Exception:
            logger.exception(f"[Detection] Consumer failed on {event.package_name}")
        return True
