"""
Time spent per app category, scored on each foreground change
"""

import logging
import math
from collections import deque
from typing import Iterable, Optional

from lifesync.categorizer import (
    AppCategorizer,
    is_system_app,
    is_system_package,
    package_to_app_name,
)
from lifesync.config import (
    APP_HISTORY_DISPLAYED,
    APP_HISTORY_SIZE,
    APP_SESSIONS_TICK_SECONDS,
    MINUTES_PER_APP_POINT,
)
from lifesync.detection import ForegroundDetector, ForegroundStream
from lifesync.models import (
    AppCategory,
    AppHistoryEntry,
    AppSessionsRecord,
    AppUsageEvent,
    PermissionDeniedError,
    SensorType,
)
from lifesync.sensors.base import Sensor

logger = logging.getLogger(__name__)


def interval_points(category: AppCategory, seconds: float) -> int:
    """+1 per 5 full minutes in a positive app, -1 per 5 in a negative one."""
    blocks = math.floor(seconds / 60 / MINUTES_PER_APP_POINT)
    if category == AppCategory.POSITIVE:
        return blocks
    if category == AppCategory.NEGATIVE:
        return -blocks
    return 0


async def require_foreground_permission(detector: ForegroundDetector, tag: str):
    """Raise PermissionDeniedError unless real foreground detection is granted."""
    permission = await detector.check_permission()
    if not permission.granted or permission.simulation:
        logger.warning(
            f"[{tag}] Foreground detection unavailable "
            f"(granted={permission.granted}, simulation={permission.simulation})"
        )
        raise PermissionDeniedError(
            permission.error or "Usage access permission is required to detect the foreground app"
        )


class AppSessionsSensor(Sensor):
    """
    Attributes each foreground interval to the app that was active when it
    started, then scores it by the app's category.
    """

    sensor_type = SensorType.APP_SESSIONS
    tag = "AppSessions"

    def __init__(self, sensor_id, category, channel, detector: ForegroundDetector,
                 categorizer: Optional[AppCategorizer] = None, **kwargs):
        super().__init__(sensor_id, category, channel, **kwargs)
        self.detector = detector
        self.categorizer = categorizer or AppCategorizer()
        self.stream: Optional[ForegroundStream] = None

        self.current_app: Optional[str] = None
        self.current_start: Optional[float] = None
        self.seconds = {category: 0.0 for category in AppCategory}
        self.history: deque = deque(maxlen=APP_HISTORY_SIZE)
        self.last_app: Optional[str] = None
        self.last_app_category: Optional[AppCategory] = None

    async def _on_start(self):
        await require_foreground_permission(self.detector, self.tag)

        self.stream = ForegroundStream(self.detector, clock=self.clock)
        self.stream.open(self.on_foreground_event)
        try:
            await self.detector.start_background_polling()
        except Exception as e:
            logger.warning(f"[AppSessions] Background polling unavailable: {e}")

        await self.stream.poll_now()
        self.schedule_every(APP_SESSIONS_TICK_SECONDS, self._tick)
        self.emit_data()

    async def _on_stop(self):
        # Account the open interval before the stream goes away
        self.close_current(self.clock())
        self.current_app = None
        self.current_start = None

        if self.stream is not None:
            await self.stream.close()
            self.stream = None
        try:
            await self.detector.stop_background_polling()
        except Exception as e:
            logger.warning(f"[AppSessions] Could not stop background polling: {e}")
        self.emit_data()

    async def _tick(self):
        self.emit_data()

    async def update(self):
        if self.stream is not None:
            await self.stream.poll_now()
        self.emit_data()

    def replay(self, events: Iterable[AppUsageEvent]):
        if self.stream is not None:
            self.stream.replay(events)

    # ==================== ACCOUNTING ====================

    def on_foreground_event(self, event: AppUsageEvent):
        if is_system_package(event.package_name):
            return
        app_name = package_to_app_name(event.package_name)
        if is_system_app(app_name) or app_name == self.current_app:
            return

        self.close_current(event.timestamp)
        self.current_app = app_name
        self.current_start = event.timestamp
        logger.debug(f"[AppSessions] Foreground: {app_name}")
        self.emit_data()

    def close_current(self, end_time: float) -> int:
        """Account the open interval up to `end_time`. Returns the point delta."""
        if self.current_app is None or self.current_start is None:
            return 0

        elapsed = max(0.0, end_time - self.current_start)
        category = self.categorizer.categorize(self.current_app)
        self.seconds[category] += elapsed

        if category != AppCategory.NEUTRAL:
            self.history.append(AppHistoryEntry(
                app=self.current_app,
                category=category,
                time_spent=int(elapsed),
                timestamp=end_time,
            ))

        self.last_app = self.current_app
        self.last_app_category = category
        # The next interval starts where this one ended
        self.current_start = end_time

        delta = interval_points(category, elapsed)
        if delta:
            logger.info(f"[AppSessions] {self.current_app} ({category.value}) {elapsed / 60:.1f} min: {delta:+d}")
        self.award(delta)
        return delta

    # ==================== STATE ====================

    def display_data(self) -> dict:
        return {
            "positive_minutes": int(self.seconds[AppCategory.POSITIVE] // 60),
            "negative_minutes": int(self.seconds[AppCategory.NEGATIVE] // 60),
            "neutral_minutes": int(self.seconds[AppCategory.NEUTRAL] // 60),
            "current_app": self.current_app,
            "current_category": self.categorizer.categorize(self.current_app).value if self.current_app else None,
            "last_app": self.last_app,
            "total_points": self.total_points,
            "app_history": [
                entry.model_dump(mode="json") for entry in list(self.history)[-APP_HISTORY_DISPLAYED:]
            ],
        }

    def snapshot(self) -> dict:
        return AppSessionsRecord(
            positive_seconds=int(self.seconds[AppCategory.POSITIVE]),
            negative_seconds=int(self.seconds[AppCategory.NEGATIVE]),
            neutral_seconds=int(self.seconds[AppCategory.NEUTRAL]),
            total_points=self.total_points,
            last_app=self.last_app,
            last_app_category=self.last_app_category,
            app_history=list(self.history),
        ).model_dump(mode="json")

    def restore(self, record: Optional[dict]):
        if not record:
            return
        restored = AppSessionsRecord.model_validate(record)
        self.seconds[AppCategory.POSITIVE] = float(restored.positive_seconds)
        self.seconds[AppCategory.NEGATIVE] = float(restored.negative_seconds)
        self.seconds[AppCategory.NEUTRAL] = float(restored.neutral_seconds)
        self.total_points = restored.total_points
        self.last_app = restored.last_app
        self.last_app_category = restored.last_app_category
        self.history = deque(restored.app_history, maxlen=APP_HISTORY_SIZE)
        logger.info(f"[AppSessions] Restored {len(self.history)} history entries")
