"""
Phone use scored by time of day: healthy hours earn, late night costs
"""

import logging
import math
from collections import deque
from typing import Iterable, Optional

from lifesync.categorizer import is_system_package
from lifesync.config import (
    HEALTHY_MINUTES_PER_POINT,
    PHONE_SESSION_HISTORY_SIZE,
    PHONE_UPDATE_INTERVAL,
    UNHEALTHY_MINUTES_PER_POINT,
)
from lifesync.detection import ForegroundDetector, ForegroundStream
from lifesync.models import AppUsageEvent, PhoneSession, PhoneUsageRecord, SensorType
from lifesync.sensors.app_sessions import require_foreground_permission
from lifesync.sensors.base import Sensor
from lifesync.utils import is_healthy_hour

logger = logging.getLogger(__name__)

SECONDS_PER_MINUTE = 60


def crossed_thresholds(previous: float, total: float, per_point: int) -> int:
    """How many multiples of `per_point` lie in (previous, total]."""
    return math.floor(total / per_point) - math.floor(previous / per_point)


class PhoneUsageSensor(Sensor):
    """
    Samples whether the phone is in use every 10 seconds and accumulates
    healthy and unhealthy minutes. Also counts pickups from foreground changes.
    """

    sensor_type = SensorType.PHONE_USAGE
    tag = "PhoneUsage"

    def __init__(self, sensor_id, category, channel, detector: ForegroundDetector, **kwargs):
        super().__init__(sensor_id, category, channel, **kwargs)
        self.detector = detector
        self.stream: Optional[ForegroundStream] = None

        self.healthy_minutes = 0.0
        self.unhealthy_minutes = 0.0
        self.pickups = 0
        self.sessions: deque = deque(maxlen=PHONE_SESSION_HISTORY_SIZE)

        self.session_start: Optional[float] = None
        self.interval_start: Optional[float] = None
        self.last_package: Optional[str] = None

    @property
    def is_using_phone(self) -> bool:
        return self.interval_start is not None

    @property
    def average_session_minutes(self) -> float:
        if not self.sessions:
            return 0.0
        return sum(session.duration for session in self.sessions) / len(self.sessions)

    async def _on_start(self):
        await require_foreground_permission(self.detector, self.tag)

        self.stream = ForegroundStream(self.detector, clock=self.clock)
        self.stream.open(self.on_foreground_event)
        try:
            await self.detector.start_background_polling()
        except Exception as e:
            logger.warning(f"[PhoneUsage] Background polling unavailable: {e}")

        await self.check_usage()
        self.schedule_every(PHONE_UPDATE_INTERVAL, self.check_usage)

    async def _on_stop(self):
        if self.is_using_phone:
            self.end_session(self.clock())
        if self.stream is not None:
            await self.stream.close()
            self.stream = None
        try:
            await self.detector.stop_background_polling()
        except Exception as e:
            logger.warning(f"[PhoneUsage] Could not stop background polling: {e}")
        self.emit_data()

    async def update(self):
        await self.check_usage()

    def replay(self, events: Iterable[AppUsageEvent]):
        if self.stream is not None:
            self.stream.replay(events)

    def on_foreground_event(self, event: AppUsageEvent):
        if is_system_package(event.package_name) or event.package_name == self.last_package:
            return
        self.last_package = event.package_name
        self.pickups += 1
        self.emit_data()

    # ==================== ACCOUNTING ====================

    async def check_usage(self):
        """One sampling step of the active/idle state machine."""
        package = await self.detector.get_current_foreground_app()
        active = bool(package)
        now = self.clock()

        if active and not self.is_using_phone:
            self.session_start = now
            self.interval_start = now
            logger.debug("[PhoneUsage] Session started")
        elif active:
            while now - self.interval_start >= SECONDS_PER_MINUTE:
                self.score_minutes(1.0)
                self.interval_start += SECONDS_PER_MINUTE
        elif self.is_using_phone:
            self.end_session(now)

        self.emit_data()

    def end_session(self, end_time: float):
        partial = max(0.0, end_time - self.interval_start) / SECONDS_PER_MINUTE
        if partial > 0:
            self.score_minutes(partial)

        session = PhoneSession(
            start_time=self.session_start,
            end_time=end_time,
            duration=(end_time - self.session_start) / SECONDS_PER_MINUTE,
            was_healthy=is_healthy_hour(self.now()),
        )
        self.sessions.append(session)
        self.session_start = None
        self.interval_start = None
        logger.info(
            f"[PhoneUsage] Session ended after {session.duration:.1f} min "
            f"(average {self.average_session_minutes:.1f} min)"
        )

    def score_minutes(self, minutes: float) -> int:
        """Add minutes to the bucket for the current hour. Returns the point delta."""
        if is_healthy_hour(self.now()):
            previous = self.healthy_minutes
            self.healthy_minutes += minutes
            delta = crossed_thresholds(previous, self.healthy_minutes, HEALTHY_MINUTES_PER_POINT)
        else:
            previous = self.unhealthy_minutes
            self.unhealthy_minutes += minutes
            delta = -crossed_thresholds(previous, self.unhealthy_minutes, UNHEALTHY_MINUTES_PER_POINT)
        self.award(delta)
        return delta

    # ==================== STATE ====================

    def display_data(self) -> dict:
        return {
            "healthy_minutes": math.floor(self.healthy_minutes),
            "unhealthy_minutes": math.floor(self.unhealthy_minutes),
            "pickups": self.pickups,
            "is_using_phone": self.is_using_phone,
            "is_healthy_hour": is_healthy_hour(self.now()),
            "session_count": len(self.sessions),
            "average_session_minutes": round(self.average_session_minutes, 1),
            "total_points": self.total_points,
        }

    def snapshot(self) -> dict:
        return PhoneUsageRecord(
            healthy_minutes=self.healthy_minutes,
            unhealthy_minutes=self.unhealthy_minutes,
            pickups=self.pickups,
            total_points=self.total_points,
            sessions=list(self.sessions),
        ).model_dump(mode="json")

    def restore(self, record: Optional[dict]):
        if not record:
            return
        restored = PhoneUsageRecord.model_validate(record)
        self.healthy_minutes = restored.healthy_minutes
        self.unhealthy_minutes = restored.unhealthy_minutes
        self.pickups = restored.pickups
        self.total_points = restored.total_points
        self.sessions = deque(restored.sessions, maxlen=PHONE_SESSION_HISTORY_SIZE)
