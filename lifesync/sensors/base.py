"""
Shared sensor machinery: the publish/subscribe channel a sensor emits on and
the lifecycle base class every sensor processor derives from
"""

import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from lifesync.models import AppUsageEvent, SensorState, SensorType, WellbeingCategory
from lifesync.utils import now_local

logger = logging.getLogger(__name__)

DATA = "data"
POINTS = "points"

Handler = Callable[[Any], None]


class SensorChannel:
    """In-process channel with two topics: display data and point deltas."""

    def __init__(self, sensor_id: str):
        self.sensor_id = sensor_id
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Subscribe a handler to a topic. Returns an unsubscribe function."""
        self._subscribers[topic].append(handler)

        def unsubscribe():
            if handler in self._subscribers[topic]:
                self._subscribers[topic].remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any):
        for handler in list(self._subscribers.get(topic, [])):
            try:
                handler(payload)
            except Exception as exc:
                logger.error(f"[Channel] Handler failed for sensor {self.sensor_id} topic '{topic}': {exc}")

    def publish_data(self, data: dict):
        self.publish(DATA, data)

    def publish_points(self, delta: int):
        self.publish(POINTS, delta)


class Sensor:
    """
    Base class for sensor processors.

    Subclasses implement `_on_start`, `_on_stop`, `snapshot`, `restore` and
    `display_data`. Timers created with `schedule_every` are owned by the
    sensor and are cancelled and awaited before `stop()` returns.
    """

    sensor_type: SensorType
    tag = "Sensor"

    def __init__(self, sensor_id: str, category: WellbeingCategory, channel: SensorChannel,
                 clock: Callable[[], float] = time.time,
                 now: Callable[[], datetime] = now_local):
        self.sensor_id = sensor_id
        self.category = WellbeingCategory(category)
        self.channel = channel
        self.clock = clock
        self.now = now
        self.state = SensorState.INACTIVE
        self.total_points = 0
        self._tasks: List[asyncio.Task] = []

    @property
    def is_active(self) -> bool:
        return self.state == SensorState.ACTIVE

    # ==================== LIFECYCLE ====================

    async def start(self):
        if self.state in (SensorState.ACTIVE, SensorState.STARTING):
            return
        self.state = SensorState.STARTING
        logger.info(f"[{self.tag}] Starting sensor {self.sensor_id}")
        try:
            await self._on_start()
        except (Exception, asyncio.CancelledError):
            await self._cancel_tasks()
            self.state = SensorState.INACTIVE
            raise
        self.state = SensorState.ACTIVE
        logger.info(f"[{self.tag}] Sensor {self.sensor_id} started")

    async def stop(self):
        if self.state in (SensorState.INACTIVE, SensorState.STOPPING):
            return
        self.state = SensorState.STOPPING
        try:
            await self._on_stop()
        finally:
            await self._cancel_tasks()
            self.state = SensorState.INACTIVE
        logger.info(f"[{self.tag}] Sensor {self.sensor_id} stopped")

    async def _on_start(self):
        raise NotImplementedError

    async def _on_stop(self):
        return None

    async def update(self):
        """Refresh and republish; called when the app returns to the foreground."""
        self.emit_data()

    def replay(self, events: Iterable[AppUsageEvent]):
        """Consume foreground events recorded while suspended. Most sensors ignore them."""
        return None

    # ==================== TIMERS ====================

    def schedule_every(self, interval: float, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run_every(interval, callback))
        self._tasks.append(task)
        return task

    async def _run_every(self, interval: float, callback: Callable[[], Awaitable[None]]):
        while True:
            await asyncio.sleep(interval)
            try:
                await callback()
            except Exception:
                logger.exception(f"[{self.tag}] Periodic update failed for sensor {self.sensor_id}")

    async def _cancel_tasks(self):
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ==================== STATE ====================

    def snapshot(self) -> dict:
        """Full-precision serializable state."""
        raise NotImplementedError

    def restore(self, record: Optional[dict]):
        raise NotImplementedError

    def display_data(self) -> dict:
        raise NotImplementedError

    def emit_data(self):
        self.channel.publish_data(self.display_data())

    def award(self, delta: int):
        """Record a signed point delta and publish it. Zero deltas are not published."""
        if not delta:
            return
        self.total_points += delta
        self.channel.publish_points(delta)
