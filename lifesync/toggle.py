"""
View-model for one sensor card: optimistic toggling reconciled with the manager
"""

import asyncio
import logging
from typing import Optional

from lifesync.config import INIT_TIMEOUT_SECONDS, START_TIMEOUT_SECONDS
from lifesync.models import SensorDescriptor, SensorStartError, SensorStatus
from lifesync.sensor_manager import SensorManager

logger = logging.getLogger(__name__)


class SensorToggle:
    """
    State a UI binds to for a single sensor.

    The local active flag is flipped immediately on toggle and reverted if
    the start fails. Syncing from the manager only ever adopts "active"; it
    never turns a sensor off underneath the user.
    """

    def __init__(self, manager: SensorManager, descriptor: SensorDescriptor,
                 start_timeout: float = START_TIMEOUT_SECONDS,
                 load_timeout: float = INIT_TIMEOUT_SECONDS):
        self.manager = manager
        self.descriptor = descriptor
        self.start_timeout = start_timeout
        self.load_timeout = load_timeout

        self.is_active = False
        self.points = 0
        self.data: Optional[dict] = None
        self.error: Optional[str] = None
        self.remediation: Optional[str] = None
        self.loading = False

    @property
    def sensor_id(self) -> str:
        return self.descriptor.id

    async def mount(self):
        self.manager.register_sensor(
            self.sensor_id,
            self.descriptor.type,
            self.descriptor.category,
            self.on_data,
            self.on_points,
        )
        await self.load_saved()
        self.sync_from_manager()

    async def load_saved(self):
        """Stored points and last snapshot. A slow store leaves the defaults."""
        try:
            points, saved = await asyncio.wait_for(self._read_saved(), self.load_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[SensorToggle] Loading saved state for sensor {self.sensor_id} timed out")
            points, saved = 0, None

        self.points = max(0, points)
        if saved is not None and self.data is None:
            self.data = saved

    async def _read_saved(self):
        points = await self.manager.storage.get_points(self.sensor_id)
        saved = await self.manager.storage.get_sensor_data(self.sensor_id)
        return points, saved

    def sync_from_manager(self):
        if self.manager.is_sensor_active(self.sensor_id) and not self.is_active:
            self.is_active = True

    def on_data(self, data: dict):
        self.data = data

    def on_points(self, delta: int):
        self.points = max(0, self.points + delta)

    # ==================== ACTIONS ====================

    async def toggle(self) -> bool:
        """Flip the sensor. Returns the resulting active flag."""
        if self.is_active:
            await self.deactivate()
        else:
            await self.activate()
        return self.is_active

    async def activate(self) -> bool:
        self.is_active = True
        self.loading = True
        self.error = None
        self.remediation = None
        try:
            started = await asyncio.wait_for(
                self.manager.start_sensor(self.sensor_id, self.descriptor.type, self.descriptor.category),
                self.start_timeout,
            )
            if not started:
                self.is_active = False
                self.error = "Sensor is not registered"
        except SensorStartError as e:
            self.is_active = False
            self.error = str(e)
            self.remediation = e.remediation
        except asyncio.TimeoutError:
            logger.warning(f"[SensorToggle] Sensor {self.sensor_id} took longer than {self.start_timeout}s to start")
            self.is_active = False
            self.error = "Sensor took too long to start"
        finally:
            self.loading = False
        return self.is_active

    async def deactivate(self):
        self.is_active = False
        self.loading = True
        try:
            await self.manager.stop_sensor(self.sensor_id)
            # Pick up the clamped total after the final flush
            self.points = max(0, await self.manager.storage.get_points(self.sensor_id))
        finally:
            self.loading = False

    async def resume_if_was_active(self) -> bool:
        """Restart a sensor that was running when the process last stopped."""
        if self.is_active or not self.manager.was_active(self.sensor_id):
            return self.is_active
        logger.info(f"[SensorToggle] Resuming sensor {self.sensor_id}")
        return await self.activate()

    def status(self) -> SensorStatus:
        return SensorStatus(
            descriptor=self.descriptor,
            is_active=self.is_active,
            points=self.points,
            data=self.data,
            error=self.error,
            remediation=self.remediation,
        )
