"""
Process-wide orchestration of sensor processors.
Keeps one live processor per sensor id, routes its output to the current UI
callbacks and persists state across restarts and background transitions.
"""

import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, NamedTuple, Optional, Set, Tuple

from pydantic import ValidationError

from lifesync.config import INIT_TIMEOUT_SECONDS, PERSIST_THROTTLE_SECONDS
from lifesync.detection import ForegroundDetector
from lifesync.models import SensorStartError
from lifesync.sensors import create_sensor
from lifesync.sensors.base import DATA, POINTS, Sensor, SensorChannel
from lifesync.storage import SensorStorage
from lifesync.utils import now_local

logger = logging.getLogger(__name__)


class SensorCallbacks(NamedTuple):
    on_data: Optional[Callable[[dict], None]] = None
    on_points: Optional[Callable[[int], None]] = None


class SensorManager:
    """
    Owns the sensor registry. Collaborators are injected so a process builds
    exactly one manager and tests can build as many as they like.
    """

    def __init__(self, storage: SensorStorage, detector: ForegroundDetector,
                 accelerometer=None, github=None,
                 clock: Callable[[], float] = time.time,
                 now: Callable[[], datetime] = now_local,
                 throttle_seconds: float = PERSIST_THROTTLE_SECONDS):
        self.storage = storage
        self.detector = detector
        self.accelerometer = accelerometer
        self.github = github
        self.clock = clock
        self.now = now
        self.throttle_seconds = throttle_seconds

        self.sensors: Dict[str, Sensor] = {}
        self.callbacks: Dict[str, SensorCallbacks] = {}
        self.is_initialized = False
        self.active_on_load: Dict[str, dict] = {}

        self._registering: Set[str] = set()
        self._pending_points: Dict[str, List[int]] = defaultdict(list)
        self._last_data_save: Dict[str, float] = {}
        self._last_points_save: Dict[str, float] = {}
        self._pending_writes: Set[asyncio.Task] = set()
        self._deferred_writes: Dict[Tuple[str, str], asyncio.Task] = {}
        self._points_lock = asyncio.Lock()

    # ==================== INITIALIZATION ====================

    async def initialize(self, timeout: float = INIT_TIMEOUT_SECONDS):
        """Load the stored active set. A slow store is abandoned after `timeout`."""
        if self.is_initialized:
            logger.debug("[SensorManager] Already initialized")
            return

        try:
            self.active_on_load = await asyncio.wait_for(self.storage.load_active_sensors(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[SensorManager] Loading active sensors timed out after {timeout}s")
            self.active_on_load = {}

        if self.active_on_load:
            logger.info(f"[SensorManager] Previously active sensors: {sorted(self.active_on_load)}")
        self.is_initialized = True

    def was_active(self, sensor_id: str) -> bool:
        return sensor_id in self.active_on_load

    # ==================== REGISTRY ====================

    def register_sensor(self, sensor_id: str, sensor_type, category,
                        on_data: Optional[Callable[[dict], None]] = None,
                        on_points: Optional[Callable[[int], None]] = None) -> Sensor:
        """
        Register callbacks for a sensor, creating its processor on first use.
        Registering again only swaps the callbacks.
        """
        if sensor_id in self._registering:
            raise RuntimeError(f"Sensor {sensor_id} is already being registered")

        self.callbacks[sensor_id] = SensorCallbacks(on_data, on_points)
        if sensor_id in self.sensors:
            logger.debug(f"[SensorManager] Sensor {sensor_id} already exists, callbacks updated")
            return self.sensors[sensor_id]

        self._registering.add(sensor_id)
        try:
            channel = SensorChannel(sensor_id)
            channel.subscribe(DATA, lambda data: self._on_sensor_data(sensor_id, data))
            channel.subscribe(POINTS, lambda delta: self._on_sensor_points(sensor_id, delta))
            sensor = create_sensor(
                sensor_type, sensor_id, category, channel,
                detector=self.detector,
                accelerometer=self.accelerometer,
                github=self.github,
                clock=self.clock,
                now=self.now,
            )
            self.sensors[sensor_id] = sensor
        finally:
            self._registering.discard(sensor_id)

        logger.info(f"[SensorManager] Sensor {sensor_id} registered ({sensor.sensor_type.value})")
        return sensor

    def update_callbacks(self, sensor_id: str, on_data=None, on_points=None):
        if sensor_id in self.callbacks:
            self.callbacks[sensor_id] = SensorCallbacks(on_data, on_points)

    def get_sensor(self, sensor_id: str) -> Optional[Sensor]:
        return self.sensors.get(sensor_id)

    def is_sensor_active(self, sensor_id: str) -> bool:
        sensor = self.sensors.get(sensor_id)
        return sensor is not None and sensor.is_active

    # ==================== CHANNEL TRAMPOLINES ====================

    def _on_sensor_data(self, sensor_id: str, data: dict):
        callbacks = self.callbacks.get(sensor_id)
        if callbacks and callbacks.on_data:
            try:
                callbacks.on_data(data)
            except Exception:
                logger.exception(f"[SensorManager] Data callback failed for sensor {sensor_id}")

        self._throttled(DATA, sensor_id, self._last_data_save, self._persist_snapshot)

    def _on_sensor_points(self, sensor_id: str, delta: int):
        callbacks = self.callbacks.get(sensor_id)
        if callbacks and callbacks.on_points:
            try:
                callbacks.on_points(delta)
            except Exception:
                logger.exception(f"[SensorManager] Points callback failed for sensor {sensor_id}")

        self._pending_points[sensor_id].append(delta)
        self._throttled(POINTS, sensor_id, self._last_points_save, self.flush_points)

    def _throttled(self, topic: str, sensor_id: str, last_saves: Dict[str, float], write):
        """
        Write now if the sensor's window has passed, otherwise schedule one
        trailing write at the end of the window so the latest state lands.
        """
        now = self.clock()
        elapsed = now - last_saves.get(sensor_id, float("-inf"))
        if elapsed >= self.throttle_seconds:
            last_saves[sensor_id] = now
            self._spawn(write(sensor_id))
            return

        key = (topic, sensor_id)
        if key not in self._deferred_writes:
            self._deferred_writes[key] = asyncio.get_running_loop().create_task(
                self._deferred_write(key, self.throttle_seconds - elapsed, last_saves, write)
            )

    async def _deferred_write(self, key, delay: float, last_saves: Dict[str, float], write):
        sensor_id = key[1]
        try:
            await asyncio.sleep(delay)
        finally:
            if self._deferred_writes.get(key) is asyncio.current_task():
                del self._deferred_writes[key]
        last_saves[sensor_id] = self.clock()
        await write(sensor_id)

    async def _cancel_deferred_writes(self, sensor_id: Optional[str] = None):
        """Drop trailing writes; callers persist the final state themselves."""
        keys = [key for key in self._deferred_writes if sensor_id is None or key[1] == sensor_id]
        tasks = [self._deferred_writes.pop(key) for key in keys]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def drain(self):
        """Wait for background writes started by the trampolines."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    # ==================== PERSISTENCE ====================

    async def _persist_snapshot(self, sensor_id: str):
        sensor = self.sensors.get(sensor_id)
        if sensor is None:
            return
        try:
            await self.storage.save_sensor_data(sensor_id, sensor.snapshot())
        except Exception:
            logger.exception(f"[SensorManager] Error saving data for sensor {sensor_id}")

    async def flush_points(self, sensor_id: str):
        """Apply queued point deltas one by one, clamping after each."""
        sensor = self.sensors.get(sensor_id)
        category = sensor.category.value if sensor else None
        async with self._points_lock:
            deltas = self._pending_points.pop(sensor_id, [])
            for delta in deltas:
                await self.storage.apply_points_delta(sensor_id, delta, category)

    async def flush_all_points(self):
        for sensor_id in list(self._pending_points):
            await self.flush_points(sensor_id)

    async def save_active_sensors(self):
        active = {
            sensor_id: {
                "type": sensor.sensor_type.value,
                "category": sensor.category.value,
                "is_active": True,
            }
            for sensor_id, sensor in self.sensors.items()
            if sensor.is_active
        }
        await self.storage.save_active_sensors(active)
        try:
            await self.detector.save_active_sensors(sorted(active))
        except Exception as e:
            logger.warning(f"[SensorManager] Could not save active sensors to the detector: {e}")
        logger.debug(f"[SensorManager] Active sensors saved: {sorted(active)}")

    async def save_all_sensor_states(self):
        """Unthrottled persist of every processor, pending points and the active set."""
        await self.flush_all_points()
        for sensor_id in list(self.sensors):
            await self._persist_snapshot(sensor_id)
        await self.save_active_sensors()

    # ==================== LIFECYCLE ====================

    async def start_sensor(self, sensor_id: str, sensor_type=None, category=None,
                           restore_data: Optional[dict] = None) -> bool:
        """
        Start a registered sensor, restoring its last snapshot first.
        Returns False when the sensor is not registered; start errors propagate.
        """
        sensor = self.sensors.get(sensor_id)
        if sensor is None:
            logger.warning(f"[SensorManager] Sensor {sensor_id} is not registered. Register it first.")
            return False
        if sensor.is_active:
            return True

        record = restore_data if restore_data is not None else await self.storage.get_sensor_data(sensor_id)
        if record:
            try:
                sensor.restore(record)
            except ValidationError as e:
                logger.warning(f"[SensorManager] Ignoring invalid saved state for sensor {sensor_id}: {e}")

        try:
            await sensor.start()
        except SensorStartError as e:
            logger.error(f"[SensorManager] Sensor {sensor_id} could not start: {e}")
            raise

        await self.save_active_sensors()
        logger.info(f"[SensorManager] Sensor {sensor_id} started")
        return True

    async def stop_sensor(self, sensor_id: str):
        """Stop a sensor and persist its final state. The instance is kept for reuse."""
        sensor = self.sensors.get(sensor_id)
        if sensor is None:
            logger.warning(f"[SensorManager] Sensor {sensor_id} does not exist")
            return

        try:
            await sensor.stop()
        except Exception:
            logger.exception(f"[SensorManager] Error stopping sensor {sensor_id}")
        await self._cancel_deferred_writes(sensor_id)
        await self.flush_points(sensor_id)
        await self._persist_snapshot(sensor_id)
        await self.save_active_sensors()
        logger.info(f"[SensorManager] Sensor {sensor_id} stopped")

    async def on_app_state_change(self, state: str):
        if state == "active":
            logger.info("[SensorManager] App returned to the foreground, verifying sensors")
            await self.verify_active_sensors()
        elif state in ("background", "inactive"):
            logger.info("[SensorManager] App moved to the background, saving sensor state")
            await self.save_all_sensor_states()
        else:
            logger.warning(f"[SensorManager] Unknown app state: {state}")

    async def verify_active_sensors(self):
        """Replay events saved while suspended, then refresh every active sensor."""
        try:
            history = await self.detector.get_saved_history()
        except Exception as e:
            logger.error(f"[SensorManager] Error loading saved app history: {e}")
            history = []

        for sensor_id, sensor in list(self.sensors.items()):
            if not sensor.is_active:
                continue
            try:
                if history:
                    sensor.replay(history)
                await sensor.update()
            except Exception:
                logger.exception(f"[SensorManager] Error verifying sensor {sensor_id}")

    async def shutdown(self):
        """Persist and stop everything while keeping the active set for the next run."""
        await self.save_all_sensor_states()
        for sensor_id, sensor in list(self.sensors.items()):
            try:
                await sensor.stop()
            except Exception:
                logger.exception(f"[SensorManager] Error stopping sensor {sensor_id}")
            await self._persist_snapshot(sensor_id)
        await self._cancel_deferred_writes()
        await self.drain()
        await self.flush_all_points()

    async def cleanup(self):
        """Stop all sensors and forget them, e.g. on logout."""
        logger.info("[SensorManager] Cleaning up all sensors")
        for sensor_id in list(self.sensors):
            await self.stop_sensor(sensor_id)
        await self._cancel_deferred_writes()
        await self.drain()
        await self.flush_all_points()

        self.sensors.clear()
        self.callbacks.clear()
        self._last_data_save.clear()
        self._last_points_save.clear()
        await self.storage.clear_active_sensors()
        self.active_on_load = {}
        self.is_initialized = False
