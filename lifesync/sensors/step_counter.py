"""
Step counting from accelerometer magnitude
"""

import logging
import math
from collections import deque
from typing import Callable, Optional

from lifesync.config import (
    ACCELEROMETER_INTERVAL_SECONDS,
    CALORIES_PER_STEP,
    DETECTION_RESET_GAP,
    LARGE_STEP_CHANGE,
    LARGE_STEP_MIN_INTERVAL,
    LONG_STEP_GAP,
    MAX_STEP_INTERVAL,
    MAX_STEP_MAGNITUDE,
    MIN_STEP_INTERVAL,
    MIN_STEP_MAGNITUDE,
    SMOOTHING_WINDOW,
    STEP_LENGTH_METERS,
    STEP_THRESHOLD,
    STEPS_PER_POINT,
    VEHICLE_CHANGE_FREQUENCY,
    VEHICLE_MEAN_MAX,
    VEHICLE_MEAN_MIN,
    VEHICLE_MIN_INDICATORS,
    VEHICLE_RANGE_THRESHOLD,
    VEHICLE_SMALL_CHANGE,
    VEHICLE_STD_THRESHOLD,
    VEHICLE_WINDOW,
)
from lifesync.models import AccelerometerSample, SensorType, SensorUnavailableError, StepCounterRecord
from lifesync.sensors.base import Sensor

logger = logging.getLogger(__name__)


def step_points(steps: int) -> int:
    """Points earned by the step that brought the count to `steps`."""
    if steps <= 0:
        return 0
    return steps // STEPS_PER_POINT - (steps - 1) // STEPS_PER_POINT


class StepDetector:
    """
    Heuristic step detection on accelerometer magnitude.
    Uses a short moving average, a cadence window and a vehicle filter that
    suppresses counting while the signal looks like constant vibration.
    """

    def __init__(self, step_threshold: float = STEP_THRESHOLD,
                 smoothing_window: int = SMOOTHING_WINDOW,
                 vehicle_window: int = VEHICLE_WINDOW):
        self.step_threshold = step_threshold
        self.magnitude_buffer: deque = deque(maxlen=smoothing_window)
        self.vehicle_buffer: deque = deque(maxlen=vehicle_window)
        self.step_count = 0
        self.last_magnitude = 0.0
        self.last_step_time: Optional[float] = None
        self.is_in_vehicle = False

    def reset(self, now: Optional[float] = None):
        """Clear detection state; the step count is kept."""
        self.magnitude_buffer.clear()
        self.vehicle_buffer.clear()
        self.last_magnitude = 0.0
        self.last_step_time = now
        self.is_in_vehicle = False

    def apply_moving_average(self, magnitude: float) -> Optional[float]:
        """Smoothed magnitude, or None while the window is still filling."""
        self.magnitude_buffer.append(magnitude)
        if len(self.magnitude_buffer) < self.magnitude_buffer.maxlen:
            return None
        return sum(self.magnitude_buffer) / len(self.magnitude_buffer)

    def detect_vehicle(self) -> bool:
        """
        Re-evaluate the vehicle flag from the smoothed window.

        Vehicles produce steady low-amplitude vibration; walking produces
        irregular peaks. A vehicle is assumed when at least three of these
        hold: low standard deviation, small range, frequent small changes and
        a mean close to gravity.
        """
        window = list(self.vehicle_buffer)
        if len(window) < self.vehicle_buffer.maxlen:
            return self.is_in_vehicle

        mean = sum(window) / len(window)
        std_dev = math.sqrt(sum((v - mean) ** 2 for v in window) / len(window))
        value_range = max(window) - min(window)
        changes = sum(
            1 for prev, cur in zip(window, window[1:]) if abs(cur - prev) > VEHICLE_SMALL_CHANGE
        )
        change_frequency = changes / len(window)

        indicators = sum([
            std_dev < VEHICLE_STD_THRESHOLD,
            value_range < VEHICLE_RANGE_THRESHOLD,
            change_frequency > VEHICLE_CHANGE_FREQUENCY,
            VEHICLE_MEAN_MIN < mean < VEHICLE_MEAN_MAX,
        ])
        in_vehicle = indicators >= VEHICLE_MIN_INDICATORS

        if in_vehicle != self.is_in_vehicle:
            if in_vehicle:
                logger.info(
                    f"[StepCounter] Vehicle detected, pausing step count "
                    f"(std: {std_dev:.3f}g, range: {value_range:.3f}g)"
                )
            else:
                logger.info("[StepCounter] Vehicle no longer detected, resuming step count")
        self.is_in_vehicle = in_vehicle
        return in_vehicle

    def can_count_step(self, change: float, gap: float) -> bool:
        if self.step_count == 0 or gap > LONG_STEP_GAP:
            return True
        if MIN_STEP_INTERVAL < gap < MAX_STEP_INTERVAL:
            return True
        return change > LARGE_STEP_CHANGE and gap > LARGE_STEP_MIN_INTERVAL

    def process(self, sample: AccelerometerSample) -> bool:
        """Feed one sample. Returns True when a step was counted."""
        magnitude = math.sqrt(sample.x ** 2 + sample.y ** 2 + sample.z ** 2)

        smoothed = self.apply_moving_average(magnitude)
        if smoothed is None:
            self.last_magnitude = magnitude
            return False

        self.vehicle_buffer.append(smoothed)
        self.detect_vehicle()

        now = sample.timestamp
        # First reading, a long silence or a timestamp behind the last step only primes the state
        if self.last_step_time is None or not 0 <= now - self.last_step_time <= DETECTION_RESET_GAP:
            self.last_step_time = now
            self.last_magnitude = smoothed
            return False

        if self.is_in_vehicle:
            self.last_magnitude = smoothed
            return False

        change = abs(smoothed - self.last_magnitude)
        gap = now - self.last_step_time
        self.last_magnitude = smoothed

        if change <= self.step_threshold or not self.can_count_step(change, gap):
            return False
        if not MIN_STEP_MAGNITUDE < smoothed < MAX_STEP_MAGNITUDE:
            return False

        self.step_count += 1
        self.last_step_time = now
        logger.debug(
            f"[StepCounter] Step detected. Total: {self.step_count}, "
            f"change: {change:.3f}g, magnitude: {smoothed:.3f}g, gap: {gap:.2f}s"
        )
        return True


class StepCounterSensor(Sensor):
    """Counts steps and earns one point per 500 steps."""

    sensor_type = SensorType.STEP_COUNT
    tag = "StepCounter"

    def __init__(self, sensor_id, category, channel, accelerometer, detector: Optional[StepDetector] = None,
                 **kwargs):
        super().__init__(sensor_id, category, channel, **kwargs)
        self.accelerometer = accelerometer
        self.detector = detector or StepDetector()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def steps(self) -> int:
        return self.detector.step_count

    async def _on_start(self):
        if not await self.accelerometer.is_available():
            raise SensorUnavailableError("Accelerometer is not available on this device")

        self.accelerometer.set_update_interval(ACCELEROMETER_INTERVAL_SECONDS)
        # Samples may carry the board's own clock, so the first one sets the time base
        self.detector.reset()
        self.emit_data()
        self._unsubscribe = self.accelerometer.subscribe(self.on_sample)

    async def _on_stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        logger.info(f"[StepCounter] Stopping with {self.steps} steps")
        self.emit_data()

    def on_sample(self, sample: AccelerometerSample):
        if not self.detector.process(sample):
            return
        points = step_points(self.steps)
        if points:
            logger.info(f"[StepCounter] {self.steps} steps reached, +{points} point")
            self.award(points)
        self.emit_data()

    def display_data(self) -> dict:
        steps = self.steps
        return {
            "steps": steps,
            "distance": f"{steps * STEP_LENGTH_METERS / 1000:.2f}",
            "calories": math.floor(steps * CALORIES_PER_STEP),
            "in_vehicle": self.detector.is_in_vehicle,
        }

    def snapshot(self) -> dict:
        return StepCounterRecord(steps=self.steps, total_points=self.total_points).model_dump()

    def restore(self, record: Optional[dict]):
        if not record:
            return
        restored = StepCounterRecord.model_validate(record)
        self.detector.step_count = restored.steps
        self.total_points = restored.total_points
        logger.info(f"[StepCounter] Restored {restored.steps} steps")
