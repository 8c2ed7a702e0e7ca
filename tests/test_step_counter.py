"""Tests for step detection and the step counter sensor."""
import pytest

from lifesync.models import AccelerometerSample, SensorState, SensorUnavailableError
from lifesync.sensors.base import DATA, POINTS, SensorChannel
from lifesync.sensors.step_counter import StepCounterSensor, StepDetector, step_points


def feed(detector, values, start=0.05, interval=0.05):
    counted = 0
    for i, x in enumerate(values):
        sample = AccelerometerSample(timestamp=start + i * interval, x=x, y=0.0, z=0.0)
        if detector.process(sample):
            counted += 1
    return counted


class TestStepPoints:

    def test_thresholds(self):
        assert step_points(500) == 1
        assert step_points(501) == 0
        assert step_points(999) == 0
        assert step_points(1000) == 1
        assert step_points(0) == 0

    def test_total_over_a_range(self):
        assert sum(step_points(s) for s in range(500, 1000)) == 1
        assert sum(step_points(s) for s in range(1, 1001)) == 2


class TestStepDetector:

    def test_change_exactly_at_threshold_is_not_a_step(self):
        detector = StepDetector(step_threshold=0.125)
        detector.reset(0.0)
        # Smoothed magnitude goes 1.0 -> 1.125, a change of exactly 0.125
        assert feed(detector, [1.0, 1.0, 1.0, 1.375]) == 0
        assert detector.step_count == 0

    def test_change_above_threshold_is_a_step(self):
        detector = StepDetector(step_threshold=0.125)
        detector.reset(0.0)
        assert feed(detector, [1.0, 1.0, 1.0, 1.4]) == 1
        assert detector.step_count == 1

    def test_no_detection_while_window_fills(self):
        detector = StepDetector()
        detector.reset(0.0)
        assert feed(detector, [1.0, 1.9]) == 0
        assert detector.last_magnitude == pytest.approx(1.9)

    def test_first_reading_only_primes(self):
        detector = StepDetector()
        # No reset: there is no previous step time
        assert feed(detector, [1.0, 1.0, 1.6]) == 0
        assert detector.last_step_time == pytest.approx(0.15)

    def test_long_silence_primes_again(self):
        detector = StepDetector()
        detector.reset(0.0)
        assert feed(detector, [1.0, 1.0, 1.6], start=20.0) == 0
        assert detector.last_step_time == pytest.approx(20.1)

    def test_timestamp_behind_last_step_primes_again(self):
        detector = StepDetector()
        detector.step_count = 10
        detector.reset(1_700_000_000.0)
        assert feed(detector, [1.0, 1.0, 1.0], start=100.0) == 0
        assert detector.last_step_time == pytest.approx(100.1)

        assert feed(detector, [1.6], start=100.4) == 1
        assert detector.step_count == 11

    def test_magnitude_out_of_range_is_ignored(self):
        detector = StepDetector()
        detector.reset(0.0)
        # Smoothed magnitude 2.2 is a big change but not a plausible step
        assert feed(detector, [1.0, 1.0, 1.0, 4.6]) == 0

    def test_vehicle_vibration_suppresses_steps(self):
        detector = StepDetector()
        detector.reset(0.0)
        pattern = [0.85, 1.25] * 13
        feed(detector, pattern)
        assert detector.is_in_vehicle

        before = detector.step_count
        feed(detector, [0.85, 1.25] * 100, start=0.05 * 27)
        assert detector.is_in_vehicle
        assert detector.step_count == before


class TestStepCounterSensor:

    @pytest.mark.asyncio
    async def test_500th_step_awards_a_point(self, accelerometer, clock):
        clock.now = 0.0
        channel = SensorChannel("3")
        points, data = [], []
        channel.subscribe(POINTS, points.append)
        channel.subscribe(DATA, data.append)

        sensor = StepCounterSensor("3", "fisica", channel, accelerometer=accelerometer, clock=clock)
        sensor.restore({"steps": 499})
        await sensor.start()
        assert sensor.state == SensorState.ACTIVE
        assert accelerometer.update_interval == pytest.approx(0.05)

        # The first smoothed sample at 0.15 sets the time base
        for t, x in [(0.05, 1.0), (0.1, 1.0), (0.15, 1.0), (0.45, 1.6)]:
            accelerometer.emit(t, x)

        assert sensor.steps == 500
        assert points == [1]
        assert data[-1] == {"steps": 500, "distance": "0.35", "calories": 20, "in_vehicle": False}

        await sensor.stop()
        assert sensor.state == SensorState.INACTIVE
        assert accelerometer.subscribers == []

    @pytest.mark.asyncio
    async def test_unavailable_accelerometer(self, accelerometer, clock):
        accelerometer.available = False
        sensor = StepCounterSensor("3", "fisica", SensorChannel("3"), accelerometer=accelerometer, clock=clock)

        with pytest.raises(SensorUnavailableError) as exc_info:
            await sensor.start()

        assert exc_info.value.remediation == "check_device"
        assert sensor.state == SensorState.INACTIVE
        assert not sensor.is_active

    def test_snapshot_round_trip(self, accelerometer):
        sensor = StepCounterSensor("3", "fisica", SensorChannel("3"), accelerometer=accelerometer)
        sensor.restore({"steps": 1234, "total_points": 2, "last_update": "2024-05-01T10:00:00"})

        assert sensor.snapshot() == {"steps": 1234, "total_points": 2}
        assert sensor.display_data()["distance"] == "0.86"
        assert sensor.display_data()["calories"] == 49

    @pytest.mark.asyncio
    async def test_board_clock_differs_from_wall_clock(self, accelerometer, clock):
        clock.now = 1_700_000_000.0
        sensor = StepCounterSensor("3", "fisica", SensorChannel("3"), accelerometer=accelerometer, clock=clock)
        sensor.restore({"steps": 10})
        await sensor.start()

        # Timestamps from the board start at 100 s, far behind the wall clock
        for t, x in [(100.0, 1.0), (100.05, 1.0), (100.1, 1.0), (100.4, 1.6)]:
            accelerometer.emit(t, x)

        assert sensor.steps == 11
        await sensor.stop()
