"""Tests for the phone usage sensor."""
import pytest

from lifesync.models import PermissionDeniedError
from lifesync.sensors.base import POINTS, SensorChannel
from lifesync.sensors.phone_usage import PhoneUsageSensor, crossed_thresholds


def make_sensor(detector, clock, now):
    channel = SensorChannel("2")
    points = []
    channel.subscribe(POINTS, points.append)
    sensor = PhoneUsageSensor("2", "social", channel, detector=detector, clock=clock, now=now)
    return sensor, points


def test_crossed_thresholds():
    assert crossed_thresholds(9.0, 10.0, 10) == 1
    assert crossed_thresholds(10.0, 19.5, 10) == 0
    assert crossed_thresholds(4.5, 15.0, 5) == 3


class TestPhoneUsageSensor:

    @pytest.mark.asyncio
    async def test_healthy_minutes_earn_points(self, detector, clock, noon):
        clock.now = 0.0
        detector.report("com.whatsapp", timestamp=0.0)
        sensor, points = make_sensor(detector, clock, noon)
        await sensor.start()
        assert sensor.is_using_phone

        for _ in range(10):
            clock.advance(60)
            await sensor.update()

        assert sensor.healthy_minutes == 10
        assert points == [1]

        detector.report_idle()
        clock.advance(30)
        await sensor.update()

        assert not sensor.is_using_phone
        assert len(sensor.sessions) == 1
        session = sensor.sessions[0]
        assert session.duration == pytest.approx(10.5)
        assert session.was_healthy
        assert sensor.healthy_minutes == pytest.approx(10.5)
        assert points == [1]

        await sensor.stop()

    @pytest.mark.asyncio
    async def test_late_night_minutes_cost_points(self, detector, clock, late_night):
        clock.now = 0.0
        detector.report("com.whatsapp", timestamp=0.0)
        sensor, points = make_sensor(detector, clock, late_night)
        await sensor.start()

        for _ in range(5):
            clock.advance(60)
            await sensor.update()

        assert sensor.unhealthy_minutes == 5
        assert points == [-1]
        assert sensor.total_points == -1

        await sensor.stop()

    @pytest.mark.asyncio
    async def test_ticks_shorter_than_a_minute_accumulate(self, detector, clock, noon):
        clock.now = 0.0
        detector.report("com.whatsapp", timestamp=0.0)
        sensor, _ = make_sensor(detector, clock, noon)
        await sensor.start()

        for _ in range(5):
            clock.advance(10)
            await sensor.update()
        assert sensor.healthy_minutes == 0

        clock.advance(10)
        await sensor.update()
        assert sensor.healthy_minutes == 1
        assert sensor.interval_start == 60.0

        await sensor.stop()

    @pytest.mark.asyncio
    async def test_stop_scores_open_interval(self, detector, clock, noon):
        clock.now = 0.0
        detector.report("com.whatsapp", timestamp=0.0)
        sensor, _ = make_sensor(detector, clock, noon)
        await sensor.start()

        clock.advance(90)
        await sensor.stop()

        assert sensor.healthy_minutes == pytest.approx(1.5)
        assert len(sensor.sessions) == 1
        assert not detector.background_polling

    @pytest.mark.asyncio
    async def test_pickups_count_package_changes(self, detector, clock, noon):
        sensor, _ = make_sensor(detector, clock, noon)
        await sensor.start()

        detector.report("com.whatsapp", timestamp=1.0)
        detector.report("com.instagram.android", timestamp=5.0)
        detector.report("com.instagram.android", timestamp=10.0)
        detector.report("com.android.systemui", timestamp=12.0)

        assert sensor.pickups == 2
        await sensor.stop()

    @pytest.mark.asyncio
    async def test_permission_required(self, detector, clock, noon):
        detector.set_permission(False)
        sensor, _ = make_sensor(detector, clock, noon)

        with pytest.raises(PermissionDeniedError):
            await sensor.start()

    def test_restore(self, detector, noon):
        sensor = PhoneUsageSensor("2", "social", SensorChannel("2"), detector=detector, now=noon)
        sensor.restore({
            "healthy_minutes": 42.5,
            "unhealthy_minutes": 3.0,
            "pickups": 7,
            "total_points": 4,
            "sessions": [{"start_time": 0.0, "end_time": 600.0, "duration": 10.0, "was_healthy": True}],
        })

        data = sensor.display_data()
        assert data["healthy_minutes"] == 42
        assert data["pickups"] == 7
        assert data["average_session_minutes"] == 10.0
        assert sensor.snapshot()["healthy_minutes"] == 42.5
