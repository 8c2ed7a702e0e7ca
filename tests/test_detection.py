"""Tests for the foreground detector and event stream."""
import asyncio

import pytest

from lifesync.detection import ForegroundStream
from lifesync.models import AppUsageEvent


def open_stream(detector, clock, **kwargs):
    received = []
    stream = ForegroundStream(detector, clock=clock, **kwargs)
    stream.open(received.append)
    return stream, received


class TestReportedForegroundDetector:

    @pytest.mark.asyncio
    async def test_history_saved_only_while_polling(self, detector):
        detector.report("com.duolingo", timestamp=1.0)
        assert await detector.get_saved_history() == []

        await detector.start_background_polling()
        detector.report("com.instagram.android", timestamp=2.0)
        history = await detector.get_saved_history()
        assert [event.package_name for event in history] == ["com.instagram.android"]
        # Draining empties it
        assert await detector.get_saved_history() == []

    @pytest.mark.asyncio
    async def test_polling_is_reference_counted(self, detector):
        await detector.start_background_polling()
        await detector.start_background_polling()
        await detector.stop_background_polling()
        assert detector.background_polling
        await detector.stop_background_polling()
        assert not detector.background_polling

    @pytest.mark.asyncio
    async def test_idle(self, detector):
        detector.report("com.duolingo")
        assert await detector.get_current_foreground_app() == "com.duolingo"
        detector.report_idle()
        assert await detector.get_current_foreground_app() is None


class TestForegroundStream:

    @pytest.mark.asyncio
    async def test_duplicate_events_are_dropped(self, detector, clock):
        stream, received = open_stream(detector, clock)

        detector.report("com.duolingo", timestamp=10.0)
        detector.report("com.duolingo", timestamp=11.0)
        detector.report("com.duolingo", timestamp=13.0)
        detector.report("com.strava", timestamp=13.5)

        assert [(e.package_name, e.timestamp) for e in received] == [
            ("com.duolingo", 10.0),
            ("com.duolingo", 13.0),
            ("com.strava", 13.5),
        ]
        await stream.close()

    @pytest.mark.asyncio
    async def test_replay_skips_events_already_seen(self, detector, clock):
        stream, received = open_stream(detector, clock)
        detector.report("com.duolingo", timestamp=10.0)

        delivered = stream.replay([
            AppUsageEvent(package_name="com.strava", timestamp=20.0),
            AppUsageEvent(package_name="com.instagram.android", timestamp=5.0),
        ])

        assert delivered == 1
        assert [e.package_name for e in received] == ["com.duolingo", "com.strava"]
        await stream.close()

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, detector, clock):
        stream, received = open_stream(detector, clock)
        await stream.close()

        detector.report("com.duolingo", timestamp=10.0)
        assert received == []
        assert not stream.is_open

    @pytest.mark.asyncio
    async def test_poll_now(self, detector, clock):
        stream, received = open_stream(detector, clock)
        assert await stream.poll_now() is False

        detector.current_package = "com.duolingo"
        assert await stream.poll_now() is True
        assert received[0].timestamp == clock()
        await stream.close()

    @pytest.mark.asyncio
    async def test_fallback_poll_only_when_events_are_stale(self, detector, clock):
        stream, received = open_stream(detector, clock, poll_interval=0.01, stale_after=60)
        detector.current_package = "com.duolingo"

        await asyncio.sleep(0.05)
        assert received == []

        clock.advance(61)
        await asyncio.sleep(0.05)
        assert [e.package_name for e in received] == ["com.duolingo"]
        await stream.close()

    @pytest.mark.asyncio
    async def test_open_twice_fails(self, detector, clock):
        stream, _ = open_stream(detector, clock)
        with pytest.raises(RuntimeError):
            stream.open(lambda event: None)
        await stream.close()
