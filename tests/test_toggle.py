"""Tests for the per-sensor toggle view-model."""
import asyncio

import pytest

from lifesync.models import SensorDescriptor, SensorState
from lifesync.sensor_manager import SensorManager
from lifesync.storage import SensorStorage
from lifesync.toggle import SensorToggle

from conftest import FakeAccelerometer

APP_SESSIONS = SensorDescriptor(id="1", name="App sessions", type="app_sessions", category="social")
STEPS = SensorDescriptor(id="3", name="Daily steps", type="step_count", category="fisica")
GITHUB = SensorDescriptor(id="4", name="GitHub contributions", type="github_contributions", category="cognitivo")


class TestSensorToggle:

    @pytest.mark.asyncio
    async def test_mount_adopts_running_sensor(self, manager):
        manager.register_sensor("4", "github_contributions", "cognitivo")
        await manager.start_sensor("4")

        toggle = SensorToggle(manager, GITHUB)
        await toggle.mount()

        assert toggle.is_active
        await manager.cleanup()

    @pytest.mark.asyncio
    async def test_mount_loads_saved_points_and_data(self, manager, storage):
        await storage.save_points("3", 12, "fisica")
        await storage.save_sensor_data("3", {"steps": 400, "total_points": 0})

        toggle = SensorToggle(manager, STEPS)
        await toggle.mount()

        assert toggle.points == 12
        assert toggle.data["steps"] == 400
        assert not toggle.is_active

    @pytest.mark.asyncio
    async def test_slow_store_leaves_defaults(self, store, detector, clock):
        class SlowStorage(SensorStorage):
            async def get_points(self, sensor_id):
                await asyncio.sleep(1)
                return 40

        storage = SlowStorage(store)
        await storage.save_sensor_data("3", {"steps": 400})
        manager = SensorManager(storage, detector, clock=clock)
        toggle = SensorToggle(manager, STEPS, load_timeout=0.01)
        await toggle.mount()

        assert toggle.points == 0
        assert toggle.data is None
        assert manager.get_sensor("3") is not None

    @pytest.mark.asyncio
    async def test_sync_never_deactivates(self, manager):
        toggle = SensorToggle(manager, GITHUB)
        await toggle.mount()
        toggle.is_active = True

        toggle.sync_from_manager()
        assert toggle.is_active

    @pytest.mark.asyncio
    async def test_toggle_on_and_off(self, manager, storage):
        toggle = SensorToggle(manager, GITHUB)
        await toggle.mount()

        assert await toggle.toggle() is True
        assert manager.is_sensor_active("4")
        assert toggle.points == 6
        assert toggle.data["commits"] == 3

        assert await toggle.toggle() is False
        assert not manager.is_sensor_active("4")
        assert toggle.points == await storage.get_points("4") == 6
        assert not toggle.loading

    @pytest.mark.asyncio
    async def test_permission_failure_reverts(self, manager, detector):
        detector.set_permission(False)
        toggle = SensorToggle(manager, APP_SESSIONS)
        await toggle.mount()

        assert await toggle.activate() is False
        assert not toggle.is_active
        assert not toggle.loading
        assert toggle.remediation == "open_permission_settings"
        assert toggle.error

        status = toggle.status()
        assert status.is_active is False
        assert status.remediation == "open_permission_settings"

    @pytest.mark.asyncio
    async def test_slow_start_times_out(self, storage, detector, clock):
        manager = SensorManager(storage, detector, accelerometer=FakeAccelerometer(delay=1), clock=clock)
        toggle = SensorToggle(manager, STEPS, start_timeout=0.05)
        await toggle.mount()

        assert await toggle.activate() is False
        assert toggle.error == "Sensor took too long to start"
        assert manager.get_sensor("3").state == SensorState.INACTIVE

    @pytest.mark.asyncio
    async def test_unregistered_sensor(self, manager):
        toggle = SensorToggle(manager, GITHUB)

        assert await toggle.activate() is False
        assert toggle.error == "Sensor is not registered"

    @pytest.mark.asyncio
    async def test_resume_only_previously_active(self, manager, storage):
        await storage.save_active_sensors({"4": {"type": "github_contributions", "is_active": True}})
        await manager.initialize()

        github_toggle = SensorToggle(manager, GITHUB)
        steps_toggle = SensorToggle(manager, STEPS)
        await github_toggle.mount()
        await steps_toggle.mount()

        assert await github_toggle.resume_if_was_active() is True
        assert await steps_toggle.resume_if_was_active() is False
        assert manager.is_sensor_active("4")
        assert not manager.is_sensor_active("3")
        await manager.cleanup()

    def test_points_never_go_negative(self, manager):
        toggle = SensorToggle(manager, APP_SESSIONS)
        toggle.on_points(2)
        toggle.on_points(-5)
        assert toggle.points == 0
