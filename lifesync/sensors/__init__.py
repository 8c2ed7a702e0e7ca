"""
Sensor processors and the factory that builds them by type
"""

from lifesync.models import SensorType
from lifesync.sensors.app_sessions import AppSessionsSensor
from lifesync.sensors.base import Sensor, SensorChannel
from lifesync.sensors.github_contributions import GithubContributionsSensor
from lifesync.sensors.phone_usage import PhoneUsageSensor
from lifesync.sensors.step_counter import StepCounterSensor, StepDetector

__all__ = [
    "AppSessionsSensor",
    "GithubContributionsSensor",
    "PhoneUsageSensor",
    "Sensor",
    "SensorChannel",
    "StepCounterSensor",
    "StepDetector",
    "create_sensor",
]


def create_sensor(sensor_type, sensor_id, category, channel, *, detector=None, accelerometer=None,
                  github=None, **kwargs) -> Sensor:
    """Build the processor for `sensor_type`. Extra keyword arguments (clocks) pass through."""
    try:
        sensor_type = SensorType(sensor_type)
    except ValueError:
        raise ValueError(f"Unknown sensor type: {sensor_type}") from None

    if sensor_type == SensorType.STEP_COUNT:
        return StepCounterSensor(sensor_id, category, channel, accelerometer=accelerometer, **kwargs)
    if sensor_type == SensorType.APP_SESSIONS:
        return AppSessionsSensor(sensor_id, category, channel, detector=detector, **kwargs)
    if sensor_type == SensorType.PHONE_USAGE:
        return PhoneUsageSensor(sensor_id, category, channel, detector=detector, **kwargs)
    return GithubContributionsSensor(sensor_id, category, channel, github=github, **kwargs)
