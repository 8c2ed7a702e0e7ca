"""Shared pytest fixtures."""
import asyncio
import os

# Must be set before lifesync.database builds its module-level engine
os.environ.setdefault("LIFESYNC_DATABASE_URL", "sqlite://")
os.environ.setdefault("LIFESYNC_SERIAL_PORT", "/dev/lifesync-missing")

from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker

from lifesync.database import KeyValueStore, init_db, make_engine
from lifesync.detection import ReportedForegroundDetector
from lifesync.models import AccelerometerSample, Contributions
from lifesync.sensor_manager import SensorManager
from lifesync.serial_reader import Accelerometer
from lifesync.storage import SensorStorage
from lifesync.utils import LOCAL_TZ


class FakeClock:
    """Monotonic seconds under test control."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeAccelerometer(Accelerometer):
    def __init__(self, available: bool = True, delay: float = 0.0):
        self.available = available
        self.delay = delay
        self.update_interval = None
        self.subscribers = []

    async def is_available(self) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.available

    def subscribe(self, callback):
        self.subscribers.append(callback)
        return lambda: self.subscribers.remove(callback)

    def set_update_interval(self, seconds: float):
        self.update_interval = seconds

    def emit(self, timestamp: float, x: float, y: float = 0.0, z: float = 0.0):
        sample = AccelerometerSample(timestamp=timestamp, x=x, y=y, z=z)
        for callback in list(self.subscribers):
            callback(sample)


class FakeGitHub:
    """Stands in for GitHubService with canned contributions."""

    def __init__(self, commits: int = 0, configured: bool = True, username: str = "octocat"):
        self.commits = commits
        self.repos = 1
        self.configured = configured
        self.username = username
        self.error = None
        self.calls = 0

    async def is_configured(self) -> bool:
        return self.configured

    async def get_username(self):
        return self.username

    async def get_today_contributions(self, username):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return Contributions(commits=self.commits, repos=self.repos, last_commit="Now", push_count=1)


def local_time(hour: int, day: int = 1) -> datetime:
    return LOCAL_TZ.localize(datetime(2024, 5, day, hour, 0))


@pytest.fixture
def store():
    """Key-value store on a private in-memory database."""
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    return KeyValueStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))


@pytest.fixture
def storage(store):
    return SensorStorage(store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def noon():
    return lambda: local_time(12)


@pytest.fixture
def late_night():
    return lambda: local_time(23)


@pytest.fixture
def detector(clock):
    detector = ReportedForegroundDetector(clock=clock)
    detector.set_permission(True)
    return detector


@pytest.fixture
def accelerometer():
    return FakeAccelerometer()


@pytest.fixture
def github():
    return FakeGitHub(commits=3)


@pytest.fixture
def manager(storage, detector, accelerometer, github, clock, noon):
    return SensorManager(
        storage, detector,
        accelerometer=accelerometer, github=github,
        clock=clock, now=noon,
    )
