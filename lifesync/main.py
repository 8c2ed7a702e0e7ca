"""
FastAPI backend for the LifeSync sensor engine
REST endpoints a UI uses to toggle sensors, read points and push device state
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from lifesync.api_client import ScoringApiClient
from lifesync.config import API_HOST, API_PORT, INIT_TIMEOUT_SECONDS, SENSORS_CONFIG, USER_ID_KEY
from lifesync.database import KeyValueStore, init_db
from lifesync.detection import ReportedForegroundDetector
from lifesync.github_service import GitHubService
from lifesync.logging_config import setup_logging
from lifesync.models import (
    CategoryPoints,
    ForegroundReport,
    GithubCredentials,
    LoginRequest,
    LoginResult,
    PermissionDeniedError,
    PermissionReport,
    PointsResult,
    SensorDescriptor,
    SensorStatus,
    TokenPermissions,
)
from lifesync.sensor_manager import SensorManager
from lifesync.serial_reader import SerialAccelerometer
from lifesync.storage import SensorStorage
from lifesync.toggle import SensorToggle

logger = logging.getLogger(__name__)

SENSOR_DESCRIPTORS = [SensorDescriptor(**entry) for entry in SENSORS_CONFIG]
APP_STATES = ("active", "background", "inactive")

# Global instances, built in the lifespan
store: Optional[KeyValueStore] = None
detector: Optional[ReportedForegroundDetector] = None
accelerometer: Optional[SerialAccelerometer] = None
github: Optional[GitHubService] = None
scoring: Optional[ScoringApiClient] = None
manager: Optional[SensorManager] = None
toggles: Dict[str, SensorToggle] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    global store, detector, accelerometer, github, scoring, manager

    # Startup
    setup_logging()
    logger.info("[API] Starting LifeSync sensor engine...")
    init_db()

    store = KeyValueStore()
    detector = ReportedForegroundDetector()
    accelerometer = SerialAccelerometer()
    github = GitHubService(store)
    scoring = ScoringApiClient()
    manager = SensorManager(SensorStorage(store), detector, accelerometer=accelerometer, github=github)
    await manager.initialize(INIT_TIMEOUT_SECONDS)

    toggles.clear()
    for descriptor in SENSOR_DESCRIPTORS:
        toggle = SensorToggle(manager, descriptor)
        await toggle.mount()
        toggles[descriptor.id] = toggle

    for toggle in toggles.values():
        if not await toggle.resume_if_was_active() and toggle.error:
            logger.warning(f"[API] Could not resume sensor {toggle.sensor_id}: {toggle.error}")

    yield

    # Shutdown
    logger.info("[API] Shutting down...")
    await manager.shutdown()
    await github.close()
    await scoring.close()
    accelerometer.close()


# Create FastAPI app
app = FastAPI(
    title="LifeSync Sensor Engine API",
    description="Turns device usage signals into wellbeing points",
    version="1.0.0",
    lifespan=lifespan
)

# Enable CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_toggle(sensor_id: str) -> SensorToggle:
    toggle = toggles.get(sensor_id)
    if toggle is None:
        raise HTTPException(status_code=404, detail=f"Unknown sensor: {sensor_id}")
    return toggle


# ==================== API ENDPOINTS ====================

@app.get("/")
def root():
    """Root endpoint - API status"""
    return {
        "status": "running",
        "name": "LifeSync Sensor Engine API",
        "version": "1.0.0",
        "active_sensors": sorted(sid for sid, toggle in toggles.items() if toggle.is_active),
    }


@app.get("/api/sensors", response_model=List[SensorStatus])
def list_sensors():
    """Every sensor with its activity, local points and latest display data."""
    return [toggle.status() for toggle in toggles.values()]


@app.post("/api/sensors/{sensor_id}/start", response_model=SensorStatus)
async def start_sensor(toggle: SensorToggle = Depends(get_toggle)):
    """
    Start a sensor.
    Permission problems answer 403, missing hardware or timeouts 503, both with a remediation hint.
    """
    if not toggle.is_active and not await toggle.activate():
        status_code = 403 if toggle.remediation == PermissionDeniedError.remediation else 503
        raise HTTPException(
            status_code=status_code,
            detail={"message": toggle.error, "remediation": toggle.remediation},
        )
    return toggle.status()


@app.post("/api/sensors/{sensor_id}/stop", response_model=SensorStatus)
async def stop_sensor(toggle: SensorToggle = Depends(get_toggle)):
    await toggle.deactivate()
    return toggle.status()


@app.get("/api/points", response_model=CategoryPoints)
async def get_local_points():
    """Local ledger totals per wellbeing category."""
    return await manager.storage.get_points_by_category()


@app.get("/api/points/remote/{user_id}", response_model=PointsResult)
async def get_remote_points(user_id: str):
    return await scoring.get_points(user_id)


@app.get("/api/points/remote-status")
async def get_remote_status():
    """Whether the remote scoring API answers."""
    return {"connected": await scoring.check_connection()}


@app.post("/api/login", response_model=LoginResult)
async def login(request: LoginRequest):
    result = await scoring.login(request.username, request.password)
    if result.success:
        await store.set(USER_ID_KEY, result.user_id)
    return result


@app.post("/api/app-state/{state}")
async def change_app_state(state: str):
    """The UI moved to the foreground ("active") or away from it ("background"/"inactive")."""
    if state not in APP_STATES:
        raise HTTPException(status_code=400, detail=f"Unknown app state: {state}")
    await manager.on_app_state_change(state)
    for toggle in toggles.values():
        toggle.sync_from_manager()
    return {"state": state}


@app.post("/api/foreground")
async def report_foreground(report: ForegroundReport):
    """Foreground change pushed by the device. An empty package means the screen is off."""
    if report.package_name:
        event = detector.report(report.package_name)
        return {"package_name": event.package_name, "timestamp": event.timestamp}
    detector.report_idle()
    return {"package_name": None}


@app.post("/api/permission")
async def report_permission(report: PermissionReport):
    detector.set_permission(report.granted, simulation=report.simulation, method=report.method)
    return detector.permission


@app.put("/api/github/credentials")
async def set_github_credentials(credentials: GithubCredentials, verify: bool = False):
    await github.set_token(credentials.token)
    await github.set_username(credentials.username)
    if verify:
        permissions: TokenPermissions = await github.verify_token_permissions()
        return permissions
    return {"configured": await github.is_configured()}


@app.delete("/api/github/credentials")
async def delete_github_credentials():
    await github.clear_credentials()
    return {"configured": False}


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lifesync.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=True
    )
