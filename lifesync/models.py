"""
Data models for the LifeSync sensor engine
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class SensorType(str, Enum):
    """Closed set of sensor processors"""
    STEP_COUNT = "step_count"
    APP_SESSIONS = "app_sessions"
    PHONE_USAGE = "phone_usage"
    GITHUB_CONTRIBUTIONS = "github_contributions"


class WellbeingCategory(str, Enum):
    """Wellbeing dimensions tracked by the remote scoring service"""
    SOCIAL = "social"
    FISICA = "fisica"
    AFECTIVO = "afectivo"
    COGNITIVO = "cognitivo"
    LINGUISTICO = "linguistico"


class AppCategory(str, Enum):
    """App classification used for scoring"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class SensorState(str, Enum):
    """Processor lifecycle states"""
    INACTIVE = "inactive"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


# ==================== ERRORS ====================

class SensorStartError(Exception):
    """Fatal condition that prevents a sensor from starting"""
    remediation: Optional[str] = None


class PermissionDeniedError(SensorStartError):
    """Foreground detection is not granted or only simulated"""
    remediation = "open_permission_settings"


class SensorUnavailableError(SensorStartError):
    """The hardware the sensor needs is missing"""
    remediation = "check_device"


class GitHubAPIError(Exception):
    """A GitHub API request failed"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


# ==================== DESCRIPTORS ====================

class SensorDescriptor(BaseModel):
    """Static sensor configuration, never mutated"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: SensorType
    category: WellbeingCategory
    icon: str = ""
    description: str = ""
    color: str = ""


# ==================== COLLABORATOR RECORDS ====================

class AccelerometerSample(BaseModel):
    """Raw accelerometer reading, in g"""
    timestamp: float  # seconds
    x: float
    y: float
    z: float


class AppUsageEvent(BaseModel):
    """Foreground app observation"""
    package_name: str
    timestamp: float  # seconds


class PermissionStatus(BaseModel):
    """Result of a foreground-detection permission check"""
    granted: bool
    simulation: bool = False
    method: Optional[str] = None
    error: Optional[str] = None


# ==================== SENSOR STATE RECORDS ====================

class AppHistoryEntry(BaseModel):
    """Closed app interval kept in the app sessions history"""
    app: str
    category: AppCategory
    time_spent: int  # seconds
    timestamp: float


class PhoneSession(BaseModel):
    """Continuous period with an app in the foreground"""
    start_time: float
    end_time: float
    duration: float  # minutes
    was_healthy: bool


class StepCounterRecord(BaseModel):
    steps: int = Field(default=0, ge=0)
    total_points: int = 0


class AppSessionsRecord(BaseModel):
    positive_seconds: int = 0
    negative_seconds: int = 0
    neutral_seconds: int = 0
    total_points: int = 0
    last_app: Optional[str] = None
    last_app_category: Optional[AppCategory] = None
    app_history: List[AppHistoryEntry] = Field(default_factory=list)


class PhoneUsageRecord(BaseModel):
    healthy_minutes: float = 0.0
    unhealthy_minutes: float = 0.0
    pickups: int = 0
    total_points: int = 0
    sessions: List[PhoneSession] = Field(default_factory=list)


class GithubContributionsRecord(BaseModel):
    commits: int = 0
    repos: int = 0
    last_commit: str = "Never"
    commits_processed: int = 0
    is_configured: bool = False


# ==================== LEDGER ====================

class PointsLedgerEntry(BaseModel):
    """Local point total for one sensor"""
    points: int = Field(default=0, ge=0)
    category: Optional[WellbeingCategory] = None
    last_update: Optional[datetime] = None


class CategoryPoints(BaseModel):
    """Points per wellbeing category"""
    social: int = 0
    fisica: int = 0
    afectivo: int = 0
    cognitivo: int = 0
    linguistico: int = 0


class LoginResult(BaseModel):
    success: bool
    user_id: Optional[str] = None
    error: Optional[str] = None


class PointsResult(BaseModel):
    success: bool
    points: Optional[CategoryPoints] = None
    error: Optional[str] = None


class Contributions(BaseModel):
    """Today's GitHub activity"""
    commits: int
    repos: int
    last_commit: str
    push_count: int


class TokenPermissions(BaseModel):
    valid: bool
    can_read_events: bool
    username: Optional[str] = None
    message: str
    required_scopes: List[str] = Field(default_factory=lambda: ["public_repo", "read:user"])
    optional_scopes: List[str] = Field(default_factory=lambda: ["repo"])


# ==================== API ====================

class SensorStatus(BaseModel):
    """Sensor state for display"""
    descriptor: SensorDescriptor
    is_active: bool
    points: int
    data: Optional[dict] = None
    error: Optional[str] = None
    remediation: Optional[str] = None


class ForegroundReport(BaseModel):
    """Foreground change pushed by the device"""
    package_name: Optional[str] = None


class PermissionReport(BaseModel):
    granted: bool
    simulation: bool = False
    method: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class GithubCredentials(BaseModel):
    token: str
    username: str
