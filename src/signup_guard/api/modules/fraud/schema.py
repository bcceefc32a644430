from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from signup_guard.api.common.schema import PaginationParams

Severity = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
DecisionState = Literal["ALLOWED", "VERIFY_REQUIRED", "FLAGGED", "BLOCKED"]
Channel = Literal["email", "api", "google", "facebook", "linkedin"]
AttemptKind = Literal["registration", "login"]
AttemptType = Literal[
    "REGISTRATION_BLOCKED",
    "LOGIN_BLOCKED",
    "DEVICE_BLOCKED",
    "IP_BLOCKED",
    "HIGH_RISK_FLAGGED",
]
ReviewStatus = Literal["PENDING", "REVIEWED", "ESCALATED", "DISMISSED"]
NetworkActionType = Literal["WHITELIST", "BLACKLIST", "MONITOR", "FLAG", "UNFLAG"]

INTERACTIVE_CHANNELS = frozenset({"google", "facebook", "linkedin"})


class DeviceAttributes(BaseModel):
    """Optional client-collected attributes. Absent values are never penalised."""

    screen_resolution: str | None = Field(default=None, max_length=32)
    color_depth: int | None = Field(default=None, ge=1, le=64)
    timezone: str | None = Field(default=None, max_length=128)
    platform: str | None = Field(default=None, max_length=128)
    touch_support: bool | None = None
    hardware_concurrency: int | None = Field(default=None, ge=1, le=256)
    device_memory: float | None = Field(default=None, ge=0.25, le=128)
    cookies_enabled: bool | None = None
    webgl_renderer: str | None = Field(default=None, max_length=512)
    canvas_hash: str | None = Field(default=None, max_length=128)

    mouse_movements: int | None = Field(default=None, ge=0, le=1_000_000)
    keystrokes: int | None = Field(default=None, ge=0, le=1_000_000)
    typing_speed: float | None = Field(default=None, ge=0, le=10_000)
    time_on_page_ms: int | None = Field(default=None, ge=0, le=86_400_000)

    model_config = ConfigDict(extra="forbid")


class AttemptContext(BaseModel):
    email: str | None = Field(default=None, max_length=320)
    username: str | None = Field(default=None, max_length=128)
    full_name: str | None = Field(default=None, max_length=256)
    referral_code: str | None = Field(default=None, max_length=64)
    channel: Channel = "email"
    attempt_type: AttemptKind = "registration"
    account_id: str | None = Field(default=None, max_length=128)

    model_config = ConfigDict(extra="forbid")

    @property
    def interactive(self) -> bool:
        return self.channel in INTERACTIVE_CHANNELS

    @property
    def has_identity(self) -> bool:
        return bool(self.email or self.username or self.full_name)


class EvaluateRequest(BaseModel):
    device: DeviceAttributes | None = None
    context: AttemptContext = Field(default_factory=AttemptContext)

    model_config = ConfigDict(extra="forbid")


class CategoryBreakdown(BaseModel):
    device: int = Field(default=0, ge=0, le=100)
    network: int = Field(default=0, ge=0, le=100)
    network_signal: int = Field(default=0, ge=0, le=100)
    behavioral: int = Field(default=0, ge=0, le=100)
    account: int = Field(default=0, ge=0, le=100)


class VerificationPrompt(BaseModel):
    required: bool = True
    reason: str = "Enhanced security verification required"
    flags: list[str] = Field(default_factory=list)


class RiskAssessment(BaseModel):
    state: DecisionState
    risk_score: int = Field(..., ge=0, le=100)
    severity: Severity
    flags: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    breakdown: CategoryBreakdown = Field(default_factory=CategoryBreakdown)

    should_block: bool = False
    should_flag: bool = False
    should_require_verification: bool = False

    fingerprint: str
    ip_address: str | None = None
    error_code: str | None = None
    message: str | None = None
    verification: VerificationPrompt | None = None
    monitoring_reason: str | None = None

    evaluated_at: datetime


class EligibilityResult(BaseModel):
    is_eligible: bool
    reason: str | None = None
    risk_score: int = Field(default=0, ge=0, le=100)
    existing_account_count: int = Field(default=0, ge=0)


class LinkAccountRequest(BaseModel):
    fingerprint: str = Field(..., min_length=8, max_length=64)
    account_id: str = Field(..., min_length=1, max_length=128)
    email: str | None = Field(default=None, max_length=320)
    referral_code: str | None = Field(default=None, max_length=64)

    model_config = ConfigDict(extra="forbid")


class LinkResult(BaseModel):
    linked: bool
    fingerprint: str
    account_id: str
    existing_account_count: int
    flagged: bool
    reason: str | None = None


class AdminActionRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=512)
    actor: str = Field(..., min_length=1, max_length=128)

    model_config = ConfigDict(extra="forbid")


class ReviewRequest(BaseModel):
    status: Literal["REVIEWED", "ESCALATED", "DISMISSED"]
    actor: str = Field(..., min_length=1, max_length=128)
    notes: str | None = Field(default=None, max_length=4000)

    model_config = ConfigDict(extra="forbid")


class DeviceResponse(BaseModel):
    fingerprint: str
    basic_hash: str
    advanced_hash: str
    ip_address: str | None
    user_agent: str
    platform: str
    language: str | None
    is_mobile: bool
    account_ids: list[str]
    first_seen: datetime
    last_seen: datetime
    seen_count: int
    risk_score: int
    risk_severity: str
    risk_flags: list[str]
    is_flagged: bool
    flag_reason: str | None
    flagged_at: datetime | None
    flagged_by: str | None
    is_blocked: bool
    blocked_reason: str | None
    blocked_at: datetime | None
    blocked_by: str | None
    notes: list[str]

    model_config = ConfigDict(from_attributes=True)


class NetworkActionResponse(BaseModel):
    action_type: NetworkActionType
    reason: str
    performed_by: str
    performed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NetworkRecordResponse(BaseModel):
    ip_address: str
    ip_version: int
    is_vpn: bool
    is_proxy: bool
    is_tor: bool
    is_hosting: bool
    is_malicious: bool
    threat_score: int
    threat_sources: list[str]
    country_iso: str | None
    city: str | None
    timezone: str | None
    latitude: float | None
    longitude: float | None
    organisation: str | None
    hostname: str | None
    total_requests: int
    unique_accounts: int
    first_seen: datetime
    last_seen: datetime
    reputation_score: int
    risk_score: int
    risk_severity: str
    is_whitelisted: bool
    is_blacklisted: bool
    is_monitored: bool
    notes: str | None
    actions: list[NetworkActionResponse]

    model_config = ConfigDict(from_attributes=True)


class FraudAttemptResponse(BaseModel):
    id: int
    attempt_type: AttemptType
    reason: str
    risk_score: int
    flags: list[str]
    fingerprint: str
    ip_address: str
    user_agent: str
    attempted_email: str | None
    attempted_username: str | None
    attempted_full_name: str | None
    channel: str
    referral_code: str | None
    existing_accounts: int
    existing_device_id: int | None
    existing_network_id: int | None
    country_iso: str | None
    city: str | None
    is_vpn: bool
    is_proxy: bool
    occurred_at: datetime
    status: ReviewStatus
    reviewed: bool
    reviewed_by: str | None
    reviewed_at: datetime | None
    admin_notes: str | None

    model_config = ConfigDict(from_attributes=True)


class DevicePaginationParams(PaginationParams):
    is_flagged: bool | None = None
    is_blocked: bool | None = None
    min_risk_score: int | None = Field(default=None, ge=0, le=100)


class NetworkPaginationParams(PaginationParams):
    is_whitelisted: bool | None = None
    is_blacklisted: bool | None = None
    is_monitored: bool | None = None
    is_vpn: bool | None = None
    min_risk_score: int | None = Field(default=None, ge=0, le=100)


class AttemptPaginationParams(PaginationParams):
    attempt_type: AttemptType | None = None
    status: ReviewStatus | None = None
    reviewed: bool | None = None
    ip_address: str | None = Field(default=None, max_length=64)
    min_risk_score: int | None = Field(default=None, ge=0, le=100)


class DeviceStats(BaseModel):
    total: int
    flagged: int
    blocked: int
    with_accounts: int
    high_risk: int


class NetworkStats(BaseModel):
    total: int
    whitelisted: int
    blacklisted: int
    monitored: int
    vpn_or_proxy: int


class AttemptStats(BaseModel):
    total: int
    pending: int
    last_24h: int
    by_type: dict[str, int]


class FraudStatsResponse(BaseModel):
    devices: DeviceStats
    networks: NetworkStats
    attempts: AttemptStats
    generated_at: datetime


class PurgeResponse(BaseModel):
    devices: int
    networks: int
    attempts: int
