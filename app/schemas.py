"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models.sensors import is_known_sensor_type

ComplianceStatus = Literal["compliant", "violation"]

# At least one lowercase, uppercase, digit and special character.
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*()_\-+=\[\]{};':\"\\|,.<>/?]).+$"
)
OTP_PATTERN = r"^\d{6}$"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid datetime format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def _check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    return value


class _AliasedModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Sensor data ----------------------------------------------------------------


class ThresholdOut(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    label: str


class RangeOut(BaseModel):
    min: float
    max: float


class DisplaySensor(_AliasedModel):
    """Latest snapshot of one configured sensor."""

    id: str
    name: str
    value: Optional[float] = None
    unit: str
    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")
    threshold: ThresholdOut
    ranges: RangeOut
    status: Optional[ComplianceStatus] = None


class HistoricalDataPoint(_AliasedModel):
    """One timestamp bucket; sensors that did not report at that instant stay null."""

    timestamp: datetime
    ph: Optional[float] = None
    dissolved_oxygen: Optional[float] = Field(default=None, alias="dissolvedOxygen")
    turbidity: Optional[float] = None
    conductivity: Optional[float] = None
    flow_rate: Optional[float] = Field(default=None, alias="flowRate")
    tds: Optional[float] = None


class SensorHistoryRow(BaseModel):
    id: str
    type: str
    value: float
    unit: str
    recorded_at: datetime
    status: Optional[ComplianceStatus] = None


class Pagination(_AliasedModel):
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., alias="pageSize", ge=1)
    total_pages: int = Field(..., alias="totalPages", ge=0)


class SensorHistoryPage(BaseModel):
    data: List[SensorHistoryRow] = Field(default_factory=list)
    pagination: Pagination


class AuditTransaction(_AliasedModel):
    """Mocked blockchain ledger entry shown on the audit trail."""

    id: str
    timestamp: datetime
    type: Literal["sensor_reading", "compliance_report", "alert", "action_taken"]
    data_hash: str = Field(..., alias="dataHash")
    block_number: int = Field(..., alias="blockNumber")
    status: Literal["confirmed", "pending"]
    description: str


# --- Webhook ----------------------------------------------------------------------


class WebhookReading(BaseModel):
    """A single reading pushed by the MQTT bridge."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(..., strict=True, min_length=1)
    value: float = Field(..., strict=True, allow_inf_nan=False)
    unit: str = Field(..., strict=True)
    recorded_at: datetime

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: str) -> str:
        if not is_known_sensor_type(value):
            raise ValueError(f"Unknown sensor type {value!r}")
        return value

    @field_validator("recorded_at", mode="before")
    @classmethod
    def validate_recorded_at(cls, value: object) -> datetime:
        if not isinstance(value, str):
            raise ValueError("recorded_at must be an ISO-8601 datetime string")
        return parse_timestamp(value)


class WebhookErrorItem(BaseModel):
    index: int = Field(..., ge=0)
    field: str
    message: str


class WebhookResponse(BaseModel):
    success: bool
    message: str
    count: int = Field(..., ge=0)


# --- AI explanation ---------------------------------------------------------------


class ChatMessagePart(BaseModel):
    type: str
    text: Optional[str] = None


class ChatMessage(BaseModel):
    """Chat turn as sent by the dashboard; either ``content`` or text ``parts``."""

    role: Literal["user", "assistant"]
    content: Optional[str] = None
    parts: Optional[List[ChatMessagePart]] = None

    def text(self) -> str:
        if self.content:
            return self.content
        if not self.parts:
            return ""
        return "".join(part.text for part in self.parts if part.type == "text" and part.text)


class ExplainRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)


# --- Auth -------------------------------------------------------------------------


class Credentials(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(Credentials):
    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _check_password_strength(value)


class EmailRequest(BaseModel):
    email: EmailStr


class OtpVerifyRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=OTP_PATTERN, description="Six digit code sent by email.")


class PasswordUpdateRequest(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return _check_password_strength(value)


class PasswordChangeRequest(_AliasedModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword")

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: str) -> str:
        return _check_password_strength(value)


class AuthUser(BaseModel):
    id: str
    email: str


class AuthResponse(_AliasedModel):
    message: str
    requires_verification: Optional[bool] = Field(default=None, alias="requiresVerification")
    user: Optional[AuthUser] = None
    access_token: Optional[str] = Field(default=None, alias="accessToken")


class MessageResponse(BaseModel):
    message: str


class Profile(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    created_at: datetime


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    full_name: Optional[str] = Field(default=None, max_length=120)
