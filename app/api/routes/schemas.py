"""
Pydantic schemas של ה-API הפנימי
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite מחזיר datetime בלי tzinfo: הערכים נשמרו ב-UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class WebhookAttachmentResponse(BaseModel):
    """קובץ מצורף: בלי התוכן עצמו"""
    id: str
    field_name: str
    filename: Optional[str] = None
    content_type: Optional[str] = None
    size: int

    class Config:
        from_attributes = True


class WebhookResponse(BaseModel):
    """אירוע webhook שנלכד"""
    id: str
    host: str
    path: str
    method: str
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    ip: Optional[str] = None
    created_at: datetime
    attachments: list[WebhookAttachmentResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @field_validator("created_at", mode="after")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class WebhookListResponse(BaseModel):
    host: str
    total: int
    limit: int
    offset: int
    items: list[WebhookResponse]


class TenantCountResponse(BaseModel):
    host: str
    count: int


class DeleteWebhooksResponse(BaseModel):
    host: Optional[str] = Field(None, description="None = כל ה-hosts")
    deleted: int


class CapabilityResponse(BaseModel):
    level: str
    mechanism: str
    credential: str
    enabled: bool


class AuthMetadataResponse(BaseModel):
    capabilities: list[CapabilityResponse]


class StoreMetadataResponse(BaseModel):
    host: str
    retention_days: int = Field(description="רמז בלבד: לא נאכף")
    max_attachment_bytes: int
    forwarding_enabled: bool
    forward_target: Optional[str] = None
    reserved_path_segment: str


class TenantTokenRequest(BaseModel):
    host: str = Field(..., min_length=1, max_length=255)

    @field_validator("host")
    @classmethod
    def host_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("host cannot be blank")
        return v


class TenantTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    host: str
    expires_at: datetime


class CircuitBreakerStatusResponse(BaseModel):
    """סטטוס של circuit breaker בודד"""
    service: str
    state: str = Field(description="closed | open | half_open")
    failure_count: int
    success_count: int
    half_open_calls: int
    retry_after_seconds: float = Field(
        description="שניות עד שניסיון חוזר אפשרי (0 אם לא פתוח)"
    )
