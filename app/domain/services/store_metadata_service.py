"""
Store Metadata Service - הגדרות האחסון וההעברה כפי שנראות ל-tenant
"""
from dataclasses import dataclass
from typing import Optional

from app.core.config import settings
from app.core.validation import HostValidator
from app.domain.services.forwarding_service import ForwardTarget


@dataclass(frozen=True)
class StoreMetadata:
    host: str
    retention_days: int
    max_attachment_bytes: int
    forwarding_enabled: bool
    forward_target: Optional[str]
    reserved_path_segment: str


class StoreMetadataService:
    def __init__(self, forward_target: Optional[ForwardTarget]):
        self.forward_target = forward_target

    def get_store_metadata(self, host: str) -> StoreMetadata:
        return StoreMetadata(
            host=HostValidator.normalize(host),
            # רמז בלבד: אין מחיקה אוטומטית
            retention_days=settings.WEBHOOK_RETENTION_DAYS,
            max_attachment_bytes=settings.MAX_ATTACHMENT_BYTES,
            forwarding_enabled=self.forward_target is not None,
            forward_target=self.forward_target.base_url if self.forward_target else None,
            reserved_path_segment=settings.RESERVED_PATH_SEGMENT,
        )
