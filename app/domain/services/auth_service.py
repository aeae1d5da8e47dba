"""
Auth Service - תיאור מנגנוני ההזדהות הזמינים

מחושב פעם אחת מההגדרות; לא דורש הזדהות ולא תלוי בקורא.
"""
from dataclasses import dataclass, field
from functools import lru_cache

from app.core.config import settings


@dataclass(frozen=True)
class CapabilityDescriptor:
    level: str
    mechanism: str
    credential: str
    enabled: bool


@dataclass(frozen=True)
class AuthMetadata:
    capabilities: list[CapabilityDescriptor] = field(default_factory=list)


class AuthService:
    """Static description of the relay's capability levels"""

    @staticmethod
    def build_auth_metadata() -> AuthMetadata:
        return AuthMetadata(
            capabilities=[
                CapabilityDescriptor(
                    level="tenant_user",
                    mechanism="bearer_jwt",
                    credential=f"Authorization: Bearer <{settings.JWT_ALGORITHM} JWT with 'host' claim>",
                    enabled=bool(settings.JWT_SECRET_KEY),
                ),
                CapabilityDescriptor(
                    level="administrator",
                    mechanism="api_key_header",
                    credential="X-Admin-API-Key",
                    enabled=bool(settings.ADMIN_API_KEY),
                ),
            ]
        )

    @staticmethod
    @lru_cache(maxsize=1)
    def get_auth_metadata() -> AuthMetadata:
        return AuthService.build_auth_metadata()
