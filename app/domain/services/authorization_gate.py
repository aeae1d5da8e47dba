"""
Authorization Gate - בדיקת יכולת לפני כל פעולה מוגנת

הבדיקה מפורשת ומתבצעת לפני שהפעולה רצה; קורא שנדחה לא מגיע לפעולה
בכלל. administrator עומד בכל דרישה של tenant-user לכל host.
"""
import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from app.core.exceptions import UnauthorizedError
from app.core.logging import get_logger
from app.core.validation import HostValidator

logger = get_logger(__name__)

T = TypeVar("T")


class CapabilityLevel(str, enum.Enum):
    ANONYMOUS = "anonymous"
    TENANT_USER = "tenant_user"
    ADMINISTRATOR = "administrator"


class Requirement(str, enum.Enum):
    """היכולת שפעולה דורשת"""
    TENANT_USER = "tenant_user"
    ADMINISTRATOR = "administrator"


@dataclass(frozen=True)
class Caller:
    """הקורא המאומת של בקשה; ``host`` קיים רק ל-tenant_user"""
    level: CapabilityLevel = CapabilityLevel.ANONYMOUS
    host: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls()

    @classmethod
    def tenant(cls, host: str) -> "Caller":
        return cls(level=CapabilityLevel.TENANT_USER, host=HostValidator.normalize(host))

    @classmethod
    def administrator(cls) -> "Caller":
        return cls(level=CapabilityLevel.ADMINISTRATOR)

    @property
    def is_authenticated(self) -> bool:
        return self.level != CapabilityLevel.ANONYMOUS

    @property
    def is_administrator(self) -> bool:
        return self.level == CapabilityLevel.ADMINISTRATOR


class AuthorizationGate:
    """Explicit capability checks for protected operations"""

    @staticmethod
    def check(caller: Caller, requirement: Requirement, host: Optional[str] = None) -> None:
        """
        Raise UnauthorizedError unless ``caller`` satisfies ``requirement``.

        For tenant-user requirements ``host`` is the tenant the operation
        targets; a tenant user must be bound to that same host.
        """
        if caller.is_administrator:
            return

        if requirement == Requirement.ADMINISTRATOR:
            AuthorizationGate._reject(caller, requirement, host, "Administrator capability required")

        if caller.level != CapabilityLevel.TENANT_USER:
            AuthorizationGate._reject(caller, requirement, host, "Tenant credentials required")

        if host is not None and caller.host != HostValidator.normalize(host):
            AuthorizationGate._reject(caller, requirement, host, "Credentials are bound to a different host")

    @staticmethod
    def _reject(caller: Caller, requirement: Requirement, host: Optional[str], message: str) -> None:
        logger.warning(
            "Authorization rejected",
            extra_data={
                "caller_level": caller.level.value,
                "caller_host": caller.host,
                "required": requirement.value,
                "host": host,
            },
        )
        raise UnauthorizedError(
            message,
            required=requirement.value,
            authenticated=caller.is_authenticated,
        )

    @staticmethod
    async def run(
        caller: Caller,
        requirement: Requirement,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        host: Optional[str] = None,
    ) -> T:
        """בדיקה ואז הרצת הפעולה"""
        AuthorizationGate.check(caller, requirement, host=host)
        return await operation(*args)
