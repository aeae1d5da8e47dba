"""
בדיקות AuthorizationGate: כל צירוף של קורא × דרישה × host.
"""
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import ErrorCode, UnauthorizedError
from app.domain.services.authorization_gate import (
    AuthorizationGate,
    Caller,
    CapabilityLevel,
    Requirement,
)

HOST = "shop1.example.com"


@pytest.mark.unit
class TestCheck:
    def test_anonymous_gets_401(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            AuthorizationGate.check(Caller.anonymous(), Requirement.TENANT_USER, host=HOST)
        assert exc_info.value.status_code == 401
        assert exc_info.value.error_code == ErrorCode.UNAUTHORIZED
        assert exc_info.value.details["required_capability"] == "tenant_user"

    def test_anonymous_admin_requirement_gets_401(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            AuthorizationGate.check(Caller.anonymous(), Requirement.ADMINISTRATOR)
        assert exc_info.value.status_code == 401

    def test_tenant_bound_to_host_passes(self):
        AuthorizationGate.check(Caller.tenant(HOST), Requirement.TENANT_USER, host=HOST)

    def test_tenant_binding_is_normalized(self):
        AuthorizationGate.check(Caller.tenant("Shop1.Example.com"), Requirement.TENANT_USER, host="shop1.example.com:443")

    def test_tenant_other_host_gets_403(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            AuthorizationGate.check(
                Caller.tenant("shop2.example.com"), Requirement.TENANT_USER, host=HOST
            )
        assert exc_info.value.status_code == 403
        assert exc_info.value.error_code == ErrorCode.FORBIDDEN

    def test_tenant_cannot_act_as_admin(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            AuthorizationGate.check(Caller.tenant(HOST), Requirement.ADMINISTRATOR)
        assert exc_info.value.status_code == 403
        assert exc_info.value.required == "administrator"

    @pytest.mark.parametrize("requirement", list(Requirement))
    @pytest.mark.parametrize("host", [None, HOST, "other.example.com"])
    def test_admin_satisfies_everything(self, requirement, host):
        AuthorizationGate.check(Caller.administrator(), requirement, host=host)

    def test_caller_levels(self):
        assert Caller.anonymous().level == CapabilityLevel.ANONYMOUS
        assert not Caller.anonymous().is_authenticated
        assert Caller.tenant(HOST).host == HOST
        assert Caller.administrator().is_administrator


@pytest.mark.unit
class TestRun:
    @pytest.mark.asyncio
    async def test_rejected_caller_never_reaches_operation(self):
        operation = AsyncMock(return_value=42)
        with pytest.raises(UnauthorizedError):
            await AuthorizationGate.run(
                Caller.tenant("shop2.example.com"),
                Requirement.TENANT_USER,
                operation,
                HOST,
                host=HOST,
            )
        operation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_allowed_caller_gets_operation_result(self):
        operation = AsyncMock(return_value=42)
        result = await AuthorizationGate.run(
            Caller.tenant(HOST), Requirement.TENANT_USER, operation, HOST, host=HOST
        )
        assert result == 42
        operation.assert_awaited_once_with(HOST)
