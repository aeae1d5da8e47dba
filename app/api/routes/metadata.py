"""
מטא-דאטה: מנגנוני הזדהות (פתוח) והגדרות אחסון ל-tenant
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends

from app.api.dependencies.auth import get_caller
from app.api.dependencies.tenant import get_forward_target, get_request_host
from app.api.routes.schemas import AuthMetadataResponse, StoreMetadataResponse
from app.domain.services.auth_service import AuthService
from app.domain.services.authorization_gate import AuthorizationGate, Caller, Requirement
from app.domain.services.forwarding_service import ForwardTarget
from app.domain.services.store_metadata_service import StoreMetadataService

router = APIRouter()


@router.get("/auth-metadata", response_model=AuthMetadataResponse)
async def auth_metadata():
    return asdict(AuthService.get_auth_metadata())


@router.get("/store-metadata", response_model=StoreMetadataResponse)
async def store_metadata(
    caller: Caller = Depends(get_caller),
    host: str = Depends(get_request_host),
    forward_target: ForwardTarget | None = Depends(get_forward_target),
):
    AuthorizationGate.check(caller, Requirement.TENANT_USER, host=host)
    metadata = StoreMetadataService(forward_target).get_store_metadata(host)
    return asdict(metadata)
