"""
Domain Services
"""
from app.domain.services.aggregation_service import AggregationService, TenantCount
from app.domain.services.auth_service import AuthMetadata, AuthService
from app.domain.services.authorization_gate import (
    AuthorizationGate,
    Caller,
    CapabilityLevel,
    Requirement,
)
from app.domain.services.forwarding_service import (
    ForwardDispatcher,
    ForwardingService,
    ForwardOutcome,
    ForwardTarget,
    load_forward_target,
)
from app.domain.services.ingestion_service import IngestionService
from app.domain.services.route_resolver import Capture, Reserved, normalize_path, resolve
from app.domain.services.store_metadata_service import StoreMetadata, StoreMetadataService
from app.domain.services.webhook_store import AttachmentData, WebhookStore

__all__ = [
    "AggregationService",
    "TenantCount",
    "AuthMetadata",
    "AuthService",
    "AuthorizationGate",
    "Caller",
    "CapabilityLevel",
    "Requirement",
    "ForwardDispatcher",
    "ForwardingService",
    "ForwardOutcome",
    "ForwardTarget",
    "load_forward_target",
    "IngestionService",
    "Capture",
    "Reserved",
    "normalize_path",
    "resolve",
    "StoreMetadata",
    "StoreMetadataService",
    "AttachmentData",
    "WebhookStore",
]
