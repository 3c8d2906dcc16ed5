"""Request-scoped accessors for services built in the application lifespan."""

from fastapi import HTTPException, Request

from rolegate.services.entitlements import EntitlementMapper
from rolegate.services.event_claims import EventClaims
from rolegate.services.reconciliation import ReconciliationService


def get_reconciliation_service(request: Request) -> ReconciliationService:
    service = getattr(request.app.state, "reconciler", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Reconciliation service is not ready")
    return service


def get_entitlement_mapper(request: Request) -> EntitlementMapper:
    mapper = getattr(request.app.state, "mapper", None)
    if mapper is None:
        raise HTTPException(status_code=503, detail="Entitlement mapping is not loaded")
    return mapper


def get_event_claims(request: Request) -> EventClaims:
    claims = getattr(request.app.state, "claims", None)
    if claims is None:
        raise HTTPException(status_code=503, detail="Event ledger is not ready")
    return claims
