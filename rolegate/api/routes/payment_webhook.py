"""Payment webhook routes — Stripe event intake and payment links."""

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from rolegate.api.deps import get_entitlement_mapper, get_event_claims, get_reconciliation_service
from rolegate.core.config import get_settings
from rolegate.core.exceptions import MappingNotFoundError, MissingSecretError, VerificationError
from rolegate.core.logging import stripe_event_context
from rolegate.schemas.payment_webhook import PaymentLinkError, PaymentLinkResponse, WebhookAck
from rolegate.services.checkout import create_checkout_url
from rolegate.services.entitlements import EntitlementMapper
from rolegate.services.event_claims import EventClaims
from rolegate.services.reconciliation import ReconciliationService
from rolegate.services.verifier import verify_event

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    reconciler: ReconciliationService = Depends(get_reconciliation_service),
    claims: EventClaims = Depends(get_event_claims),
):
    """Verify a Stripe delivery and reconcile Discord roles with it.

    Business-level aborts still answer 200 so Stripe does not redeliver
    events that can never succeed. Only untrusted input (400) and transient
    Stripe API failures (400) ask for redelivery.
    """
    if getattr(request.app.state, "shutting_down", False):
        raise HTTPException(status_code=503, detail="Shutting down")

    settings = get_settings()
    body = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = verify_event(body, sig_header, settings.stripe_webhook_secret)
    except MissingSecretError:
        logger.error("stripe_webhook_secret_missing")
        raise HTTPException(status_code=400, detail="Stripe webhook endpoint is not configured")
    except VerificationError as e:
        logger.warning("stripe_webhook_rejected", reason=e.reason, error=str(e))
        raise HTTPException(status_code=400, detail=f"Webhook verification failed: {e.reason}")

    with stripe_event_context(event.id, event.type):
        logger.info("stripe_webhook_received")

        if not await claims.claim(event.id, event.type):
            logger.info("stripe_duplicate_event_ignored")
            return WebhookAck(outcome="duplicate")

        try:
            result = await reconciler.handle(event)
        except stripe.StripeError as e:
            await claims.release(event.id)
            logger.error("stripe_api_error_during_reconciliation", error=str(e))
            raise HTTPException(status_code=400, detail="Stripe API error, retry later")
        except Exception:
            await claims.release(event.id)
            raise

    return WebhookAck(outcome=result.outcome.value, reason=result.reason)


def _link_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=PaymentLinkError(error=message).model_dump())


@router.get(
    "/create-payment-link",
    response_model=PaymentLinkResponse,
    responses={
        400: {"model": PaymentLinkError, "description": "Missing discordId or unknown plan"},
        500: {"model": PaymentLinkError, "description": "No price configured or Stripe failure"},
    },
)
async def create_payment_link(
    discord_id: str | None = Query(None, alias="discordId"),
    plan: str | None = Query(None),
    mapper: EntitlementMapper = Depends(get_entitlement_mapper),
):
    """Create a Checkout Session for a Discord member and return its URL."""
    if not discord_id:
        return _link_error(400, "discordId is required")

    if plan:
        try:
            price_id = mapper.price_for_plan(plan)
        except MappingNotFoundError:
            return _link_error(400, f"Unknown plan '{plan}'. Available plans: {', '.join(mapper.plans())}")
    else:
        price_id = mapper.default_price_id()

    if not price_id:
        logger.error("payment_link_no_price_configured")
        return _link_error(500, "Server configuration error")

    try:
        url = await create_checkout_url(discord_id, price_id)
    except stripe.StripeError as e:
        logger.error("payment_link_stripe_error", member_id=discord_id, error=str(e))
        return _link_error(500, "Could not create payment link")

    return PaymentLinkResponse(url=url)
