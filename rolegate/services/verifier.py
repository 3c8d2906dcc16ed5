"""Stripe webhook verification and event parsing."""

import json
from dataclasses import dataclass, field
from enum import Enum

import stripe

from rolegate.core.exceptions import BadSignatureError, InvalidPayloadError, MissingSecretError


class EventKind(str, Enum):
    PURCHASE_COMPLETED = "purchase_completed"
    SUBSCRIPTION_ENDED = "subscription_ended"
    PRODUCT_LIFECYCLE = "product_lifecycle"
    UNHANDLED = "unhandled"


EVENT_KINDS: dict[str, EventKind] = {
    "checkout.session.completed": EventKind.PURCHASE_COMPLETED,
    "customer.subscription.deleted": EventKind.SUBSCRIPTION_ENDED,
    "product.created": EventKind.PRODUCT_LIFECYCLE,
    "product.updated": EventKind.PRODUCT_LIFECYCLE,
    "product.deleted": EventKind.PRODUCT_LIFECYCLE,
}


@dataclass(frozen=True)
class WebhookEvent:
    id: str
    type: str
    kind: EventKind
    data: dict = field(default_factory=dict)
    raw_payload: bytes = b""


def verify_event(raw_body: bytes, signature_header: str | None, secret: str | None) -> WebhookEvent:
    """Verify a Stripe webhook delivery and parse it into a WebhookEvent.

    Signature checking is delegated to stripe.Webhook.construct_event, which
    implements Stripe's ``t=...,v1=...`` HMAC-SHA256 scheme and timestamp tolerance.
    The envelope is then re-read from the raw body so handlers work on plain dicts.

    Raises:
        MissingSecretError: no signing secret configured for this deployment
        BadSignatureError: header missing, signature mismatch, or stale timestamp
        InvalidPayloadError: body is not a JSON event envelope
    """
    if not secret:
        raise MissingSecretError("Stripe webhook secret is not configured")
    if not signature_header:
        raise BadSignatureError("Missing Stripe-Signature header")

    try:
        stripe.Webhook.construct_event(raw_body, signature_header, secret)
    except stripe.SignatureVerificationError as e:
        raise BadSignatureError(str(e)) from e
    except ValueError as e:
        raise InvalidPayloadError(str(e)) from e

    try:
        envelope = json.loads(raw_body)
        event_id = envelope["id"]
        event_type = envelope["type"]
        data = envelope.get("data", {}).get("object") or {}
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise InvalidPayloadError(f"Malformed event envelope: {e}") from e

    return WebhookEvent(
        id=event_id,
        type=event_type,
        kind=EVENT_KINDS.get(event_type, EventKind.UNHANDLED),
        data=data,
        raw_payload=raw_body,
    )
