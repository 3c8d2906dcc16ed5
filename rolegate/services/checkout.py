"""Stripe Checkout helpers — payment links and session line-item lookups."""

import stripe
import structlog

from rolegate.core.config import get_settings

logger = structlog.get_logger(__name__)

MEMBER_METADATA_KEY = "discord_user_id"


def _get_stripe() -> None:
    """Configure the stripe module with the secret key."""
    settings = get_settings()
    stripe.api_key = settings.stripe_secret_key


async def create_checkout_url(member_id: str, price_id: str) -> str:
    """Create a subscription Checkout Session carrying the Discord member id.

    The member id travels as session metadata and comes back untouched in the
    checkout.session.completed webhook.
    """
    settings = get_settings()
    _get_stripe()

    checkout_session = await stripe.checkout.Session.create_async(
        mode="subscription",
        payment_method_types=["card"],
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=settings.checkout_success_url,
        cancel_url=settings.checkout_cancel_url,
        metadata={MEMBER_METADATA_KEY: member_id},
    )
    logger.info("checkout_session_created", session_id=checkout_session.id, member_id=member_id, price_id=price_id)
    return checkout_session.url


async def fetch_session_price_id(session_id: str) -> str | None:
    """Return the price id of the first line item of a Checkout Session."""
    _get_stripe()
    line_items = await stripe.checkout.Session.list_line_items_async(session_id, limit=1)
    if not line_items.data:
        return None
    return line_items.data[0].price.id
