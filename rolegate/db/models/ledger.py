"""Ledger tables: subscription links and claimed webhook deliveries."""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Column, DateTime, String

from rolegate.db.base import Base


def _now() -> datetime:
    return datetime.now(UTC)


class UserSubscription(Base):
    """Links a Stripe subscription (or one-off Checkout Session) to the member it was granted to."""

    __tablename__ = "user_subscriptions"

    stripe_subscription_id = Column(String(255), primary_key=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    discord_user_id = Column(BigInteger, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    def __repr__(self) -> str:
        return (
            f"<UserSubscription {self.stripe_subscription_id} "
            f"member={self.discord_user_id} customer={self.stripe_customer_id}>"
        )


class WebhookEventClaim(Base):
    """One row per Stripe event id being or having been reconciled.

    The row is deleted again when the delivery is answered with a retryable
    status, so Stripe's redelivery is not mistaken for a duplicate.
    """

    __tablename__ = "webhook_event_claims"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(255), nullable=False)
    claimed_at = Column(DateTime(timezone=True), nullable=False, default=_now)
