"""EventClaims — at-most-once intake of Stripe event ids."""

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rolegate.db.models.ledger import WebhookEventClaim

logger = structlog.get_logger(__name__)


class EventClaims:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def claim(self, event_id: str, event_type: str) -> bool:
        """Return True if this delivery owns the event, False if it was already claimed."""
        async with self.session_factory() as session:
            try:
                session.add(WebhookEventClaim(event_id=event_id, event_type=event_type))
                await session.commit()
                return True
            except IntegrityError:
                await session.rollback()
                return False

    async def release(self, event_id: str) -> None:
        """Drop a claim so Stripe's redelivery of the event is processed again.

        Failures are logged, never raised; a claim left behind turns the
        redelivery into a duplicate.
        """
        try:
            async with self.session_factory() as session:
                await session.execute(delete(WebhookEventClaim).where(WebhookEventClaim.event_id == event_id))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("stripe_event_release_failed", event_id=event_id, error=str(e))
