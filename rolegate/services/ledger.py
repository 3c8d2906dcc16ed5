"""SubscriptionLedger — persisted link between Stripe subscriptions and Discord members."""

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rolegate.core.exceptions import PersistenceError
from rolegate.db.models.ledger import UserSubscription

logger = structlog.get_logger(__name__)


class SubscriptionLedger:
    """Create, find and delete ledger rows keyed by Stripe subscription id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        subscription_id: str,
        customer_id: str | None,
        member_id: int,
    ) -> UserSubscription:
        """Insert a ledger row.

        A row that already exists for the subscription (redelivered purchase
        event) is returned unchanged.

        Raises:
            PersistenceError: the row could not be written
        """
        async with self.session_factory() as session:
            row = UserSubscription(
                stripe_subscription_id=subscription_id,
                stripe_customer_id=customer_id,
                discord_user_id=member_id,
            )
            try:
                session.add(row)
                await session.commit()
                return row
            except IntegrityError:
                await session.rollback()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Could not record subscription {subscription_id}: {e}") from e

        existing = await self.find_by_subscription_id(subscription_id)
        if existing is None:
            raise PersistenceError(f"Could not record subscription {subscription_id}")
        logger.info(
            "ledger_row_already_recorded",
            subscription_id=subscription_id,
            member_id=existing.discord_user_id,
        )
        return existing

    async def find_by_subscription_id(self, subscription_id: str) -> UserSubscription | None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(UserSubscription).where(UserSubscription.stripe_subscription_id == subscription_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read subscription {subscription_id}: {e}") from e

    async def delete(self, row: UserSubscription) -> None:
        """Delete a ledger row. Failures are raised, never retried here."""
        async with self.session_factory() as session:
            try:
                await session.execute(
                    delete(UserSubscription).where(
                        UserSubscription.stripe_subscription_id == row.stripe_subscription_id
                    )
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(
                    f"Could not delete subscription {row.stripe_subscription_id}: {e}"
                ) from e
