"""Tests for EventClaims against a temporary SQLite database."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from rolegate.db.models.ledger import WebhookEventClaim
from rolegate.services.event_claims import EventClaims

pytestmark = pytest.mark.integration


@pytest.fixture
def claims(session_factory) -> EventClaims:
    return EventClaims(session_factory)


@pytest.mark.asyncio
async def test_first_claim_wins_and_records_event_type(claims, session_factory):
    assert await claims.claim("evt_1", "checkout.session.completed") is True
    assert await claims.claim("evt_1", "checkout.session.completed") is False

    async with session_factory() as session:
        row = (await session.execute(select(WebhookEventClaim))).scalar_one()
    assert row.event_type == "checkout.session.completed"
    assert row.claimed_at is not None


@pytest.mark.asyncio
async def test_released_event_can_be_claimed_again(claims):
    await claims.claim("evt_1", "customer.subscription.deleted")

    await claims.release("evt_1")

    assert await claims.claim("evt_1", "customer.subscription.deleted") is True


@pytest.mark.asyncio
async def test_release_of_unclaimed_event_is_quiet(claims):
    await claims.release("evt_never_claimed")


@pytest.mark.asyncio
async def test_release_storage_failure_is_swallowed():
    session = AsyncMock()
    session.execute = AsyncMock(side_effect=OperationalError("DELETE", {}, Exception("db down")))
    session_cm = AsyncMock()
    session_cm.__aenter__ = AsyncMock(return_value=session)
    session_cm.__aexit__ = AsyncMock(return_value=False)
    claims = EventClaims(MagicMock(return_value=session_cm))

    await claims.release("evt_1")

    session.execute.assert_awaited_once()
    session.commit.assert_not_awaited()
