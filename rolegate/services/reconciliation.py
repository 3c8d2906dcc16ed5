"""ReconciliationService — applies Stripe purchase and cancellation events to Discord roles."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from rolegate.core.exceptions import DirectoryOperationError, MappingNotFoundError, PersistenceError
from rolegate.services.checkout import MEMBER_METADATA_KEY, fetch_session_price_id
from rolegate.services.directory import MembershipDirectory, resolve_member
from rolegate.services.entitlements import EntitlementMapper
from rolegate.services.ledger import SubscriptionLedger
from rolegate.services.verifier import EventKind, WebhookEvent

logger = structlog.get_logger(__name__)

PriceLookup = Callable[[str], Awaitable[str | None]]


class ReconciliationStage(str, Enum):
    VERIFIED = "verified"
    MAPPED = "mapped"
    MEMBER_RESOLVED = "member_resolved"
    AUTHORITY_CHECKED = "authority_checked"
    GRANTED = "granted"
    REVOKED = "revoked"
    DONE = "done"


class Outcome(str, Enum):
    DONE = "done"
    ABORTED = "aborted"
    IGNORED = "ignored"
    # Discord was changed but the ledger write/delete failed
    INCONSISTENT = "inconsistent"


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: Outcome
    stage: ReconciliationStage
    reason: str | None = None


def _parse_member_id(raw: object) -> int | None:
    try:
        member_id = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return member_id if member_id > 0 else None


def _first_price_id(items: dict | None) -> str | None:
    data = (items or {}).get("data") or []
    if not data:
        return None
    price = data[0].get("price") or {}
    return price.get("id")


class ReconciliationService:
    """Orchestrates mapper, directory and ledger for one webhook event at a time.

    Holds no per-event state, so concurrent requests can share one instance.
    """

    def __init__(
        self,
        directory: MembershipDirectory,
        ledger: SubscriptionLedger,
        mapper: EntitlementMapper,
        guild_id: int | None,
        price_lookup: PriceLookup = fetch_session_price_id,
    ):
        self.directory = directory
        self.ledger = ledger
        self.mapper = mapper
        self.guild_id = guild_id
        self.price_lookup = price_lookup

    async def handle(self, event: WebhookEvent) -> ReconciliationResult:
        log = logger.bind(event_id=event.id, event_type=event.type)

        if event.kind is EventKind.PURCHASE_COMPLETED:
            result = await self.on_purchase_completed(event.data)
        elif event.kind is EventKind.SUBSCRIPTION_ENDED:
            result = await self.on_subscription_ended(event.data)
        else:
            log.info("stripe_event_ignored", kind=event.kind.value)
            return ReconciliationResult(Outcome.IGNORED, ReconciliationStage.VERIFIED, "unhandled_event")

        log.info(
            "reconciliation_finished",
            outcome=result.outcome.value,
            stage=result.stage.value,
            reason=result.reason,
        )
        return result

    async def on_purchase_completed(self, session_data: dict) -> ReconciliationResult:
        """Grant the purchased role and record the subscription in the ledger."""
        session_id = session_data.get("id")
        log = logger.bind(session_id=session_id)
        stage = ReconciliationStage.VERIFIED

        def abort(reason: str) -> ReconciliationResult:
            return ReconciliationResult(Outcome.ABORTED, stage, reason)

        raw_member_id = (session_data.get("metadata") or {}).get(MEMBER_METADATA_KEY)
        member_id = _parse_member_id(raw_member_id)
        if member_id is None:
            log.warning("purchase_member_id_missing", raw_member_id=raw_member_id)
            return abort("member_id_missing")
        log = log.bind(member_id=member_id)

        price_id = _first_price_id(session_data.get("line_items"))
        if price_id is None and session_id:
            price_id = await self.price_lookup(session_id)
        if price_id is None:
            log.warning("purchase_price_missing")
            return abort("price_missing")

        try:
            role_id = self.mapper.resolve(price_id)
        except MappingNotFoundError:
            log.warning("purchase_price_not_mapped", price_id=price_id)
            return abort("price_not_mapped")
        stage = ReconciliationStage.MAPPED
        log = log.bind(price_id=price_id, role_id=role_id)

        guild = self.directory.find_community(self.guild_id) if self.guild_id else None
        if guild is None:
            log.error("purchase_community_not_found", guild_id=self.guild_id)
            return abort("community_not_found")

        if not self.directory.agent_can_manage(guild):
            log.error("purchase_missing_manage_roles", guild_id=guild.id)
            return abort("missing_manage_roles")

        member = await resolve_member(self.directory, guild, member_id)
        if member is None:
            log.error("purchase_member_not_found", guild_id=guild.id)
            return abort("member_not_found")
        stage = ReconciliationStage.MEMBER_RESOLVED

        role = self.directory.find_role(guild, role_id)
        if role is None:
            log.error("purchase_role_not_found", guild_id=guild.id)
            return abort("role_not_found")

        if not self.directory.agent_outranks(guild, role):
            log.error("purchase_role_above_agent", guild_id=guild.id)
            return abort("role_above_agent")
        stage = ReconciliationStage.AUTHORITY_CHECKED

        try:
            await self.directory.grant(member, role)
        except DirectoryOperationError as e:
            log.error("purchase_grant_failed", error=e.detail)
            return abort("grant_failed")
        stage = ReconciliationStage.GRANTED
        log.info("role_granted")

        subscription_id = session_data.get("subscription") or session_id
        try:
            await self.ledger.record(subscription_id, session_data.get("customer"), member_id)
        except PersistenceError as e:
            log.error(
                "reconciliation_inconsistency",
                detail="role granted but ledger write failed",
                subscription_id=subscription_id,
                error=str(e),
            )
            return ReconciliationResult(Outcome.INCONSISTENT, stage, "ledger_write_failed")

        log.info("subscription_recorded", subscription_id=subscription_id)
        return ReconciliationResult(Outcome.DONE, ReconciliationStage.DONE)

    async def on_subscription_ended(self, subscription: dict) -> ReconciliationResult:
        """Revoke the role granted for a subscription and drop its ledger row."""
        subscription_id = subscription.get("id")
        log = logger.bind(subscription_id=subscription_id)
        stage = ReconciliationStage.VERIFIED

        try:
            row = await self.ledger.find_by_subscription_id(subscription_id) if subscription_id else None
        except PersistenceError as e:
            log.error("subscription_ended_ledger_read_failed", error=str(e))
            return ReconciliationResult(Outcome.ABORTED, stage, "ledger_read_failed")
        if row is None:
            log.warning("subscription_ended_without_ledger_row")
            return ReconciliationResult(Outcome.IGNORED, stage, "ledger_row_missing")
        member_id = row.discord_user_id
        log = log.bind(member_id=member_id)

        price_id = _first_price_id(subscription.get("items"))
        try:
            role_id = self.mapper.resolve(price_id) if price_id else None
        except MappingNotFoundError:
            role_id = None
        if role_id is None:
            log.warning("subscription_ended_price_not_mapped", price_id=price_id)
            return ReconciliationResult(Outcome.ABORTED, stage, "price_not_mapped")
        stage = ReconciliationStage.MAPPED
        log = log.bind(price_id=price_id, role_id=role_id)

        guild = self.directory.find_community(self.guild_id) if self.guild_id else None
        member = await resolve_member(self.directory, guild, member_id) if guild is not None else None
        role = self.directory.find_role(guild, role_id) if guild is not None else None

        if member is not None and role is not None:
            stage = ReconciliationStage.MEMBER_RESOLVED
            try:
                await self.directory.revoke(member, role)
            except DirectoryOperationError as e:
                log.error("subscription_ended_revoke_failed", error=e.detail)
                return ReconciliationResult(Outcome.ABORTED, stage, "revoke_failed")
            stage = ReconciliationStage.REVOKED
            log.info("role_revoked")
        else:
            log.warning(
                "subscription_ended_revoke_skipped",
                guild_found=guild is not None,
                member_found=member is not None,
                role_found=role is not None,
            )

        try:
            await self.ledger.delete(row)
        except PersistenceError as e:
            log.error(
                "reconciliation_inconsistency",
                detail="ledger row delete failed",
                error=str(e),
            )
            return ReconciliationResult(Outcome.INCONSISTENT, stage, "ledger_delete_failed")

        log.info("subscription_removed")
        return ReconciliationResult(Outcome.DONE, ReconciliationStage.DONE)
