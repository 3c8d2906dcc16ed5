"""In-memory stand-ins for Discord and helpers for signing Stripe payloads."""

import hashlib
import hmac
import json
import time
from dataclasses import dataclass, field

from rolegate.core.exceptions import DirectoryOperationError

WEBHOOK_SECRET = "whsec_test_secret"

GUILD_ID = 900
ROLE_VIP = 7001
ROLE_PRO = 7002


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for payload."""
    ts = int(time.time()) if timestamp is None else timestamp
    mac = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={mac}"


def make_event(event_id: str, event_type: str, data: dict) -> bytes:
    """Serialize a minimal Stripe event envelope."""
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": data}}).encode()


def checkout_session(
    session_id: str = "cs_test_1",
    member_id: str | None = "42",
    price_id: str | None = "price_abc",
    subscription_id: str | None = "sub_1",
    customer_id: str = "cus_1",
) -> dict:
    data: dict = {
        "id": session_id,
        "subscription": subscription_id,
        "customer": customer_id,
        "metadata": {} if member_id is None else {"discord_user_id": member_id},
    }
    if price_id is not None:
        data["line_items"] = {"data": [{"price": {"id": price_id}}]}
    return data


def ended_subscription(subscription_id: str = "sub_1", price_id: str = "price_abc") -> dict:
    return {
        "id": subscription_id,
        "customer": "cus_1",
        "items": {"data": [{"price": {"id": price_id}}]},
    }


@dataclass
class FakeRole:
    id: int
    position: int = 1


@dataclass
class FakeMember:
    id: int
    roles: list = field(default_factory=list)


@dataclass
class FakeGuild:
    id: int = GUILD_ID
    members: dict = field(default_factory=dict)
    # members only visible once the directory has been refreshed
    uncached: dict = field(default_factory=dict)
    roles: dict = field(default_factory=dict)
    can_manage: bool = True
    agent_top_position: int = 10


class FakeDirectory:
    """MembershipDirectory that keeps guild state in memory and records calls."""

    def __init__(self, guild: FakeGuild | None = None):
        self.guilds = {} if guild is None else {guild.id: guild}
        self.calls: list[tuple] = []
        self.refreshes = 0
        self.fail_grant = False
        self.fail_revoke = False

    def find_community(self, community_id):
        self.calls.append(("find_community", community_id))
        return self.guilds.get(community_id)

    def find_member(self, guild, member_id):
        return guild.members.get(member_id)

    async def find_member_after_refresh(self, guild, member_id):
        self.refreshes += 1
        guild.members.update(guild.uncached)
        guild.uncached.clear()
        return guild.members.get(member_id)

    def find_role(self, guild, role_id):
        return guild.roles.get(role_id)

    def agent_can_manage(self, guild):
        return guild.can_manage

    def agent_outranks(self, guild, role):
        return role.position < guild.agent_top_position

    async def grant(self, member, role):
        self.calls.append(("grant", member.id, role.id))
        if self.fail_grant:
            raise DirectoryOperationError("grant", "403 Forbidden")
        if role not in member.roles:
            member.roles.append(role)

    async def revoke(self, member, role):
        self.calls.append(("revoke", member.id, role.id))
        if self.fail_revoke:
            raise DirectoryOperationError("revoke", "403 Forbidden")
        if role in member.roles:
            member.roles.remove(role)

    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("grant", "revoke")]


def standard_guild() -> FakeGuild:
    """Guild with member 42 cached and the VIP/PRO roles below the bot."""
    return FakeGuild(
        members={42: FakeMember(id=42)},
        roles={ROLE_VIP: FakeRole(id=ROLE_VIP, position=3), ROLE_PRO: FakeRole(id=ROLE_PRO, position=4)},
    )
