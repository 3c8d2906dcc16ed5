"""EntitlementMapper — static price → Discord role lookups."""

from rolegate.core.config import Settings
from rolegate.core.exceptions import MappingNotFoundError


class EntitlementMapper:
    """Immutable view over the configured role and plan tables.

    Built once at startup. Construction validates the tables so a malformed
    configuration stops the process instead of failing individual webhooks.
    """

    def __init__(self, role_mapping: dict[str, int], plan_mapping: dict[str, str] | None = None):
        roles: dict[str, int] = {}
        for price_id, role_id in role_mapping.items():
            if not isinstance(price_id, str) or not price_id:
                raise ValueError(f"Invalid price id in role mapping: {price_id!r}")
            if isinstance(role_id, bool) or not isinstance(role_id, int) or role_id <= 0:
                raise ValueError(f"Invalid role id for price {price_id!r}: {role_id!r}")
            roles[price_id] = role_id

        plans: dict[str, str] = {}
        for plan, price_id in (plan_mapping or {}).items():
            key = plan.strip().lower()
            if not key or not price_id:
                raise ValueError(f"Invalid plan mapping entry: {plan!r} -> {price_id!r}")
            plans[key] = price_id

        self._roles = roles
        self._prices = {role_id: price_id for price_id, role_id in roles.items()}
        self._plans = plans

    @classmethod
    def from_settings(cls, settings: Settings) -> "EntitlementMapper":
        return cls(settings.role_mapping, settings.plan_mapping)

    def resolve(self, price_id: str) -> int:
        """Return the role id for a price id (exact match)."""
        role_id = self._roles.get(price_id)
        if role_id is None:
            raise MappingNotFoundError(price_id)
        return role_id

    def price_for(self, role_id: int) -> str | None:
        return self._prices.get(role_id)

    def price_for_plan(self, plan_name: str) -> str:
        """Return the price id offered under a plan name (case-insensitive)."""
        price_id = self._plans.get(plan_name.strip().lower())
        if price_id is None:
            raise MappingNotFoundError(plan_name)
        return price_id

    def default_price_id(self) -> str | None:
        """First configured price, used when a payment link names no plan."""
        return next(iter(self._roles), None)

    def plans(self) -> list[str]:
        return list(self._plans)

    def __len__(self) -> int:
        return len(self._roles)
