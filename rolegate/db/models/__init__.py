"""Importing this package registers every ledger table on Base.metadata."""

from rolegate.db.models.ledger import UserSubscription, WebhookEventClaim

__all__ = [
    "UserSubscription",
    "WebhookEventClaim",
]
