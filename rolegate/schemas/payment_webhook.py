"""Response schemas for the payment webhook router."""

from pydantic import BaseModel


class WebhookAck(BaseModel):
    status: str = "ok"
    outcome: str | None = None
    reason: str | None = None


class PaymentLinkResponse(BaseModel):
    url: str


class PaymentLinkError(BaseModel):
    error: str
