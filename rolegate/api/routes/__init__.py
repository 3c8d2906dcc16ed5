from fastapi import APIRouter

from rolegate.api.routes import health, payment_webhook

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(payment_webhook.router, prefix="/payment-webhook", tags=["payment-webhook"])
