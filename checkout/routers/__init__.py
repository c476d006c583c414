"""
Checkout - Routers Package
"""

from checkout.routers.payments import router as payments_router
from checkout.routers.webhooks import router as webhooks_router

__all__ = ["payments_router", "webhooks_router"]
