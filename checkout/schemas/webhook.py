"""
Checkout - Schemas de Webhook
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal


class PaymentWebhook(BaseModel):
    """Notificação de pagamento enviada pelo banco/adquirente"""
    transaction_id: str
    status: str
    amount: Optional[Decimal] = None
    paid_at: Optional[datetime] = None
    external_id: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
    transaction_id: str
    status: str
