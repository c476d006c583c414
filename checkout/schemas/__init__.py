"""
Checkout - Schemas Package
"""

from checkout.schemas.payment import (
    InitiatePaymentRequest, InitiatePaymentResponse, FeeBreakdownResponse,
    PixPaymentRequest, PixPaymentResponse,
    CardPaymentRequest, CardPaymentResponse,
    Address, BankSlipPaymentRequest, BankSlipPaymentResponse, LateFeesResponse, DigitableLineResponse,
    CancelPaymentRequest, TransactionResponse, TransactionListResponse, TransactionEventResponse,
)
from checkout.schemas.webhook import PaymentWebhook, WebhookAck

__all__ = [
    "InitiatePaymentRequest", "InitiatePaymentResponse", "FeeBreakdownResponse",
    "PixPaymentRequest", "PixPaymentResponse",
    "CardPaymentRequest", "CardPaymentResponse",
    "Address", "BankSlipPaymentRequest", "BankSlipPaymentResponse", "LateFeesResponse", "DigitableLineResponse",
    "CancelPaymentRequest", "TransactionResponse", "TransactionListResponse", "TransactionEventResponse",
    "PaymentWebhook", "WebhookAck",
]
