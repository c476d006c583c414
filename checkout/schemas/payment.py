"""
Checkout - Schemas de Pagamento
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any, Union, Literal, Annotated
from datetime import datetime, date
from decimal import Decimal

from checkout.models.transaction import Rail, TransactionStatus


class PaymentItem(BaseModel):
    """Item do pedido (somente referência)"""
    product_id: str
    name: Optional[str] = None
    quantity: int = Field(1, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)


class InitiatePaymentRequest(BaseModel):
    """Schema para iniciar uma transação"""
    order_id: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    rail: Optional[Rail] = None
    installments: int = Field(1, ge=1, le=12)
    items: Optional[List[PaymentItem]] = None


class FeeBreakdownResponse(BaseModel):
    """Detalhamento de taxas"""
    original_amount: Decimal
    processing_fee: Decimal
    installment_fee: Decimal
    fee: Decimal
    final_amount: Decimal
    installments: int
    per_installment_amount: Decimal


class InitiatePaymentResponse(BaseModel):
    transaction_id: str
    status: TransactionStatus
    final_amount: Decimal
    fees: FeeBreakdownResponse
    expires_at: datetime


# =============================================
# PIX
# =============================================

class PixPaymentRequest(BaseModel):
    customer_name: str
    customer_document: str
    description: Optional[str] = None


class PixPaymentResponse(BaseModel):
    transaction_id: str
    status: TransactionStatus
    receiver_key: str
    payload_text: str
    payload_image: str
    expires_at: datetime


# =============================================
# Cartão
# =============================================

class CardPaymentRequest(BaseModel):
    """Dados do cartão (nunca persistidos nem logados)"""
    number: str = Field(..., repr=False)
    holder_name: str
    expiry_month: int
    expiry_year: int
    cvv: str = Field(..., repr=False)
    installments: int = Field(1, ge=1, le=12)
    debit: bool = False


class CardPaymentResponse(BaseModel):
    transaction_id: str
    status: TransactionStatus
    authorization_code: Optional[str] = None
    failure_cause: Optional[str] = None
    masked_number: Optional[str] = None
    brand: Optional[str] = None


# =============================================
# Boleto
# =============================================

class Address(BaseModel):
    street: str
    number: Optional[str] = None
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: str
    state: str = Field(..., min_length=2, max_length=2)
    zip_code: str


class BankSlipPaymentRequest(BaseModel):
    customer_name: str
    customer_document: str
    customer_email: Optional[str] = None
    address: Optional[Address] = None
    due_date: Optional[date] = None


class BankSlipPaymentResponse(BaseModel):
    transaction_id: str
    status: TransactionStatus
    slip_number: str
    our_number: str
    barcode: str
    digitable_line: str
    due_date: date
    amount: Decimal


class LateFeesResponse(BaseModel):
    transaction_id: str
    due_date: date
    payment_date: date
    original_amount: Decimal
    late_days: int
    fine: Decimal
    interest: Decimal
    total_amount: Decimal


class DigitableLineResponse(BaseModel):
    """Dados extraídos de uma linha digitável"""
    bank_code: str
    amount: Decimal
    due_factor: int
    due_date: date
    barcode: str


class CancelPaymentRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


# =============================================
# Consulta
# =============================================

class InstantTransferArtifactOut(BaseModel):
    kind: Literal["instant_transfer"]
    amount: Decimal
    expires_at: Optional[datetime] = None
    receiver_key: Optional[str] = None
    payload_text: Optional[str] = None
    payload_image: Optional[str] = None
    description: Optional[str] = None


class BankSlipArtifactOut(BaseModel):
    kind: Literal["bank_slip"]
    amount: Decimal
    expires_at: Optional[datetime] = None
    slip_number: Optional[str] = None
    our_number: Optional[str] = None
    barcode: Optional[str] = None
    digitable_line: Optional[str] = None
    due_date: Optional[date] = None
    customer_name: Optional[str] = None


class CardArtifactOut(BaseModel):
    kind: Literal["card"]
    amount: Decimal
    masked_number: Optional[str] = None
    brand: Optional[str] = None
    card_installments: Optional[int] = None
    authorization_code: Optional[str] = None
    acquirer_message: Optional[str] = None


RailArtifactOut = Annotated[
    Union[InstantTransferArtifactOut, BankSlipArtifactOut, CardArtifactOut],
    Field(discriminator="kind"),
]

ARTIFACT_SCHEMAS = {
    "instant_transfer": InstantTransferArtifactOut,
    "bank_slip": BankSlipArtifactOut,
    "card": CardArtifactOut,
}


class TransactionResponse(BaseModel):
    """Schema de resposta de transação"""
    transaction_id: str
    owner_id: str
    order_id: str
    rail: Optional[Rail] = None
    installments: int
    amount: Decimal
    fee: Decimal
    final_amount: Decimal
    status: TransactionStatus
    failure_cause: Optional[str] = None
    failure_message: Optional[str] = None
    items: Optional[List[Any]] = None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    artifact: Optional[RailArtifactOut] = None


class TransactionListResponse(BaseModel):
    """Schema para lista de transações"""
    transactions: List[TransactionResponse]
    total: int
    page: int
    per_page: int


class TransactionEventResponse(BaseModel):
    uuid: str
    event_type: str
    description: Optional[str] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    extra_data: Optional[Any] = None
    created_at: datetime

    class Config:
        from_attributes = True
