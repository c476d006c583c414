"""
Checkout - Router de Pagamentos
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date
from decimal import Decimal
import logging

from checkout.database import get_db
from checkout.models.artifact import BankSlipArtifact
from checkout.models.transaction import Rail, Transaction, TransactionStatus
from checkout.schemas.payment import (
    ARTIFACT_SCHEMAS,
    BankSlipPaymentRequest,
    BankSlipPaymentResponse,
    CancelPaymentRequest,
    CardPaymentRequest,
    CardPaymentResponse,
    DigitableLineResponse,
    FeeBreakdownResponse,
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    LateFeesResponse,
    PixPaymentRequest,
    PixPaymentResponse,
    TransactionEventResponse,
    TransactionListResponse,
    TransactionResponse,
)
from checkout.services.bank_slip import SlipCustomer, late_fees, parse_digitable_line
from checkout.services.bank_slip_pdf import bank_slip_pdf_generator
from checkout.services.card_vault import CardData
from checkout.services.fees import calculate_fees
from checkout.services.transaction_engine import (
    BankSlipInput,
    CardInput,
    InstantTransferInput,
    TransactionEngine,
)
from checkout.utils.security import get_current_owner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Pagamentos"])


def get_engine(db: Session = Depends(get_db)) -> TransactionEngine:
    """Motor de transações da requisição"""
    return TransactionEngine(db)


def transaction_response(tx: Transaction) -> TransactionResponse:
    artifact = None
    if tx.artifact is not None:
        schema = ARTIFACT_SCHEMAS[tx.artifact.kind]
        artifact = schema(**{name: getattr(tx.artifact, name) for name in schema.model_fields})

    return TransactionResponse(
        transaction_id=tx.uuid,
        owner_id=tx.owner_id,
        order_id=tx.order_id,
        rail=tx.rail,
        installments=tx.installments,
        amount=tx.amount,
        fee=tx.fee,
        final_amount=tx.final_amount,
        status=tx.status,
        failure_cause=tx.failure_cause,
        failure_message=tx.failure_message,
        items=tx.items,
        expires_at=tx.expires_at,
        created_at=tx.created_at,
        updated_at=tx.updated_at,
        artifact=artifact,
    )


def _bank_slip_of(tx: Transaction) -> BankSlipArtifact:
    if not isinstance(tx.artifact, BankSlipArtifact):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transação não possui boleto"
        )
    return tx.artifact


# =====================================================
# SIMULAÇÃO / CRIAÇÃO
# =====================================================

@router.get("/fees", response_model=FeeBreakdownResponse)
def simulate_fees(
    amount: Decimal = Query(..., gt=0, description="Valor do pedido"),
    rail: Optional[Rail] = Query(None),
    installments: int = Query(1, ge=1, le=12),
):
    """Simula taxas e valor final sem criar transação."""
    return FeeBreakdownResponse(**calculate_fees(amount, rail, installments).to_dict())


@router.get("/bank-slip/parse", response_model=DigitableLineResponse)
def parse_bank_slip_line(
    line: str = Query(..., min_length=47, max_length=54, description="Linha digitável (com ou sem pontuação)"),
    owner_id: str = Depends(get_current_owner),
):
    """Confere os dígitos e extrai banco, valor e vencimento de uma linha digitável."""
    parsed = parse_digitable_line(line)
    return DigitableLineResponse(
        bank_code=parsed.bank_code,
        amount=parsed.amount,
        due_factor=parsed.due_factor,
        due_date=parsed.due_date,
        barcode=parsed.barcode,
    )


@router.post("/initiate", response_model=InitiatePaymentResponse, status_code=status.HTTP_201_CREATED)
def initiate_payment(
    data: InitiatePaymentRequest,
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Cria uma transação pendente para o pedido."""
    tx = engine.initiate(
        owner_id=owner_id,
        order_id=data.order_id,
        amount=data.amount,
        rail=data.rail,
        installments=data.installments,
        items=[item.model_dump(mode="json") for item in data.items] if data.items else None,
    )
    fees = calculate_fees(tx.amount, tx.rail, tx.installments)

    return InitiatePaymentResponse(
        transaction_id=tx.uuid,
        status=tx.status,
        final_amount=tx.final_amount,
        fees=FeeBreakdownResponse(**fees.to_dict()),
        expires_at=tx.expires_at,
    )


# =====================================================
# CONSULTAS
# =====================================================

@router.get("", response_model=TransactionListResponse)
def list_payments(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Lista as transações do dono do token."""
    items, total = engine.list_for_owner(owner_id, status_filter, page, per_page)
    return TransactionListResponse(
        transactions=[transaction_response(tx) for tx in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_payment(
    transaction_id: str,
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    return transaction_response(engine.get(transaction_id, owner_id))


@router.get("/{transaction_id}/events", response_model=list[TransactionEventResponse])
def get_payment_events(
    transaction_id: str,
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Histórico de auditoria da transação."""
    return engine.events(transaction_id, owner_id)


# =====================================================
# PROCESSAMENTO POR MEIO
# =====================================================

@router.post("/{transaction_id}/pix", response_model=PixPaymentResponse)
def pay_with_pix(
    transaction_id: str,
    data: PixPaymentRequest,
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Gera o QR Code PIX (copia e cola + imagem)."""
    tx = engine.process(
        transaction_id,
        Rail.INSTANT_TRANSFER,
        InstantTransferInput(
            customer_name=data.customer_name,
            customer_document=data.customer_document,
            description=data.description,
        ),
        owner_id=owner_id,
    )
    artifact = tx.artifact
    return PixPaymentResponse(
        transaction_id=tx.uuid,
        status=tx.status,
        receiver_key=artifact.receiver_key,
        payload_text=artifact.payload_text,
        payload_image=artifact.payload_image,
        expires_at=artifact.expires_at,
    )


@router.post("/{transaction_id}/card", response_model=CardPaymentResponse)
def pay_with_card(
    transaction_id: str,
    data: CardPaymentRequest,
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Autoriza e captura o pagamento com cartão."""
    card = CardData(
        number=data.number.replace(" ", ""),
        holder_name=data.holder_name,
        expiry_month=data.expiry_month,
        expiry_year=data.expiry_year,
        cvv=data.cvv,
    )
    rail = Rail.CARD_DEBIT if data.debit else Rail.CARD_CREDIT
    tx = engine.process(transaction_id, rail, CardInput(card=card, installments=data.installments), owner_id=owner_id)

    artifact = tx.artifact
    return CardPaymentResponse(
        transaction_id=tx.uuid,
        status=tx.status,
        authorization_code=artifact.authorization_code,
        failure_cause=tx.failure_cause,
        masked_number=artifact.masked_number,
        brand=artifact.brand,
    )


@router.post("/{transaction_id}/bank-slip", response_model=BankSlipPaymentResponse)
def pay_with_bank_slip(
    transaction_id: str,
    data: BankSlipPaymentRequest,
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Gera o boleto (código de barras + linha digitável)."""
    customer = SlipCustomer(
        name=data.customer_name,
        document=data.customer_document,
        email=data.customer_email,
        address=data.address.model_dump() if data.address else {},
    )
    tx = engine.process(
        transaction_id,
        Rail.BANK_SLIP,
        BankSlipInput(customer=customer, due_date=data.due_date),
        owner_id=owner_id,
    )
    artifact = tx.artifact
    return BankSlipPaymentResponse(
        transaction_id=tx.uuid,
        status=tx.status,
        slip_number=artifact.slip_number,
        our_number=artifact.our_number,
        barcode=artifact.barcode,
        digitable_line=artifact.digitable_line,
        due_date=artifact.due_date,
        amount=artifact.amount,
    )


@router.get("/{transaction_id}/bank-slip/pdf")
def download_bank_slip_pdf(
    transaction_id: str,
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Boleto em PDF para impressão."""
    tx = engine.get(transaction_id, owner_id)
    artifact = _bank_slip_of(tx)

    pdf_bytes = bank_slip_pdf_generator.generate(artifact)
    filename = f"boleto_{artifact.our_number}.pdf"

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{transaction_id}/bank-slip/late-fees", response_model=LateFeesResponse)
def get_bank_slip_late_fees(
    transaction_id: str,
    payment_date: Optional[date] = Query(None, description="Data do pagamento (padrão: hoje)"),
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Multa e juros para pagamento do boleto na data informada."""
    tx = engine.get(transaction_id, owner_id)
    artifact = _bank_slip_of(tx)

    payment_date = payment_date or engine.clock().date()
    fees = late_fees(artifact.amount, artifact.due_date, payment_date)

    return LateFeesResponse(
        transaction_id=tx.uuid,
        due_date=artifact.due_date,
        payment_date=payment_date,
        original_amount=fees.original_amount,
        late_days=fees.late_days,
        fine=fees.fine,
        interest=fees.interest,
        total_amount=fees.total_amount,
    )


@router.post("/{transaction_id}/cancel", response_model=TransactionResponse)
def cancel_payment(
    transaction_id: str,
    data: CancelPaymentRequest,
    owner_id: str = Depends(get_current_owner),
    engine: TransactionEngine = Depends(get_engine),
):
    """Cancela transação pendente ou aguardando pagamento."""
    tx = engine.cancel(transaction_id, data.reason, owner_id=owner_id)
    logger.info(f"Transação {tx.uuid} cancelada pelo dono")
    return transaction_response(tx)
