"""
Checkout - Router para Webhooks de Pagamento
Recebe notificações assinadas (HMAC-SHA256) de PIX pagos, boletos liquidados e recusas
"""

from fastapi import APIRouter, Request, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError as PydanticValidationError
from datetime import timezone
import logging

from checkout.config import settings
from checkout.exceptions import ValidationError
from checkout.routers.payments import get_engine
from checkout.schemas.webhook import PaymentWebhook, WebhookAck
from checkout.services.transaction_engine import PaymentNotification, TransactionEngine
from checkout.utils.security import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/payments", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    engine: TransactionEngine = Depends(get_engine),
):
    """
    Webhook de confirmação de pagamento.

    A assinatura é conferida sobre o corpo bruto, antes de qualquer
    interpretação do conteúdo. Assinatura ausente ou inválida -> 401.
    """
    body = await request.body()
    verify_signature(body, request.headers.get(settings.WEBHOOK_SIGNATURE_HEADER))

    try:
        payload = PaymentWebhook.model_validate_json(body)
    except PydanticValidationError as e:
        raise ValidationError(f"Notificação malformada: {e.error_count()} erro(s)", field="body") from e

    logger.info(f"Webhook recebido: transação {payload.transaction_id}, status {payload.status}")

    paid_at = payload.paid_at
    if paid_at is not None and paid_at.tzinfo is not None:
        # Datas do banco ficam em UTC sem fuso
        paid_at = paid_at.astimezone(timezone.utc).replace(tzinfo=None)

    notification = PaymentNotification(
        transaction_id=payload.transaction_id,
        status=payload.status,
        amount=payload.amount,
        paid_at=paid_at,
        external_id=payload.external_id,
        raw=payload.model_dump(mode="json"),
    )
    tx = await run_in_threadpool(engine.reconcile, notification)

    return WebhookAck(transaction_id=tx.uuid, status=tx.status.value)
