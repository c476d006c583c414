"""
Checkout - Motor de Transações
Máquina de estados do pagamento: criação, processamento por meio, conciliação e cancelamento.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from checkout.config import settings
from checkout.exceptions import (
    EncodingFailure,
    InvalidStateTransition,
    TransactionExpired,
    TransactionNotFound,
    ValidationError,
)
from checkout.models.artifact import (
    ARTIFACT_FOR_RAIL,
    BankSlipArtifact,
    CardArtifact,
    InstantTransferArtifact,
    RailArtifact,
)
from checkout.models.audit import EventType, TransactionEvent
from checkout.models.transaction import Rail, Transaction, TransactionStatus
from checkout.services.bank_slip import BankSlipEncoder, SlipCustomer, late_fees
from checkout.services.card_authorizer import CardAuthorizer, get_card_authorizer
from checkout.services.card_vault import CardData
from checkout.services.checksums import document_is_valid, only_digits
from checkout.services.fees import FeeBreakdown, calculate_fees, check_amount_bounds, to_money
from checkout.services.pix_qrcode import PixEncoder

logger = logging.getLogger(__name__)

# Status externo (adquirente/banco) -> status interno
STATUS_MAPPING = {
    "approved": TransactionStatus.PAID,
    "paid": TransactionStatus.PAID,
    "rejected": TransactionStatus.FAILED,
    "failed": TransactionStatus.FAILED,
    "cancelled": TransactionStatus.CANCELLED,
}


def map_external_status(status: Optional[str]) -> Optional[TransactionStatus]:
    return STATUS_MAPPING.get((status or "").strip().lower())


# =====================================================
# ENTRADAS POR MEIO DE PAGAMENTO
# =====================================================

@dataclass(frozen=True)
class InstantTransferInput:
    customer_name: str
    customer_document: str
    description: Optional[str] = None


@dataclass(frozen=True)
class BankSlipInput:
    customer: SlipCustomer
    due_date: Optional[date] = None


@dataclass(frozen=True)
class CardInput:
    card: CardData
    installments: int = 1


RailInput = Union[InstantTransferInput, BankSlipInput, CardInput]


@dataclass(frozen=True)
class PaymentNotification:
    """Notificação de pagamento vinda do banco/adquirente (webhook)."""
    transaction_id: str
    status: str
    amount: Optional[Decimal] = None
    paid_at: Optional[datetime] = None
    external_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


# =====================================================
# LOCKS POR TRANSAÇÃO
# =====================================================

class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class TransactionLocks:
    """
    Um lock por transação; chamadas concorrentes na mesma transação são serializadas.

    A entrada sai do mapa quando ninguém mais segura nem espera o lock.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout = timeout_seconds or settings.PROCESS_LOCK_TIMEOUT_SECONDS
        self._locks: Dict[str, _LockEntry] = {}
        self._guard = threading.Lock()

    def active(self) -> int:
        """Quantas transações têm lock em uso ou em espera."""
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, transaction_id: str):
        with self._guard:
            entry = self._locks.get(transaction_id)
            if entry is None:
                entry = self._locks[transaction_id] = _LockEntry()
            entry.users += 1

        try:
            if not entry.lock.acquire(timeout=self.timeout):
                raise InvalidStateTransition("Transação em processamento, tente novamente")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[transaction_id]


# Instância global (compartilhada por todas as requisições do processo)
transaction_locks = TransactionLocks()


def pending_ttl(rail: Optional[Rail]) -> timedelta:
    """Janela de validade de uma transação pendente."""
    if rail == Rail.INSTANT_TRANSFER:
        return timedelta(minutes=settings.PENDING_TTL_INSTANT_TRANSFER)
    if rail == Rail.BANK_SLIP:
        return timedelta(minutes=settings.PENDING_TTL_BANK_SLIP)
    return timedelta(minutes=settings.PENDING_TTL_DEFAULT)


class TransactionEngine:
    """Serviço de ciclo de vida das transações de pagamento"""

    def __init__(
        self,
        db: Session,
        pix_encoder: Optional[PixEncoder] = None,
        slip_encoder: Optional[BankSlipEncoder] = None,
        authorizer: Optional[CardAuthorizer] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        locks: Optional[TransactionLocks] = None,
    ):
        self.db = db
        self.pix_encoder = pix_encoder or PixEncoder()
        self.slip_encoder = slip_encoder or BankSlipEncoder()
        self.authorizer = authorizer or get_card_authorizer()
        self.clock = clock
        self.locks = locks or transaction_locks

    # =====================================================
    # HELPERS
    # =====================================================

    def _load(self, transaction_id: str, owner_id: Optional[str] = None) -> Transaction:
        # populate_existing: outra sessão pode ter alterado a linha enquanto esperávamos o lock
        tx = (
            self.db.query(Transaction)
            .filter(Transaction.uuid == transaction_id)
            .populate_existing()
            .first()
        )
        if not tx or (owner_id is not None and tx.owner_id != owner_id):
            raise TransactionNotFound(f"Transação {transaction_id} não encontrada")
        return tx

    def _record(
        self,
        tx: Transaction,
        event_type: str,
        description: str,
        from_status: Optional[TransactionStatus] = None,
        to_status: Optional[TransactionStatus] = None,
        extra: Optional[dict] = None,
    ) -> TransactionEvent:
        event = TransactionEvent(
            transaction_id=tx.id,
            event_type=event_type,
            description=description,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value if to_status else None,
            extra_data=extra,
            created_at=self.clock(),
        )
        self.db.add(event)
        return event

    def _transition(
        self,
        tx: Transaction,
        new_status: TransactionStatus,
        event_type: str,
        description: str,
        extra: Optional[dict] = None,
    ):
        if not tx.can_transition_to(new_status):
            raise InvalidStateTransition(
                f"Transição {tx.status.value} -> {new_status.value} não permitida",
                current_status=tx.status.value,
            )
        old_status = tx.status
        tx.status = new_status
        tx.updated_at = self.clock()
        self._record(tx, event_type, description, old_status, new_status, extra)

        logger.info(f"Transação {tx.uuid}: {old_status.value} -> {new_status.value} ({event_type})")

    def _commit(self):
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise InvalidStateTransition("Transação alterada por outra operação") from e

    def _record_error(self, transaction_id: str, error: Exception, stage: str):
        self.db.rollback()
        tx = self._load(transaction_id)
        extra = {"stage": stage, "error": type(error).__name__}
        if isinstance(error, ValidationError):
            extra["field"] = error.field
        self._record(tx, EventType.ERROR, str(error), extra=extra)
        self.db.commit()

    def _expiry_of(self, tx: Transaction) -> Optional[datetime]:
        if tx.status == TransactionStatus.AWAITING_PAYMENT and tx.artifact is not None:
            return tx.artifact.expires_at
        if tx.status == TransactionStatus.PENDING:
            return tx.expires_at
        return None

    # =====================================================
    # CRIAÇÃO
    # =====================================================

    def initiate(
        self,
        owner_id: str,
        order_id: str,
        amount,
        rail: Optional[Rail] = None,
        installments: int = 1,
        items: Optional[List[dict]] = None,
    ) -> Transaction:
        """
        Cria uma transação pendente.

        O valor é validado contra os limites do meio (ou gerais, sem meio),
        as taxas são calculadas e a janela de validade é definida pelo meio.
        """
        if not owner_id:
            raise ValidationError("Dono da transação é obrigatório", field="owner_id")
        if not order_id:
            raise ValidationError("Pedido é obrigatório", field="order_id")

        try:
            value = check_amount_bounds(amount, rail)
            fees = calculate_fees(value, rail, installments)
        except ValidationError as e:
            logger.warning(f"Transação recusada para o pedido {order_id}: {e.message}")
            raise

        now = self.clock()
        tx = Transaction(
            owner_id=owner_id,
            order_id=order_id,
            rail=rail,
            installments=installments,
            amount=fees.original_amount,
            fee=fees.fee,
            final_amount=fees.final_amount,
            status=TransactionStatus.PENDING,
            items=items,
            expires_at=now + pending_ttl(rail),
            created_at=now,
            updated_at=now,
        )
        self.db.add(tx)
        self.db.flush()

        self._record(
            tx,
            EventType.INITIATED,
            f"Transação criada para o pedido {order_id}",
            to_status=TransactionStatus.PENDING,
            extra={"amount": str(fees.original_amount), "fee": str(fees.fee), "rail": rail.value if rail else None},
        )
        self.db.commit()

        logger.info(f"Transação {tx.uuid} criada: pedido {order_id}, R$ {fees.final_amount}")
        return tx

    # =====================================================
    # PROCESSAMENTO
    # =====================================================

    def _check_input(self, tx: Transaction, rail: Rail, rail_input: RailInput):
        expected = {
            Rail.INSTANT_TRANSFER: InstantTransferInput,
            Rail.BANK_SLIP: BankSlipInput,
            Rail.CARD_CREDIT: CardInput,
            Rail.CARD_DEBIT: CardInput,
        }[rail]
        if not isinstance(rail_input, expected):
            raise ValidationError(f"Dados de pagamento incompatíveis com {rail.value}", field="rail")
        if tx.rail is not None and tx.rail != rail:
            raise ValidationError(
                f"Transação criada para {tx.rail.value}, não pode ser paga com {rail.value}",
                field="rail",
            )

    def _build_instant_transfer(
        self, tx: Transaction, data: InstantTransferInput, fees: FeeBreakdown, now: datetime
    ) -> Tuple[RailArtifact, TransactionStatus]:
        if not data.customer_name or not data.customer_name.strip():
            raise ValidationError("Nome do cliente é obrigatório", field="customer_name")
        if not document_is_valid(data.customer_document or ""):
            raise ValidationError("CPF/CNPJ do cliente inválido", field="customer_document")

        result = self.pix_encoder.generate(fees.final_amount, tx.uuid, data.description, now)
        artifact = InstantTransferArtifact(
            amount=result.amount,
            expires_at=result.expires_at,
            created_at=now,
            receiver_key=result.receiver_key,
            payload_text=result.payload_text,
            payload_image=result.payload_image,
            description=result.description,
        )
        return artifact, TransactionStatus.AWAITING_PAYMENT

    def _build_bank_slip(
        self, tx: Transaction, data: BankSlipInput, fees: FeeBreakdown, now: datetime
    ) -> Tuple[RailArtifact, TransactionStatus]:
        due_date = data.due_date or (now.date() + timedelta(days=settings.BANK_SLIP_DUE_DAYS))
        result = self.slip_encoder.generate(tx.uuid, fees.final_amount, due_date, data.customer, now)

        # Aceita pagamento até N dias após o vencimento
        last_day = due_date + timedelta(days=settings.BANK_SLIP_EXPIRES_AFTER_DAYS)
        artifact = BankSlipArtifact(
            amount=result.amount,
            expires_at=datetime.combine(last_day, time(23, 59, 59)),
            created_at=now,
            slip_number=result.slip_number,
            our_number=result.our_number,
            barcode=result.barcode,
            digitable_line=result.digitable_line,
            due_date=result.due_date,
            customer_name=data.customer.name.strip(),
            customer_document=only_digits(data.customer.document),
            customer_email=data.customer.email,
            customer_address=dict(data.customer.address),
        )
        return artifact, TransactionStatus.AWAITING_PAYMENT

    def _build_card(
        self, tx: Transaction, rail: Rail, data: CardInput, fees: FeeBreakdown, now: datetime
    ) -> Tuple[RailArtifact, TransactionStatus]:
        auth = self.authorizer.authorize(tx.uuid, data.card, fees.final_amount, data.installments, rail, now)
        token = auth.card_token
        artifact = CardArtifact(
            amount=fees.final_amount,
            expires_at=None,
            created_at=now,
            card_token=token.token,
            masked_number=token.masked_number,
            brand=token.brand,
            expiry_month=token.expiry_month,
            expiry_year=token.expiry_year,
            card_installments=data.installments,
            authorization_code=auth.authorization_code,
            acquirer_transaction_id=auth.acquirer_transaction_id,
            acquirer_message=auth.message[:255] if auth.message else None,
        )
        if not auth.approved:
            tx.failure_cause = auth.cause
            tx.failure_message = auth.message
        return artifact, auth.status

    def process(
        self,
        transaction_id: str,
        rail: Rail,
        rail_input: RailInput,
        owner_id: Optional[str] = None,
    ) -> Transaction:
        """
        Processa o pagamento com o meio escolhido.

        Só é permitido a partir de `pending`. O artefato é montado por
        completo antes de qualquer alteração ser gravada; entrada inválida
        mantém a transação pendente e registra apenas um evento ERROR.
        """
        with self.locks.hold(transaction_id):
            tx = self._load(transaction_id, owner_id)

            if tx.status != TransactionStatus.PENDING:
                raise InvalidStateTransition(
                    f"Transação {transaction_id} não está pendente",
                    current_status=tx.status.value,
                )

            now = self.clock()
            if now >= tx.expires_at:
                self._transition(tx, TransactionStatus.EXPIRED, EventType.EXPIRED, "Janela de pagamento expirada")
                self._commit()
                raise TransactionExpired(
                    f"Transação {transaction_id} expirou", current_status=TransactionStatus.EXPIRED.value
                )

            installments = rail_input.installments if isinstance(rail_input, CardInput) else 1

            try:
                self._check_input(tx, rail, rail_input)
                check_amount_bounds(tx.amount, rail)
                fees = calculate_fees(tx.amount, rail, installments)

                if rail == Rail.INSTANT_TRANSFER:
                    artifact, new_status = self._build_instant_transfer(tx, rail_input, fees, now)
                    event_type = EventType.PIX_GENERATED
                elif rail == Rail.BANK_SLIP:
                    artifact, new_status = self._build_bank_slip(tx, rail_input, fees, now)
                    event_type = EventType.BANK_SLIP_GENERATED
                else:
                    artifact, new_status = self._build_card(tx, rail, rail_input, fees, now)
                    event_type = (
                        EventType.CARD_APPROVED if new_status == TransactionStatus.PAID else EventType.CARD_DECLINED
                    )

                if type(artifact) is not ARTIFACT_FOR_RAIL[rail]:
                    raise EncodingFailure(
                        f"Artefato {type(artifact).__name__} não corresponde ao meio {rail.value}"
                    )
            except ValidationError as e:
                logger.warning(f"Dados inválidos na transação {transaction_id} ({e.field}): {e.message}")
                self._record_error(transaction_id, e, "process")
                raise
            except EncodingFailure as e:
                logger.error(f"Falha ao gerar artefato da transação {transaction_id}: {e}", exc_info=True)
                self._record_error(transaction_id, e, "process")
                raise

            tx.rail = rail
            tx.installments = installments
            tx.fee = fees.fee
            tx.final_amount = fees.final_amount
            tx.artifact = artifact
            if artifact.expires_at is not None:
                tx.expires_at = artifact.expires_at

            extra = {"rail": rail.value, "fee": str(fees.fee), "final_amount": str(fees.final_amount)}
            if tx.failure_cause:
                extra["failure_cause"] = tx.failure_cause
            self._transition(tx, new_status, event_type, f"Pagamento processado via {rail.value}", extra)
            self._commit()

            return tx

    # =====================================================
    # CONCILIAÇÃO
    # =====================================================

    def amount_due(self, tx: Transaction, paid_at: datetime) -> Decimal:
        """Valor devido na data do pagamento (boleto vencido inclui multa e juros)."""
        artifact = tx.artifact
        if isinstance(artifact, BankSlipArtifact) and artifact.due_date:
            return late_fees(artifact.amount, artifact.due_date, paid_at).total_amount
        return to_money(tx.final_amount)

    def _already_notified(self, tx: Transaction, mapped: TransactionStatus) -> bool:
        """Se alguma notificação aceita antes tinha o mesmo status externo (mapeado)."""
        received = (
            self.db.query(TransactionEvent)
            .filter(
                TransactionEvent.transaction_id == tx.id,
                TransactionEvent.event_type == EventType.WEBHOOK_RECEIVED,
            )
            .all()
        )
        return any(
            map_external_status((event.extra_data or {}).get("external_status")) == mapped
            for event in received
        )

    def reconcile(self, notification: PaymentNotification) -> Transaction:
        """
        Aplica uma notificação de pagamento.

        Status desconhecido é recusado; notificação repetida para transação
        já finalizada não altera nada.
        """
        with self.locks.hold(notification.transaction_id):
            tx = self._load(notification.transaction_id)

            mapped = map_external_status(notification.status)
            if mapped is None:
                error = ValidationError(f"Status externo desconhecido: {notification.status!r}", field="status")
                logger.warning(f"Notificação recusada para a transação {tx.uuid}: {error.message}")
                self._record_error(notification.transaction_id, error, "reconcile")
                raise error

            if tx.is_terminal:
                if tx.status == mapped or self._already_notified(tx, mapped):
                    self._record(
                        tx,
                        EventType.DUPLICATE_NOTIFICATION,
                        f"Notificação repetida ({notification.status})",
                        extra={"external_id": notification.external_id},
                    )
                    self.db.commit()
                    logger.info(f"Notificação repetida ignorada para a transação {tx.uuid}")
                    return tx
                raise InvalidStateTransition(
                    f"Transação {tx.uuid} já finalizada como {tx.status.value}",
                    current_status=tx.status.value,
                )

            if tx.status != TransactionStatus.AWAITING_PAYMENT:
                raise InvalidStateTransition(
                    f"Transação {tx.uuid} não está aguardando pagamento",
                    current_status=tx.status.value,
                )

            now = self.clock()
            paid_at = notification.paid_at or now
            extra = {
                "external_status": notification.status,
                "external_id": notification.external_id,
                "amount": str(notification.amount) if notification.amount is not None else None,
            }
            self._record(tx, EventType.WEBHOOK_RECEIVED, f"Notificação recebida ({notification.status})", extra=extra)

            if mapped == TransactionStatus.PAID:
                expires_at = tx.artifact.expires_at if tx.artifact else tx.expires_at
                if expires_at is not None and paid_at > expires_at:
                    self._transition(
                        tx, TransactionStatus.EXPIRED, EventType.EXPIRED, "Pagamento recebido após a validade"
                    )
                    self._commit()
                    return tx

                due = self.amount_due(tx, paid_at)
                if notification.amount is None or to_money(notification.amount) < due:
                    error = ValidationError(
                        f"Valor pago inferior ao devido (R$ {due:,.2f})", field="amount"
                    )
                    logger.warning(f"Notificação recusada para a transação {tx.uuid}: {error.message}")
                    self._record_error(notification.transaction_id, error, "reconcile")
                    raise error

                self._transition(tx, TransactionStatus.PAID, EventType.PAYMENT_CONFIRMED, "Pagamento confirmado", extra)
            elif mapped == TransactionStatus.FAILED:
                tx.failure_cause = "rejected"
                tx.failure_message = f"Recusado pelo banco ({notification.status})"
                self._transition(tx, TransactionStatus.FAILED, EventType.PAYMENT_FAILED, "Pagamento recusado", extra)
            else:
                self._transition(tx, TransactionStatus.CANCELLED, EventType.CANCELLED, "Cancelado pelo banco", extra)

            self._commit()
            return tx

    # =====================================================
    # CANCELAMENTO / EXPIRAÇÃO
    # =====================================================

    def cancel(self, transaction_id: str, reason: Optional[str] = None, owner_id: Optional[str] = None) -> Transaction:
        """Cancela transação pendente ou aguardando pagamento."""
        with self.locks.hold(transaction_id):
            tx = self._load(transaction_id, owner_id)
            if not tx.can_transition_to(TransactionStatus.CANCELLED):
                raise InvalidStateTransition(
                    f"Transação {transaction_id} não pode ser cancelada no status {tx.status.value}",
                    current_status=tx.status.value,
                )
            self._transition(
                tx,
                TransactionStatus.CANCELLED,
                EventType.CANCELLED,
                reason or "Cancelada pelo cliente",
                {"reason": reason},
            )
            self._commit()
            return tx

    def expire_if_stale(self, tx: Transaction) -> bool:
        """Marca como expirada a transação cuja validade passou. Retorna True se expirou."""
        expires_at = self._expiry_of(tx)
        if expires_at is None or self.clock() < expires_at:
            return False

        with self.locks.hold(tx.uuid):
            tx = self._load(tx.uuid)
            expires_at = self._expiry_of(tx)
            if expires_at is None or self.clock() < expires_at:
                return False
            self._transition(tx, TransactionStatus.EXPIRED, EventType.EXPIRED, "Validade expirada")
            self._commit()
            return True

    # =====================================================
    # CONSULTAS
    # =====================================================

    def get(self, transaction_id: str, owner_id: Optional[str] = None) -> Transaction:
        tx = self._load(transaction_id, owner_id)
        if self.expire_if_stale(tx):
            tx = self._load(transaction_id, owner_id)
        return tx

    def list_for_owner(
        self,
        owner_id: str,
        status: Optional[TransactionStatus] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Transaction], int]:
        query = self.db.query(Transaction).filter(Transaction.owner_id == owner_id)
        if status:
            query = query.filter(Transaction.status == status)

        total = query.count()
        items = (
            query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def events(self, transaction_id: str, owner_id: Optional[str] = None) -> List[TransactionEvent]:
        tx = self._load(transaction_id, owner_id)
        return (
            self.db.query(TransactionEvent)
            .filter(TransactionEvent.transaction_id == tx.id)
            .order_by(TransactionEvent.id)
            .all()
        )
