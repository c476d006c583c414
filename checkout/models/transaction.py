"""
Checkout - Model de Transação de Pagamento
"""

from sqlalchemy import Column, Integer, String, Enum, DateTime, DECIMAL, Text, JSON
from sqlalchemy.orm import relationship
from checkout.database import Base
import enum
import uuid as uuid_lib


class Rail(str, enum.Enum):
    """Meios de pagamento"""
    INSTANT_TRANSFER = "instant_transfer"
    CARD_CREDIT = "card_credit"
    CARD_DEBIT = "card_debit"
    BANK_SLIP = "bank_slip"

    @property
    def is_card(self) -> bool:
        return self in (Rail.CARD_CREDIT, Rail.CARD_DEBIT)


class TransactionStatus(str, enum.Enum):
    """Status da transação"""
    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    TransactionStatus.PAID,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
    TransactionStatus.EXPIRED,
})

# Transições permitidas: status atual -> próximos status
ALLOWED_TRANSITIONS = {
    TransactionStatus.PENDING: {
        TransactionStatus.AWAITING_PAYMENT,
        TransactionStatus.PAID,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
        TransactionStatus.EXPIRED,
    },
    TransactionStatus.AWAITING_PAYMENT: {
        TransactionStatus.PAID,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
        TransactionStatus.EXPIRED,
    },
    TransactionStatus.PAID: set(),
    TransactionStatus.FAILED: set(),
    TransactionStatus.CANCELLED: set(),
    TransactionStatus.EXPIRED: set(),
}


class Transaction(Base):
    """Modelo de transação de pagamento"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()))

    # Referências externas
    owner_id = Column(String(100), nullable=False, index=True)
    order_id = Column(String(100), nullable=False, index=True)

    # Meio de pagamento
    rail = Column(Enum(Rail), nullable=True)
    installments = Column(Integer, nullable=False, default=1)

    # Valores
    amount = Column(DECIMAL(15, 2), nullable=False)
    fee = Column(DECIMAL(15, 2), nullable=False, default=0)
    final_amount = Column(DECIMAL(15, 2), nullable=False)

    # Status
    status = Column(Enum(TransactionStatus), nullable=False, default=TransactionStatus.PENDING, index=True)
    failure_cause = Column(String(50), nullable=True)
    failure_message = Column(Text, nullable=True)

    # Itens do pedido (somente referência)
    items = Column(JSON, nullable=True)

    # Timestamps
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    # Controle de concorrência otimista
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relacionamentos
    artifact = relationship(
        "RailArtifact",
        back_populates="transaction",
        uselist=False,
        cascade="all, delete-orphan",
    )
    events = relationship(
        "TransactionEvent",
        back_populates="transaction",
        order_by="TransactionEvent.id",
    )

    def __repr__(self):
        return f"<Transaction(uuid={self.uuid}, rail={self.rail}, status='{self.status}')>"

    @property
    def is_terminal(self) -> bool:
        """Verifica se a transação chegou a um status final"""
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, new_status: TransactionStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]
