"""
Checkout - Model de Auditoria de Transações
"""

from sqlalchemy import Column, BigInteger, Integer, String, DateTime, JSON, ForeignKey, Text
from sqlalchemy.orm import relationship
from checkout.database import Base
import uuid as uuid_lib


class EventType:
    """Tipos de eventos registrados para cada transação"""
    INITIATED = "INITIATED"

    PIX_GENERATED = "PIX_GENERATED"
    BANK_SLIP_GENERATED = "BANK_SLIP_GENERATED"
    CARD_APPROVED = "CARD_APPROVED"
    CARD_DECLINED = "CARD_DECLINED"

    WEBHOOK_RECEIVED = "WEBHOOK_RECEIVED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    DUPLICATE_NOTIFICATION = "DUPLICATE_NOTIFICATION"

    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    ERROR = "ERROR"


class TransactionEvent(Base):
    """
    Log de auditoria da transação (IMUTÁVEL)
    Esta tabela NUNCA deve ter UPDATE ou DELETE
    """

    __tablename__ = "transaction_events"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, default=lambda: str(uuid_lib.uuid4()))
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True)

    # O quê
    event_type = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    extra_data = Column("metadata", JSON, nullable=True)

    # Quando
    created_at = Column(DateTime, nullable=False, index=True)

    transaction = relationship("Transaction", back_populates="events")

    def __repr__(self):
        return f"<TransactionEvent(id={self.id}, event='{self.event_type}', to='{self.to_status}')>"
