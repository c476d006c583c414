"""
Checkout - Models dos artefatos gerados por meio de pagamento

Um único artefato por transação; o tipo concreto é escolhido pelo
discriminador `kind`, que sempre corresponde ao `rail` da transação.
"""

from sqlalchemy import Column, Integer, String, DateTime, Date, DECIMAL, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from checkout.database import Base
from checkout.models.transaction import Rail


class RailArtifact(Base):
    """Base dos artefatos (herança de tabela única)"""

    __tablename__ = "rail_artifacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, unique=True)
    kind = Column(String(30), nullable=False)

    amount = Column(DECIMAL(15, 2), nullable=False)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)

    transaction = relationship("Transaction", back_populates="artifact")

    __mapper_args__ = {
        "polymorphic_on": kind,
        "polymorphic_identity": "artifact",
    }

    def __repr__(self):
        return f"<{type(self).__name__}(transaction_id={self.transaction_id}, amount={self.amount})>"


class InstantTransferArtifact(RailArtifact):
    """QR Code PIX (copia e cola + imagem)"""

    receiver_key = Column(String(77), nullable=True)
    payload_text = Column(Text, nullable=True)
    payload_image = Column(Text, nullable=True)
    description = Column(String(72), nullable=True)

    __mapper_args__ = {"polymorphic_identity": "instant_transfer"}


class BankSlipArtifact(RailArtifact):
    """Boleto bancário"""

    slip_number = Column(String(30), nullable=True)
    our_number = Column(String(12), nullable=True)
    barcode = Column(String(44), nullable=True)
    digitable_line = Column(String(54), nullable=True)
    due_date = Column(Date, nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_document = Column(String(14), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_address = Column(JSON, nullable=True)

    __mapper_args__ = {"polymorphic_identity": "bank_slip"}


class CardArtifact(RailArtifact):
    """Resultado da autorização com cartão (nunca guarda dados abertos)"""

    card_token = Column(String(80), nullable=True)
    masked_number = Column(String(19), nullable=True)
    brand = Column(String(20), nullable=True)
    expiry_month = Column(Integer, nullable=True)
    expiry_year = Column(Integer, nullable=True)
    card_installments = Column(Integer, nullable=True)
    authorization_code = Column(String(20), nullable=True)
    acquirer_transaction_id = Column(String(80), nullable=True)
    acquirer_message = Column(String(255), nullable=True)

    __mapper_args__ = {"polymorphic_identity": "card"}


ARTIFACT_FOR_RAIL = {
    Rail.INSTANT_TRANSFER: InstantTransferArtifact,
    Rail.BANK_SLIP: BankSlipArtifact,
    Rail.CARD_CREDIT: CardArtifact,
    Rail.CARD_DEBIT: CardArtifact,
}
