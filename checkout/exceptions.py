"""
Checkout - Hierarquia de exceções do núcleo de pagamentos
"""

from typing import Optional


class CheckoutError(Exception):
    """Base de todas as exceções do checkout."""


class ValidationError(CheckoutError):
    """Entrada inválida; nunca chega à etapa de codificação."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class TransactionNotFound(CheckoutError):
    """Transação inexistente (ou de outro dono)."""


class InvalidStateTransition(CheckoutError):
    """Operação não permitida no status atual da transação."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class TransactionExpired(InvalidStateTransition):
    """A janela de validade passou; a transação foi marcada como expirada."""


class EncodingFailure(CheckoutError):
    """Invariante interna violada ao montar um payload (indica bug)."""


class CryptoFailure(CheckoutError):
    """Falha ao cifrar/decifrar dados no cofre de cartões."""


class TokenNotFound(ValidationError):
    """Token de cartão desconhecido ou já descartado."""


class TokenExpired(ValidationError):
    """Token de cartão expirado; foi removido do cofre."""


class AcquirerError(CheckoutError):
    """Erro de comunicação com o adquirente."""

    cause = "acquirer_error"


class AcquirerTimeout(AcquirerError):
    """O adquirente não respondeu dentro do tempo limite."""

    cause = "timeout"


class SignatureMismatch(CheckoutError):
    """Assinatura HMAC do webhook ausente ou inválida."""
