"""
Checkout - Autorização de Pagamentos com Cartão
Validação, bandeira, tokenização e autorização/captura no adquirente.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from checkout.config import settings
from checkout.exceptions import AcquirerError, AcquirerTimeout, ValidationError
from checkout.models.transaction import Rail, TransactionStatus
from checkout.services.acquirer import Acquirer, AcquirerRequest, REJECTED, get_acquirer
from checkout.services.card_vault import CardData, CardToken, CardVault
from checkout.services.checksums import luhn_is_valid, only_digits

logger = logging.getLogger(__name__)

ELO_PREFIXES = (
    "4011", "4312", "4389", "4514", "4573", "6277",
    "6362", "6363", "6504", "6505", "6516", "6550",
)
HIPERCARD_PREFIXES = ("3841", "6062")


@dataclass(frozen=True)
class BrandRule:
    max_installments: int
    min_amount: Decimal
    max_amount: Decimal


BRAND_RULES = {
    "visa": BrandRule(12, Decimal("1.00"), Decimal("50000.00")),
    "mastercard": BrandRule(12, Decimal("1.00"), Decimal("50000.00")),
    "amex": BrandRule(10, Decimal("1.00"), Decimal("30000.00")),
    "elo": BrandRule(12, Decimal("1.00"), Decimal("25000.00")),
    "hipercard": BrandRule(12, Decimal("1.00"), Decimal("20000.00")),
    "diners": BrandRule(6, Decimal("1.00"), Decimal("15000.00")),
    "unknown": BrandRule(1, Decimal("1.00"), Decimal("1000.00")),
}


@dataclass(frozen=True)
class AuthorizationResult:
    status: TransactionStatus
    message: str
    card_token: CardToken
    cause: Optional[str] = None
    authorization_code: Optional[str] = None
    acquirer_transaction_id: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.status == TransactionStatus.PAID


def detect_brand(number: str) -> str:
    """Detecta a bandeira pelo prefixo (Elo e Hipercard antes de Visa/Diners)."""
    number = only_digits(number or "")

    if number.startswith(ELO_PREFIXES):
        return "elo"
    if number.startswith(HIPERCARD_PREFIXES):
        return "hipercard"
    if number[:2] in ("34", "37"):
        return "amex"
    if number[:2] in ("36", "38", "39") or number[:3] in ("300", "301", "302", "303", "304", "305"):
        return "diners"
    if number[:2] in ("51", "52", "53", "54", "55"):
        return "mastercard"
    if len(number) >= 4 and 2221 <= int(number[:4]) <= 2720:
        return "mastercard"
    if number.startswith("4"):
        return "visa"
    return "unknown"


def validate_card(card: CardData, today: date) -> str:
    """
    Valida o cartão na ordem: número, portador, validade, CVV.
    Retorna a bandeira detectada.
    """
    number = card.number or ""
    if not number.isdigit() or not luhn_is_valid(number):
        raise ValidationError("Número do cartão inválido", field="number")

    if not card.holder_name or not card.holder_name.strip():
        raise ValidationError("Nome do portador inválido", field="holder_name")

    month, year = card.expiry_month, card.expiry_year
    if month is None or year is None or not 1 <= month <= 12:
        raise ValidationError("Mês de validade inválido", field="expiry_month")
    if (year, month) < (today.year, today.month):
        raise ValidationError("Cartão vencido", field="expiry_year")
    if year > today.year + settings.CARD_MAX_EXPIRY_YEARS:
        raise ValidationError("Ano de validade inválido", field="expiry_year")

    if not card.cvv or not card.cvv.isdigit() or len(card.cvv) not in (3, 4):
        raise ValidationError("CVV inválido", field="cvv")

    return detect_brand(number)


def check_brand_rules(brand: str, amount: Decimal, installments: int, rail: Rail) -> None:
    rule = BRAND_RULES[brand]

    if rail == Rail.CARD_DEBIT and installments != 1:
        raise ValidationError("Cartão de débito aceita apenas pagamento à vista", field="installments")
    if installments > rule.max_installments:
        raise ValidationError(
            f"Bandeira {brand} permite no máximo {rule.max_installments} parcelas",
            field="installments",
        )
    if amount < rule.min_amount or amount > rule.max_amount:
        raise ValidationError(
            f"Valor fora do limite da bandeira {brand} "
            f"(R$ {rule.min_amount:,.2f} a R$ {rule.max_amount:,.2f})",
            field="amount",
        )


class CardAuthorizer:
    """Orquestra validação, cofre e adquirente para um pagamento com cartão."""

    def __init__(self, vault: Optional[CardVault] = None, acquirer: Optional[Acquirer] = None):
        self.vault = vault or CardVault()
        self.acquirer = acquirer or get_acquirer()

    def _void(self, acquirer_id: str) -> None:
        try:
            self.acquirer.void(acquirer_id)
        except AcquirerError as e:
            logger.error(f"Falha ao estornar autorização {acquirer_id} no adquirente: {e}")

    def authorize(
        self,
        transaction_id: str,
        card: CardData,
        amount: Decimal,
        installments: int,
        rail: Rail,
        now: Optional[datetime] = None,
    ) -> AuthorizationResult:
        """
        Autoriza e captura o valor no adquirente.

        Recusa e erro de comunicação viram resultado `failed` com a causa;
        apenas entradas inválidas levantam exceção.
        """
        now = now or datetime.utcnow()
        brand = validate_card(card, now.date())
        check_brand_rules(brand, amount, installments, rail)

        card_token = self.vault.tokenize(card, brand, now)
        masked = card_token.masked_number

        def failed(cause: str, message: str, acquirer_id: Optional[str] = None) -> AuthorizationResult:
            logger.warning(f"Cartão {masked} recusado na transação {transaction_id}: {cause} ({message})")
            return AuthorizationResult(
                status=TransactionStatus.FAILED,
                message=message,
                card_token=card_token,
                cause=cause,
                acquirer_transaction_id=acquirer_id,
            )

        try:
            with self.vault.unsealed(card_token.token, now) as opened:
                request = AcquirerRequest(
                    transaction_id=transaction_id,
                    card_number=opened.number,
                    holder_name=opened.holder_name,
                    expiry_month=opened.expiry_month,
                    expiry_year=opened.expiry_year,
                    cvv=opened.cvv,
                    amount=amount,
                    installments=installments,
                    debit=rail == Rail.CARD_DEBIT,
                )
                response = self.acquirer.authorize(request)
                del request
        except AcquirerTimeout as e:
            return failed("timeout", str(e))
        finally:
            self.vault.discard(card_token.token)

        if not response.approved:
            cause = "rejected" if response.status == REJECTED else "acquirer_error"
            return failed(cause, response.message, response.acquirer_transaction_id)

        try:
            capture = self.acquirer.capture(response.acquirer_transaction_id, amount)
        except AcquirerTimeout as e:
            self._void(response.acquirer_transaction_id)
            return failed("timeout", str(e), response.acquirer_transaction_id)

        if not capture.approved:
            self._void(response.acquirer_transaction_id)
            return failed("acquirer_error", capture.message, response.acquirer_transaction_id)

        logger.info(
            f"Cartão {masked} ({brand}) aprovado na transação {transaction_id}: "
            f"R$ {amount} em {installments}x, autorização {response.authorization_code}"
        )

        return AuthorizationResult(
            status=TransactionStatus.PAID,
            message=response.message,
            card_token=card_token,
            authorization_code=response.authorization_code,
            acquirer_transaction_id=response.acquirer_transaction_id,
        )


@lru_cache()
def get_card_authorizer() -> CardAuthorizer:
    """Autorizador compartilhado (o cofre de tokens vive enquanto o processo viver)."""
    return CardAuthorizer()
