"""
Checkout - Cálculo de Taxas
Função pura: mesmo valor, meio e parcelas sempre geram o mesmo resultado.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from checkout.config import settings
from checkout.exceptions import ValidationError
from checkout.models.transaction import Rail

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Converte para Decimal com 2 casas (arredondamento comercial)."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeBreakdown:
    original_amount: Decimal
    processing_fee: Decimal
    installment_fee: Decimal
    fee: Decimal
    final_amount: Decimal
    installments: int
    per_installment_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "original_amount": self.original_amount,
            "processing_fee": self.processing_fee,
            "installment_fee": self.installment_fee,
            "fee": self.fee,
            "final_amount": self.final_amount,
            "installments": self.installments,
            "per_installment_amount": self.per_installment_amount,
        }


def processing_fee_for(rail: Optional[Rail]) -> Decimal:
    """Taxa fixa do meio de pagamento (zero enquanto o meio não foi escolhido)."""
    if rail is None:
        return Decimal("0.00")
    fees = {
        Rail.INSTANT_TRANSFER: settings.FEE_INSTANT_TRANSFER,
        Rail.CARD_CREDIT: settings.FEE_CARD_CREDIT,
        Rail.CARD_DEBIT: settings.FEE_CARD_DEBIT,
        Rail.BANK_SLIP: settings.FEE_BANK_SLIP,
    }
    return to_money(fees[rail])


def installment_rate(installments: int) -> Decimal:
    """Percentual de acréscimo para o número de parcelas (0 para à vista)."""
    if installments <= 1:
        return Decimal("0")
    return Decimal(str(settings.INSTALLMENT_RATES[installments]))


def calculate_fees(amount, rail: Optional[Rail], installments: int = 1) -> FeeBreakdown:
    """
    Calcula taxa e valor final.

    A taxa de parcelamento só existe no cartão de crédito com mais de uma
    parcela e incide sobre o valor original.
    """
    original = to_money(amount)
    if original <= 0:
        raise ValidationError("Valor deve ser positivo", field="amount")

    if installments < 1 or installments > settings.MAX_INSTALLMENTS:
        raise ValidationError(
            f"Parcelas devem estar entre 1 e {settings.MAX_INSTALLMENTS}",
            field="installments",
        )
    if installments > 1 and rail != Rail.CARD_CREDIT:
        raise ValidationError("Parcelamento disponível apenas no cartão de crédito", field="installments")

    processing = processing_fee_for(rail)
    installment_fee = to_money(original * installment_rate(installments) / Decimal("100"))

    fee = processing + installment_fee
    final_amount = original + fee
    per_installment = to_money(final_amount / installments)

    return FeeBreakdown(
        original_amount=original,
        processing_fee=processing,
        installment_fee=installment_fee,
        fee=fee,
        final_amount=final_amount,
        installments=installments,
        per_installment_amount=per_installment,
    )


def rail_limits(rail: Optional[Rail]) -> Tuple[Decimal, Decimal]:
    """Valor mínimo e máximo aceitos pelo meio de pagamento."""
    if rail is None:
        return settings.MIN_PAYMENT_AMOUNT, settings.MAX_PAYMENT_AMOUNT
    if rail == Rail.INSTANT_TRANSFER:
        return settings.INSTANT_TRANSFER_MIN_AMOUNT, settings.INSTANT_TRANSFER_MAX_AMOUNT
    if rail.is_card:
        return settings.CARD_MIN_AMOUNT, settings.CARD_MAX_AMOUNT
    # Boleto: limite do banco, mas nunca acima do teto geral da loja
    return settings.BANK_SLIP_MIN_AMOUNT, min(settings.BANK_SLIP_MAX_AMOUNT, settings.MAX_PAYMENT_AMOUNT)


def check_amount_bounds(amount, rail: Optional[Rail]) -> Decimal:
    """Valida o valor contra os limites do meio; retorna o valor normalizado."""
    value = to_money(amount)
    if value <= 0:
        raise ValidationError("Valor deve ser positivo", field="amount")

    minimum, maximum = rail_limits(rail)
    if value < minimum:
        raise ValidationError(f"Valor mínimo é R$ {minimum:,.2f}", field="amount")
    if value > maximum:
        raise ValidationError(f"Valor máximo é R$ {maximum:,.2f}", field="amount")
    return value
