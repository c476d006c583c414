"""
Checkout - Gerador de Boleto Bancário
Código de barras (44 posições) e linha digitável (47 dígitos) no padrão FEBRABAN.
"""

import hashlib
import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from checkout.config import settings
from checkout.exceptions import EncodingFailure, ValidationError
from checkout.services.checksums import (
    document_is_valid,
    mod10_digit,
    mod11_barcode_digit,
    mod11_our_number_digit,
    only_digits,
)

logger = logging.getLogger(__name__)

# Data base do fator de vencimento
DUE_FACTOR_EPOCH = date(1997, 10, 7)
CURRENCY_CODE = "9"  # Real
CENTS = Decimal("0.01")

LATE_FINE_RATE = Decimal("0.02")
LATE_MONTHLY_INTEREST_RATE = Decimal("0.01")

BANKS = {
    "001": "Banco do Brasil",
    "033": "Santander",
    "104": "Caixa Econômica Federal",
    "237": "Bradesco",
    "341": "Itaú",
    "422": "Banco Safra",
}


@dataclass(frozen=True)
class SlipCustomer:
    name: str
    document: str
    email: Optional[str] = None
    address: dict = field(default_factory=dict)


@dataclass(frozen=True)
class BankSlipResult:
    slip_number: str
    our_number: str
    barcode: str
    digitable_line: str
    due_date: date
    amount: Decimal


@dataclass(frozen=True)
class LateFees:
    original_amount: Decimal
    late_days: int
    fine: Decimal
    interest: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class ParsedDigitableLine:
    bank_code: str
    amount: Decimal
    due_factor: int
    due_date: date
    barcode: str


def due_factor(due_date: date) -> int:
    """
    Fator de vencimento: dias corridos desde 07/10/1997.

    Depois do fator 9999 (21/02/2025) a contagem recomeça em 1000.
    """
    days = (due_date - DUE_FACTOR_EPOCH).days
    if days < 1000:
        raise EncodingFailure(f"Data de vencimento fora da faixa do fator: {due_date}")
    if days > 9999:
        return (days - 10000) % 9000 + 1000
    return days


def factor_to_date(factor: int, reference: Optional[date] = None) -> date:
    """Data correspondente ao fator, escolhendo o ciclo mais próximo da referência."""
    reference = reference or date.today()
    candidates = [DUE_FACTOR_EPOCH + timedelta(days=factor)]
    for cycle in range(6):
        candidates.append(DUE_FACTOR_EPOCH + timedelta(days=10000 + (factor - 1000) + 9000 * cycle))
    return min(candidates, key=lambda candidate: abs((candidate - reference).days))


def format_digitable_line(digits: str) -> str:
    """Formata 47 dígitos como AAAAA.AAAAA BBBBB.BBBBBB CCCCC.CCCCCC D EEEEEEEEEEEEEE."""
    if len(digits) != 47:
        raise EncodingFailure(f"Linha digitável deve ter 47 dígitos, recebeu {len(digits)}")
    return (
        f"{digits[0:5]}.{digits[5:10]} "
        f"{digits[10:15]}.{digits[15:21]} "
        f"{digits[21:26]}.{digits[26:32]} "
        f"{digits[32]} "
        f"{digits[33:47]}"
    )


def barcode_to_digitable_line(barcode: str) -> str:
    """Reagrupa o código de barras em 5 campos, com DV módulo 10 nos 3 primeiros."""
    if len(barcode) != 44 or not barcode.isdigit():
        raise EncodingFailure(f"Código de barras inválido para linha digitável: {barcode!r}")

    # Campo 1: banco + moeda + 5 primeiras posições do campo livre
    field1 = barcode[0:4] + barcode[19:24]
    # Campo 2 e 3: restante do campo livre
    field2 = barcode[24:34]
    field3 = barcode[34:44]
    # Campo 4: DV geral / Campo 5: fator de vencimento + valor
    field4 = barcode[4]
    field5 = barcode[5:19]

    digits = (
        field1 + mod10_digit(field1)
        + field2 + mod10_digit(field2)
        + field3 + mod10_digit(field3)
        + field4
        + field5
    )
    return format_digitable_line(digits)


def validate_barcode(barcode: str) -> bool:
    """Confere tamanho e DV geral do código de barras."""
    if len(barcode) != 44 or not barcode.isdigit():
        return False
    return barcode[4] == mod11_barcode_digit(barcode[:4] + barcode[5:])


def validate_digitable_line(line: str) -> bool:
    """Confere os DVs dos três primeiros campos e o DV geral."""
    digits = re.sub(r"[\s.]", "", line or "")
    if len(digits) != 47 or not digits.isdigit():
        return False

    field1, field2, field3 = digits[0:10], digits[10:21], digits[21:32]
    if field1[9] != mod10_digit(field1[:9]):
        return False
    if field2[10] != mod10_digit(field2[:10]):
        return False
    if field3[10] != mod10_digit(field3[:10]):
        return False

    return validate_barcode(_digitable_to_barcode(digits))


def _digitable_to_barcode(digits: str) -> str:
    return (
        digits[0:4]          # banco + moeda
        + digits[32]         # DV geral
        + digits[33:47]      # fator + valor
        + digits[4:9]        # campo livre (1-5)
        + digits[10:20]      # campo livre (6-15)
        + digits[21:31]      # campo livre (16-25)
    )


def parse_digitable_line(line: str, reference: Optional[date] = None) -> ParsedDigitableLine:
    """Extrai banco, valor e vencimento de uma linha digitável."""
    if not validate_digitable_line(line):
        raise ValidationError("Linha digitável inválida", field="digitable_line")

    digits = re.sub(r"[\s.]", "", line)
    barcode = _digitable_to_barcode(digits)
    factor = int(barcode[5:9])

    return ParsedDigitableLine(
        bank_code=barcode[0:3],
        amount=(Decimal(int(barcode[9:19])) / 100).quantize(CENTS),
        due_factor=factor,
        due_date=factor_to_date(factor, reference),
        barcode=barcode,
    )


def late_fees(amount, due_date: date, payment_date) -> LateFees:
    """
    Calcula multa e juros de pagamento após o vencimento.

    Multa de 2% + juros de 1% ao mês pro rata die (1%/30 por dia de atraso).
    """
    original = Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)
    if isinstance(payment_date, datetime):
        payment_date = payment_date.date()

    if payment_date <= due_date:
        zero = Decimal("0.00")
        return LateFees(original, 0, zero, zero, original)

    late_days = (payment_date - due_date).days
    fine = (original * LATE_FINE_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
    interest = (original * LATE_MONTHLY_INTEREST_RATE / 30 * late_days).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )

    return LateFees(
        original_amount=original,
        late_days=late_days,
        fine=fine,
        interest=interest,
        total_amount=original + fine + interest,
    )


class BankSlipEncoder:
    """Gera nosso número, código de barras e linha digitável do boleto."""

    def __init__(
        self,
        bank_code: Optional[str] = None,
        agency: Optional[str] = None,
        account: Optional[str] = None,
        wallet: Optional[str] = None,
    ):
        self.bank_code = only_digits(bank_code or settings.BANK_SLIP_BANK_CODE).zfill(3)
        self.agency = only_digits(agency or settings.BANK_SLIP_AGENCY).zfill(4)
        self.account = only_digits(account or settings.BANK_SLIP_ACCOUNT).zfill(7)
        self.wallet = only_digits(wallet or settings.BANK_SLIP_WALLET).zfill(2)

        if len(self.bank_code) != 3 or len(self.agency) != 4 or len(self.account) != 7 or len(self.wallet) != 2:
            raise EncodingFailure("Dados bancários do beneficiário com tamanho inválido")

    @property
    def bank_name(self) -> str:
        return BANKS.get(self.bank_code, "Banco Desconhecido")

    def validate(self, amount: Decimal, due_date: date, customer: SlipCustomer, today: date) -> None:
        """Valida os dados antes de qualquer codificação."""
        if amount is None or amount <= 0:
            raise ValidationError("Valor do boleto deve ser positivo", field="amount")
        if amount < settings.BANK_SLIP_MIN_AMOUNT:
            raise ValidationError(
                f"Valor mínimo do boleto é R$ {settings.BANK_SLIP_MIN_AMOUNT:,.2f}", field="amount"
            )
        if amount > settings.BANK_SLIP_MAX_AMOUNT:
            raise ValidationError(
                f"Valor máximo do boleto é R$ {settings.BANK_SLIP_MAX_AMOUNT:,.2f}", field="amount"
            )

        if due_date is None or due_date <= today:
            raise ValidationError("Data de vencimento deve ser futura", field="due_date")
        try:
            max_due_date = today.replace(year=today.year + 1)
        except ValueError:
            # 29/02 -> 28/02 do ano seguinte
            max_due_date = today.replace(year=today.year + 1, day=28)
        if due_date > max_due_date:
            raise ValidationError("Data de vencimento não pode ser superior a 1 ano", field="due_date")

        if not customer.name or not customer.name.strip():
            raise ValidationError("Nome do cliente é obrigatório", field="customer_name")
        if not customer.document or not document_is_valid(customer.document):
            raise ValidationError("CPF/CNPJ do cliente inválido", field="customer_document")

        address = customer.address or {}
        if not all(address.get(key) for key in ("street", "city", "state", "zip_code")):
            raise ValidationError("Endereço completo do cliente é obrigatório", field="address")

    def our_number(self, transaction_id: str) -> str:
        """Nosso número: 11 dígitos derivados do hash da transação + DV módulo 11."""
        digest = hashlib.sha256(transaction_id.encode("utf-8")).hexdigest()
        number = str(int(digest, 16) % 10 ** 11).zfill(11)
        return number + mod11_our_number_digit(number)

    def free_field(self, our_number: str) -> str:
        """Campo livre (25): agência (4) + nosso número (12) + conta (7) + carteira (2)."""
        free = self.agency + our_number + self.account + self.wallet
        if len(free) != 25:
            raise EncodingFailure(f"Campo livre com {len(free)} posições")
        return free

    def barcode(self, amount: Decimal, due_date: date, our_number: str) -> str:
        """Monta as 44 posições e insere o DV geral na posição 5."""
        cents = int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
        amount_field = str(cents).zfill(10)
        if len(amount_field) > 10:
            raise EncodingFailure(f"Valor {amount} não cabe no código de barras")

        code = (
            self.bank_code
            + CURRENCY_CODE
            + "0"  # DV, calculado abaixo
            + str(due_factor(due_date)).zfill(4)
            + amount_field
            + self.free_field(our_number)
        )
        if len(code) != 44:
            raise EncodingFailure(f"Código de barras com {len(code)} posições")

        digit = mod11_barcode_digit(code[:4] + code[5:])
        return code[:4] + digit + code[5:]

    def digitable_line(self, barcode: str) -> str:
        return barcode_to_digitable_line(barcode)

    def slip_number(self, now: datetime) -> str:
        return f"{self.bank_code}{now:%y%m%d%H%M}{secrets.randbelow(10000):04d}"

    def generate(
        self,
        transaction_id: str,
        amount: Decimal,
        due_date: date,
        customer: SlipCustomer,
        now: Optional[datetime] = None,
    ) -> BankSlipResult:
        """Valida e gera o boleto completo (nada é devolvido pela metade)."""
        now = now or datetime.utcnow()
        self.validate(amount, due_date, customer, now.date())

        our_number = self.our_number(transaction_id)
        barcode = self.barcode(amount, due_date, our_number)
        digitable_line = self.digitable_line(barcode)

        if not validate_barcode(barcode) or not validate_digitable_line(digitable_line):
            raise EncodingFailure("Boleto gerado não passou na conferência dos dígitos")

        logger.info(
            f"Boleto gerado: transação {transaction_id}, nosso número {our_number}, "
            f"valor R$ {amount}, vencimento {due_date.isoformat()}"
        )

        return BankSlipResult(
            slip_number=self.slip_number(now),
            our_number=our_number,
            barcode=barcode,
            digitable_line=digitable_line,
            due_date=due_date,
            amount=Decimal(amount),
        )
