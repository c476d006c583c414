"""
Checkout - Dígitos verificadores e checksums
CRC16 do BR Code, módulo 11 / módulo 10 do boleto, Luhn de cartões e CPF/CNPJ.
"""

import re
from typing import Union

import crcmod

from checkout.exceptions import EncodingFailure

# CRC16 CCITT-FALSE: poly 0x1021, init 0xFFFF, sem reflexão, sem xor final
_crc16_ccitt = crcmod.mkCrcFun(0x11021, initCrc=0xFFFF, rev=False, xorOut=0x0000)

OUR_NUMBER_WEIGHTS = [4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]

_DIGITS = re.compile(r"^\d+$")


def _require_digits(value: str, what: str) -> str:
    if not isinstance(value, str) or not _DIGITS.match(value):
        raise EncodingFailure(f"{what} deve conter apenas dígitos: {value!r}")
    return value


def only_digits(value: str) -> str:
    """Remove tudo que não for dígito."""
    return re.sub(r"\D", "", value or "")


# =====================================================
# CRC16
# =====================================================

def crc16_ccitt(data: Union[bytes, str]) -> int:
    """Calcula o CRC16 CCITT-FALSE sobre bytes (str é codificada em UTF-8)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return _crc16_ccitt(data)


def crc16_hex(data: Union[bytes, str]) -> str:
    """CRC16 como 4 dígitos hexadecimais maiúsculos."""
    return format(crc16_ccitt(data), "04X")


# =====================================================
# MÓDULO 11
# =====================================================

def mod11_our_number_digit(number: str) -> str:
    """
    Dígito verificador do "nosso número".

    Pesos [4,3,2,9,8,7,6,5,4,3,2] da esquerda para a direita;
    resto 0 ou 1 vira '0', senão 11 - resto.
    """
    _require_digits(number, "Nosso número")
    if len(number) != len(OUR_NUMBER_WEIGHTS):
        raise EncodingFailure(f"Nosso número deve ter 11 dígitos, recebeu {len(number)}")

    total = sum(int(d) * w for d, w in zip(number, OUR_NUMBER_WEIGHTS))
    remainder = total % 11
    if remainder in (0, 1):
        return "0"
    return str(11 - remainder)


def mod11_barcode_digit(code: str) -> str:
    """
    Dígito geral do código de barras, calculado sobre as 43 posições
    restantes (sem a posição 5).

    Pesos 2..9 ciclando a partir do dígito mais à direita;
    resto 0 ou 1 vira '1', senão 11 - resto.
    """
    _require_digits(code, "Código de barras")
    if len(code) != 43:
        raise EncodingFailure(f"Código de barras sem DV deve ter 43 dígitos, recebeu {len(code)}")

    total = 0
    for index, digit in enumerate(reversed(code)):
        total += int(digit) * (2 + index % 8)

    remainder = total % 11
    if remainder in (0, 1):
        return "1"
    return str(11 - remainder)


# =====================================================
# MÓDULO 10
# =====================================================

def mod10_digit(field: str) -> str:
    """
    Dígito dos campos da linha digitável.

    Pesos alternando 2,1 a partir da direita; produtos maiores que 9
    têm os algarismos somados.
    """
    _require_digits(field, "Campo da linha digitável")

    total = 0
    for index, digit in enumerate(reversed(field)):
        product = int(digit) * (2 if index % 2 == 0 else 1)
        if product > 9:
            product = product // 10 + product % 10
        total += product

    return str((10 - total % 10) % 10)


def luhn_is_valid(number: str) -> bool:
    """Valida número de cartão (13 a 19 dígitos) pelo algoritmo de Luhn."""
    if not isinstance(number, str) or not _DIGITS.match(number):
        return False
    if len(number) < 13 or len(number) > 19:
        return False

    total = 0
    for index, digit in enumerate(reversed(number)):
        value = int(digit)
        if index % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value

    return total % 10 == 0


def luhn_check_digit(partial: str) -> str:
    """Gera o dígito de Luhn que completa o número informado."""
    _require_digits(partial, "Número parcial")

    total = 0
    for index, digit in enumerate(reversed(partial)):
        value = int(digit)
        if index % 2 == 0:
            value *= 2
            if value > 9:
                value -= 9
        total += value

    return str((10 - total % 10) % 10)


# =====================================================
# CPF / CNPJ
# =====================================================

def cpf_is_valid(document: str) -> bool:
    """Valida CPF (11 dígitos, dois DVs módulo 11)."""
    cpf = only_digits(document)
    if len(cpf) != 11 or cpf == cpf[0] * 11:
        return False

    for size in (9, 10):
        total = sum(int(cpf[i]) * (size + 1 - i) for i in range(size))
        digit = 11 - total % 11
        if digit > 9:
            digit = 0
        if digit != int(cpf[size]):
            return False
    return True


def cnpj_is_valid(document: str) -> bool:
    """Valida CNPJ (14 dígitos, dois DVs módulo 11 com pesos 2..9)."""
    cnpj = only_digits(document)
    if len(cnpj) != 14 or cnpj == cnpj[0] * 14:
        return False

    for size in (12, 13):
        total = 0
        weight = 2
        for i in range(size - 1, -1, -1):
            total += int(cnpj[i]) * weight
            weight = 2 if weight == 9 else weight + 1
        digit = 0 if total % 11 < 2 else 11 - total % 11
        if digit != int(cnpj[size]):
            return False
    return True


def document_is_valid(document: str) -> bool:
    """CPF ou CNPJ válido."""
    digits = only_digits(document)
    if len(digits) == 11:
        return cpf_is_valid(digits)
    if len(digits) == 14:
        return cnpj_is_valid(digits)
    return False
