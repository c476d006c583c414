"""Testes dos dígitos verificadores e do CRC16."""

import pytest

from checkout.exceptions import EncodingFailure
from checkout.services.checksums import (
    cnpj_is_valid,
    cpf_is_valid,
    crc16_ccitt,
    crc16_hex,
    document_is_valid,
    luhn_check_digit,
    luhn_is_valid,
    mod10_digit,
    mod11_barcode_digit,
    mod11_our_number_digit,
)

# Boleto de exemplo do Banco do Brasil (DV geral = 3)
SAMPLE_BARCODE = "00193373700000001000500940144816060680935031"


class TestCrc16:
    def test_check_value(self) -> None:
        assert crc16_ccitt(b"123456789") == 0x29B1

    def test_hex_is_four_uppercase_digits(self) -> None:
        assert crc16_hex("123456789") == "29B1"
        assert len(crc16_hex("")) == 4

    def test_empty_input_keeps_initial_value(self) -> None:
        assert crc16_ccitt(b"") == 0xFFFF


class TestMod11:
    def test_our_number_digit(self) -> None:
        # soma = 1 * 2 -> resto 2 -> 11 - 2
        assert mod11_our_number_digit("00000000001") == "9"

    def test_our_number_remainder_zero_maps_to_zero(self) -> None:
        assert mod11_our_number_digit("00000000000") == "0"

    def test_our_number_requires_eleven_digits(self) -> None:
        with pytest.raises(EncodingFailure):
            mod11_our_number_digit("123")

    def test_barcode_digit_known_vector(self) -> None:
        code = SAMPLE_BARCODE[:4] + SAMPLE_BARCODE[5:]
        assert mod11_barcode_digit(code) == "3"

    def test_barcode_digit_remainder_zero_maps_to_one(self) -> None:
        assert mod11_barcode_digit("0" * 43) == "1"

    def test_barcode_digit_rejects_non_digits(self) -> None:
        with pytest.raises(EncodingFailure):
            mod11_barcode_digit("A" * 43)


class TestMod10:
    def test_known_field(self) -> None:
        assert mod10_digit("001905009") == "5"
        assert mod10_digit("4014481606") == "9"
        assert mod10_digit("0680935031") == "4"

    def test_all_zeros(self) -> None:
        assert mod10_digit("0000000000") == "0"


class TestLuhn:
    @pytest.mark.parametrize("number", [
        "4111111111111111",
        "5555555555554444",
        "378282246310005",
        "6062825624254001",
    ])
    def test_valid_numbers(self, number: str) -> None:
        assert luhn_is_valid(number)

    def test_single_digit_change_is_detected(self) -> None:
        assert not luhn_is_valid("4111111111111112")

    def test_length_limits(self) -> None:
        assert not luhn_is_valid("4111111")
        assert not luhn_is_valid("4" * 20)

    def test_non_digits(self) -> None:
        assert not luhn_is_valid("4111-1111-1111-1111")

    def test_check_digit_completes_number(self) -> None:
        assert luhn_check_digit("411111111111111") == "1"
        partial = "555555555555444"
        assert luhn_is_valid(partial + luhn_check_digit(partial))


class TestDocuments:
    def test_cpf(self) -> None:
        assert cpf_is_valid("529.982.247-25")
        assert not cpf_is_valid("52998224724")
        assert not cpf_is_valid("11111111111")

    def test_cnpj(self) -> None:
        assert cnpj_is_valid("11.222.333/0001-81")
        assert not cnpj_is_valid("11222333000182")
        assert not cnpj_is_valid("00000000000000")

    def test_document_dispatches_by_length(self) -> None:
        assert document_is_valid("52998224725")
        assert document_is_valid("11222333000181")
        assert not document_is_valid("123")
