"""Testes do payload BR Code (PIX)."""

import base64
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from checkout.exceptions import EncodingFailure, ValidationError
from checkout.services.pix_qrcode import (
    PixEncoder,
    _format_emv_field,
    derive_reference,
    pix_key_type,
    verify_payload,
)


def parse_tlv(payload: str) -> dict:
    fields = {}
    position = 0
    while position < len(payload):
        tag = payload[position:position + 2]
        length = int(payload[position + 2:position + 4])
        fields[tag] = payload[position + 4:position + 4 + length]
        position += 4 + length
    return fields


@pytest.fixture
def encoder() -> PixEncoder:
    return PixEncoder(
        receiver_key="pagamentos@checkout.com.br",
        merchant_name="Loja Exemplo",
        merchant_city="São Paulo",
        ttl_minutes=30,
    )


class TestBuildPayload:
    def test_field_order_and_values(self, encoder) -> None:
        payload = encoder.build_payload(Decimal("100"), "tx-123")
        fields = parse_tlv(payload)

        assert list(fields) == ["00", "26", "52", "53", "54", "58", "59", "60", "62", "63"]
        assert fields["00"] == "01"
        assert fields["52"] == "0000"
        assert fields["53"] == "986"
        assert fields["54"] == "100.00"
        assert fields["58"] == "BR"
        assert fields["59"] == "Loja Exemplo"
        assert fields["60"] == "Sao Paulo"

    def test_merchant_account_info(self, encoder) -> None:
        fields = parse_tlv(encoder.build_payload(Decimal("10.5"), "tx-1", "Pedido 42"))
        merchant = parse_tlv(fields["26"])
        assert merchant == {
            "00": "br.gov.bcb.pix",
            "01": "pagamentos@checkout.com.br",
            "02": "Pedido 42",
        }

    def test_reference_derived_from_transaction_id(self, encoder) -> None:
        transaction_id = "0f8fad5b-d9cb-469f-a165-70867728950e"
        fields = parse_tlv(encoder.build_payload(Decimal("1"), transaction_id))
        additional = parse_tlv(fields["62"])
        assert additional["05"] == derive_reference(transaction_id)
        assert len(additional["05"]) == 25
        assert additional["05"].isalnum()

    def test_crc_covers_whole_payload(self, encoder) -> None:
        payload = encoder.build_payload(Decimal("59.90"), "tx-crc")
        assert payload[-8:-4] == "6304"
        assert verify_payload(payload)

        tampered = payload.replace("59.90", "59.91")
        assert not verify_payload(tampered)

    def test_description_too_long(self, encoder) -> None:
        with pytest.raises(ValidationError) as exc:
            encoder.build_payload(Decimal("1"), "tx", "x" * 73)
        assert exc.value.field == "description"

    def test_description_truncated_to_fit_merchant_field(self) -> None:
        long_key = "pagamentos.loja.exemplo.com.muitos.caracteres@checkout.com.br"
        encoder = PixEncoder(receiver_key=long_key, merchant_name="Loja", merchant_city="Recife")
        fields = parse_tlv(encoder.build_payload(Decimal("1"), "tx", "d" * 72))

        assert len(fields["26"]) <= 99
        merchant = parse_tlv(fields["26"])
        assert merchant["01"] == long_key
        assert merchant["02"] == "d" * len(merchant["02"])

    def test_accents_are_removed(self, encoder) -> None:
        fields = parse_tlv(encoder.build_payload(Decimal("1"), "tx", "Pagamento com acentuação"))
        assert parse_tlv(fields["26"])["02"] == "Pagamento com acentuacao"

    def test_value_over_99_bytes(self) -> None:
        with pytest.raises(EncodingFailure):
            _format_emv_field("26", "x" * 100)


class TestGenerate:
    def test_generate_returns_image_and_expiry(self, encoder) -> None:
        now = datetime(2026, 10, 19, 12, 0)
        result = encoder.generate(Decimal("25.00"), "tx-gen", "Pedido", now)

        assert result.expires_at == now + timedelta(minutes=30)
        assert result.receiver_key == "pagamentos@checkout.com.br"
        assert verify_payload(result.payload_text)
        assert result.payload_image.startswith("data:image/png;base64,")

        png = base64.b64decode(result.payload_image.split(",", 1)[1])
        assert png[:8] == b"\x89PNG\r\n\x1a\n"


class TestPixKeys:
    @pytest.mark.parametrize("key, expected", [
        ("52998224725", "cpf"),
        ("11222333000181", "cnpj"),
        ("loja@example.com", "email"),
        ("+5511987654321", "phone"),
        ("123e4567-e89b-12d3-a456-426614174000", "random"),
        ("12345678900", None),
        ("not a key", None),
    ])
    def test_key_type(self, key, expected) -> None:
        assert pix_key_type(key) == expected

    def test_invalid_receiver_key_rejected_on_construction(self) -> None:
        with pytest.raises(ValidationError):
            PixEncoder(receiver_key="chave-invalida")
