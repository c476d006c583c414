"""
Checkout - Gerador de QR Code PIX
Baseado no padrão BR Code do Banco Central (EMV QRCPS-MPM)
"""

import base64
import io
import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import qrcode

from checkout.config import settings
from checkout.exceptions import EncodingFailure, ValidationError
from checkout.services.checksums import cnpj_is_valid, cpf_is_valid, crc16_hex

logger = logging.getLogger(__name__)

PIX_GUI = "br.gov.bcb.pix"
MAX_FIELD_LENGTH = 99
MAX_DESCRIPTION_BYTES = 72
MAX_MERCHANT_NAME = 25
MAX_MERCHANT_CITY = 15
MAX_REFERENCE = 25

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE = re.compile(r"^\+55\d{10,11}$")
_EVP = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


@dataclass(frozen=True)
class InstantTransferResult:
    receiver_key: str
    payload_text: str
    payload_image: str
    expires_at: datetime
    amount: Decimal
    description: Optional[str]


def _to_ascii(value: str) -> str:
    """Remove acentos; o BR Code só aceita caracteres ASCII."""
    normalized = unicodedata.normalize("NFKD", value)
    return normalized.encode("ascii", "ignore").decode("ascii")


def _format_emv_field(id: str, value: str) -> str:
    """Formata um campo no padrão EMV (ID + Length + Value)."""
    length = len(value.encode("utf-8"))
    if length > MAX_FIELD_LENGTH:
        raise EncodingFailure(f"Campo EMV {id} com {length} bytes excede {MAX_FIELD_LENGTH}")
    return f"{id}{length:02d}{value}"


def pix_key_type(key: str) -> Optional[str]:
    """Identifica o tipo da chave PIX (cpf, cnpj, email, phone, random)."""
    if not key or not isinstance(key, str):
        return None

    clean_key = key.strip()

    if re.fullmatch(r"\d{11}", clean_key):
        return "cpf" if cpf_is_valid(clean_key) else None
    if re.fullmatch(r"\d{14}", clean_key):
        return "cnpj" if cnpj_is_valid(clean_key) else None
    if "@" in clean_key:
        return "email" if _EMAIL.match(clean_key) else None
    if clean_key.startswith("+55"):
        return "phone" if _PHONE.match(clean_key) else None
    if _EVP.match(clean_key):
        return "random"
    return None


def validate_pix_key(key: str) -> str:
    key_type = pix_key_type(key)
    if key_type is None:
        raise ValidationError(f"Chave PIX inválida: {key!r}", field="receiver_key")
    return key_type


def derive_reference(transaction_id: str) -> str:
    """Identificador da transação para o campo 62-05 (alfanumérico, até 25)."""
    reference = re.sub(r"[^A-Za-z0-9]", "", transaction_id).upper()
    if not reference:
        raise EncodingFailure("Identificador da transação sem caracteres alfanuméricos")
    return reference[:MAX_REFERENCE]


def verify_payload(payload: str) -> bool:
    """Confere o CRC16 dos 4 últimos caracteres contra o restante do payload."""
    if len(payload) < 8 or payload[-8:-4] != "6304":
        return False
    return crc16_hex(payload[:-4]) == payload[-4:]


class PixEncoder:
    """Monta o payload BR Code e o QR Code de uma cobrança PIX."""

    def __init__(
        self,
        receiver_key: Optional[str] = None,
        merchant_name: Optional[str] = None,
        merchant_city: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
    ):
        self.receiver_key = (receiver_key or settings.PIX_RECEIVER_KEY).strip()
        self.receiver_key_type = validate_pix_key(self.receiver_key)
        self.merchant_name = _to_ascii(merchant_name or settings.PIX_MERCHANT_NAME)[:MAX_MERCHANT_NAME]
        self.merchant_city = _to_ascii(merchant_city or settings.PIX_MERCHANT_CITY)[:MAX_MERCHANT_CITY]
        self.ttl = timedelta(minutes=ttl_minutes or settings.PIX_TTL_MINUTES)

    def _merchant_account_info(self, description: Optional[str]) -> str:
        gui = _format_emv_field("00", PIX_GUI)
        pix_key = _format_emv_field("01", self.receiver_key)
        merchant_info = gui + pix_key

        if description:
            # O que sobrar dos 99 bytes do campo 26 fica para a descrição
            room = MAX_FIELD_LENGTH - len(merchant_info) - 4
            if room > 0:
                merchant_info += _format_emv_field("02", description[:room])

        return merchant_info

    def build_payload(
        self,
        amount: Decimal,
        transaction_id: str,
        description: Optional[str] = None,
    ) -> str:
        """
        Gera o payload do PIX no formato BR Code.

        A ordem dos campos é fixa; leitores de QR Code de alguns bancos
        rejeitam payloads reordenados mesmo sendo TLV.
        """
        if description is not None:
            description = _to_ascii(description).strip()
            if len(description.encode("utf-8")) > MAX_DESCRIPTION_BYTES:
                raise ValidationError(
                    f"Descrição deve ter no máximo {MAX_DESCRIPTION_BYTES} caracteres",
                    field="description",
                )

        # Payload Format Indicator (ID 00) - Sempre "01"
        payload = _format_emv_field("00", "01")

        # Merchant Account Information - PIX (ID 26)
        payload += _format_emv_field("26", self._merchant_account_info(description))

        # Merchant Category Code (ID 52) - "0000" = não informado
        payload += _format_emv_field("52", "0000")

        # Transaction Currency (ID 53) - "986" = BRL
        payload += _format_emv_field("53", "986")

        # Transaction Amount (ID 54)
        payload += _format_emv_field("54", f"{Decimal(amount):.2f}")

        # Country Code (ID 58)
        payload += _format_emv_field("58", "BR")

        # Merchant Name (ID 59) / Merchant City (ID 60)
        payload += _format_emv_field("59", self.merchant_name)
        payload += _format_emv_field("60", self.merchant_city)

        # Additional Data Field Template (ID 62) - 05 = txid
        payload += _format_emv_field("62", _format_emv_field("05", derive_reference(transaction_id)))

        # CRC16 (ID 63) - calculado incluindo o próprio "6304"
        payload += "6304"
        payload += crc16_hex(payload)

        return payload

    def render_image(self, payload: str) -> str:
        """Renderiza o payload como PNG em data URI base64."""
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        img_base64 = base64.b64encode(buffer.getvalue()).decode("utf-8")

        return f"data:image/png;base64,{img_base64}"

    def generate(
        self,
        amount: Decimal,
        transaction_id: str,
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> InstantTransferResult:
        """Gera payload, imagem e validade da cobrança."""
        now = now or datetime.utcnow()

        payload = self.build_payload(amount, transaction_id, description)
        if not verify_payload(payload):
            raise EncodingFailure("CRC16 do payload PIX não confere após a geração")

        image = self.render_image(payload)

        logger.info(f"PIX gerado: transação {transaction_id}, valor R$ {amount}")

        return InstantTransferResult(
            receiver_key=self.receiver_key,
            payload_text=payload,
            payload_image=image,
            expires_at=now + self.ttl,
            amount=Decimal(amount),
            description=description,
        )
