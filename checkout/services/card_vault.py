"""
Checkout - Cofre de Cartões
Tokeniza dados de cartão com AES-256-GCM; o número aberto só existe dentro de `unsealed()`.
"""

import json
import logging
import os
import secrets
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterator, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from checkout.config import settings
from checkout.exceptions import CryptoFailure, TokenExpired, TokenNotFound

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16
KDF_ITERATIONS = 100_000


def mask_card_number(number: str) -> str:
    """Mantém os 6 primeiros e os 4 últimos dígitos."""
    if len(number) < 10:
        return "*" * len(number)
    return number[:6] + "*" * (len(number) - 10) + number[-4:]


@dataclass
class CardData:
    number: str
    holder_name: str
    expiry_month: int
    expiry_year: int
    cvv: str

    def __repr__(self):
        # Nunca expor número completo nem CVV em logs/tracebacks
        return f"CardData(number='{mask_card_number(self.number)}', holder_name='{self.holder_name}')"


@dataclass(frozen=True)
class EncryptedBlob:
    ciphertext: bytes = field(repr=False)
    nonce: bytes = field(repr=False)
    tag: bytes = field(repr=False)


@dataclass(frozen=True)
class CardToken:
    token: str
    masked_number: str
    brand: str
    expiry_month: int
    expiry_year: int
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class StoredCard:
    card_token: CardToken
    blob: EncryptedBlob


class TokenVault(ABC):
    """Armazenamento dos cartões cifrados, indexado pelo token."""

    @abstractmethod
    def put(self, token: str, record: StoredCard) -> None:
        ...

    @abstractmethod
    def fetch(self, token: str, now: datetime) -> StoredCard:
        """Retorna o registro; expirado é removido e gera TokenExpired."""

    @abstractmethod
    def discard(self, token: str) -> None:
        ...

    @abstractmethod
    def purge_expired(self, now: datetime) -> int:
        ...


class InMemoryTokenVault(TokenVault):
    """Cofre em memória, protegido por lock (uma instância por processo)."""

    def __init__(self):
        self._records: Dict[str, StoredCard] = {}
        self._lock = threading.Lock()

    def put(self, token: str, record: StoredCard) -> None:
        with self._lock:
            self._records[token] = record

    def fetch(self, token: str, now: datetime) -> StoredCard:
        with self._lock:
            record = self._records.get(token)
            if record is None:
                raise TokenNotFound("Token de cartão não encontrado", field="card_token")
            if record.card_token.expires_at <= now:
                del self._records[token]
                raise TokenExpired("Token de cartão expirado", field="card_token")
            return record

    def discard(self, token: str) -> None:
        with self._lock:
            self._records.pop(token, None)

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [token for token, record in self._records.items() if record.card_token.expires_at <= now]
            for token in expired:
                del self._records[token]
        if expired:
            logger.info(f"{len(expired)} tokens de cartão expirados removidos do cofre")
        return len(expired)

    def __len__(self):
        with self._lock:
            return len(self._records)


def derive_key(secret: str, salt: str) -> bytes:
    """Chave AES-256 derivada do segredo configurado (PBKDF2-HMAC-SHA256)."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt.encode("utf-8"),
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


class CardVault:
    """Cifra, guarda e abre dados de cartão a partir de um token opaco."""

    def __init__(
        self,
        store: Optional[TokenVault] = None,
        secret: Optional[str] = None,
        salt: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.store = store or InMemoryTokenVault()
        self._aes = AESGCM(derive_key(
            secret or settings.CARD_ENCRYPTION_KEY,
            salt or settings.CARD_ENCRYPTION_SALT,
        ))
        self.ttl = timedelta(seconds=ttl_seconds or settings.CARD_TOKEN_TTL_SECONDS)

    def _encrypt(self, card: CardData, token: str) -> EncryptedBlob:
        plaintext = json.dumps({
            "number": card.number,
            "holder_name": card.holder_name,
            "expiry_month": card.expiry_month,
            "expiry_year": card.expiry_year,
            "cvv": card.cvv,
        }).encode("utf-8")
        nonce = os.urandom(NONCE_SIZE)
        try:
            sealed = self._aes.encrypt(nonce, plaintext, token.encode("utf-8"))
        except (ValueError, TypeError, OverflowError) as e:
            raise CryptoFailure(f"Falha ao cifrar dados do cartão: {type(e).__name__}") from e
        return EncryptedBlob(ciphertext=sealed[:-TAG_SIZE], nonce=nonce, tag=sealed[-TAG_SIZE:])

    def _decrypt(self, blob: EncryptedBlob, token: str) -> CardData:
        try:
            plaintext = self._aes.decrypt(blob.nonce, blob.ciphertext + blob.tag, token.encode("utf-8"))
            data = json.loads(plaintext)
            return CardData(**data)
        except InvalidTag as e:
            raise CryptoFailure("Dados do cartão adulterados ou chave incorreta") from e
        except (ValueError, TypeError) as e:
            raise CryptoFailure(f"Falha ao decifrar dados do cartão: {type(e).__name__}") from e

    def tokenize(self, card: CardData, brand: str, now: Optional[datetime] = None) -> CardToken:
        """Cifra o cartão e devolve o token opaco com os dados não sensíveis."""
        now = now or datetime.utcnow()
        token = f"tok_{secrets.token_urlsafe(24)}"

        card_token = CardToken(
            token=token,
            masked_number=mask_card_number(card.number),
            brand=brand,
            expiry_month=card.expiry_month,
            expiry_year=card.expiry_year,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self.store.put(token, StoredCard(card_token=card_token, blob=self._encrypt(card, token)))

        logger.debug(f"Cartão {card_token.masked_number} tokenizado")
        return card_token

    @contextmanager
    def unsealed(self, token: str, now: Optional[datetime] = None) -> Iterator[CardData]:
        """Abre o cartão só pelo tempo do bloco `with`."""
        record = self.store.fetch(token, now or datetime.utcnow())
        card = self._decrypt(record.blob, token)
        try:
            yield card
        finally:
            del card

    def discard(self, token: str) -> None:
        self.store.discard(token)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        return self.store.purge_expired(now or datetime.utcnow())
