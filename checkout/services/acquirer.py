"""
Checkout - Integração com o Adquirente de Cartões
Autorização, captura e cancelamento. Nenhuma chamada é repetida automaticamente.
"""

import logging
import secrets
import string
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from checkout.config import settings
from checkout.exceptions import AcquirerTimeout

logger = logging.getLogger(__name__)

APPROVED = "approved"
REJECTED = "rejected"
ERROR = "error"


@dataclass(frozen=True)
class AcquirerRequest:
    transaction_id: str
    card_number: str
    holder_name: str
    expiry_month: int
    expiry_year: int
    cvv: str
    amount: Decimal
    installments: int
    debit: bool = False

    def __repr__(self):
        return (
            f"AcquirerRequest(transaction_id='{self.transaction_id}', "
            f"card='****{self.card_number[-4:]}', amount={self.amount})"
        )


@dataclass(frozen=True)
class AcquirerResponse:
    status: str
    message: str
    authorization_code: Optional[str] = None
    acquirer_transaction_id: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.status == APPROVED


class Acquirer(ABC):
    """Contrato com o adquirente."""

    @abstractmethod
    def authorize(self, request: AcquirerRequest) -> AcquirerResponse:
        ...

    @abstractmethod
    def capture(self, acquirer_transaction_id: str, amount: Decimal) -> AcquirerResponse:
        ...

    @abstractmethod
    def void(self, acquirer_transaction_id: str) -> AcquirerResponse:
        ...


def _authorization_code() -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(6))


class SimulatedAcquirer(Acquirer):
    """
    Adquirente determinístico para desenvolvimento e testes.

    O último dígito do cartão decide o resultado:
    - 0: recusado (saldo insuficiente)
    - 1: recusado (cartão bloqueado)
    - 2: erro de comunicação
    - demais: aprovado
    """

    def __init__(
        self,
        latency_seconds: float = 0.0,
        timeout_seconds: Optional[float] = None,
        fail_capture: bool = False,
    ):
        self.latency_seconds = latency_seconds
        self.timeout_seconds = timeout_seconds or settings.ACQUIRER_TIMEOUT_SECONDS
        self.fail_capture = fail_capture

    def _wait(self, operation: str):
        if self.latency_seconds > self.timeout_seconds:
            raise AcquirerTimeout(
                f"Adquirente não respondeu a '{operation}' em {self.timeout_seconds}s"
            )
        if self.latency_seconds:
            time.sleep(self.latency_seconds)

    def authorize(self, request: AcquirerRequest) -> AcquirerResponse:
        self._wait("authorize")

        acquirer_id = f"acq_{uuid.uuid4().hex[:16]}"
        last_digit = request.card_number[-1]

        if last_digit == "0":
            return AcquirerResponse(REJECTED, "saldo insuficiente", acquirer_transaction_id=acquirer_id)
        if last_digit == "1":
            return AcquirerResponse(REJECTED, "cartão bloqueado", acquirer_transaction_id=acquirer_id)
        if last_digit == "2":
            return AcquirerResponse(ERROR, "erro de comunicação com o banco emissor")

        return AcquirerResponse(
            APPROVED,
            "transação aprovada",
            authorization_code=_authorization_code(),
            acquirer_transaction_id=acquirer_id,
        )

    def capture(self, acquirer_transaction_id: str, amount: Decimal) -> AcquirerResponse:
        self._wait("capture")
        if self.fail_capture:
            return AcquirerResponse(ERROR, "falha na captura", acquirer_transaction_id=acquirer_transaction_id)
        return AcquirerResponse(APPROVED, "capturada", acquirer_transaction_id=acquirer_transaction_id)

    def void(self, acquirer_transaction_id: str) -> AcquirerResponse:
        return AcquirerResponse("cancelled", "autorização cancelada", acquirer_transaction_id=acquirer_transaction_id)


class HttpAcquirer(Acquirer):
    """Cliente HTTP do adquirente real."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.ACQUIRER_BASE_URL).rstrip("/")
        self.api_key = api_key or settings.ACQUIRER_API_KEY
        self.timeout = timeout_seconds or settings.ACQUIRER_TIMEOUT_SECONDS
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        """Retorna headers padrão para requisições à API."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _post(self, path: str, payload: Dict[str, Any], operation: str) -> AcquirerResponse:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, json=payload, headers=self._get_headers())
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout no adquirente ({operation})")
            raise AcquirerTimeout(f"Adquirente não respondeu a '{operation}' em {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.error(f"Erro de comunicação com o adquirente ({operation}): {type(e).__name__}")
            return AcquirerResponse(ERROR, f"erro de comunicação: {type(e).__name__}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or not isinstance(data, dict) or "status" not in data:
            logger.warning(f"Resposta inesperada do adquirente ({operation}): HTTP {response.status_code}")
            return AcquirerResponse(ERROR, f"resposta inválida do adquirente (HTTP {response.status_code})")

        return AcquirerResponse(
            status=data["status"],
            message=data.get("message", ""),
            authorization_code=data.get("authorization_code"),
            acquirer_transaction_id=data.get("id") or data.get("acquirer_transaction_id"),
        )

    def authorize(self, request: AcquirerRequest) -> AcquirerResponse:
        payload = {
            "reference": request.transaction_id,
            "amount": str(request.amount),
            "installments": request.installments,
            "type": "debit" if request.debit else "credit",
            "card": {
                "number": request.card_number,
                "holder_name": request.holder_name,
                "expiry_month": request.expiry_month,
                "expiry_year": request.expiry_year,
                "cvv": request.cvv,
            },
        }
        return self._post("/authorizations", payload, "authorize")

    def capture(self, acquirer_transaction_id: str, amount: Decimal) -> AcquirerResponse:
        return self._post(
            f"/authorizations/{acquirer_transaction_id}/capture",
            {"amount": str(amount)},
            "capture",
        )

    def void(self, acquirer_transaction_id: str) -> AcquirerResponse:
        return self._post(f"/authorizations/{acquirer_transaction_id}/void", {}, "void")


def get_acquirer() -> Acquirer:
    """Retorna o adquirente configurado em ACQUIRER_MODE."""
    if settings.ACQUIRER_MODE == "http":
        return HttpAcquirer()
    if settings.ACQUIRER_MODE == "simulated":
        return SimulatedAcquirer()
    raise ValueError(f"ACQUIRER_MODE inválido: {settings.ACQUIRER_MODE}")
