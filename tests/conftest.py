"""Fixtures dos testes: banco SQLite temporário, relógio congelado e adquirente simulado."""

import os
import tempfile

# Antes de importar o pacote: settings e engine global leem o ambiente na importação
os.environ.setdefault("DB_URL", f"sqlite:///{tempfile.mkdtemp()}/checkout_test.db")

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

import checkout.models  # noqa: F401
from checkout.database import Base, build_engine
from checkout.services.acquirer import SimulatedAcquirer
from checkout.services.bank_slip import BankSlipEncoder, SlipCustomer
from checkout.services.card_authorizer import CardAuthorizer
from checkout.services.card_vault import CardData, CardVault
from checkout.services.pix_qrcode import PixEncoder
from checkout.services.transaction_engine import TransactionEngine, TransactionLocks

START = datetime(2026, 10, 19, 12, 0, 0)


class FrozenClock:
    """Relógio controlado pelos testes."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path}/checkout.db")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class RecordingAcquirer(SimulatedAcquirer):
    """Adquirente simulado que anota cada chamada recebida."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = []

    def authorize(self, request):
        self.calls.append(("authorize", request.transaction_id))
        return super().authorize(request)

    def capture(self, acquirer_transaction_id, amount):
        self.calls.append(("capture", acquirer_transaction_id))
        return super().capture(acquirer_transaction_id, amount)

    def void(self, acquirer_transaction_id):
        self.calls.append(("void", acquirer_transaction_id))
        return super().void(acquirer_transaction_id)


@pytest.fixture
def acquirer() -> RecordingAcquirer:
    return RecordingAcquirer()


@pytest.fixture
def vault() -> CardVault:
    return CardVault(secret="test-card-secret", salt="test-card-salt", ttl_seconds=900)


@pytest.fixture
def authorizer(vault, acquirer) -> CardAuthorizer:
    return CardAuthorizer(vault=vault, acquirer=acquirer)


@pytest.fixture
def locks() -> TransactionLocks:
    return TransactionLocks(timeout_seconds=5)


@pytest.fixture
def make_engine(authorizer, clock, locks):
    """Fábrica de motores que compartilham relógio, locks e adquirente."""

    def factory(session) -> TransactionEngine:
        return TransactionEngine(
            session,
            pix_encoder=PixEncoder(),
            slip_encoder=BankSlipEncoder(),
            authorizer=authorizer,
            clock=clock,
            locks=locks,
        )

    return factory


@pytest.fixture
def engine(db, make_engine) -> TransactionEngine:
    return make_engine(db)


@pytest.fixture
def customer() -> SlipCustomer:
    return SlipCustomer(
        name="Maria da Silva",
        document="52998224725",
        email="maria@example.com",
        address={
            "street": "Rua das Flores",
            "number": "100",
            "city": "São Paulo",
            "state": "SP",
            "zip_code": "01000-000",
        },
    )


def make_card(number: str = "5555555555554444", cvv: str = "123", **overrides) -> CardData:
    data = {
        "number": number,
        "holder_name": "MARIA DA SILVA",
        "expiry_month": 12,
        "expiry_year": 2030,
        "cvv": cvv,
    }
    data.update(overrides)
    return CardData(**data)


@pytest.fixture
def card_factory():
    return make_card
