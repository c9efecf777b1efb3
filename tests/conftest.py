import asyncio
from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from offlinepay.core.errors import NetworkUnavailable
from offlinepay.ledger.models import RecipientProfile
from offlinepay.store import (
    SqlAlchemyOfflineStore,
    TransferRequest,
    create_offline_engine,
    ensure_offline_schema,
)

# Noon local time keeps "today" well away from midnight in daily-total tests.
START_MS = int(datetime(2024, 5, 1, 12, 0, 0).timestamp() * 1000)


class FakeClock:
    def __init__(self, start_ms: int = START_MS) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeLedger:
    """In-memory ledger keyed by integrity hash, with scripted failures."""

    def __init__(self) -> None:
        self.applied: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.duplicate_errors: list[Exception] = []
        self.process_errors: list[Exception] = []
        self.always_fail_process: Exception | None = None
        self.lose_response_once = False
        self.process_gate: asyncio.Event | None = None
        self.process_started = asyncio.Event()
        self.profiles: dict[str, RecipientProfile] = {}
        self.lookup_error: Exception | None = None

    def process_calls(self, transfer_hash: str) -> int:
        return self.calls.count(("process_transfer", transfer_hash))

    async def duplicate_exists(self, transfer_hash: str) -> bool:
        self.calls.append(("duplicate_exists", transfer_hash))
        if self.duplicate_errors:
            raise self.duplicate_errors.pop(0)
        return transfer_hash in self.applied

    async def process_transfer(
        self,
        *,
        sender_id: str,
        receiver_id: str,
        amount: Decimal,
        description: str | None,
        is_offline: bool,
        transfer_hash: str,
        device_id: str,
    ) -> str:
        self.calls.append(("process_transfer", transfer_hash))
        self.process_started.set()
        if self.process_gate is not None:
            await self.process_gate.wait()
        if self.always_fail_process is not None:
            raise self.always_fail_process
        if self.process_errors:
            raise self.process_errors.pop(0)
        self.applied[transfer_hash] = {
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "amount": amount,
            "description": description,
            "is_offline": is_offline,
            "device_id": device_id,
        }
        if self.lose_response_once:
            self.lose_response_once = False
            raise NetworkUnavailable("connection reset after commit")
        return f"remote-{len(self.applied)}"

    async def lookup_recipient_by_payment_id(self, payment_id: str):
        self.calls.append(("lookup_recipient_by_payment_id", payment_id))
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.profiles.get(payment_id)


def _make_request(
    sender_id: str = "user-s",
    receiver_id: str = "user-r",
    amount: str = "100",
    description: str | None = None,
) -> TransferRequest:
    return TransferRequest(
        sender_id=sender_id,
        receiver_id=receiver_id,
        amount=Decimal(amount),
        description=description,
    )


@pytest.fixture
def make_request():
    return _make_request


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'offlinepay.db'}"


@pytest_asyncio.fixture
async def db_engine(database_url):
    engine = create_offline_engine(database_url)
    await ensure_offline_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(db_engine, clock) -> SqlAlchemyOfflineStore:
    sessionmaker = async_sessionmaker(db_engine, expire_on_commit=False)
    return SqlAlchemyOfflineStore(sessionmaker, device_id="device-1", clock_ms=clock)
