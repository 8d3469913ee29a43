from typing import Callable, Iterable, Optional, Set

import pytest

from coupon_claims import db
from coupon_claims.config import Settings
from coupon_claims.coordinator import ClaimCoordinator
from coupon_claims.errors import StoreUnavailable
from coupon_claims.pool import CouponPool
from coupon_claims.session_marker import SessionMarkerSigner
from coupon_claims.store_memory import MemoryClaimStore

SECRET = "test-secret-with-at-least-thirty-two-bytes"
COOLDOWN = 3600


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakyStore(MemoryClaimStore):
    """Memory store that raises StoreUnavailable for the named operations."""

    def __init__(self, fail_on: Iterable[str] = ()):
        super().__init__()
        self.fail_on: Set[str] = set(fail_on)
        self.calls: list = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise StoreUnavailable(f"{name} unavailable")

    def advance_rotation(self, pool_size):
        self._maybe_fail("advance_rotation")
        return super().advance_rotation(pool_size)

    def last_claimed_at(self, identity):
        self._maybe_fail("last_claimed_at")
        return super().last_claimed_at(identity)

    def record_claim(self, identity, claimed_at, cooldown_seconds):
        self._maybe_fail("record_claim")
        return super().record_claim(identity, claimed_at, cooldown_seconds)

    def append_history(self, entry):
        self._maybe_fail("append_history")
        return super().append_history(entry)

    def history_for(self, identity):
        self._maybe_fail("history_for")
        return super().history_for(identity)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryClaimStore:
    return MemoryClaimStore()


@pytest.fixture
def signer(clock) -> SessionMarkerSigner:
    return SessionMarkerSigner(SECRET, COOLDOWN, clock=clock)


@pytest.fixture
def make_coordinator(store, signer, clock) -> Callable[..., ClaimCoordinator]:
    def factory(codes=("A", "B", "C"), claim_store=None, on_history_failure=None) -> ClaimCoordinator:
        return ClaimCoordinator(
            store=claim_store if claim_store is not None else store,
            pool=CouponPool(codes),
            signer=signer,
            cooldown_seconds=COOLDOWN,
            clock=clock,
            on_history_failure=on_history_failure,
        )

    return factory


def unreachable_postgres_settings(**overrides) -> Settings:
    values = dict(
        coupon_pool=("A", "B", "C"),
        cooldown_seconds=COOLDOWN,
        session_secret=SECRET,
        store_backend="postgres",
        postgres_host="127.0.0.1",
        postgres_port=1,
        postgres_db="coupons",
        postgres_user="coupons",
        postgres_password="coupons",
        store_connect_timeout=1,
        store_startup_retries=2,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def recorded_sleeps(monkeypatch) -> list:
    sleeps: list = []
    monkeypatch.setattr(db.time, "sleep", sleeps.append)
    return sleeps
