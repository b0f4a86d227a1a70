from types import SimpleNamespace

import pytest

from vestlock.core.beneficiary_registry import BeneficiaryRegistry
from vestlock.core.contracts.erc20 import ERC20Token
from vestlock.core.custody import TokenCustody
from vestlock.core.metrics import VestingMetrics
from vestlock.core.schedule import ReleaseSchedule
from vestlock.core.vesting_ledger import VestingLedger


CHECKPOINTS = [1_000_000 + i * 100_000 for i in range(10)]
LONG_PLAN_THRESHOLD = 1_000
GRACE_PERIOD = 30 * 24 * 60 * 60

ACCOUNTS = SimpleNamespace(
    alice="0x" + "a1" * 20,
    bob="0x" + "b2" * 20,
    carol="0x" + "c3" * 20,
    admin="0x" + "ad" * 20,
    outsider="0x" + "ee" * 20,
    custody="0x" + "cc" * 20,
    treasury="0x" + "7e" * 20,
)


class FakeClock:
    """Deterministic clock for ledger tests."""

    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def set(self, now: int) -> None:
        self.now = now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def accounts():
    return ACCOUNTS


@pytest.fixture
def checkpoints():
    return list(CHECKPOINTS)


@pytest.fixture
def clock():
    """Clock starting before the first checkpoint."""
    return FakeClock(CHECKPOINTS[0] - 1_000)


@pytest.fixture
def token():
    return ERC20Token(
        name="Vest Token",
        symbol="VEST",
        decimals=18,
        owner=ACCOUNTS.admin,
        address="0x" + "70" * 20,
    )


@pytest.fixture
def custody(token):
    return TokenCustody(token, ACCOUNTS.custody)


@pytest.fixture
def registry():
    return BeneficiaryRegistry([ACCOUNTS.alice, ACCOUNTS.bob, ACCOUNTS.carol], ACCOUNTS.admin)


@pytest.fixture
def metrics():
    return VestingMetrics()


@pytest.fixture
def ledger(registry, custody, clock, metrics):
    return VestingLedger(
        schedule=ReleaseSchedule.from_iterable(CHECKPOINTS),
        registry=registry,
        transfer_service=custody,
        long_plan_threshold=LONG_PLAN_THRESHOLD,
        grace_period=GRACE_PERIOD,
        time_provider=clock,
        metrics=metrics,
    )


@pytest.fixture
def fund(token, custody):
    """Mint ``amount`` to ``holder`` and approve custody for ``allowance`` (default: amount)."""

    def _fund(holder: str, amount: int, allowance: int | None = None) -> None:
        token.mint(ACCOUNTS.admin, holder, amount)
        token.approve(holder, custody.custody_address, amount if allowance is None else allowance)

    return _fund
