"""
Reentrancy guard tests.

A hostile transfer service calls back into the ledger while a transfer is in
flight. The nested call must be rejected and the outer operation must leave
no partial state behind.
"""

import threading

import pytest

from vestlock.core.custody import TokenCustody
from vestlock.core.vesting_exceptions import ReentrancyError
from vestlock.core.vesting_ledger import VestingLedger


class ReentrantCustody(TokenCustody):
    """Custody that invokes ``callback`` in the middle of a transfer."""

    def __init__(self, token, custody_address):
        super().__init__(token, custody_address)
        self.on_transfer_in = None
        self.on_transfer_out = None
        self.nested_errors = []

    def _call(self, callback):
        if callback is None:
            return
        try:
            callback()
        except ReentrancyError as exc:
            self.nested_errors.append(exc)
            raise

    def transfer_in(self, holder, amount):
        self._call(self.on_transfer_in)
        super().transfer_in(holder, amount)

    def transfer_out(self, to, amount):
        self._call(self.on_transfer_out)
        super().transfer_out(to, amount)


@pytest.fixture
def hostile_custody(token, accounts):
    return ReentrantCustody(token, accounts.custody)


@pytest.fixture
def hostile_ledger(ledger, hostile_custody, clock):
    return VestingLedger(
        schedule=ledger.schedule,
        registry=ledger.registry,
        transfer_service=hostile_custody,
        long_plan_threshold=ledger.long_plan_threshold,
        grace_period=ledger.grace_period,
        time_provider=clock,
    )


@pytest.fixture
def hostile_fund(token, hostile_custody, accounts):
    def _fund(holder, amount):
        token.mint(accounts.admin, holder, amount)
        token.approve(holder, hostile_custody.custody_address, amount)

    return _fund


def test_claim_reentering_claim_is_rejected(hostile_ledger, hostile_custody, hostile_fund, accounts, clock, checkpoints, token):
    hostile_fund(accounts.alice, 500)
    hostile_ledger.lock(accounts.alice, 500)
    clock.set(checkpoints[0])

    hostile_custody.on_transfer_out = lambda: hostile_ledger.claim(accounts.alice)

    with pytest.raises(ReentrancyError):
        hostile_ledger.claim(accounts.alice)

    assert len(hostile_custody.nested_errors) == 1
    assert hostile_ledger.get_record(accounts.alice).total_claimed == 0
    assert token.balance_of(accounts.alice) == 0
    assert [e.event_type for e in hostile_ledger.events] == ["lock"]


def test_lock_reentering_lock_is_rejected(hostile_ledger, hostile_custody, hostile_fund, accounts):
    hostile_fund(accounts.bob, 300)
    hostile_custody.on_transfer_in = lambda: hostile_ledger.lock(accounts.bob, 100)

    with pytest.raises(ReentrancyError):
        hostile_ledger.lock(accounts.bob, 200)

    assert hostile_ledger.get_record(accounts.bob) is None
    assert hostile_ledger.custody_balance() == 0


def test_claim_reentering_sweep_is_rejected(hostile_ledger, hostile_custody, hostile_fund, accounts, clock):
    hostile_fund(accounts.alice, 500)
    hostile_ledger.lock(accounts.alice, 500)
    clock.set(hostile_ledger.schedule.sweep_time(hostile_ledger.grace_period))

    hostile_custody.on_transfer_out = lambda: hostile_ledger.withdraw_residual(
        accounts.admin, accounts.treasury
    )

    with pytest.raises(ReentrancyError):
        hostile_ledger.claim(accounts.alice)

    assert hostile_ledger.custody_balance() == 500
    assert hostile_ledger.get_record(accounts.alice).total_claimed == 0


def test_guard_released_after_rejection(hostile_ledger, hostile_custody, hostile_fund, accounts, clock, checkpoints):
    hostile_fund(accounts.alice, 500)
    hostile_ledger.lock(accounts.alice, 500)
    clock.set(checkpoints[0])

    hostile_custody.on_transfer_out = lambda: hostile_ledger.claim(accounts.alice)
    with pytest.raises(ReentrancyError):
        hostile_ledger.claim(accounts.alice)

    hostile_custody.on_transfer_out = None
    assert hostile_ledger.claim(accounts.alice) == 100


def test_listener_may_call_ledger_after_completion(ledger, fund, accounts, clock, checkpoints):
    fund(accounts.alice, 500)
    ledger.lock(accounts.alice, 500)
    clock.set(checkpoints[0])

    observed = []

    def listener(event):
        if event.event_type == "claim":
            observed.append(ledger.claimable_amount(event.address))

    ledger.add_listener(listener)
    ledger.claim(accounts.alice)

    assert observed == [0]


def test_failing_listener_does_not_undo_operation(ledger, fund, accounts):
    def listener(event):
        raise RuntimeError("observer crashed")

    ledger.add_listener(listener)
    fund(accounts.alice, 100)

    assert ledger.lock(accounts.alice, 100) is True
    assert ledger.get_record(accounts.alice).total_locked == 100

    ledger.remove_listener(listener)


def test_concurrent_claims_release_once(ledger, fund, accounts, clock, checkpoints):
    fund(accounts.alice, 1_000)
    ledger.lock(accounts.alice, 1_000)
    clock.set(checkpoints[9])

    results = []
    errors = []

    def worker():
        try:
            results.append(ledger.claim(accounts.alice))
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(results) == 1_000
    assert len(results) == 1
    assert all(type(exc).__name__ == "NothingToClaimError" for exc in errors)
