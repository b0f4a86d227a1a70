"""
Unit tests for the ERC20 asset token.
"""

import pytest

from vestlock.core.contracts.erc20 import ZERO_ADDRESS, ERC20Token
from vestlock.core.vesting_exceptions import TokenError


OWNER = "0x" + "0a" * 20
HOLDER = "0x" + "1b" * 20
SPENDER = "0x" + "2c" * 20
OTHER = "0x" + "3d" * 20


@pytest.fixture
def token():
    t = ERC20Token(name="Vest Token", symbol="VEST", owner=OWNER)
    t.mint(OWNER, HOLDER, 1_000)
    return t


class TestMint:
    def test_mint_increases_supply_and_balance(self, token):
        assert token.total_supply == 1_000
        assert token.balance_of(HOLDER) == 1_000
        assert token.events[-1].event_type == "Transfer"
        assert token.events[-1].from_address == ZERO_ADDRESS

    def test_only_owner_can_mint(self, token):
        with pytest.raises(TokenError, match="not owner"):
            token.mint(HOLDER, HOLDER, 1)

    def test_supply_cap(self):
        capped = ERC20Token(name="Capped", symbol="CAP", owner=OWNER, max_supply=100)
        capped.mint(OWNER, HOLDER, 100)
        with pytest.raises(TokenError, match="max supply"):
            capped.mint(OWNER, HOLDER, 1)

    def test_generates_address_when_missing(self, token):
        assert token.address.startswith("0x")
        assert len(token.address) == 42


class TestTransfer:
    def test_transfer_moves_balance(self, token):
        assert token.transfer(HOLDER, OTHER, 400)
        assert token.balance_of(HOLDER) == 600
        assert token.balance_of(OTHER) == 400

    def test_transfer_exceeding_balance_leaves_state(self, token):
        with pytest.raises(TokenError, match="exceeds balance"):
            token.transfer(HOLDER, OTHER, 1_001)
        assert token.balance_of(HOLDER) == 1_000
        assert token.balance_of(OTHER) == 0

    def test_transfer_to_zero_address_rejected(self, token):
        with pytest.raises(TokenError, match="zero address"):
            token.transfer(HOLDER, ZERO_ADDRESS, 1)

    @pytest.mark.parametrize("amount", [-1, 1.5, True])
    def test_invalid_amounts_rejected(self, token, amount):
        with pytest.raises(TokenError):
            token.transfer(HOLDER, OTHER, amount)

    def test_addresses_are_case_insensitive(self, token):
        token.transfer(HOLDER.upper().replace("0X", "0x"), OTHER, 10)
        assert token.balance_of(HOLDER) == 990


class TestAllowance:
    def test_approve_and_transfer_from(self, token):
        token.approve(HOLDER, SPENDER, 300)
        token.transfer_from(SPENDER, HOLDER, OTHER, 200)
        assert token.allowance(HOLDER, SPENDER) == 100
        assert token.balance_of(OTHER) == 200

    def test_transfer_from_over_allowance_rejected(self, token):
        token.approve(HOLDER, SPENDER, 50)
        with pytest.raises(TokenError, match="insufficient allowance"):
            token.transfer_from(SPENDER, HOLDER, OTHER, 51)
        assert token.allowance(HOLDER, SPENDER) == 50
        assert token.balance_of(HOLDER) == 1_000

    def test_transfer_from_over_balance_rejected(self, token):
        token.approve(HOLDER, SPENDER, 5_000)
        with pytest.raises(TokenError, match="exceeds balance"):
            token.transfer_from(SPENDER, HOLDER, OTHER, 1_001)
        assert token.allowance(HOLDER, SPENDER) == 5_000

    def test_unlimited_allowance_not_decremented(self, token):
        token.approve(HOLDER, SPENDER, token.UINT256_MAX)
        token.transfer_from(SPENDER, HOLDER, OTHER, 10)
        assert token.allowance(HOLDER, SPENDER) == token.UINT256_MAX

    def test_increase_and_decrease_allowance(self, token):
        token.increase_allowance(HOLDER, SPENDER, 30)
        token.increase_allowance(HOLDER, SPENDER, 20)
        assert token.allowance(HOLDER, SPENDER) == 50
        token.decrease_allowance(HOLDER, SPENDER, 45)
        assert token.allowance(HOLDER, SPENDER) == 5
        with pytest.raises(TokenError, match="below zero"):
            token.decrease_allowance(HOLDER, SPENDER, 6)


def test_round_trip_preserves_large_balances():
    token = ERC20Token(name="Vest Token", symbol="VEST", owner=OWNER)
    token.mint(OWNER, HOLDER, 10**27)
    token.approve(HOLDER, SPENDER, 10**26)

    restored = ERC20Token.from_dict(token.to_dict())

    assert restored.address == token.address
    assert restored.balance_of(HOLDER) == 10**27
    assert restored.allowance(HOLDER, SPENDER) == 10**26
    assert restored.total_supply == 10**27
    assert restored.owner == OWNER
