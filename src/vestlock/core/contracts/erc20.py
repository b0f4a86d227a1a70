"""
ERC20-style model of the vested asset.

Integer base units with uint256 bounds, allowance-based pulls, owner-only
minting with an optional supply cap, and a Transfer/Approval event log.
Custody is an ordinary account on this token.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict

from ..vesting_exceptions import TokenError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


@dataclass
class TokenEvent:
    """Represents an ERC20 event."""

    event_type: str  # "Transfer" or "Approval"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC20Token:
    """
    In-memory ERC20 token.

    Balances and allowances are integer base units keyed by lowercase
    address. Every failed operation raises TokenError before touching state.
    """

    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0
    address: str = ""
    owner: str = ""  # only the owner may mint

    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)  # holder -> spender -> units
    events: list[TokenEvent] = field(default_factory=list)

    max_supply: int = 0  # 0 = uncapped

    UINT256_MAX: ClassVar[int] = 2**256 - 1

    def __post_init__(self) -> None:
        if not self.address:
            seed = f"{self.name}:{self.symbol}:{time.time_ns()}".encode()
            self.address = "0x" + hashlib.sha3_256(seed).hexdigest()[-40:]
        self.owner = self._normalize(self.owner)

    # ==================== Views ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(self._normalize(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        """Amount ``spender`` may still pull from ``owner``."""
        return self.allowances.get(self._normalize(owner), {}).get(self._normalize(spender), 0)

    # ==================== Transfers ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Move ``amount`` from ``sender`` to ``recipient``.

        Raises:
            TokenError: Zero recipient, invalid amount or short balance
        """
        src, dst = self._normalize(sender), self._normalize(recipient)
        self._check_move(src, dst, amount)
        self._move(src, dst, amount)
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """
        Move ``amount`` out of ``from_addr`` on behalf of ``spender``.

        The allowance is checked before the balance so a short allowance is
        reported even when the holder is also underfunded.

        Raises:
            TokenError: Zero recipient, invalid amount, short allowance or short balance
        """
        operator = self._normalize(spender)
        src, dst = self._normalize(from_addr), self._normalize(to_addr)
        self._require_address(dst, "recipient")
        self._validate_amount(amount)

        granted = self.allowance(src, operator)
        if granted < amount:
            raise TokenError(f"ERC20: insufficient allowance ({granted} < {amount})")
        self._check_move(src, dst, amount)

        # Unlimited allowances are never decremented
        if granted != self.UINT256_MAX:
            self.allowances[src][operator] = granted - amount
        self._move(src, dst, amount)
        return True

    # ==================== Allowances ====================

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Set the allowance of ``spender`` over ``owner``'s balance to ``amount``."""
        holder, operator = self._normalize(owner), self._normalize(spender)
        self._require_address(operator, "spender")
        self._validate_amount(amount)

        self.allowances.setdefault(holder, {})[operator] = amount
        self._record("Approval", holder, operator, amount)
        return True

    def increase_allowance(self, owner: str, spender: str, added_value: int) -> bool:
        self._validate_amount(added_value)
        raised = self.allowance(owner, spender) + added_value
        return self.approve(owner, spender, min(raised, self.UINT256_MAX))

    def decrease_allowance(self, owner: str, spender: str, subtracted_value: int) -> bool:
        self._validate_amount(subtracted_value)
        remaining = self.allowance(owner, spender) - subtracted_value
        if remaining < 0:
            raise TokenError("ERC20: decreased allowance below zero")
        return self.approve(owner, spender, remaining)

    # ==================== Supply ====================

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Create ``amount`` new units for ``to``. Only the owner may mint, and
        never past ``max_supply`` when a cap is set.

        Raises:
            TokenError: Caller is not owner, zero recipient, invalid amount or cap exceeded
        """
        self._require_owner(minter)
        dst = self._normalize(to)
        self._require_address(dst, "recipient")
        self._validate_amount(amount)

        new_supply = self.total_supply + amount
        if self.max_supply > 0 and new_supply > self.max_supply:
            raise TokenError(f"ERC20: mint would exceed max supply ({new_supply} > {self.max_supply})")

        self.total_supply = new_supply
        self.balances[dst] = self.balances.get(dst, 0) + amount
        self._record("Transfer", ZERO_ADDRESS, dst, amount)

        logger.info(
            "Minted %d %s",
            amount,
            self.symbol,
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": dst[:10],
                "amount": amount,
                "supply": self.total_supply,
            },
        )
        return True

    # ==================== Internals ====================

    @staticmethod
    def _normalize(address: str) -> str:
        return (address or "").strip().lower()

    @staticmethod
    def _require_address(address: str, role: str) -> None:
        if not address or address == ZERO_ADDRESS:
            raise TokenError(f"ERC20: {role} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TokenError("ERC20: amount must be an integer")
        if not 0 <= amount <= self.UINT256_MAX:
            raise TokenError(f"ERC20: amount out of uint256 range ({amount})")

    def _require_owner(self, caller: str) -> None:
        if not self.owner or self._normalize(caller) != self.owner:
            raise TokenError("ERC20: caller is not owner")

    def _check_move(self, src: str, dst: str, amount: int) -> None:
        self._require_address(dst, "recipient")
        self._validate_amount(amount)
        available = self.balances.get(src, 0)
        if available < amount:
            raise TokenError(f"ERC20: transfer amount exceeds balance ({amount} > {available})")

    def _move(self, src: str, dst: str, amount: int) -> None:
        """Debit and credit after all checks have passed."""
        self.balances[src] = self.balances.get(src, 0) - amount
        self.balances[dst] = self.balances.get(dst, 0) + amount
        self._record("Transfer", src, dst, amount)
        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": src[:10],
                "to": dst[:10],
                "amount": amount,
            },
        )

    def _record(self, kind: str, first: str, second: str, amount: int) -> None:
        self.events.append(TokenEvent(kind, first, second, amount))

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """
        Snapshot of token state. Amounts are strings so 18-decimal balances
        survive JSON readers that parse numbers as doubles.
        """
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "address": self.address,
            "owner": self.owner,
            "total_supply": str(self.total_supply),
            "max_supply": str(self.max_supply),
            "balances": {holder: str(units) for holder, units in self.balances.items()},
            "allowances": {
                holder: {operator: str(units) for operator, units in grants.items()}
                for holder, grants in self.allowances.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ERC20Token":
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=int(data.get("decimals", 18)),
            total_supply=int(data.get("total_supply", 0)),
            address=data.get("address", ""),
            owner=data.get("owner", ""),
            max_supply=int(data.get("max_supply", 0)),
        )
        token.balances = {holder: int(units) for holder, units in data.get("balances", {}).items()}
        token.allowances = {
            holder: {operator: int(units) for operator, units in grants.items()}
            for holder, grants in data.get("allowances", {}).items()
        }
        return token
