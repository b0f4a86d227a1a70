"""
Asset transfer service used by the vesting ledger.

The ledger only talks to the ``AssetTransferService`` protocol. ``TokenCustody``
is the in-process implementation backed by an ERC20 token, where custody is a
plain token account the ledger controls.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from .contracts.erc20 import ERC20Token
from .beneficiary_registry import is_null_address, normalize_address
from .vesting_exceptions import InvalidRecipientError

logger = logging.getLogger(__name__)


@runtime_checkable
class AssetTransferService(Protocol):
    """Moves asset units between external holders and custody."""

    def balance_of(self, holder: str) -> int:
        ...

    def allowance_of(self, holder: str) -> int:
        """Amount ``holder`` has pre-authorized custody to pull."""
        ...

    def custody_balance(self) -> int:
        ...

    def transfer_in(self, holder: str, amount: int) -> None:
        """Pull ``amount`` from ``holder`` into custody, raising on failure."""
        ...

    def transfer_out(self, to: str, amount: int) -> None:
        """Send ``amount`` from custody to ``to``, raising on failure."""
        ...


class TokenCustody:
    """
    Custody account on an ERC20 token.

    Holders approve ``custody_address`` as spender; ``transfer_in`` then pulls
    via ``transfer_from`` and ``transfer_out`` pays out via ``transfer``.
    """

    def __init__(self, token: ERC20Token, custody_address: str):
        if is_null_address(custody_address):
            raise InvalidRecipientError("Custody address cannot be empty or the zero address.")
        self.token = token
        self.custody_address = normalize_address(custody_address)

    def balance_of(self, holder: str) -> int:
        return self.token.balance_of(holder)

    def allowance_of(self, holder: str) -> int:
        return self.token.allowance(holder, self.custody_address)

    def custody_balance(self) -> int:
        return self.token.balance_of(self.custody_address)

    def transfer_in(self, holder: str, amount: int) -> None:
        self.token.transfer_from(self.custody_address, holder, self.custody_address, amount)
        logger.debug(
            "Custody transfer in",
            extra={
                "event": "custody.transfer_in",
                "holder": normalize_address(holder)[:10],
                "amount": amount,
            },
        )

    def transfer_out(self, to: str, amount: int) -> None:
        self.token.transfer(self.custody_address, to, amount)
        logger.debug(
            "Custody transfer out",
            extra={
                "event": "custody.transfer_out",
                "to": normalize_address(to)[:10],
                "amount": amount,
            },
        )

    def __repr__(self) -> str:
        return f"TokenCustody(token={self.token.symbol}, custody={self.custody_address[:10]})"
