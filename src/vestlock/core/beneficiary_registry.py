"""
Fixed registry of beneficiaries and the administrator identity.

Membership is the only authorization gate for lock and claim. The registry
is built once and exposes no mutation interface.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .vesting_exceptions import InvalidRegistryError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(address: str) -> str:
    """Normalize address to lowercase without surrounding whitespace."""
    return address.strip().lower()


def is_null_address(address: str | None) -> bool:
    """True for empty or zero-address identities."""
    if not address:
        return True
    return normalize_address(address) in ("", ZERO_ADDRESS)


class BeneficiaryRegistry:
    """
    Immutable set of authorized beneficiaries plus a single administrator.

    Addresses are compared after lowercase normalization.
    """

    __slots__ = ("_beneficiaries", "_order", "_admin")

    def __init__(self, beneficiaries: Iterable[str], admin: str):
        order: list[str] = []
        for address in beneficiaries:
            if not isinstance(address, str):
                raise InvalidRegistryError(
                    f"Beneficiary address must be a string, got {type(address).__name__}"
                )
            if is_null_address(address):
                raise InvalidRegistryError("Beneficiary address cannot be empty or the zero address.")
            norm = normalize_address(address)
            if norm not in order:
                order.append(norm)
        if not order:
            raise InvalidRegistryError("Beneficiary registry cannot be empty.")
        if admin is not None and not isinstance(admin, str):
            raise InvalidRegistryError(
                f"Administrator address must be a string, got {type(admin).__name__}"
            )
        if is_null_address(admin):
            raise InvalidRegistryError("Administrator address cannot be empty or the zero address.")

        self._order: tuple[str, ...] = tuple(order)
        self._beneficiaries: frozenset[str] = frozenset(order)
        self._admin: str = normalize_address(admin)
        logger.info(
            "Beneficiary registry initialized",
            extra={
                "event": "registry.initialized",
                "beneficiaries": len(self._order),
                "admin": self._admin[:10],
            },
        )

    @property
    def beneficiaries(self) -> tuple[str, ...]:
        return self._order

    @property
    def admin(self) -> str:
        return self._admin

    def is_authorized(self, identity: str | None) -> bool:
        if not identity:
            return False
        return normalize_address(identity) in self._beneficiaries

    def is_admin(self, identity: str | None) -> bool:
        if not identity:
            return False
        return normalize_address(identity) == self._admin

    def __contains__(self, identity: object) -> bool:
        return isinstance(identity, str) and self.is_authorized(identity)

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self):
        return iter(self._order)

    def __repr__(self) -> str:
        return f"BeneficiaryRegistry(beneficiaries={len(self._order)}, admin={self._admin[:10]})"
