"""
Asset token contracts used as the vesting ledger's transfer backend.
"""

from .erc20 import ERC20Token, TokenEvent

__all__ = ["ERC20Token", "TokenEvent"]
