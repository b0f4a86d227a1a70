"""
vestlock - Tranche Vesting Ledger

Locks a fungible asset on behalf of a fixed set of beneficiaries and releases
it in percentage tranches as the checkpoints of a fixed schedule elapse.

Main Components:
- Ledger: lock, claim and residual sweep with non-reentrant state transitions
- Schedule: ten absolute checkpoints with short (5 x 20%) and long (10 x 10%) plans
- Custody: ERC20-backed asset transfer service
- Storage: checksummed snapshots of token and ledger state
"""

__version__ = "0.1.0"
__author__ = "vestlock Development Team"

__all__ = []
