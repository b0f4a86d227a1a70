"""
vestlock Core Module

Core functionality of the vesting ledger:
- Release schedule and plan derivation
- Beneficiary registry
- Vesting ledger engine and events
- ERC20 custody backend
- Persistence, logging and metrics
"""

from .beneficiary_registry import BeneficiaryRegistry
from .custody import AssetTransferService, TokenCustody
from .schedule import PlanType, ReleaseSchedule, plan_from_total
from .vesting_ledger import VestingEvent, VestingLedger, VestingRecordView

__all__ = [
    "AssetTransferService",
    "BeneficiaryRegistry",
    "PlanType",
    "ReleaseSchedule",
    "TokenCustody",
    "VestingEvent",
    "VestingLedger",
    "VestingRecordView",
    "plan_from_total",
]
