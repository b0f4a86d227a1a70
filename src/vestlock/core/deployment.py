"""
Wiring of token, custody and ledger into one deployable unit.

A deployment is created once from configuration and afterwards restored
from its stored snapshot, so the schedule and registry stay those fixed at
initialization even if the configuration files change later.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .beneficiary_registry import BeneficiaryRegistry
from .contracts.erc20 import ERC20Token
from .custody import TokenCustody
from .ledger_persistence import LedgerStorage
from .metrics import VestingMetrics
from .schedule import ReleaseSchedule
from .vesting_exceptions import CorruptedDataError, StorageError, VestingError
from .vesting_ledger import VestingLedger

logger = logging.getLogger(__name__)


@dataclass
class VestingDeployment:
    """Token, custody and ledger of one vesting pool."""

    token: ERC20Token
    custody: TokenCustody
    ledger: VestingLedger

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token.to_dict(),
            "custody_address": self.custody.custody_address,
            "ledger": self.ledger.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        time_provider: Callable[[], int] | None = None,
        metrics: VestingMetrics | None = None,
    ) -> "VestingDeployment":
        try:
            token = ERC20Token.from_dict(data["token"])
            custody = TokenCustody(token, data["custody_address"])
            ledger_data = data["ledger"]
        except (AttributeError, KeyError, TypeError, ValueError, VestingError) as exc:
            raise CorruptedDataError(f"Invalid deployment snapshot: {exc!r}") from exc
        if not isinstance(ledger_data, dict):
            raise CorruptedDataError("Invalid deployment snapshot: ledger section is not a mapping")
        ledger = VestingLedger.from_dict(
            ledger_data, custody, time_provider=time_provider, metrics=metrics
        )
        return cls(token=token, custody=custody, ledger=ledger)


def deploy(
    config,
    time_provider: Callable[[], int] | None = None,
    metrics: VestingMetrics | None = None,
) -> VestingDeployment:
    """
    Create a fresh deployment from a ConfigManager.

    The administrator owns the token so it can mint holder balances.
    """
    vesting = config.vesting
    token_cfg = config.token

    registry = BeneficiaryRegistry(vesting.beneficiaries, vesting.admin)
    token = ERC20Token(
        name=token_cfg.name,
        symbol=token_cfg.symbol,
        decimals=int(token_cfg.decimals),
        owner=registry.admin,
        max_supply=int(token_cfg.max_supply),
    )
    custody = TokenCustody(token, token_cfg.custody_address)
    ledger = VestingLedger(
        schedule=ReleaseSchedule.from_iterable(int(stamp) for stamp in vesting.schedule),
        registry=registry,
        transfer_service=custody,
        long_plan_threshold=int(vesting.long_plan_threshold),
        grace_period=int(vesting.grace_period_seconds),
        time_provider=time_provider,
        metrics=metrics,
    )
    logger.info(
        "Vesting deployment created",
        extra={
            "event": "deployment.created",
            "token": token.symbol,
            "custody": custody.custody_address[:10],
        },
    )
    return VestingDeployment(token=token, custody=custody, ledger=ledger)


def storage_from_config(config) -> LedgerStorage:
    return LedgerStorage(
        data_dir=config.storage.data_dir,
        state_file=config.storage.state_file,
        backup_enabled=bool(config.storage.backup_enabled),
        max_backups=int(config.storage.max_backups),
    )


def save_deployment(deployment: VestingDeployment, storage: LedgerStorage) -> str:
    return storage.save(deployment.to_dict())


def load_deployment(
    storage: LedgerStorage,
    time_provider: Callable[[], int] | None = None,
    metrics: Optional[VestingMetrics] = None,
) -> VestingDeployment:
    """
    Restore a deployment from storage.

    Raises:
        StorageError: If nothing has been deployed yet
    """
    if not storage.exists():
        raise StorageError("No vesting deployment found; run 'vestlock init' first")
    return VestingDeployment.from_dict(storage.load(), time_provider=time_provider, metrics=metrics)
