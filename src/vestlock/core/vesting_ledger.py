"""
Vesting ledger engine.

Holds locked allocations for a fixed set of beneficiaries and releases them
in percentage tranches as the checkpoints of a ReleaseSchedule elapse.

Operations:
- lock: pull tokens into custody and add them to the caller's record
- claim: release everything entitled so far and not yet claimed
- withdraw_residual: administrator sweep of the whole custody balance once
  the grace period after the final checkpoint has passed

Every mutating operation runs under a non-reentrant guard and either
completes or leaves the ledger untouched.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional

from .beneficiary_registry import BeneficiaryRegistry, is_null_address, normalize_address
from .custody import AssetTransferService
from .metrics import VestingMetrics
from .schedule import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_LONG_PLAN_THRESHOLD,
    PlanType,
    ReleaseSchedule,
    plan_from_total,
)
from .vesting_exceptions import (
    CorruptedDataError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidRecipientError,
    NothingToClaimError,
    ReentrancyError,
    ScheduleNotElapsedError,
    TokenError,
    UnauthorizedError,
    VestingError,
)

logger = logging.getLogger(__name__)

EventListener = Callable[["VestingEvent"], None]


@dataclass
class VestingRecord:
    """Mutable per-beneficiary accumulator. Only the ledger writes to it."""

    total_locked: int = 0
    total_claimed: int = 0
    plan_type: PlanType = PlanType.SHORT


@dataclass(frozen=True)
class VestingRecordView:
    """Read-only snapshot of a beneficiary's record."""

    beneficiary: str
    total_locked: int
    total_claimed: int
    plan_type: PlanType

    @property
    def remaining(self) -> int:
        return self.total_locked - self.total_claimed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "beneficiary": self.beneficiary,
            "total_locked": self.total_locked,
            "total_claimed": self.total_claimed,
            "plan_type": self.plan_type.value,
        }


@dataclass(frozen=True)
class VestingEvent:
    """Audit event surfaced to observers."""

    event_type: str  # "lock", "claim" or "sweep"
    address: str
    amount: int
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "address": self.address,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VestingEvent":
        return cls(
            event_type=data["event_type"],
            address=data["address"],
            amount=int(data["amount"]),
            timestamp=int(data["timestamp"]),
        )


class VestingLedger:
    """
    Schedule-driven vesting ledger.

    Args:
        schedule: Immutable release checkpoints
        registry: Authorized beneficiaries and the administrator
        transfer_service: Moves tokens in and out of custody
        long_plan_threshold: Cumulative lock at or above which the long plan applies
        grace_period: Seconds after the final checkpoint before a sweep is allowed
        time_provider: Clock returning integer Unix seconds
        metrics: Optional Prometheus collector
    """

    def __init__(
        self,
        schedule: ReleaseSchedule,
        registry: BeneficiaryRegistry,
        transfer_service: AssetTransferService,
        long_plan_threshold: int = DEFAULT_LONG_PLAN_THRESHOLD,
        grace_period: int = DEFAULT_GRACE_PERIOD,
        time_provider: Callable[[], int] | None = None,
        metrics: VestingMetrics | None = None,
    ):
        if long_plan_threshold <= 0:
            raise InvalidAmountError("Long plan threshold must be positive.")
        if grace_period < 0:
            raise InvalidAmountError("Grace period cannot be negative.")

        self.schedule = schedule
        self.registry = registry
        self.transfer_service = transfer_service
        self.long_plan_threshold = long_plan_threshold
        self.grace_period = grace_period
        self.metrics = metrics

        self._records: dict[str, VestingRecord] = {}
        self.events: list[VestingEvent] = []
        self._listeners: list[EventListener] = []

        # RLock so a nested call on the same thread reaches the flag check
        # instead of deadlocking; other threads wait their turn.
        self._guard = threading.RLock()
        self._entered = False

        self._time_provider = time_provider or (lambda: int(time.time()))
        logger.info(
            "VestingLedger initialized",
            extra={
                "event": "vesting.initialized",
                "beneficiaries": len(registry),
                "first_unlock": schedule.first_unlock,
                "final_unlock": schedule.final_unlock,
                "deterministic_clock": bool(time_provider),
            },
        )

    # ==================== Internals ====================

    def _current_time(self, current_time: int | None = None) -> int:
        timestamp = self._time_provider() if current_time is None else current_time
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    @contextmanager
    def _non_reentrant(self, operation: str) -> Iterator[None]:
        with self._guard:
            if self._entered:
                raise self._reject(
                    operation,
                    ReentrancyError(f"Reentrant call to {operation} rejected"),
                )
            self._entered = True
            try:
                yield
            finally:
                self._entered = False

    def _reject(self, operation: str, error: VestingError) -> VestingError:
        """Log and count a rejected operation, returning the error to raise."""
        logger.warning(
            "Vesting %s rejected: %s",
            operation,
            error.message,
            extra={
                "event": f"vesting.{operation}_rejected",
                "error_type": type(error).__name__,
                **{k: v for k, v in error.details.items() if isinstance(v, (str, int))},
            },
        )
        if self.metrics:
            self.metrics.record_rejection(operation, error)
        return error

    def _emit(self, event_type: str, address: str, amount: int, timestamp: int) -> VestingEvent:
        event = VestingEvent(event_type=event_type, address=address, amount=amount, timestamp=timestamp)
        self.events.append(event)
        return event

    def _notify(self, event: VestingEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Observers cannot undo a committed operation
                logger.exception(
                    "Vesting event listener failed",
                    extra={"event": "vesting.listener_failed", "event_type": event.event_type},
                )

    def _entitlement(self, record: VestingRecord, now: int) -> int:
        return self.schedule.cumulative_entitlement(record.total_locked, record.plan_type, now)

    # ==================== Observers ====================

    def add_listener(self, listener: EventListener) -> None:
        """Register a callback invoked with each event after its operation completes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    # ==================== Mutating Operations ====================

    def lock(self, beneficiary: str, amount: int, current_time: int | None = None) -> bool:
        """
        Lock ``amount`` of the beneficiary's tokens into custody.

        The beneficiary must have approved custody for at least ``amount``.
        The plan is re-derived from the new cumulative total, so several
        small locks that together cross the threshold move the whole
        balance onto the long plan.

        Args:
            beneficiary: Registered beneficiary (the caller)
            amount: Base units to lock
            current_time: Optional clock override

        Returns:
            True on success

        Raises:
            UnauthorizedError: Beneficiary is not registered
            InvalidAmountError: Amount is not a positive integer
            InsufficientFundsError: Balance or allowance below ``amount``
        """
        with self._non_reentrant("lock"):
            if not self.registry.is_authorized(beneficiary):
                raise self._reject(
                    "lock",
                    UnauthorizedError(
                        "Caller is not a registered beneficiary",
                        details={"caller": str(beneficiary)[:10]},
                    ),
                )
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise self._reject(
                    "lock", InvalidAmountError("Lock amount must be a positive integer.")
                )

            who = normalize_address(beneficiary)
            balance = self.transfer_service.balance_of(who)
            if balance < amount:
                raise self._reject(
                    "lock",
                    InsufficientFundsError(
                        f"Insufficient balance to lock ({balance} < {amount})",
                        details={"available": balance, "requested": amount},
                    ),
                )
            allowance = self.transfer_service.allowance_of(who)
            if allowance < amount:
                raise self._reject(
                    "lock",
                    InsufficientFundsError(
                        f"Insufficient allowance to lock ({allowance} < {amount})",
                        details={"allowance": allowance, "requested": amount},
                    ),
                )

            now = self._current_time(current_time)
            try:
                self.transfer_service.transfer_in(who, amount)
            except TokenError as exc:
                raise self._reject(
                    "lock", InsufficientFundsError(f"Transfer into custody failed: {exc}")
                ) from exc

            record = self._records.get(who)
            if record is None:
                record = VestingRecord()
                self._records[who] = record
            previous_plan = record.plan_type
            record.total_locked += amount
            record.plan_type = plan_from_total(record.total_locked, self.long_plan_threshold)

            event = self._emit("lock", who, amount, now)
            if self.metrics:
                self.metrics.record_lock(
                    amount, self.transfer_service.custody_balance(), len(self._records)
                )

        if previous_plan is not record.plan_type:
            logger.info(
                "Beneficiary %s upgraded to %s plan",
                who[:10],
                record.plan_type.value,
                extra={"event": "vesting.plan_upgraded", "beneficiary": who[:10]},
            )
        logger.info(
            "Locked %d units for %s",
            amount,
            who[:10],
            extra={
                "event": "vesting.lock",
                "beneficiary": who[:10],
                "amount": amount,
                "total_locked": record.total_locked,
                "plan": record.plan_type.value,
            },
        )
        self._notify(event)
        return True

    def claim(self, beneficiary: str, current_time: int | None = None) -> int:
        """
        Release everything the beneficiary is entitled to and has not claimed.

        Entitlement is recomputed from scratch on every call as the sum of the
        truncated per-checkpoint shares of every elapsed checkpoint in the
        beneficiary's plan.

        Args:
            beneficiary: Registered beneficiary (the caller)
            current_time: Optional clock override

        Returns:
            Base units released

        Raises:
            UnauthorizedError: Beneficiary is not registered
            ScheduleNotElapsedError: First checkpoint has not been reached
            NothingToClaimError: No lock, or nothing new since the last claim
            InsufficientFundsError: Custody cannot cover the release
        """
        with self._non_reentrant("claim"):
            if not self.registry.is_authorized(beneficiary):
                raise self._reject(
                    "claim",
                    UnauthorizedError(
                        "Caller is not a registered beneficiary",
                        details={"caller": str(beneficiary)[:10]},
                    ),
                )

            who = normalize_address(beneficiary)
            record = self._records.get(who)
            if record is None or record.total_locked <= 0:
                raise self._reject("claim", NothingToClaimError("No locked balance to claim"))

            now = self._current_time(current_time)
            if now < self.schedule.first_unlock:
                raise self._reject(
                    "claim",
                    ScheduleNotElapsedError(
                        "First checkpoint has not elapsed",
                        unlock_time=self.schedule.first_unlock,
                        details={"unlock_time": self.schedule.first_unlock, "now": now},
                    ),
                )
            if record.total_claimed >= record.total_locked:
                raise self._reject("claim", NothingToClaimError("Allocation fully claimed"))

            claimable = self._entitlement(record, now) - record.total_claimed
            if claimable <= 0:
                raise self._reject("claim", NothingToClaimError("Nothing to claim"))

            custody = self.transfer_service.custody_balance()
            if custody < claimable:
                raise self._reject(
                    "claim",
                    InsufficientFundsError(
                        f"Custody balance too low for claim ({custody} < {claimable})",
                        details={"custody": custody, "claimable": claimable},
                    ),
                )

            # Commit before the external transfer
            record.total_claimed += claimable
            try:
                self.transfer_service.transfer_out(who, claimable)
            except TokenError as exc:
                record.total_claimed -= claimable
                raise self._reject(
                    "claim", InsufficientFundsError(f"Transfer out of custody failed: {exc}")
                ) from exc
            except Exception:
                record.total_claimed -= claimable
                raise

            event = self._emit("claim", who, claimable, now)
            if self.metrics:
                self.metrics.record_claim(claimable, self.transfer_service.custody_balance())

        logger.info(
            "Claimed %d units for %s",
            claimable,
            who[:10],
            extra={
                "event": "vesting.claim",
                "beneficiary": who[:10],
                "amount": claimable,
                "total_claimed": record.total_claimed,
                "total_locked": record.total_locked,
            },
        )
        self._notify(event)
        return claimable

    def withdraw_residual(
        self, caller: str, destination: str, current_time: int | None = None
    ) -> int:
        """
        Sweep the entire custody balance to ``destination``.

        Only the administrator may sweep, and only once the grace period after
        the final checkpoint has passed. The sweep is not beneficiary-scoped:
        unclaimed entitlement goes with it.

        Returns:
            Base units swept

        Raises:
            UnauthorizedError: Caller is not the administrator
            ScheduleNotElapsedError: Grace period has not passed
            InvalidRecipientError: Destination is empty or the zero address
            InsufficientFundsError: Custody is empty
        """
        with self._non_reentrant("sweep"):
            if not self.registry.is_admin(caller):
                raise self._reject(
                    "sweep",
                    UnauthorizedError(
                        "Caller is not the administrator",
                        details={"caller": str(caller)[:10]},
                    ),
                )

            now = self._current_time(current_time)
            sweep_time = self.schedule.sweep_time(self.grace_period)
            if now < sweep_time:
                raise self._reject(
                    "sweep",
                    ScheduleNotElapsedError(
                        "Grace period after final checkpoint has not elapsed",
                        unlock_time=sweep_time,
                        details={"unlock_time": sweep_time, "now": now},
                    ),
                )
            if is_null_address(destination):
                raise self._reject(
                    "sweep", InvalidRecipientError("Sweep destination cannot be empty or the zero address.")
                )

            amount = self.transfer_service.custody_balance()
            if amount <= 0:
                raise self._reject("sweep", InsufficientFundsError("Custody balance is empty"))

            target = normalize_address(destination)
            try:
                self.transfer_service.transfer_out(target, amount)
            except TokenError as exc:
                raise self._reject(
                    "sweep", InsufficientFundsError(f"Transfer out of custody failed: {exc}")
                ) from exc

            event = self._emit("sweep", target, amount, now)
            if self.metrics:
                self.metrics.record_sweep(amount)

        logger.warning(
            "Residual custody of %d units swept to %s",
            amount,
            target[:10],
            extra={"event": "vesting.sweep", "destination": target[:10], "amount": amount},
        )
        self._notify(event)
        return amount

    # ==================== Queries ====================

    def custody_balance(self) -> int:
        return self.transfer_service.custody_balance()

    def get_record(self, beneficiary: str) -> VestingRecordView | None:
        """Return the beneficiary's record, or None if they never locked."""
        who = normalize_address(beneficiary or "")
        record = self._records.get(who)
        if record is None:
            return None
        return VestingRecordView(
            beneficiary=who,
            total_locked=record.total_locked,
            total_claimed=record.total_claimed,
            plan_type=record.plan_type,
        )

    def records(self) -> list[VestingRecordView]:
        return [view for view in (self.get_record(who) for who in self._records) if view]

    def claimable_amount(self, beneficiary: str, current_time: int | None = None) -> int:
        """Amount a claim would release right now, or 0."""
        record = self._records.get(normalize_address(beneficiary or ""))
        if record is None:
            return 0
        now = self._current_time(current_time)
        return max(0, self._entitlement(record, now) - record.total_claimed)

    def next_unlock_time(self, beneficiary: str, current_time: int | None = None) -> int | None:
        """Next checkpoint in the beneficiary's plan that has not elapsed yet."""
        record = self._records.get(normalize_address(beneficiary or ""))
        plan = record.plan_type if record else PlanType.SHORT
        return self.schedule.next_unlock(plan, self._current_time(current_time))

    def summary(self) -> Dict[str, Any]:
        return {
            "beneficiary_count": len(self._records),
            "total_locked": sum(r.total_locked for r in self._records.values()),
            "total_claimed": sum(r.total_claimed for r in self._records.values()),
            "custody_balance": self.custody_balance(),
            "first_unlock": self.schedule.first_unlock,
            "final_unlock": self.schedule.final_unlock,
            "sweep_time": self.schedule.sweep_time(self.grace_period),
        }

    # ==================== Serialization ====================

    def to_dict(self) -> Dict[str, Any]:
        """Serialize ledger state. Amounts are strings to keep full precision."""
        return {
            "schedule": self.schedule.to_list(),
            "beneficiaries": list(self.registry.beneficiaries),
            "admin": self.registry.admin,
            "long_plan_threshold": str(self.long_plan_threshold),
            "grace_period": self.grace_period,
            "records": {
                who: {
                    "total_locked": str(record.total_locked),
                    "total_claimed": str(record.total_claimed),
                    "plan_type": record.plan_type.value,
                }
                for who, record in self._records.items()
            },
            "events": [event.to_dict() for event in self.events],
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        transfer_service: AssetTransferService,
        time_provider: Callable[[], int] | None = None,
        metrics: VestingMetrics | None = None,
    ) -> "VestingLedger":
        """
        Rebuild a ledger from ``to_dict`` output.

        Raises:
            CorruptedDataError: If records violate ledger invariants
        """
        try:
            ledger = cls(
                schedule=ReleaseSchedule.from_iterable(data["schedule"]),
                registry=BeneficiaryRegistry(data["beneficiaries"], data["admin"]),
                transfer_service=transfer_service,
                long_plan_threshold=int(data.get("long_plan_threshold", DEFAULT_LONG_PLAN_THRESHOLD)),
                grace_period=int(data.get("grace_period", DEFAULT_GRACE_PERIOD)),
                time_provider=time_provider,
                metrics=metrics,
            )
        except (KeyError, TypeError, ValueError, VestingError) as exc:
            raise CorruptedDataError(f"Invalid ledger snapshot: {exc}") from exc

        try:
            for who, raw in data.get("records", {}).items():
                ledger._restore_record(who, raw)
            ledger.events = [VestingEvent.from_dict(item) for item in data.get("events", [])]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise CorruptedDataError(f"Invalid ledger snapshot: {exc!r}") from exc
        return ledger

    def _restore_record(self, who: str, raw: Dict[str, Any]) -> None:
        if not self.registry.is_authorized(who):
            raise CorruptedDataError(f"Record for unregistered address {who[:10]}")
        total_locked = int(raw["total_locked"])
        total_claimed = int(raw["total_claimed"])
        if total_locked <= 0 or not 0 <= total_claimed <= total_locked:
            raise CorruptedDataError(
                f"Record for {who[:10]} violates 0 <= claimed <= locked",
                details={"total_locked": total_locked, "total_claimed": total_claimed},
            )
        self._records[normalize_address(who)] = VestingRecord(
            total_locked=total_locked,
            total_claimed=total_claimed,
            plan_type=plan_from_total(total_locked, self.long_plan_threshold),
        )
