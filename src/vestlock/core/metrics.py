"""
vestlock - Prometheus metrics for the vesting ledger.

Counts lock, claim and sweep operations, the units they moved and the
operations that were rejected, and tracks custody balance as a gauge.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
    start_http_server,
)

logger = logging.getLogger(__name__)


class VestingMetrics:
    """
    Metrics collector for one vesting ledger.

    Each instance owns its CollectorRegistry unless one is passed in, so
    several ledgers (or tests) can coexist in one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "vestlock"):
        """
        Initialize vesting metrics.

        Args:
            registry: Custom Prometheus registry (optional)
            namespace: Metric name prefix
        """
        self.registry = registry or CollectorRegistry()
        self._lock = threading.Lock()
        self._server_started = False

        # ==================== OPERATION METRICS ====================
        self.locks_total = Counter(
            f"{namespace}_locks_total",
            "Total number of successful lock operations",
            registry=self.registry,
        )
        self.claims_total = Counter(
            f"{namespace}_claims_total",
            "Total number of successful claim operations",
            registry=self.registry,
        )
        self.sweeps_total = Counter(
            f"{namespace}_sweeps_total",
            "Total number of residual sweeps",
            registry=self.registry,
        )
        self.rejections_total = Counter(
            f"{namespace}_rejections_total",
            "Operations rejected by a failed precondition",
            ["operation", "error"],
            registry=self.registry,
        )

        # ==================== VOLUME METRICS ====================
        self.locked_units_total = Counter(
            f"{namespace}_locked_units_total",
            "Base units moved into custody by lock",
            registry=self.registry,
        )
        self.claimed_units_total = Counter(
            f"{namespace}_claimed_units_total",
            "Base units released to beneficiaries by claim",
            registry=self.registry,
        )
        self.swept_units_total = Counter(
            f"{namespace}_swept_units_total",
            "Base units removed from custody by residual sweep",
            registry=self.registry,
        )

        # ==================== STATE METRICS ====================
        self.custody_balance = Gauge(
            f"{namespace}_custody_balance_units",
            "Current custody balance in base units",
            registry=self.registry,
        )
        self.beneficiaries_with_records = Gauge(
            f"{namespace}_beneficiaries_with_records",
            "Beneficiaries that have locked at least once",
            registry=self.registry,
        )

    def record_lock(self, amount: int, custody_balance: int, record_count: int) -> None:
        self.locks_total.inc()
        self.locked_units_total.inc(amount)
        self.custody_balance.set(custody_balance)
        self.beneficiaries_with_records.set(record_count)

    def record_claim(self, amount: int, custody_balance: int) -> None:
        self.claims_total.inc()
        self.claimed_units_total.inc(amount)
        self.custody_balance.set(custody_balance)

    def record_sweep(self, amount: int) -> None:
        self.sweeps_total.inc()
        self.swept_units_total.inc(amount)
        self.custody_balance.set(0)

    def record_rejection(self, operation: str, error: Exception) -> None:
        self.rejections_total.labels(operation=operation, error=type(error).__name__).inc()

    def export(self) -> bytes:
        """Return metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)

    def start_server(self, port: int = 9108) -> None:
        """Expose metrics over HTTP. Subsequent calls are no-ops."""
        with self._lock:
            if self._server_started:
                return
            start_http_server(port, registry=self.registry)
            self._server_started = True
        logger.info(
            "Metrics server started",
            extra={"event": "metrics.server_started", "port": port},
        )
