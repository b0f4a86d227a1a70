"""
Vesting API Blueprint

Read-only endpoints over the vesting ledger: schedule, registry, custody
balance, per-beneficiary records and Prometheus metrics.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from flask import Blueprint, Response, request

from vestlock.api.base import error_response, get_ledger, get_metrics, success_response

logger = logging.getLogger(__name__)

vesting_bp = Blueprint("vesting", __name__, url_prefix="/vesting")


def _optional_time() -> int | None:
    raw = request.args.get("now")
    if raw is None:
        return None
    return int(raw)


@vesting_bp.route("/schedule", methods=["GET"])
def get_schedule() -> Tuple[Dict[str, Any], int]:
    """Return the checkpoints and the sweep time."""
    ledger = get_ledger()
    schedule = ledger.schedule
    return success_response(
        {
            "checkpoints": schedule.to_list(),
            "grace_period": ledger.grace_period,
            "sweep_time": schedule.sweep_time(ledger.grace_period),
            "long_plan_threshold": ledger.long_plan_threshold,
        }
    )


@vesting_bp.route("/beneficiaries", methods=["GET"])
def get_beneficiaries() -> Tuple[Dict[str, Any], int]:
    ledger = get_ledger()
    return success_response(
        {
            "beneficiaries": list(ledger.registry.beneficiaries),
            "admin": ledger.registry.admin,
        }
    )


@vesting_bp.route("/custody", methods=["GET"])
def get_custody() -> Tuple[Dict[str, Any], int]:
    return success_response({"custody_balance": get_ledger().custody_balance()})


@vesting_bp.route("/records/<address>", methods=["GET"])
def get_record(address: str) -> Tuple[Dict[str, Any], int]:
    """Return a beneficiary's record with its claimable preview."""
    ledger = get_ledger()
    if not ledger.registry.is_authorized(address):
        return error_response("Unknown beneficiary", status=404, code="not_found")

    try:
        now = _optional_time()
    except ValueError:
        return error_response("Query parameter 'now' must be an integer", code="invalid_payload")

    view = ledger.get_record(address)
    if view is None:
        return error_response("Beneficiary has not locked", status=404, code="not_found")

    return success_response(
        {
            "record": view.to_dict(),
            "claimable": ledger.claimable_amount(address, current_time=now),
            "next_unlock": ledger.next_unlock_time(address, current_time=now),
        }
    )


@vesting_bp.route("/summary", methods=["GET"])
def get_summary() -> Tuple[Dict[str, Any], int]:
    return success_response({"summary": get_ledger().summary()})


@vesting_bp.route("/metrics", methods=["GET"])
def get_prometheus_metrics():
    metrics = get_metrics()
    if metrics is None:
        return error_response("Metrics are disabled", status=404, code="not_found")
    return Response(metrics.export(), mimetype="text/plain; version=0.0.4")
