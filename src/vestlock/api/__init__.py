"""
vestlock API

Flask Blueprints exposing read-only views of the vesting ledger.

Usage:
    from vestlock.api import create_app
    app = create_app(ledger, metrics)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flask import Flask, g

from vestlock.api.vesting_bp import vesting_bp

if TYPE_CHECKING:
    from vestlock.core.metrics import VestingMetrics
    from vestlock.core.vesting_ledger import VestingLedger

__all__ = ["vesting_bp", "register_blueprints", "create_app"]

logger = logging.getLogger(__name__)


def register_blueprints(
    app: Flask,
    ledger: "VestingLedger",
    metrics: "VestingMetrics" | None = None,
) -> None:
    """
    Register API blueprints with the Flask app.

    Sets up a before_request handler that injects the ledger into Flask's g
    object, then registers the blueprints.
    """
    api_context: dict[str, Any] = {"ledger": ledger, "metrics": metrics}

    @app.before_request
    def inject_api_context() -> None:
        g.api_context = api_context

    app.register_blueprint(vesting_bp)


def create_app(ledger: "VestingLedger", metrics: "VestingMetrics" | None = None) -> Flask:
    app = Flask("vestlock")
    register_blueprints(app, ledger, metrics)
    logger.info("Vesting API created", extra={"event": "api.created"})
    return app
