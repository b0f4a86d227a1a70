"""
Base utilities for API Blueprints

Provides common dependencies and helper functions shared across blueprints.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from flask import g, jsonify

logger = logging.getLogger(__name__)


def get_api_context() -> Dict[str, Any]:
    """Get the API context stored on Flask's g object during request setup."""
    return g.get("api_context", {})


def get_ledger() -> Any:
    """Get the vesting ledger from context."""
    return get_api_context().get("ledger")


def get_metrics() -> Optional[Any]:
    """Get the metrics collector from context."""
    return get_api_context().get("metrics")


def success_response(payload: Dict[str, Any], status: int = 200) -> Tuple[Any, int]:
    """Return a success payload with consistent structure."""
    body = {"success": True, **payload}
    return jsonify(body), status


def error_response(
    message: str,
    status: int = 400,
    code: str = "bad_request",
    context: Optional[Dict[str, Any]] = None,
) -> Tuple[Any, int]:
    """Return an error payload and log it."""
    level = logging.ERROR if status >= 500 else logging.WARNING
    logger.log(
        level,
        "API error: %s",
        message,
        extra={"event": "api.error", "code": code, "status": status, **(context or {})},
    )
    return jsonify({"success": False, "error": message, "code": code}), status
