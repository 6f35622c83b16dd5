"""Telemetry package: structured logging and request correlation."""

from __future__ import annotations

from storefront.telemetry.logging import (
    CorrelationIdMiddleware,
    configure_logging,
)

__all__ = [
    "CorrelationIdMiddleware",
    "configure_logging",
]
