"""
Observability Module

Provides structured logging with correlation IDs (entity, source, run, stage).
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
    log_stage_start,
    log_stage_complete,
    log_stage_error,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
    "log_stage_start",
    "log_stage_complete",
    "log_stage_error",
]
