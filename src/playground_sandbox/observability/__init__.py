"""Observability exports: structured logging and correlation helpers."""

from playground_sandbox.observability.logging import (
    LoggingConfig,
    Redactor,
    StructuredLoggingHandle,
    correlation_scope,
    logging_config_from,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "Redactor",
    "StructuredLoggingHandle",
    "correlation_scope",
    "logging_config_from",
    "setup_structured_logging",
    "shutdown_logging",
]
