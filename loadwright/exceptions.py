"""
Typed exceptions for loadwright.

Provides structured error handling with:
- LoadwrightError: Base exception for all loadwright errors
- ConfigError: Configuration and validation errors (fatal, raised before a run)
- MetricKindError: A metric name was reused with a different kind

Per-iteration problems (transport errors, failed checks, dropped arrivals,
exceptions inside a scenario function) are never raised past the runner;
they end up as metrics in the run summary instead.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LoadwrightError(Exception):
    """Base exception for all loadwright errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(LoadwrightError):
    """Configuration or validation error.

    Raised when:
    - The base URL is malformed
    - A numeric option cannot be parsed
    - A stage, executor option or threshold expression is invalid

    Always raised before any iteration starts.

    Examples:
        ConfigError("Invalid base URL", code="invalid_base_url")
        ConfigError("Bad threshold", details={"expression": "p95<<1"})
    """

    def __init__(
        self,
        message: str,
        *,
        option: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if option:
            details["option"] = option
        self.option = option
        super().__init__(message, code=code, details=details)


class MetricKindError(LoadwrightError):
    """A metric was recorded with a kind that differs from its declaration.

    Attributes:
        metric: Metric name
        declared: Kind the metric was first declared with
        requested: Kind that was requested now
    """

    def __init__(self, metric: str, declared: str, requested: str) -> None:
        self.metric = metric
        self.declared = declared
        self.requested = requested
        super().__init__(
            f"metric {metric!r} is a {declared}, not a {requested}",
            details={"metric": metric, "declared": declared, "requested": requested},
        )


__all__ = [
    "LoadwrightError",
    "ConfigError",
    "MetricKindError",
]
