"""Structured exception hierarchy for quality checks.

Only catalog misconfiguration, missing data and unreachable sources are
exceptions. Data problems found by rules are reported as violations.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

__all__ = [
    "QualityError",
    "DuplicateRuleError",
    "MissingTableError",
    "RuleExecutionError",
    "ConfigurationError",
    "SourceConnectionError",
]


class QualityError(Exception):
    """Base exception for all quality-check errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.table = table
        self.rule = rule
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if table or rule:
            context = f"{table or '?'}.{rule}" if rule else table
            parts.insert(0, f"[{context}]")

        if details:
            parts.append("\nDetails:")
            parts.extend(f"  {k}: {v}" for k, v in details.items())

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "table": self.table,
            "rule": self.rule,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class DuplicateRuleError(QualityError):
    """A rule with the same name and table is already registered."""

    def __init__(self, name: str, table: str, **kwargs: Any) -> None:
        super().__init__(
            f"Rule '{name}' is already registered for table '{table}'",
            table=table,
            rule=name,
            suggestion=kwargs.pop(
                "suggestion", "Give the rule a unique name or disable the default."
            ),
            **kwargs,
        )


class MissingTableError(QualityError):
    """The snapshot lacks one or more tables the catalog needs."""

    def __init__(
        self,
        missing: Iterable[str],
        *,
        available: Optional[Iterable[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.missing: List[str] = sorted(missing)
        self.available: List[str] = sorted(available or [])

        details = kwargs.pop("details", {})
        details["missing"] = ", ".join(self.missing)
        if self.available:
            details["available"] = ", ".join(self.available)

        suggestion = kwargs.pop(
            "suggestion",
            "Load the layer before running checks, or disable the rules "
            "that target these tables.",
        )
        super().__init__(
            f"Snapshot is missing required table(s): {', '.join(self.missing)}",
            details=details,
            suggestion=suggestion,
            **kwargs,
        )


class RuleExecutionError(QualityError):
    """A single rule failed while evaluating.

    Never propagates out of a run; the engine turns it into a violation.
    """

    def __init__(
        self,
        rule: str,
        table: str,
        cause: Exception,
        **kwargs: Any,
    ) -> None:
        self.cause = cause
        details = kwargs.pop("details", {})
        details["cause"] = str(cause)
        details["cause_type"] = type(cause).__name__
        super().__init__(
            f"Rule '{rule}' failed: {cause}",
            table=table,
            rule=rule,
            details=details,
            **kwargs,
        )


class ConfigurationError(QualityError):
    """Invalid or incomplete check configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class SourceConnectionError(QualityError):
    """Error connecting to or reading from the source store."""

    def __init__(
        self,
        message: str,
        *,
        connection_name: Optional[str] = None,
        host: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.connection_name = connection_name
        self.host = host
        self.cause = cause

        details = kwargs.pop("details", {})
        if connection_name:
            details["connection_name"] = connection_name
        if host:
            details["host"] = host
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop(
            "suggestion",
            "Check that the host is reachable and credentials are correct. "
            "Verify environment variables are set.",
        )
        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
