"""Value objects shared by rules, the engine and reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

from dwh_quality.lib.values import to_plain

__all__ = [
    "Finding",
    "RuleContext",
    "RuleLevel",
    "Violation",
    "ViolationKind",
]


class RuleLevel(str, Enum):
    """Severity level for quality rules."""

    ERROR = "error"  # Fails the run with --fail-on-violations
    WARN = "warn"  # Reported, never fails the run


class ViolationKind(str, Enum):
    """What a report entry describes."""

    VIOLATION = "violation"
    EXECUTION_ERROR = "execution_error"


@dataclass(frozen=True)
class RuleContext:
    """Inputs shared by every rule in one run.

    ``as_of`` stands in for "today" so bound checks are reproducible.
    """

    as_of: date


@dataclass
class Finding:
    """What a rule check returns for an offending row."""

    description: str
    expected: Any = None
    actual: Any = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Violation:
    """One report entry: a row that broke a rule, or a rule that broke."""

    rule: str
    table: str
    description: str
    keys: Dict[str, Any] = field(default_factory=dict)
    row: Optional[int] = None
    expected: Any = None
    actual: Any = None
    details: Dict[str, Any] = field(default_factory=dict)
    level: RuleLevel = RuleLevel.ERROR
    kind: ViolationKind = ViolationKind.VIOLATION

    @property
    def is_execution_error(self) -> bool:
        return self.kind == ViolationKind.EXECUTION_ERROR

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "rule": self.rule,
            "table": self.table,
            "kind": self.kind.value,
            "level": self.level.value,
            "row": self.row,
            "keys": {k: to_plain(v) for k, v in self.keys.items()},
            "expected": to_plain(self.expected),
            "actual": to_plain(self.actual),
            "description": self.description,
            "details": {k: to_plain(v) for k, v in self.details.items()},
        }
