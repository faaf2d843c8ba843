from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(str, Enum):
    CRITICAL = "critical"  # blocks validity
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ValidationError:
    """
    One problem found in a photo, identified by a stable `code`.
    """
    code: str
    message: str
    severity: Severity
    suggestion: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @property
    def is_critical(self) -> bool:
        return self.severity is Severity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "suggestion": self.suggestion,
            "details": dict(self.details) if self.details else None,
        }


@dataclass(frozen=True)
class CheckResult:
    """
    Result of a single check: pass flag, 0..1 score, issues raised and measured values.
    """
    name: str
    passed: bool
    score: float
    issues: List[ValidationError] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one photo.

    `errors` holds every issue in check order, whatever its severity; `is_valid` is
    False exactly when one of them is critical.
    """
    is_valid: bool
    compliance_score: float
    errors: List[ValidationError]
    checks: Dict[str, bool] = field(default_factory=dict)
    metrics: Dict[str, float] = field(default_factory=dict)
    analysis: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def critical_errors(self) -> List[ValidationError]:
        return [e for e in self.errors if e.severity is Severity.CRITICAL]

    @property
    def warnings(self) -> List[ValidationError]:
        return [e for e in self.errors if e.severity is not Severity.CRITICAL]

    @property
    def has_errors(self) -> bool:
        return bool(self.critical_errors)

    @property
    def codes(self) -> List[str]:
        return [e.code for e in self.errors]

    @property
    def status_message(self) -> str:
        if self.is_valid:
            return "Photo meets all requirements"
        n = len(self.critical_errors)
        return f"Photo has {n} issue{'s' if n != 1 else ''} to fix"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "compliance_score": self.compliance_score,
            "errors": [e.to_dict() for e in self.errors],
            "checks": dict(self.checks),
            "metrics": dict(self.metrics),
            "analysis": {k: dict(v) for k, v in self.analysis.items()},
        }
