"""Exception hierarchy and recorded evaluation failures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple


class PolicyScanError(Exception):
    """Base class for fatal policyscan errors."""


class MalformedInput(PolicyScanError, ValueError):
    """Raised when plan data is structurally invalid.

    ``problems`` holds one ``(location, reason)`` pair per defect so callers can
    report every broken record in a single pass.
    """

    def __init__(self, problems: Sequence[Tuple[str, str]]) -> None:
        self.problems: List[Tuple[str, str]] = list(problems)
        super().__init__(self._format())

    def _format(self) -> str:
        if not self.problems:
            return "malformed input"
        details = "; ".join(f"{location}: {reason}" for location, reason in self.problems)
        return f"malformed input ({len(self.problems)} problem(s)): {details}"


class CatalogError(PolicyScanError):
    """Raised when a control catalog cannot be constructed."""

    def __init__(self, offenders: Dict[str, List[str]]) -> None:
        self.offenders: Dict[str, List[str]] = {key: list(value) for key, value in offenders.items()}
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        for control_id in sorted(self.offenders):
            reasons = ", ".join(self.offenders[control_id])
            parts.append(f"{control_id or '<empty id>'} ({reasons})")
        return f"{self.__class__.__name__}: " + "; ".join(parts)


class DuplicateControlId(CatalogError):
    """Two or more controls share an id."""


class InvalidControlMetadata(CatalogError):
    """One or more controls carry missing or invalid metadata."""


class UnknownControl(PolicyScanError, KeyError):
    """Raised when toggling a control id that is not in the catalog."""

    def __str__(self) -> str:
        return f"unknown control id: {self.args[0]}" if self.args else "unknown control id"


class ConfigError(PolicyScanError, ValueError):
    """Raised when a configuration value cannot be interpreted."""


class ReportWriteError(PolicyScanError, OSError):
    """Raised when a rendered report cannot be written to disk."""


@dataclass(frozen=True)
class EvaluationError:
    """A predicate failure for one (control, resource) pair.

    These are recorded alongside the report rather than raised.
    """

    control_id: str
    resource_address: str
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, control_id: str, resource_address: str, exc: BaseException) -> "EvaluationError":
        return cls(
            control_id=control_id,
            resource_address=resource_address,
            error_type=type(exc).__name__,
            message=str(exc),
        )

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.control_id, self.resource_address, self.message)


__all__ = [
    "PolicyScanError",
    "MalformedInput",
    "CatalogError",
    "DuplicateControlId",
    "InvalidControlMetadata",
    "UnknownControl",
    "ConfigError",
    "ReportWriteError",
    "EvaluationError",
]
