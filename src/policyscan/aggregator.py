"""Collect evaluator output into a deterministic, severity-ranked report."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .constants import SEVERITY_LEVELS, SEVERITY_RANK
from .errors import ConfigError, EvaluationError
from .evaluator import EvaluationResult, Violation


@dataclass(frozen=True)
class EvaluationReport:
    """Aggregated outcome of one run; built once, never mutated."""

    violations: Tuple[Violation, ...]
    counts_by_severity: Mapping[str, int]
    passed: bool
    errors: Tuple[EvaluationError, ...] = ()
    threshold: Optional[str] = None
    severity_filter: Optional[str] = None
    controls_evaluated: Tuple[str, ...] = ()
    controls_skipped: Tuple[str, ...] = ()
    disabled_controls: Tuple[str, ...] = ()
    resource_count: int = 0
    cancelled: bool = False
    filtered_out: int = 0

    @property
    def degraded(self) -> bool:
        """True when the evaluation itself was partial (predicate errors or cancellation)."""

        return bool(self.errors) or self.cancelled

    def by_severity(self) -> Dict[str, List[Violation]]:
        groups: Dict[str, List[Violation]] = {level: [] for level in SEVERITY_LEVELS}
        for violation in self.violations:
            groups.setdefault(violation.severity, []).append(violation)
        return groups

    def by_control(self) -> Dict[str, List[Violation]]:
        return _group(self.violations, lambda v: v.control_id)

    def by_resource(self) -> Dict[str, List[Violation]]:
        return _group(self.violations, lambda v: v.resource_address)

    def by_domain(self) -> Dict[str, List[Violation]]:
        return _group(self.violations, lambda v: v.domain or "unknown")

    def by_cloud(self) -> Dict[str, List[Violation]]:
        return _group(self.violations, lambda v: v.cloud_provider or "unknown")

    def by_framework(self) -> Dict[str, List[Violation]]:
        groups: Dict[str, List[Violation]] = {}
        for violation in self.violations:
            for ref in violation.frameworks:
                framework = ref.split(":", 1)[0]
                bucket = groups.setdefault(framework, [])
                if not bucket or bucket[-1] is not violation:
                    bucket.append(violation)
        return {key: groups[key] for key in sorted(groups)}


def _group(violations, key) -> Dict[str, List[Violation]]:
    groups: Dict[str, List[Violation]] = {}
    for violation in violations:
        groups.setdefault(key(violation), []).append(violation)
    return {name: groups[name] for name in sorted(groups)}


def normalize_severity(value: Optional[str], *, label: str = "severity") -> Optional[str]:
    """Upper-case a severity name; ``None``, ``""`` and ``"all"`` mean no limit."""

    if value is None:
        return None
    token = str(value).strip().upper()
    if token in ("", "ALL"):
        return None
    if token not in SEVERITY_LEVELS:
        raise ConfigError(f"invalid {label} {value!r}; expected one of {', '.join(SEVERITY_LEVELS)} or 'all'")
    return token


def meets(severity: str, threshold: str) -> bool:
    return SEVERITY_RANK.get(severity, -1) >= SEVERITY_RANK[threshold]


def sort_violations(violations) -> List[Violation]:
    """CRITICAL > HIGH > MEDIUM > LOW, then control id, then resource address."""

    return sorted(violations, key=lambda violation: violation.sort_key())


def aggregate(
    result: EvaluationResult,
    *,
    threshold: Optional[str] = None,
    severity_filter: Optional[str] = None,
) -> EvaluationReport:
    """Deduplicate, filter, sort and count the evaluator's violations.

    ``passed`` is ``not violations`` unless ``threshold`` is given, in which
    case it is true when no violation meets or exceeds the threshold.
    ``severity_filter`` drops violations below that level before counting.
    """

    threshold = normalize_severity(threshold, label="severity threshold")
    severity_filter = normalize_severity(severity_filter, label="severity filter")

    unique: Dict[Tuple[str, str, str], Violation] = {}
    for violation in result.violations:
        unique.setdefault(violation.dedupe_key(), violation)

    kept = list(unique.values())
    filtered_out = 0
    if severity_filter is not None:
        before = len(kept)
        kept = [violation for violation in kept if meets(violation.severity, severity_filter)]
        filtered_out = before - len(kept)

    ordered = tuple(sort_violations(kept))
    counts = {level: 0 for level in SEVERITY_LEVELS}
    for violation in ordered:
        counts[violation.severity] = counts.get(violation.severity, 0) + 1

    if threshold is None:
        passed = not ordered
    else:
        passed = not any(meets(violation.severity, threshold) for violation in ordered)

    errors = tuple(sorted(set(result.errors), key=lambda error: error.sort_key()))
    return EvaluationReport(
        violations=ordered,
        counts_by_severity=MappingProxyType(counts),
        passed=passed,
        errors=errors,
        threshold=threshold,
        severity_filter=severity_filter,
        controls_evaluated=tuple(sorted(result.controls_evaluated)),
        controls_skipped=tuple(sorted(result.controls_skipped)),
        disabled_controls=tuple(sorted(result.disabled_controls)),
        resource_count=result.resource_count,
        cancelled=result.cancelled,
        filtered_out=filtered_out,
    )


__all__ = [
    "EvaluationReport",
    "aggregate",
    "meets",
    "normalize_severity",
    "sort_violations",
]
