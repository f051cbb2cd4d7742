"""Predicate evaluation of enabled controls against a resource graph."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from time import monotonic, perf_counter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .catalog import Control, ControlCatalog
from .constants import SEVERITY_RANK
from .errors import EvaluationError
from .graph import Resource, ResourceGraph
from .predicates import Finding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Violation:
    control_id: str
    severity: str
    resource_address: str
    message: str
    remediation: str
    resource_type: str = ""
    domain: str = ""
    cloud_provider: str = ""
    frameworks: Tuple[str, ...] = ()

    def dedupe_key(self) -> Tuple[str, str, str]:
        return (self.control_id, self.resource_address, self.message)

    def sort_key(self) -> Tuple[int, str, str, str]:
        return (-SEVERITY_RANK.get(self.severity, -1), self.control_id, self.resource_address, self.message)


@dataclass(frozen=True)
class ControlOutcome:
    """Private result buffer of one fully evaluated control."""

    control_id: str
    violations: Tuple[Violation, ...]
    errors: Tuple[EvaluationError, ...]
    candidates: int


@dataclass(frozen=True)
class EvaluationResult:
    violations: Tuple[Violation, ...]
    errors: Tuple[EvaluationError, ...]
    controls_evaluated: Tuple[str, ...]
    controls_skipped: Tuple[str, ...]
    disabled_controls: Tuple[str, ...]
    resource_count: int
    cancelled: bool = False


class Evaluator:
    """Runs every enabled control's predicate over its candidate resources.

    With ``workers > 1`` controls are spread across a thread pool; each
    control writes only to its own :class:`ControlOutcome`. Cancellation,
    either through ``cancel`` or an elapsed ``timeout`` (seconds), is checked
    before a control starts, so a control is either evaluated completely or
    left out.
    """

    def __init__(self, workers: int = 1, timeout: Optional[float] = None) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.workers = workers
        self.timeout = timeout

    def evaluate(
        self,
        graph: ResourceGraph,
        catalog: ControlCatalog,
        cancel: Optional[threading.Event] = None,
    ) -> EvaluationResult:
        controls = list(catalog.enabled_controls())
        deadline = monotonic() + self.timeout if self.timeout is not None else None
        stop = cancel or threading.Event()

        def should_stop() -> bool:
            if stop.is_set():
                return True
            if deadline is not None and monotonic() >= deadline:
                stop.set()
                return True
            return False

        def run(control: Control) -> Optional[ControlOutcome]:
            if should_stop():
                return None
            return self.evaluate_control(control, graph)

        start = perf_counter()
        outcomes: Dict[str, Optional[ControlOutcome]] = {}
        if self.workers == 1 or len(controls) <= 1:
            for control in controls:
                outcomes[control.id] = run(control)
        else:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="policyscan") as pool:
                futures = [(control.id, pool.submit(run, control)) for control in controls]
                for control_id, future in futures:
                    outcomes[control_id] = future.result()

        violations: List[Violation] = []
        errors: List[EvaluationError] = []
        evaluated: List[str] = []
        skipped: List[str] = []
        for control in controls:
            outcome = outcomes.get(control.id)
            if outcome is None:
                skipped.append(control.id)
                continue
            evaluated.append(control.id)
            violations.extend(outcome.violations)
            errors.extend(outcome.errors)

        cancelled = bool(skipped)
        if cancelled:
            logger.warning(
                "Evaluation cancelled; %d of %d control(s) not evaluated", len(skipped), len(controls)
            )
        logger.info(
            "Evaluated %d control(s) over %d resource(s) in %.1f ms: %d violation(s), %d error(s)",
            len(evaluated),
            len(graph),
            (perf_counter() - start) * 1000,
            len(violations),
            len(errors),
        )
        return EvaluationResult(
            violations=tuple(violations),
            errors=tuple(errors),
            controls_evaluated=tuple(evaluated),
            controls_skipped=tuple(skipped),
            disabled_controls=tuple(catalog.disabled_ids()),
            resource_count=len(graph),
            cancelled=cancelled,
        )

    def evaluate_control(self, control: Control, graph: ResourceGraph) -> ControlOutcome:
        """Evaluate one control over all of its candidates."""

        start = perf_counter()
        violations: List[Violation] = []
        errors: List[EvaluationError] = []
        candidates = candidate_resources(control, graph)
        for resource in candidates:
            try:
                findings = _collect_findings(control.predicate(resource, graph))
                # One violation per (control, resource); the first finding wins.
                violation = _stamp(control, resource, findings[0]) if findings else None
            except Exception as exc:  # noqa: BLE001  # pylint: disable=broad-except
                logger.warning(
                    "Control %s failed on %s: %s: %s",
                    control.id,
                    resource.address,
                    type(exc).__name__,
                    exc,
                )
                errors.append(EvaluationError.from_exception(control.id, resource.address, exc))
                continue
            if violation is not None:
                violations.append(violation)
        logger.debug(
            "Control %s: %d candidate(s), %d violation(s), %d error(s) in %.2f ms",
            control.id,
            len(candidates),
            len(violations),
            len(errors),
            (perf_counter() - start) * 1000,
        )
        return ControlOutcome(
            control_id=control.id,
            violations=tuple(violations),
            errors=tuple(errors),
            candidates=len(candidates),
        )


def candidate_resources(control: Control, graph: ResourceGraph) -> Sequence[Resource]:
    """Resources a control applies to; unknown types simply yield nothing."""

    if control.applies_to_all():
        return graph.resources
    selected: List[Resource] = []
    for resource_type in sorted(control.applicable_types):
        selected.extend(graph.of_type(resource_type))
    return selected


def _collect_findings(result: Optional[Iterable[Any]]) -> List[Finding]:
    if result is None:
        return []
    if isinstance(result, (Finding, str)):
        result = [result]
    findings: List[Finding] = []
    for item in result:
        if isinstance(item, Finding):
            findings.append(item)
        elif isinstance(item, str):
            findings.append(Finding(item))
        else:
            raise TypeError(f"predicate yielded {type(item).__name__}, expected Finding or str")
    return findings


def _stamp(control: Control, resource: Resource, finding: Finding) -> Violation:
    remediation = finding.remediation if finding.remediation is not None else control.remediation
    try:
        remediation = remediation.format(address=resource.address, type=resource.type)
    except (KeyError, IndexError, ValueError):
        pass
    return Violation(
        control_id=control.id,
        severity=control.severity,
        resource_address=resource.address,
        message=finding.message,
        remediation=remediation,
        resource_type=resource.type,
        domain=control.domain,
        cloud_provider=control.cloud_provider or resource.provider,
        frameworks=tuple(sorted(control.frameworks)),
    )


__all__ = [
    "ControlOutcome",
    "EvaluationResult",
    "Evaluator",
    "Violation",
    "candidate_resources",
]
