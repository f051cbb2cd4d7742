"""End-to-end wiring: graph + catalog + config -> EvaluationReport."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from .aggregator import EvaluationReport, aggregate
from .catalog import ControlCatalog
from .config import ScanConfig
from .controls import build_default_catalog
from .evaluator import Evaluator
from .graph import ResourceGraph
from .loader import load_plan

logger = logging.getLogger(__name__)


def run_scan(
    graph: ResourceGraph,
    catalog: Optional[ControlCatalog] = None,
    config: Optional[ScanConfig] = None,
    *,
    cancel: Optional[threading.Event] = None,
) -> EvaluationReport:
    """Evaluate ``catalog`` (the built-in pack by default) against ``graph``."""

    config = config or ScanConfig()
    # Overrides never touch the caller's catalog.
    catalog = build_default_catalog() if catalog is None else catalog.copy()
    catalog.apply_overrides(disabled=config.disabled_controls, enabled=config.enabled_controls)

    evaluator = Evaluator(workers=config.workers, timeout=config.timeout)
    result = evaluator.evaluate(graph, catalog, cancel=cancel)
    report = aggregate(
        result,
        threshold=config.severity_threshold,
        severity_filter=config.severity_filter,
    )
    logger.info(
        "Scan finished: %d violation(s), passed=%s, errors=%d",
        len(report.violations),
        report.passed,
        len(report.errors),
    )
    return report


def scan_plan(
    plan: Any,
    catalog: Optional[ControlCatalog] = None,
    config: Optional[ScanConfig] = None,
) -> EvaluationReport:
    """Convenience wrapper: load a plan document, then :func:`run_scan`."""

    return run_scan(load_plan(plan), catalog, config)


__all__ = ["run_scan", "scan_plan"]
