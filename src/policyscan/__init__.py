"""Static evaluation of security controls against infrastructure plans."""

from __future__ import annotations

from .aggregator import EvaluationReport, aggregate
from .catalog import Control, ControlCatalog
from .config import ScanConfig, load_config
from .constants import SCAN_VERSION as __version__
from .errors import (
    CatalogError,
    ConfigError,
    DuplicateControlId,
    EvaluationError,
    InvalidControlMetadata,
    MalformedInput,
    PolicyScanError,
    ReportWriteError,
    UnknownControl,
)
from .evaluator import EvaluationResult, Evaluator, Violation
from .graph import Resource, ResourceGraph
from .loader import load_graph, load_plan, load_plan_file
from .predicates import Finding
from .renderer import build_report_payload, exit_code, render_json, render_markdown, render_text
from .scan import run_scan, scan_plan

__all__ = [
    "__version__",
    "CatalogError",
    "ConfigError",
    "Control",
    "ControlCatalog",
    "DuplicateControlId",
    "EvaluationError",
    "EvaluationReport",
    "EvaluationResult",
    "Evaluator",
    "Finding",
    "InvalidControlMetadata",
    "MalformedInput",
    "PolicyScanError",
    "ReportWriteError",
    "Resource",
    "ResourceGraph",
    "ScanConfig",
    "UnknownControl",
    "Violation",
    "aggregate",
    "build_report_payload",
    "exit_code",
    "load_config",
    "load_graph",
    "load_plan",
    "load_plan_file",
    "render_json",
    "render_markdown",
    "render_text",
    "run_scan",
    "scan_plan",
]
