"""Shared constants for the policyscan evaluator."""

from __future__ import annotations

TOOL_NAME = "policyscan"
SCAN_VERSION = "1.0.0"
REPORT_SCHEMA_VERSION = "1.0.0"

SEVERITY_LEVELS = ("CRITICAL", "HIGH", "MEDIUM", "LOW")
SEVERITY_RANK = {name: rank for rank, name in enumerate(reversed(SEVERITY_LEVELS))}

DOMAINS = ("identity", "networking", "logging", "data", "governance")
OUTPUT_FORMATS = ("json", "text", "markdown", "both")

EXIT_PASSED = 0
EXIT_VIOLATIONS = 1
EXIT_EVALUATION_ERROR = 2

STATUS_PASSED = "passed"
STATUS_VIOLATIONS = "violations"
STATUS_ERROR = "error"

ENV_PREFIX = "POLICYSCAN_"

__all__ = [
    "TOOL_NAME",
    "SCAN_VERSION",
    "REPORT_SCHEMA_VERSION",
    "SEVERITY_LEVELS",
    "SEVERITY_RANK",
    "DOMAINS",
    "OUTPUT_FORMATS",
    "EXIT_PASSED",
    "EXIT_VIOLATIONS",
    "EXIT_EVALUATION_ERROR",
    "STATUS_PASSED",
    "STATUS_VIOLATIONS",
    "STATUS_ERROR",
    "ENV_PREFIX",
]
