"""Report serialization (JSON, text, Markdown) and exit status derivation."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .aggregator import EvaluationReport
from .constants import (
    EXIT_EVALUATION_ERROR,
    EXIT_PASSED,
    EXIT_VIOLATIONS,
    REPORT_SCHEMA_VERSION,
    SCAN_VERSION,
    SEVERITY_LEVELS,
    STATUS_ERROR,
    STATUS_PASSED,
    STATUS_VIOLATIONS,
    TOOL_NAME,
)

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "report.schema.json"

_SEVERITY_ICONS = {
    "CRITICAL": "\U0001F534",
    "HIGH": "\U0001F7E0",
    "MEDIUM": "\U0001F7E1",
    "LOW": "\U0001F535",
}


def report_status(report: EvaluationReport) -> str:
    """``error`` > ``violations`` > ``passed``, in that priority order."""

    if report.degraded:
        return STATUS_ERROR
    if not report.passed:
        return STATUS_VIOLATIONS
    return STATUS_PASSED


def exit_code(report: EvaluationReport) -> int:
    status = report_status(report)
    if status == STATUS_ERROR:
        return EXIT_EVALUATION_ERROR
    if status == STATUS_VIOLATIONS:
        return EXIT_VIOLATIONS
    return EXIT_PASSED


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """``2024-01-02T00:00:00Z``; naive datetimes are taken as UTC."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def build_scan_metadata(
    *,
    environment: str = "local",
    source: Optional[str] = None,
    timestamp: Optional[str] = None,
    clock: Clock = utc_now,
) -> Dict[str, Any]:
    """Metadata block of a report.

    A pinned ``timestamp`` (see :class:`policyscan.config.ScanConfig`) wins
    over ``clock``, which keeps repeated runs byte-identical.
    """

    return {
        "tool": TOOL_NAME,
        "scan_version": SCAN_VERSION,
        "timestamp": timestamp or format_timestamp(clock()),
        "environment": environment,
        "input_file": source or "",
    }


def build_report_payload(
    report: EvaluationReport,
    *,
    metadata: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Map a report onto the external output schema."""

    violations = [
        {
            "control_id": violation.control_id,
            "severity": violation.severity,
            "resource": violation.resource_address,
            "message": violation.message,
            "remediation": violation.remediation,
        }
        for violation in report.violations
    ]
    errors = [
        {
            "control_id": error.control_id,
            "resource": error.resource_address,
            "error_type": error.error_type,
            "message": error.message,
        }
        for error in report.errors
    ]
    counts = {level: int(report.counts_by_severity.get(level, 0)) for level in SEVERITY_LEVELS}
    payload: Dict[str, Any] = {
        "schema_version": REPORT_SCHEMA_VERSION,
        "violations": violations,
        "summary": {
            "counts_by_severity": counts,
            "passed": report.passed,
            "status": report_status(report),
            "exit_code": exit_code(report),
            "total_violations": len(violations),
            "threshold": report.threshold,
            "severity_filter": report.severity_filter,
            "filtered_out": report.filtered_out,
        },
        "errors": errors,
        "evaluation": {
            "resource_count": report.resource_count,
            "controls_evaluated": list(report.controls_evaluated),
            "controls_skipped": list(report.controls_skipped),
            "disabled_controls": list(report.disabled_controls),
            "cancelled": report.cancelled,
        },
        "violations_by_domain": {name: len(items) for name, items in report.by_domain().items()},
        "violations_by_cloud": {name: len(items) for name, items in report.by_cloud().items()},
    }
    if metadata is not None:
        scan_metadata = dict(metadata)
        scan_metadata["severity_threshold"] = report.threshold or "none"
        scan_metadata["severity_filter"] = report.severity_filter or "all"
        payload["scan_metadata"] = scan_metadata
    return payload


def render_json(report: EvaluationReport, *, metadata: Optional[Mapping[str, Any]] = None) -> str:
    return json.dumps(build_report_payload(report, metadata=metadata), indent=2, sort_keys=True)


def load_report_schema() -> Dict[str, Any]:
    """Return the JSON schema that :func:`build_report_payload` output conforms to."""

    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def build_fatal_error_output(message: str, *, kind: str = "MalformedInput") -> Dict[str, Any]:
    """Payload emitted when the run aborts before evaluation."""

    return {
        "schema_version": REPORT_SCHEMA_VERSION,
        "violations": [],
        "summary": {
            "counts_by_severity": {level: 0 for level in SEVERITY_LEVELS},
            "passed": False,
            "status": STATUS_ERROR,
            "exit_code": EXIT_EVALUATION_ERROR,
            "total_violations": 0,
        },
        "errors": [{"control_id": "", "resource": "", "error_type": kind, "message": message}],
        "fatal_error": message,
    }


def render_severity_summary(report: EvaluationReport) -> str:
    counts = {level: int(report.counts_by_severity.get(level, 0)) for level in SEVERITY_LEVELS}
    total = sum(counts.values())

    lines = ["Summary:"]
    for level in SEVERITY_LEVELS:
        count = counts[level]
        percentage = 0
        if total > 0:
            percentage = int(round((count / total) * 100))
        lines.append(f"  {level.lower()}: {count} ({percentage}%)")
    lines.append(f"  passed: {str(report.passed).lower()}")
    lines.append(f"  status: {report_status(report)}")
    return "\n".join(lines)


def render_human_readable(report: EvaluationReport) -> str:
    """Return a deterministic text block describing violations and errors."""

    lines: List[str] = [f"Scan completed for {TOOL_NAME}", "-"]

    if not report.violations:
        lines.append("No violations detected.")
    for violation in report.violations:
        lines.append(f"[{violation.control_id}] {violation.message} ({violation.severity.lower()})")
        lines.append(f"  Resource: {violation.resource_address}")
        lines.append(f"  Remediation: {violation.remediation or 'N/A'}")

    if report.errors:
        lines.append("-")
        lines.append(f"Evaluation errors ({len(report.errors)}):")
        for error in report.errors:
            lines.append(f"  [{error.control_id}] {error.resource_address}: {error.error_type}: {error.message}")
    if report.cancelled:
        lines.append(f"Evaluation cancelled; skipped controls: {', '.join(report.controls_skipped)}")
    return "\n".join(lines)


def render_text(report: EvaluationReport) -> str:
    return f"{render_severity_summary(report)}\n{render_human_readable(report)}"


def render_markdown(report: EvaluationReport, *, metadata: Optional[Mapping[str, Any]] = None) -> str:
    """Markdown report: summary table, breakdowns, violations grouped by severity."""

    lines: List[str] = ["# Security Policy Scan Report", ""]
    if metadata:
        lines.append(f"**Scan Date:** {metadata.get('timestamp', '')}  ")
        lines.append(f"**Environment:** {metadata.get('environment', '')}  ")
        lines.append("")

    lines.extend(["## Executive Summary", ""])
    total = len(report.violations)
    if total == 0:
        lines.append("✅ **No policy violations found**")
    else:
        lines.append(f"⚠️ **{total} policy violation(s) detected**")
        lines.extend(["", "| Severity | Count |", "|----------|-------|"])
        for level in SEVERITY_LEVELS:
            lines.append(f"| {_SEVERITY_ICONS[level]} {level.title()} | {report.counts_by_severity.get(level, 0)} |")
    lines.append("")
    lines.append(f"**Status:** {report_status(report)}")
    lines.append("")

    if total:
        lines.extend(["### Violations by Domain", ""])
        for domain, items in report.by_domain().items():
            lines.append(f"- **{domain.upper()}**: {len(items)} violation(s)")
        lines.extend(["", "### Violations by Cloud Provider", ""])
        for cloud, items in report.by_cloud().items():
            lines.append(f"- **{cloud.upper()}**: {len(items)} violation(s)")
        lines.extend(["", "## Detailed Violations", ""])
        for level, items in report.by_severity().items():
            if not items:
                continue
            lines.extend([f"### {_SEVERITY_ICONS.get(level, '')} {level} Severity ({len(items)} violations)", ""])
            for violation in items:
                lines.append(f"#### {violation.control_id}: {violation.message}")
                lines.append("")
                lines.append(f"**Resource:** `{violation.resource_address}`  ")
                if violation.resource_type:
                    lines.append(f"**Resource Type:** `{violation.resource_type}`  ")
                lines.append("")
                lines.append("**Remediation:**  ")
                lines.append(violation.remediation or "No remediation guidance available")
                lines.extend(["", "---", ""])

    if report.errors:
        lines.extend(["## Evaluation Errors", ""])
        for error in report.errors:
            lines.append(f"- `{error.control_id}` on `{error.resource_address}`: {error.error_type}: {error.message}")
        lines.append("")

    lines.extend(["## Framework Compliance", ""])
    frameworks = report.by_framework()
    if not frameworks:
        lines.append("All framework requirements are currently met.")
    for framework, items in frameworks.items():
        controls = sorted({violation.control_id for violation in items})
        lines.append(f"### {framework.upper()}")
        lines.append("")
        lines.append(f"- **Violations:** {len(items)}")
        lines.append(f"- **Affected Controls:** {', '.join(controls)}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


__all__ = [
    "build_fatal_error_output",
    "build_report_payload",
    "build_scan_metadata",
    "exit_code",
    "format_timestamp",
    "load_report_schema",
    "render_human_readable",
    "render_json",
    "render_markdown",
    "render_severity_summary",
    "render_text",
    "report_status",
    "utc_now",
]
