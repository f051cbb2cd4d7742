"""Command line entry point for policyscan."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from .config import ScanConfig, load_config
from .constants import DOMAINS, EXIT_EVALUATION_ERROR, OUTPUT_FORMATS, SEVERITY_LEVELS
from .controls import build_default_catalog
from .errors import MalformedInput, PolicyScanError, ReportWriteError
from .loader import load_plan
from .renderer import (
    build_fatal_error_output,
    build_scan_metadata,
    exit_code,
    render_json,
    render_markdown,
    render_text,
)
from .scan import run_scan

logger = logging.getLogger(__name__)

_LOG_FORMAT = "[policyscan] %(levelname)s %(message)s"
_handler: Optional[logging.Handler] = None

_SEVERITY_CHOICE = click.Choice([level.lower() for level in SEVERITY_LEVELS] + ["all"], case_sensitive=False)


def configure_logging(verbose: bool) -> None:
    """Attach a single stderr handler to the package logger."""

    global _handler
    package_logger = logging.getLogger("policyscan")
    if _handler is not None:
        package_logger.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger.addHandler(_handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
def cli() -> None:
    """Evaluate security controls against a Terraform plan."""


@cli.command()
@click.argument("plan", required=False, type=click.Path(path_type=Path))
@click.option("--stdin", is_flag=True, help="Read plan JSON from stdin")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(list(OUTPUT_FORMATS), case_sensitive=False),
    default=None,
    help="Report format (default: json, or POLICYSCAN_OUTPUT_FORMAT); both needs --output",
)
@click.option("--output", "output_path", type=click.Path(path_type=Path), help="Write the report to a file")
@click.option("--severity-threshold", type=_SEVERITY_CHOICE, default=None, help="Fail only at or above this severity")
@click.option("--severity-filter", type=_SEVERITY_CHOICE, default=None, help="Drop violations below this severity")
@click.option("--disable", "disabled", multiple=True, metavar="CONTROL_ID", help="Disable a control (repeatable)")
@click.option("--enable", "enabled", multiple=True, metavar="CONTROL_ID", help="Enable a control (repeatable)")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Parallel control workers")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None, help="Cancel after N seconds")
@click.option("--environment", default=None, help="Environment name recorded in the report")
@click.option("--quiet", is_flag=True, help="Suppress report output")
@click.option("--verbose", is_flag=True, help="Log evaluation progress to stderr")
def scan(
    plan: Optional[Path],
    stdin: bool,
    output_format: Optional[str],
    output_path: Optional[Path],
    severity_threshold: Optional[str],
    severity_filter: Optional[str],
    disabled: Tuple[str, ...],
    enabled: Tuple[str, ...],
    workers: Optional[int],
    timeout: Optional[float],
    environment: Optional[str],
    quiet: bool,
    verbose: bool,
) -> None:
    """Scan PLAN (a `terraform show -json` document or resource list)."""

    try:
        config = load_config(
            severity_threshold=severity_threshold,
            severity_filter=severity_filter,
            disabled_controls=disabled or None,
            enabled_controls=enabled or None,
            workers=workers,
            timeout=timeout,
            environment=environment,
            output_format=output_format,
            verbose=verbose or None,
        )
    except PolicyScanError as exc:
        _fail(exc, "json" if output_format is None else output_format.lower(), quiet)

    configure_logging(config.verbose)

    if config.output_format == "both" and output_path is None:
        raise click.UsageError("--format both writes JSON and Markdown files and needs --output.")

    try:
        payload, source = _load_plan_payload(plan, stdin)
        graph = load_plan(payload)
        report = run_scan(graph, build_default_catalog(), config)
    except PolicyScanError as exc:
        _fail(exc, config.output_format, quiet)

    metadata = build_scan_metadata(environment=config.environment, source=source, timestamp=config.timestamp)
    try:
        if output_path is not None:
            for path, rendered in _render_files(report, config, metadata, output_path):
                _write_report(path, rendered)
        elif not quiet:
            click.echo(_render(report, config.output_format, metadata).rstrip("\n"))
    except PolicyScanError as exc:
        _fail(exc, config.output_format, quiet)

    raise click.exceptions.Exit(exit_code(report))


@cli.command("controls")
@click.option("--cloud", type=click.Choice(["aws", "azure"], case_sensitive=False), default=None)
@click.option("--domain", type=click.Choice(list(DOMAINS), case_sensitive=False), default=None)
@click.option("--severity", type=click.Choice(list(SEVERITY_LEVELS), case_sensitive=False), default=None)
@click.option("--framework", default=None, help="Substring of a framework reference, e.g. CIS")
@click.option("--disable", "disabled", multiple=True, metavar="CONTROL_ID", help="Show a control as disabled")
@click.option("--enable", "enabled", multiple=True, metavar="CONTROL_ID", help="Show a control as enabled")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON rows")
def list_controls(
    cloud: Optional[str],
    domain: Optional[str],
    severity: Optional[str],
    framework: Optional[str],
    disabled: Tuple[str, ...],
    enabled: Tuple[str, ...],
    as_json: bool,
) -> None:
    """List the control inventory with enabled/disabled state."""

    catalog = build_default_catalog()
    try:
        config = load_config(disabled_controls=disabled or None, enabled_controls=enabled or None)
        catalog.apply_overrides(disabled=config.disabled_controls, enabled=config.enabled_controls)
    except PolicyScanError as exc:
        raise click.UsageError(str(exc)) from None
    rows = catalog.inventory(cloud=cloud, domain=domain, severity=severity, framework=framework)
    if as_json:
        click.echo(json.dumps(rows, indent=2, sort_keys=True))
        return
    for row in rows:
        status = "enabled" if row["enabled"] else "disabled"
        cloud_label = row["cloud_provider"] or "any"
        click.echo(f"{row['id']:<9} {status:<9} {row['severity']:<9} {cloud_label:<6} {row['domain']:<11} {row['title']}")


def _render(report: Any, output_format: str, metadata: Dict[str, Any]) -> str:
    if output_format == "text":
        return render_text(report)
    if output_format == "markdown":
        return render_markdown(report, metadata=metadata)
    return render_json(report, metadata=metadata)


def _render_files(
    report: Any, config: ScanConfig, metadata: Dict[str, Any], output_path: Path
) -> List[Tuple[Path, str]]:
    """``both`` writes ``<stem>.json`` and ``<stem>.md`` next to each other."""

    if config.output_format != "both":
        return [(output_path, _render(report, config.output_format, metadata))]
    return [
        (output_path.with_suffix(".json"), _render(report, "json", metadata)),
        (output_path.with_suffix(".md"), _render(report, "markdown", metadata)),
    ]


def _write_report(path: Path, rendered: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(rendered + ("" if rendered.endswith("\n") else "\n"), encoding="utf-8")
    except OSError as exc:
        raise ReportWriteError(f"cannot write report to {path}: {exc}") from None
    logger.info("Report written to %s", path)


def _fail(exc: Exception, output_format: str, quiet: bool) -> None:
    if not quiet:
        if output_format in ("json", "both"):
            payload = build_fatal_error_output(str(exc), kind=type(exc).__name__)
            click.echo(json.dumps(payload, indent=2, sort_keys=True))
        else:
            click.echo(f"Scan failed: {exc}", err=True)
    raise click.exceptions.Exit(EXIT_EVALUATION_ERROR)


def _load_plan_payload(plan: Optional[Path], stdin: bool) -> Tuple[Any, Optional[str]]:
    if stdin and plan is not None:
        raise click.UsageError("Provide a plan path or --stdin, but not both.")
    if not stdin and plan is None:
        raise click.UsageError("Provide a plan path or --stdin.")

    if stdin:
        try:
            text = click.get_text_stream("stdin").read()
        except UnicodeDecodeError as exc:
            raise MalformedInput([("<stdin>", f"cannot read plan: {exc}")]) from None
        return _decode(text, "<stdin>"), "<stdin>"

    try:
        text = plan.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise MalformedInput([(str(plan), "file not found")]) from None
    except (OSError, UnicodeDecodeError) as exc:
        raise MalformedInput([(str(plan), f"cannot read plan: {exc}")]) from None
    return _decode(text, str(plan)), str(plan)


def _decode(text: str, source: str) -> Any:
    if not text.strip():
        raise MalformedInput([(source, "empty input")])
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedInput([(source, f"invalid JSON: {exc}")]) from None


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
