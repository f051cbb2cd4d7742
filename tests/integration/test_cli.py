"""CLI integration tests driven through click's CliRunner."""

import json

import jsonschema
from click.testing import CliRunner

from policyscan.cli import cli
from policyscan.renderer import load_report_schema
from tests.helpers.plan_helpers import (
    compliant_bucket,
    plan_document,
    record,
    set_deterministic_clock,
    write_plan,
)


def _violating_plan():
    return plan_document(
        [
            record("aws_s3_bucket.raw", bucket="raw"),
            record("azurerm_storage_account.sa", min_tls_version="TLS1_0"),
        ]
    )


def test_clean_plan_exits_zero(tmp_path, monkeypatch):
    set_deterministic_clock(monkeypatch)
    plan = write_plan(tmp_path, plan_document(compliant_bucket("data")))
    result = CliRunner().invoke(cli, ["scan", str(plan)])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    jsonschema.validate(payload, load_report_schema())
    assert payload["summary"]["status"] == "passed"
    assert payload["violations"] == []
    assert payload["scan_metadata"]["timestamp"] == "2024-01-02T00:00:00Z"
    assert payload["scan_metadata"]["input_file"] == str(plan)


def test_violations_exit_one_and_are_ranked(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(cli, ["scan", str(plan)])
    assert result.exit_code == 1
    payload = json.loads(result.output)
    jsonschema.validate(payload, load_report_schema())
    assert [(v["severity"], v["control_id"]) for v in payload["violations"]] == [
        ("CRITICAL", "DATA-002"),
        ("HIGH", "DATA-001"),
        ("MEDIUM", "DATA-003"),
        ("LOW", "LOG-001"),
    ]
    assert payload["summary"]["exit_code"] == 1


def test_plan_from_stdin():
    result = CliRunner().invoke(cli, ["scan", "--stdin"], input=json.dumps(_violating_plan()))
    assert result.exit_code == 1
    assert json.loads(result.output)["scan_metadata"]["input_file"] == "<stdin>"


def test_plan_path_and_stdin_are_exclusive(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(cli, ["scan", str(plan), "--stdin"], input="{}")
    assert result.exit_code == 2
    assert "not both" in result.output


def test_missing_plan_file_is_fatal(tmp_path):
    result = CliRunner().invoke(cli, ["scan", str(tmp_path / "absent.json")])
    assert result.exit_code == 2
    payload = json.loads(result.output)
    jsonschema.validate(payload, load_report_schema())
    assert payload["errors"][0]["error_type"] == "MalformedInput"
    assert "file not found" in payload["fatal_error"]


def test_plan_path_that_is_a_directory_is_fatal(tmp_path):
    result = CliRunner().invoke(cli, ["scan", str(tmp_path)])
    assert result.exit_code == 2
    payload = json.loads(result.output)
    jsonschema.validate(payload, load_report_schema())
    assert payload["errors"][0]["error_type"] == "MalformedInput"
    assert "cannot read plan" in payload["fatal_error"]


def test_plan_that_is_not_utf8_is_fatal(tmp_path):
    plan = tmp_path / "plan.json"
    plan.write_bytes(b'\xff\xfe{"resources": []}')
    result = CliRunner().invoke(cli, ["scan", str(plan)])
    assert result.exit_code == 2
    payload = json.loads(result.output)
    assert payload["errors"][0]["error_type"] == "MalformedInput"
    assert "cannot read plan" in payload["fatal_error"]


def test_malformed_records_list_every_problem(tmp_path):
    plan = write_plan(
        tmp_path,
        {"resources": [{"type": "aws_s3_bucket"}, {"address": "aws_vpc.a"}]},
    )
    result = CliRunner().invoke(cli, ["scan", str(plan)])
    assert result.exit_code == 2
    message = json.loads(result.output)["fatal_error"]
    assert "resources[0].address" in message
    assert "resources[1].type" in message


def test_invalid_json_in_text_mode_reports_on_stderr(tmp_path):
    plan = tmp_path / "plan.json"
    plan.write_text("{oops")
    result = CliRunner().invoke(cli, ["scan", str(plan), "--format", "text"])
    assert result.exit_code == 2
    assert "Scan failed: malformed input" in result.output


def test_severity_threshold_option(tmp_path):
    plan = write_plan(tmp_path, plan_document([record("azurerm_storage_account.sa", min_tls_version="TLS1_0")]))
    result = CliRunner().invoke(cli, ["scan", str(plan), "--severity-threshold", "high"])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["summary"]["passed"] is True
    assert payload["summary"]["total_violations"] == 1
    assert payload["scan_metadata"]["severity_threshold"] == "HIGH"


def test_severity_filter_from_environment(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(cli, ["scan", str(plan)], env={"POLICYSCAN_SEVERITY_FILTER": "high"})
    payload = json.loads(result.output)
    assert [v["control_id"] for v in payload["violations"]] == ["DATA-002", "DATA-001"]
    assert payload["summary"]["filtered_out"] == 2


def test_disable_and_enable_options(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(
        cli, ["scan", str(plan), "--disable", "DATA-002", "--disable", "LOG-001", "--enable", "GOV-001"]
    )
    payload = json.loads(result.output)
    assert {v["control_id"] for v in payload["violations"]} == {"DATA-001", "DATA-003", "GOV-001"}
    assert payload["evaluation"]["disabled_controls"] == ["DATA-002", "LOG-001"]


def test_disabled_controls_from_environment(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(
        cli, ["scan", str(plan)], env={"POLICYSCAN_DISABLED_CONTROLS": "DATA-001,DATA-002,DATA-003,LOG-001"}
    )
    assert result.exit_code == 0
    assert json.loads(result.output)["violations"] == []


def test_unknown_control_is_fatal(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(cli, ["scan", str(plan), "--disable", "NOPE-1"])
    assert result.exit_code == 2
    payload = json.loads(result.output)
    assert payload["errors"][0]["error_type"] == "UnknownControl"
    assert "NOPE-1" in payload["fatal_error"]


def test_predicate_failure_reports_error_status(tmp_path):
    plan = write_plan(
        tmp_path,
        plan_document(
            [
                record("aws_iam_policy.broken", policy="{not json"),
                record("azurerm_storage_account.sa", min_tls_version="TLS1_0"),
            ]
        ),
    )
    report_path = tmp_path / "out" / "report.json"
    result = CliRunner().invoke(cli, ["scan", str(plan), "--output", str(report_path)])
    assert result.exit_code == 2
    payload = json.loads(report_path.read_text())
    jsonschema.validate(payload, load_report_schema())
    assert payload["summary"]["status"] == "error"
    assert [v["control_id"] for v in payload["violations"]] == ["DATA-003"]
    assert payload["errors"][0]["control_id"] == "IAM-001"
    assert payload["errors"][0]["resource"] == "aws_iam_policy.broken"


def test_text_format(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(cli, ["scan", str(plan), "--format", "text"])
    assert result.exit_code == 1
    assert result.output.startswith("Summary:\n  critical: 1 (25%)")
    assert "[DATA-002] S3 bucket raw has no public access block (critical)" in result.output


def test_markdown_format_written_to_file(tmp_path, monkeypatch):
    set_deterministic_clock(monkeypatch)
    plan = write_plan(tmp_path, _violating_plan())
    report_path = tmp_path / "report.md"
    result = CliRunner().invoke(
        cli,
        ["scan", str(plan), "--format", "markdown", "--output", str(report_path), "--environment", "staging"],
    )
    assert result.exit_code == 1
    assert result.output == ""
    markdown = report_path.read_text()
    assert "**Scan Date:** 2024-01-02T00:00:00Z" in markdown
    assert "**Environment:** staging" in markdown
    assert "4 policy violation(s) detected" in markdown


def test_unwritable_output_path_is_fatal(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    occupied = tmp_path / "reports"
    occupied.mkdir()
    result = CliRunner().invoke(cli, ["scan", str(plan), "--output", str(occupied)])
    assert result.exit_code == 2
    payload = json.loads(result.output)
    jsonschema.validate(payload, load_report_schema())
    assert payload["errors"][0]["error_type"] == "ReportWriteError"
    assert str(occupied) in payload["fatal_error"]


def test_both_format_writes_json_and_markdown(tmp_path, monkeypatch):
    set_deterministic_clock(monkeypatch)
    plan = write_plan(tmp_path, _violating_plan())
    stem = tmp_path / "out" / "scan-report"
    result = CliRunner().invoke(cli, ["scan", str(plan), "--format", "both", "--output", str(stem)])
    assert result.exit_code == 1
    assert result.output == ""
    payload = json.loads((tmp_path / "out" / "scan-report.json").read_text())
    jsonschema.validate(payload, load_report_schema())
    assert payload["summary"]["total_violations"] == 4
    markdown = (tmp_path / "out" / "scan-report.md").read_text()
    assert "**Scan Date:** 2024-01-02T00:00:00Z" in markdown
    assert "4 policy violation(s) detected" in markdown


def test_both_format_needs_an_output_path(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(cli, ["scan", str(plan)], env={"POLICYSCAN_OUTPUT_FORMAT": "both"})
    assert result.exit_code == 2
    assert "needs --output" in result.output


def test_quiet_suppresses_output_but_keeps_exit_code(tmp_path):
    plan = write_plan(tmp_path, _violating_plan())
    result = CliRunner().invoke(cli, ["scan", str(plan), "--quiet"])
    assert result.exit_code == 1
    assert result.output == ""


def test_parallel_workers_give_identical_output(tmp_path, monkeypatch):
    set_deterministic_clock(monkeypatch)
    plan = write_plan(tmp_path, _violating_plan())
    serial = CliRunner().invoke(cli, ["scan", str(plan), "--workers", "1"])
    parallel = CliRunner().invoke(cli, ["scan", str(plan), "--workers", "4"])
    assert serial.output == parallel.output


def test_controls_listing():
    result = CliRunner().invoke(cli, ["controls"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert [line.split()[0] for line in lines] == [
        "DATA-001",
        "DATA-002",
        "DATA-003",
        "GOV-001",
        "IAM-001",
        "IAM-002",
        "LOG-001",
        "NET-001",
        "NET-002",
    ]
    gov = next(line for line in lines if line.startswith("GOV-001"))
    assert gov.split()[1] == "disabled"


def test_controls_json_with_filters():
    result = CliRunner().invoke(cli, ["controls", "--cloud", "azure", "--json", "--disable", "NET-002"])
    assert result.exit_code == 0
    rows = json.loads(result.output)
    assert [(row["id"], row["enabled"]) for row in rows] == [
        ("DATA-003", True),
        ("IAM-002", True),
        ("NET-002", False),
    ]


def test_controls_unknown_id_is_a_usage_error():
    result = CliRunner().invoke(cli, ["controls", "--enable", "NOPE-1"])
    assert result.exit_code == 2
    assert "unknown control id: NOPE-1" in result.output
