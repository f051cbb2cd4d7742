"""End-to-end scans of realistic plans through the public API."""

import threading

from policyscan import ScanConfig, build_report_payload, load_plan, render_json, run_scan, scan_plan
from policyscan.controls import build_default_catalog
from tests.helpers.plan_helpers import compliant_bucket, plan_document, public_access_block, record

_FULL_FLAGS = dict(
    block_public_acls=True,
    block_public_policy=True,
    ignore_public_acls=True,
    restrict_public_buckets=True,
)


def _data_002(report):
    return [v for v in report.violations if v.control_id == "DATA-002"]


def test_bucket_without_public_access_block_then_with_one():
    bucket = {"address": "aws_s3_bucket.x", "type": "aws_s3_bucket", "values": {"bucket": "b1"}}

    before = run_scan(load_plan([bucket]))
    violations = _data_002(before)
    assert len(violations) == 1
    assert violations[0].resource_address == "aws_s3_bucket.x"

    block = {
        "address": "aws_s3_bucket_public_access_block.x",
        "type": "aws_s3_bucket_public_access_block",
        "values": dict(_FULL_FLAGS, bucket="b1"),
    }
    after = run_scan(load_plan([bucket, block]))
    assert _data_002(after) == []


def test_block_for_another_bucket_does_not_count():
    report = run_scan(
        load_plan(
            [
                record("aws_s3_bucket.x", bucket="b1"),
                public_access_block("aws_s3_bucket_public_access_block.other", "b2"),
            ]
        )
    )
    assert [v.resource_address for v in _data_002(report)] == ["aws_s3_bucket.x"]


def _mixed_plan():
    resources = [
        record("aws_s3_bucket.raw", bucket="raw"),
        record(
            "aws_security_group.bastion",
            ingress=[{"from_port": 3389, "to_port": 3389, "cidr_blocks": ["0.0.0.0/0"]}],
        ),
        record("aws_iam_policy.admin", policy='{"Statement": [{"Effect": "Allow", "Action": "*", "Resource": "*"}]}'),
        record("azurerm_storage_account.sa", min_tls_version="TLS1_0"),
    ]
    module = {
        "address": "module.archive",
        "resources": compliant_bucket("archive"),
    }
    return plan_document(resources, child_modules=[module])


def test_mixed_plan_report_is_severity_ranked():
    report = scan_plan(_mixed_plan())
    assert [(v.severity, v.control_id, v.resource_address) for v in report.violations] == [
        ("CRITICAL", "DATA-002", "aws_s3_bucket.raw"),
        ("CRITICAL", "NET-001", "aws_security_group.bastion"),
        ("HIGH", "DATA-001", "aws_s3_bucket.raw"),
        ("HIGH", "IAM-001", "aws_iam_policy.admin"),
        ("MEDIUM", "DATA-003", "azurerm_storage_account.sa"),
        ("LOW", "LOG-001", "aws_s3_bucket.raw"),
    ]
    assert report.resource_count == 8
    assert not report.passed


def test_disabled_control_never_contributes():
    config = ScanConfig(disabled_controls=("DATA-002", "NET-001"))
    report = scan_plan(_mixed_plan(), config=config)
    assert {v.control_id for v in report.violations} == {"DATA-001", "IAM-001", "DATA-003", "LOG-001"}
    assert report.disabled_controls == ("DATA-002", "GOV-001", "NET-001")


def test_config_overrides_do_not_leak_into_a_reused_catalog():
    catalog = build_default_catalog()
    graph = load_plan(_mixed_plan())

    first = run_scan(graph, catalog, ScanConfig(disabled_controls=("DATA-002",), enabled_controls=("GOV-001",)))
    assert "DATA-002" not in {v.control_id for v in first.violations}
    assert catalog.is_enabled("DATA-002")
    assert not catalog.is_enabled("GOV-001")

    second = run_scan(graph, catalog, ScanConfig())
    assert _data_002(second)
    assert second.disabled_controls == ("GOV-001",)


def test_threshold_and_filter_from_config():
    config = ScanConfig(severity_threshold="CRITICAL", severity_filter="HIGH")
    report = scan_plan(_mixed_plan(), config=config)
    assert report.counts_by_severity["MEDIUM"] == 0
    assert report.counts_by_severity["LOW"] == 0
    assert report.filtered_out == 2
    assert not report.passed


def test_repeated_runs_are_byte_identical():
    plan = _mixed_plan()
    outputs = {render_json(scan_plan(plan)) for _ in range(3)}
    assert len(outputs) == 1


def test_parallel_and_serial_runs_agree():
    plan = _mixed_plan()
    serial = build_report_payload(scan_plan(plan, config=ScanConfig(workers=1)))
    parallel = build_report_payload(scan_plan(plan, config=ScanConfig(workers=4)))
    assert serial == parallel


def test_cancelled_run_reports_error_status():
    cancel = threading.Event()
    cancel.set()
    report = run_scan(load_plan(_mixed_plan()), build_default_catalog(), cancel=cancel)
    assert report.cancelled
    assert report.degraded
    assert report.violations == ()
    assert build_report_payload(report)["summary"]["status"] == "error"
