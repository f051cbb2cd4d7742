"""Logging controls."""

from __future__ import annotations

from typing import List

from ..graph import Resource, ResourceGraph
from ..predicates import Finding, requires_companion
from . import register
from .base import BuiltinControl
from .data import BUCKET_KEY_FIELDS

_logging_companion = requires_companion(
    "aws_s3_bucket_logging",
    "bucket",
    BUCKET_KEY_FIELDS,
    constraints={"target_bucket": lambda value: isinstance(value, str) and value.strip() != ""},
    missing_message="S3 bucket {key} has no access logging configuration",
    misconfigured_message="S3 bucket {key} logging configuration {companion} has no target_bucket",
)


@register
class BucketAccessLogging(BuiltinControl):
    """S3 buckets should deliver server access logs to a target bucket."""

    id = "LOG-001"
    title = "S3 bucket access logging disabled"
    severity = "LOW"
    frameworks = ("NIST-800-53:AU-2", "CIS-AWS:3.6")
    applicable_types = ("aws_s3_bucket",)
    domain = "logging"
    cloud_provider = "aws"
    remediation = "Add an aws_s3_bucket_logging resource for {address} pointing at a log bucket."

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        if resource.get("logging", None):
            return []
        return list(_logging_companion(resource, graph))
