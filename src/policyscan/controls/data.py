"""Data protection controls.

DATA-001 and DATA-002 are join controls: an ``aws_s3_bucket`` is compliant only
when a companion resource references it through its ``bucket`` field. A
missing companion and a misconfigured companion are reported under the same
control id with different messages.
"""

from __future__ import annotations

from typing import List

from ..graph import Resource, ResourceGraph
from ..predicates import Finding, requires_companion
from . import register
from .base import BuiltinControl

BUCKET_KEY_FIELDS = ("bucket", "id")
SSE_ALGORITHMS = ("AES256", "aws:kms", "aws:kms:dsse")
MIN_TLS_VERSIONS = ("TLS1_2", "TLS1_3")

_SSE_ALGORITHM_PATH = "rule[0].apply_server_side_encryption_by_default[0].sse_algorithm"

_encryption_companion = requires_companion(
    "aws_s3_bucket_server_side_encryption_configuration",
    "bucket",
    BUCKET_KEY_FIELDS,
    constraints={_SSE_ALGORITHM_PATH: lambda value: value in SSE_ALGORITHMS},
    missing_message="S3 bucket {key} has no server-side encryption configuration",
    misconfigured_message="S3 bucket {key} encryption configuration {companion} has no valid sse_algorithm",
)

_public_access_companion = requires_companion(
    "aws_s3_bucket_public_access_block",
    "bucket",
    BUCKET_KEY_FIELDS,
    constraints={
        "block_public_acls": True,
        "block_public_policy": True,
        "ignore_public_acls": True,
        "restrict_public_buckets": True,
    },
    missing_message="S3 bucket {key} has no public access block",
    misconfigured_message="S3 bucket {key} public access block {companion} does not enable: {failed}",
)


@register
class BucketEncryption(BuiltinControl):
    """S3 buckets must have server-side encryption configured."""

    id = "DATA-001"
    title = "S3 bucket encryption not configured"
    severity = "HIGH"
    frameworks = ("NIST-800-53:SC-28", "CIS-AWS:2.1.1", "ISO-27001:A.10.1.1")
    applicable_types = ("aws_s3_bucket",)
    domain = "data"
    cloud_provider = "aws"
    remediation = (
        "Add an aws_s3_bucket_server_side_encryption_configuration for {address} "
        "with sse_algorithm AES256 or aws:kms."
    )

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        # Provider v3 style inline configuration still counts.
        if resource.get("server_side_encryption_configuration", None):
            return []
        return list(_encryption_companion(resource, graph))


@register
class BucketPublicAccessBlock(BuiltinControl):
    """S3 buckets must be covered by a fully restrictive public access block."""

    id = "DATA-002"
    title = "S3 bucket public access not blocked"
    severity = "CRITICAL"
    frameworks = ("NIST-800-53:AC-3", "CIS-AWS:2.1.5")
    applicable_types = ("aws_s3_bucket",)
    domain = "data"
    cloud_provider = "aws"
    remediation = (
        "Add an aws_s3_bucket_public_access_block for {address} with all four "
        "block/ignore/restrict flags set to true."
    )

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        return list(_public_access_companion(resource, graph))


@register
class StorageAccountTls(BuiltinControl):
    """Azure storage accounts must require TLS 1.2 or newer."""

    id = "DATA-003"
    title = "Storage account allows legacy TLS"
    severity = "MEDIUM"
    frameworks = ("NIST-800-53:SC-8", "CIS-AZURE:3.15")
    applicable_types = ("azurerm_storage_account",)
    domain = "data"
    cloud_provider = "azure"
    remediation = 'Set min_tls_version = "TLS1_2" on {address}.'

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        version = resource.get("min_tls_version", None)
        if version in MIN_TLS_VERSIONS:
            return []
        return [Finding(f"{resource.address} min_tls_version is {version or 'unset'}")]
