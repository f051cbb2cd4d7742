"""Governance tagging control."""

from __future__ import annotations

from typing import Any, List, Mapping, Set

from ..graph import Resource, ResourceGraph
from ..predicates import Finding
from . import register
from .base import BuiltinControl

TAGGABLE_TYPES: Set[str] = {
    "aws_db_instance",
    "aws_rds_cluster",
    "aws_eks_cluster",
    "aws_instance",
    "aws_s3_bucket",
    "aws_kms_key",
    "aws_security_group",
    "aws_vpc",
    "azurerm_resource_group",
    "azurerm_storage_account",
    "azurerm_virtual_machine",
}

REQUIRED_TAGS = ("Environment", "Owner")


def is_nonempty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


@register
class MandatoryTags(BuiltinControl):
    """Taggable resources must carry Environment and Owner tags."""

    id = "GOV-001"
    title = "Mandatory tags missing"
    severity = "LOW"
    frameworks = ("NIST-800-53:CM-8", "ISO-27001:A.8.1.1")
    applicable_types = tuple(sorted(TAGGABLE_TYPES))
    domain = "governance"
    remediation = "Add non-empty {tags} tags to {{address}}.".format(tags=" and ".join(REQUIRED_TAGS))
    # Off by default: tagging conventions are organisation specific.
    enabled_by_default = False

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        tags = resource.get("tags", None)
        if not isinstance(tags, Mapping) or not tags:
            return [Finding(f"{resource.address} has no tags")]
        missing = [key for key in REQUIRED_TAGS if not is_nonempty_string(tags.get(key))]
        if missing:
            return [Finding(f"{resource.address} is missing tag(s): {', '.join(missing)}")]
        return []
