"""Identity controls: IAM-001 wildcard IAM policies, IAM-002 subscription Owner assignments."""

from __future__ import annotations

import json
import re
from typing import Any, Iterator, List, Mapping

from ..graph import Resource, ResourceGraph, thaw
from ..predicates import Finding, iter_values
from . import register
from .base import BuiltinControl

_SUBSCRIPTION_SCOPE = re.compile(r"^/subscriptions/[^/]+/?$", re.IGNORECASE)


def policy_statements(document: Any) -> Iterator[Mapping[str, Any]]:
    """Yield statements from a policy document given as JSON text or a mapping."""

    if isinstance(document, str):
        document = json.loads(document) if document.strip() else {}
    else:
        document = thaw(document)
    if not isinstance(document, Mapping):
        raise TypeError(f"policy document must be an object, got {type(document).__name__}")
    statements = document.get("Statement", [])
    if isinstance(statements, Mapping):
        statements = [statements]
    for statement in statements:
        if isinstance(statement, Mapping):
            yield statement


def _is_wildcard(value: Any) -> bool:
    return any(item == "*" for item in iter_values(value))


@register
class WildcardIamPolicy(BuiltinControl):
    """IAM policy documents must not allow every action on every resource."""

    id = "IAM-001"
    title = "IAM policy grants full administrative privileges"
    severity = "HIGH"
    frameworks = ("NIST-800-53:AC-6", "CIS-AWS:1.16", "ISO-27001:A.9.2.3")
    applicable_types = (
        "aws_iam_policy",
        "aws_iam_role_policy",
        "aws_iam_user_policy",
        "aws_iam_group_policy",
    )
    domain = "identity"
    cloud_provider = "aws"
    remediation = "Scope the Action and Resource elements of {address} to the permissions actually required."

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        found: List[Finding] = []
        for statement in policy_statements(resource.get("policy", "")):
            if statement.get("Effect") != "Allow":
                continue
            if _is_wildcard(statement.get("Action")) and _is_wildcard(statement.get("Resource")):
                found.append(Finding(f"{resource.address} allows Action '*' on Resource '*'"))
        return found


@register
class SubscriptionOwnerAssignment(BuiltinControl):
    """The Owner role must not be assigned at subscription scope."""

    id = "IAM-002"
    title = "Owner role assigned at subscription scope"
    severity = "HIGH"
    frameworks = ("NIST-800-53:AC-6", "CIS-AZURE:1.23")
    applicable_types = ("azurerm_role_assignment",)
    domain = "identity"
    cloud_provider = "azure"
    remediation = "Assign a narrower built-in role or scope {address} to a resource group."

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        role = resource.get("role_definition_name", "")
        scope = resource.get("scope", "")
        if role == "Owner" and isinstance(scope, str) and _SUBSCRIPTION_SCOPE.match(scope):
            return [Finding(f"{resource.address} grants Owner on subscription scope {scope}")]
        return []
