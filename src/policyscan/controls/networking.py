"""Networking controls: NET-001 admin ports open to the world, NET-002 open Azure NSG rules."""

from __future__ import annotations

from typing import Any, List, Mapping

from ..graph import Resource, ResourceGraph
from ..predicates import Finding, any_cidr_open, iter_values, port_range_covers
from . import register
from .base import BuiltinControl

ADMIN_PORTS = (22, 3389)


def _open_admin_ports(rule: Mapping[str, Any]) -> List[int]:
    if not (any_cidr_open(rule.get("cidr_blocks")) or any_cidr_open(rule.get("ipv6_cidr_blocks"))):
        return []
    return [port for port in ADMIN_PORTS if port_range_covers(rule.get("from_port"), rule.get("to_port"), port)]


@register
class OpenAdminIngress(BuiltinControl):
    """Security groups must not allow SSH or RDP from 0.0.0.0/0."""

    id = "NET-001"
    title = "Administrative port open to the internet"
    severity = "CRITICAL"
    frameworks = ("NIST-800-53:SC-7", "CIS-AWS:5.2")
    applicable_types = ("aws_security_group", "aws_security_group_rule")
    domain = "networking"
    cloud_provider = "aws"
    remediation = "Restrict the ingress CIDR blocks of {address} to trusted ranges or use a bastion/SSM."

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        if resource.type == "aws_security_group_rule":
            if resource.get("type") != "ingress":
                return []
            rules = [resource.attributes]
        else:
            rules = list(iter_values(resource.get("ingress")))
        found: List[Finding] = []
        for rule in rules:
            # a non-mapping ingress entry is malformed input and surfaces as an evaluation error
            ports = _open_admin_ports(rule)
            if ports:
                joined = ", ".join(str(port) for port in ports)
                found.append(Finding(f"{resource.address} allows ingress from 0.0.0.0/0 to port(s) {joined}"))
        return found


@register
class OpenNetworkSecurityRule(BuiltinControl):
    """Azure NSG rules must not allow inbound traffic from any source."""

    id = "NET-002"
    title = "Network security rule allows inbound traffic from the internet"
    severity = "HIGH"
    frameworks = ("NIST-800-53:SC-7", "CIS-AZURE:6.1")
    applicable_types = ("azurerm_network_security_rule",)
    domain = "networking"
    cloud_provider = "azure"
    remediation = "Set source_address_prefix of {address} to a specific trusted range."

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> List[Finding]:
        if str(resource.get("direction", "")).lower() != "inbound":
            return []
        if str(resource.get("access", "")).lower() != "allow":
            return []
        sources = list(iter_values(resource.get("source_address_prefix")))
        sources.extend(iter_values(resource.get("source_address_prefixes")))
        if any_cidr_open(sources):
            return [Finding(f"{resource.address} allows inbound traffic from any source")]
        return []
