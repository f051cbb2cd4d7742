"""Plan loading: turn raw plan JSON into a :class:`ResourceGraph`."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import MalformedInput
from .graph import Resource, ResourceGraph, freeze

logger = logging.getLogger(__name__)

_PROVIDER_ALIASES = {
    "azurerm": "azure",
    "azuread": "azure",
    "azapi": "azure",
    "google-beta": "google",
    "aws": "aws",
}


def load_plan_file(path: Path) -> ResourceGraph:
    """Read a plan (or bare record list) from ``path`` and build the graph."""

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise MalformedInput([(str(path), "file not found")]) from None
    except (OSError, UnicodeDecodeError) as exc:
        raise MalformedInput([(str(path), f"cannot read plan: {exc}")]) from None
    except json.JSONDecodeError as exc:
        raise MalformedInput([(str(path), f"invalid JSON: {exc}")]) from None
    return load_plan(data)


def load_plan(plan: Any) -> ResourceGraph:
    """Build a graph from any supported plan document.

    Accepted shapes: a Terraform ``show -json`` document
    (``planned_values.root_module`` with nested ``child_modules``), a mapping
    with a top-level ``resources`` list, or a bare list of records.
    """

    if isinstance(plan, list):
        return load_graph(plan)
    if not isinstance(plan, Mapping):
        raise MalformedInput([("$", "top-level plan must be an object or a list of resources")])
    if "planned_values" in plan:
        return load_graph(iter_plan_resources(plan))
    if "resources" in plan:
        resources = plan.get("resources")
        if not isinstance(resources, list):
            raise MalformedInput([("$.resources", "resources must be a list")])
        return load_graph(resources)
    raise MalformedInput([("$", "expected planned_values.root_module or a resources list")])


def iter_plan_resources(plan: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Flatten root and child module resources of a Terraform plan document."""

    planned_values = plan.get("planned_values")
    if not isinstance(planned_values, Mapping):
        raise MalformedInput([("$.planned_values", "planned_values must be an object")])
    root_module = planned_values.get("root_module")
    if root_module is None:
        raise MalformedInput([("$.planned_values.root_module", "root_module must be present")])
    if not isinstance(root_module, Mapping):
        raise MalformedInput([("$.planned_values.root_module", "root_module must be an object")])

    problems: List[Tuple[str, str]] = []
    collected: List[Dict[str, Any]] = []

    def collect(module: Mapping[str, Any], location: str) -> None:
        resources = module.get("resources")
        if resources is None:
            resources = []
        elif not isinstance(resources, list):
            problems.append((f"{location}.resources", "resources must be a list"))
            resources = []
        module_address = module.get("address") if isinstance(module.get("address"), str) else ""
        for record in resources:
            if isinstance(record, Mapping) and module_address and "module_address" not in record:
                record = dict(record, module_address=module_address)
            collected.append(record)
        children = module.get("child_modules")
        if children is None:
            return
        if not isinstance(children, list):
            problems.append((f"{location}.child_modules", "child_modules must be a list when present"))
            return
        for idx, child in enumerate(children):
            child_location = f"{location}.child_modules[{idx}]"
            if not isinstance(child, Mapping):
                problems.append((child_location, "child module must be an object"))
                continue
            collect(child, child_location)

    collect(root_module, "$.planned_values.root_module")
    if problems:
        raise MalformedInput(problems)
    return collected


def load_graph(records: Sequence[Any]) -> ResourceGraph:
    """Validate resource records and index them by type in a single pass."""

    if not isinstance(records, (list, tuple)):
        raise MalformedInput([("$", "resource records must be a list")])

    problems: List[Tuple[str, str]] = []
    resources: List[Resource] = []
    seen: Dict[str, int] = {}

    for idx, record in enumerate(records):
        location = f"resources[{idx}]"
        if not isinstance(record, Mapping):
            problems.append((location, "record must be an object"))
            continue
        resource = _build_resource(record, location, problems)
        if resource is None:
            continue
        if resource.address in seen:
            problems.append(
                (location, f"duplicate address {resource.address!r} (first seen at resources[{seen[resource.address]}])")
            )
            continue
        seen[resource.address] = idx
        resources.append(resource)

    if problems:
        raise MalformedInput(problems)

    graph = ResourceGraph(resources)
    logger.debug("Loaded %d resource(s) across %d type(s)", len(graph), len(graph.by_type))
    return graph


def _build_resource(
    record: Mapping[str, Any], location: str, problems: List[Tuple[str, str]]
) -> Optional[Resource]:
    address = record.get("address")
    rtype = record.get("type")
    valid = True
    if not isinstance(address, str) or not address.strip():
        problems.append((f"{location}.address", "address must be a non-empty string"))
        valid = False
    if not isinstance(rtype, str) or not rtype.strip():
        problems.append((f"{location}.type", "type must be a non-empty string"))
        valid = False
    values = record.get("values")
    if values is None:
        values = {}
    elif not isinstance(values, Mapping):
        problems.append((f"{location}.values", "values must be an object"))
        valid = False
    if not valid:
        return None

    provider = normalize_provider_label(record.get("provider") or record.get("provider_name"))
    if not provider:
        provider = _provider_from_type(rtype)
    name = record.get("name")
    module_address = record.get("module_address")
    return Resource(
        address=address.strip(),
        type=rtype.strip(),
        provider=provider,
        attributes=freeze(values),
        name=name if isinstance(name, str) else "",
        module_address=module_address if isinstance(module_address, str) else "",
    )


def normalize_provider_label(value: Any) -> Optional[str]:
    """``provider["registry.terraform.io/hashicorp/aws"]`` -> ``aws``."""

    if not isinstance(value, str):
        return None
    token = value.strip().strip('"')
    if not token:
        return None
    if token.startswith("provider["):
        token = token[len("provider[") :]
        if token.endswith("]"):
            token = token[:-1]
        token = token.strip('"')
    if "/" in token:
        token = token.split("/")[-1]
    token = token.strip().lower()
    if not token:
        return None
    return _PROVIDER_ALIASES.get(token, token)


def _provider_from_type(resource_type: str) -> str:
    prefix = resource_type.split("_", 1)[0].lower()
    return _PROVIDER_ALIASES.get(prefix, prefix)


__all__ = [
    "iter_plan_resources",
    "load_graph",
    "load_plan",
    "load_plan_file",
    "normalize_provider_label",
]
