"""Building blocks for control predicates.

A predicate is any callable ``(resource, graph) -> iterable of Finding``.
Local predicates look only at the candidate's own attributes. Join predicates
resolve companion resources through :meth:`ResourceGraph.lookup`, which is
backed by a cached ``(type, field_path)`` index, so each lookup is a dict hit
plus the size of the matching set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from .graph import MISSING, Resource, ResourceGraph

OPEN_CIDRS = frozenset({"0.0.0.0/0", "::/0", "*", "Internet", "any", "Any"})


@dataclass(frozen=True)
class Finding:
    """A violation fragment emitted by a predicate.

    The evaluator stamps it with control id and severity. ``remediation``
    overrides the control's remediation template when set.
    """

    message: str
    remediation: Optional[str] = None


PredicateResult = Iterable[Union[Finding, str]]
Predicate = Callable[[Resource, ResourceGraph], PredicateResult]
ValueCheck = Union[Any, Callable[[Any], bool]]
Constraints = Mapping[str, ValueCheck]


def iter_values(value: Any) -> Iterator[Any]:
    """Yield list elements, or the scalar itself; nothing for missing/None."""

    if value is MISSING or value is None:
        return
    if isinstance(value, (list, tuple)):
        yield from value
    else:
        yield value


def _check(value: Any, expected: ValueCheck) -> bool:
    if callable(expected):
        return bool(expected(value))
    return value == expected


def failed_constraints(resource: Resource, constraints: Optional[Constraints]) -> List[str]:
    """Paths in ``constraints`` that ``resource`` does not satisfy, in declaration order."""

    failed: List[str] = []
    for path, expected in (constraints or {}).items():
        if not _check(resource.get(path), expected):
            failed.append(path)
    return failed


def _format(template: str, **fields: Any) -> str:
    try:
        return template.format(**fields)
    except (KeyError, IndexError):
        return template


# Local predicates


def attribute_check(path: str, check: Callable[[Any], bool], message: str) -> Predicate:
    """Violation when ``check(value)`` is false for the value at ``path``."""

    def predicate(resource: Resource, graph: ResourceGraph) -> List[Finding]:
        value = resource.get(path)
        if check(value):
            return []
        shown = None if value is MISSING else value
        return [Finding(_format(message, address=resource.address, value=shown, path=path))]

    return predicate


def attribute_not_true(path: str, message: str) -> Predicate:
    return attribute_check(path, lambda value: value is True, message)


def attribute_equals(path: str, expected: Any, message: str) -> Predicate:
    return attribute_check(path, lambda value: value == expected, message)


def attribute_in(path: str, allowed: Sequence[Any], message: str) -> Predicate:
    allowed_values = tuple(allowed)
    return attribute_check(path, lambda value: value in allowed_values, message)


def any_cidr_open(value: Any) -> bool:
    return any(str(item).strip() in OPEN_CIDRS for item in iter_values(value))


def port_range_covers(from_port: Any, to_port: Any, port: int) -> bool:
    try:
        low = int(from_port)
        high = int(to_port)
    except (TypeError, ValueError):
        return False
    if low == 0 and high in (0, 65535) or low == -1:
        return True
    return low <= port <= high


def all_of(*predicates: Predicate) -> Predicate:
    """Concatenate the findings of several predicates."""

    def predicate(resource: Resource, graph: ResourceGraph) -> List[Union[Finding, str]]:
        findings: List[Union[Finding, str]] = []
        for inner in predicates:
            findings.extend(inner(resource, graph))
        return findings

    return predicate


# Join predicates


def join_keys(resource: Resource, key_fields: Sequence[str]) -> List[Any]:
    """Distinct values the candidate can be referenced by, in field order."""

    keys: List[Any] = []
    for path in key_fields:
        for value in iter_values(resource.get(path)):
            if isinstance(value, (str, int, float, bool)) and value not in keys and value != "":
                keys.append(value)
    return keys


def companions(
    resource: Resource,
    graph: ResourceGraph,
    companion_type: str,
    companion_field: str,
    key_fields: Sequence[str],
) -> Tuple[Resource, ...]:
    """Resources of ``companion_type`` whose ``companion_field`` references ``resource``."""

    found: List[Resource] = []
    seen = set()
    for key in join_keys(resource, key_fields):
        for match in graph.lookup(companion_type, companion_field, key):
            if match.address not in seen:
                seen.add(match.address)
                found.append(match)
    return tuple(found)


def requires_companion(
    companion_type: str,
    companion_field: str,
    key_fields: Sequence[str],
    *,
    constraints: Optional[Constraints] = None,
    missing_message: str,
    misconfigured_message: Optional[str] = None,
    missing_remediation: Optional[str] = None,
) -> Predicate:
    """Anti-join: the candidate must be referenced by a well-formed companion.

    No finding when at least one companion exists and satisfies every
    constraint. Otherwise one finding: ``missing_message`` when no companion
    references the candidate, ``misconfigured_message`` when companions exist
    but all of them fail a constraint.
    """

    def predicate(resource: Resource, graph: ResourceGraph) -> List[Finding]:
        keys = join_keys(resource, key_fields)
        matches = companions(resource, graph, companion_type, companion_field, key_fields)
        key_label = keys[0] if keys else resource.address
        if not matches:
            return [
                Finding(
                    _format(
                        missing_message,
                        address=resource.address,
                        key=key_label,
                        companion_type=companion_type,
                    ),
                    missing_remediation,
                )
            ]
        if not constraints:
            return []
        failures: List[Tuple[Resource, List[str]]] = []
        for match in matches:
            failed = failed_constraints(match, constraints)
            if not failed:
                return []
            failures.append((match, failed))
        companion, failed = failures[0]
        template = misconfigured_message or missing_message
        return [
            Finding(
                _format(
                    template,
                    address=resource.address,
                    key=key_label,
                    companion=companion.address,
                    companion_type=companion_type,
                    failed=", ".join(failed),
                )
            )
        ]

    return predicate


def forbids_companion(
    companion_type: str,
    companion_field: str,
    key_fields: Sequence[str],
    *,
    constraints: Optional[Constraints] = None,
    message: str,
) -> Predicate:
    """Positive join: one finding per referencing companion with bad attributes.

    ``constraints`` describe the *acceptable* companion; a companion failing
    any of them is reported. Without constraints any referencing companion is
    a violation.
    """

    def predicate(resource: Resource, graph: ResourceGraph) -> List[Finding]:
        findings: List[Finding] = []
        key_label = next(iter(join_keys(resource, key_fields)), resource.address)
        for match in companions(resource, graph, companion_type, companion_field, key_fields):
            failed = failed_constraints(match, constraints) if constraints else ["<present>"]
            if not failed:
                continue
            findings.append(
                Finding(
                    _format(
                        message,
                        address=resource.address,
                        key=key_label,
                        companion=match.address,
                        companion_type=companion_type,
                        failed=", ".join(failed),
                    )
                )
            )
        return findings

    return predicate


__all__ = [
    "Finding",
    "OPEN_CIDRS",
    "Predicate",
    "all_of",
    "any_cidr_open",
    "attribute_check",
    "attribute_equals",
    "attribute_in",
    "attribute_not_true",
    "companions",
    "failed_constraints",
    "forbids_companion",
    "iter_values",
    "join_keys",
    "port_range_covers",
    "requires_companion",
]
