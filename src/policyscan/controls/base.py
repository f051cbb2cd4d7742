"""Base class for built-in controls."""

from __future__ import annotations

from typing import ClassVar, Iterable, Tuple

from ..catalog import Control
from ..graph import Resource, ResourceGraph
from ..predicates import Finding


class BuiltinControl:
    """Class-level control definition turned into a :class:`Control` on demand."""

    id: ClassVar[str] = "UNSET"
    title: ClassVar[str] = ""
    severity: ClassVar[str] = "LOW"
    frameworks: ClassVar[Tuple[str, ...]] = ()
    applicable_types: ClassVar[Tuple[str, ...]] = ()
    domain: ClassVar[str] = ""
    cloud_provider: ClassVar[str] = ""
    remediation: ClassVar[str] = ""
    enabled_by_default: ClassVar[bool] = True

    @classmethod
    def evaluate(cls, resource: Resource, graph: ResourceGraph) -> Iterable[Finding]:
        return []

    @classmethod
    def to_control(cls) -> Control:
        return Control(
            id=cls.id,
            title=cls.title,
            severity=cls.severity,
            frameworks=frozenset(cls.frameworks),
            predicate=cls.evaluate,
            applicable_types=frozenset(cls.applicable_types),
            enabled=cls.enabled_by_default,
            remediation=cls.remediation,
            description=(cls.__doc__ or "").strip(),
            domain=cls.domain,
            cloud_provider=cls.cloud_provider,
        )
