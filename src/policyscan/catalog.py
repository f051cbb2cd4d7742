"""Control definitions and the validated control catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from .constants import SEVERITY_LEVELS
from .errors import DuplicateControlId, InvalidControlMetadata, UnknownControl

logger = logging.getLogger(__name__)

Predicate = Callable[..., Iterable[Any]]


@dataclass
class Control:
    """One compliance rule: metadata plus a predicate over the resource graph.

    ``predicate(resource, graph)`` returns an iterable of
    :class:`policyscan.predicates.Finding` (plain strings are accepted as
    messages). ``applicable_types`` pre-filters candidates; empty means every
    resource is a candidate.
    """

    id: str
    title: str
    severity: str
    frameworks: FrozenSet[str]
    predicate: Optional[Predicate]
    applicable_types: FrozenSet[str] = frozenset()
    enabled: bool = True
    remediation: str = ""
    description: str = ""
    domain: str = ""
    cloud_provider: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Control":
        """Build a control from a definition mapping (``applicableTypes`` accepted)."""

        applicable = data.get("applicable_types", data.get("applicableTypes"))
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            severity=data.get("severity", ""),
            frameworks=data.get("frameworks") or frozenset(),
            predicate=data.get("predicate"),
            applicable_types=applicable or frozenset(),
            enabled=bool(data.get("enabled", True)),
            remediation=data.get("remediation", "") or "",
            description=data.get("description", "") or "",
            domain=data.get("domain", "") or "",
            cloud_provider=data.get("cloud_provider", "") or "",
        )

    def applies_to_all(self) -> bool:
        return not self.applicable_types


ControlDefinition = Union[Control, Mapping[str, Any]]


def normalize_frameworks(value: Any) -> FrozenSet[str]:
    """Accept a list of references or a ``{"nist": ["AC-3"]}`` mapping."""

    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    if isinstance(value, Mapping):
        refs = set()
        for framework, items in value.items():
            if isinstance(items, str):
                items = [items]
            for item in items or ():
                refs.add(f"{str(framework).upper()}:{item}")
        return frozenset(refs)
    return frozenset(str(item).strip() for item in value if str(item).strip())


def _validate(control: Control) -> List[str]:
    reasons: List[str] = []
    if not isinstance(control.id, str) or not control.id.strip():
        reasons.append("id must be a non-empty string")
    if not isinstance(control.title, str) or not control.title.strip():
        reasons.append("title must be a non-empty string")
    severity = control.severity.upper() if isinstance(control.severity, str) else control.severity
    if severity not in SEVERITY_LEVELS:
        reasons.append(f"severity {control.severity!r} is not one of {', '.join(SEVERITY_LEVELS)}")
    try:
        frameworks = normalize_frameworks(control.frameworks)
    except TypeError:
        frameworks = frozenset()
    if not frameworks:
        reasons.append("frameworks must be non-empty")
    if control.predicate is None:
        reasons.append("predicate is missing")
    elif not callable(control.predicate):
        reasons.append("predicate is not callable")
    for name in ("remediation", "description", "domain", "cloud_provider"):
        if not isinstance(getattr(control, name), str):
            reasons.append(f"{name} must be a string")
    return reasons


def _normalized(control: Control) -> Control:
    types = control.applicable_types
    if isinstance(types, str):
        types = [types]
    return replace(
        control,
        id=control.id.strip(),
        title=control.title.strip(),
        severity=control.severity.upper(),
        frameworks=normalize_frameworks(control.frameworks),
        applicable_types=frozenset(types or ()),
    )


class ControlCatalog:
    """Validated set of controls with per-control enable/disable state.

    Construction fails with :class:`DuplicateControlId` or
    :class:`InvalidControlMetadata`, each listing every offending control.
    Controls are copied on construction, so toggling never leaks back into the
    definitions passed in.
    """

    def __init__(self, controls: Iterable[ControlDefinition]) -> None:
        definitions = [
            control if isinstance(control, Control) else Control.from_mapping(control)
            for control in controls
        ]

        counts: Dict[str, int] = {}
        for control in definitions:
            key = control.id.strip() if isinstance(control.id, str) else str(control.id)
            counts[key] = counts.get(key, 0) + 1
        duplicates = {
            control_id: [f"defined {count} times"]
            for control_id, count in counts.items()
            if count > 1 and control_id
        }
        if duplicates:
            raise DuplicateControlId(duplicates)

        invalid: Dict[str, List[str]] = {}
        for position, control in enumerate(definitions):
            reasons = _validate(control)
            if reasons:
                label = control.id if isinstance(control.id, str) and control.id.strip() else f"<control #{position}>"
                invalid[label] = reasons
        if invalid:
            raise InvalidControlMetadata(invalid)

        self._controls: Dict[str, Control] = {}
        for control in sorted((_normalized(item) for item in definitions), key=lambda item: item.id):
            self._controls[control.id] = control
        logger.debug("Catalog loaded with %d control(s)", len(self._controls))

    def __len__(self) -> int:
        return len(self._controls)

    def __iter__(self) -> Iterator[Control]:
        return iter(list(self._controls.values()))

    def __contains__(self, control_id: object) -> bool:
        return control_id in self._controls

    def get(self, control_id: str) -> Control:
        try:
            return self._controls[control_id]
        except KeyError:
            raise UnknownControl(control_id) from None

    def copy(self) -> "ControlCatalog":
        """Independent catalog with the same controls and enabled states."""

        return ControlCatalog(self._controls.values())

    def ids(self) -> List[str]:
        return list(self._controls)

    def is_enabled(self, control_id: str) -> bool:
        return self.get(control_id).enabled

    def set_enabled(self, control_id: str, enabled: bool) -> None:
        control = self.get(control_id)
        if control.enabled != enabled:
            logger.info("%s control %s", "Enabling" if enabled else "Disabling", control_id)
        control.enabled = enabled

    def enable(self, control_id: str) -> None:
        self.set_enabled(control_id, True)

    def disable(self, control_id: str) -> None:
        self.set_enabled(control_id, False)

    def apply_overrides(
        self,
        *,
        disabled: Sequence[str] = (),
        enabled: Sequence[str] = (),
    ) -> None:
        """Apply configured toggles; every id is checked before anything changes."""

        unknown = sorted({cid for cid in list(disabled) + list(enabled) if cid not in self._controls})
        if unknown:
            raise UnknownControl(", ".join(unknown))
        for control_id in disabled:
            self.disable(control_id)
        for control_id in enabled:
            self.enable(control_id)

    def enabled_controls(self) -> Iterator[Control]:
        """Enabled controls, ordered by id ascending."""

        for control in list(self._controls.values()):
            if control.enabled:
                yield control

    def disabled_ids(self) -> List[str]:
        return [control.id for control in self._controls.values() if not control.enabled]

    def inventory(
        self,
        *,
        cloud: Optional[str] = None,
        domain: Optional[str] = None,
        severity: Optional[str] = None,
        framework: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Rows describing every control (enabled or not), for listings."""

        rows: List[Dict[str, Any]] = []
        for control in self._controls.values():
            if cloud and control.cloud_provider != cloud.lower():
                continue
            if domain and control.domain != domain.lower():
                continue
            if severity and control.severity != severity.upper():
                continue
            if framework and not any(framework.upper() in ref.upper() for ref in control.frameworks):
                continue
            rows.append(
                {
                    "id": control.id,
                    "title": control.title,
                    "severity": control.severity,
                    "domain": control.domain,
                    "cloud_provider": control.cloud_provider,
                    "frameworks": sorted(control.frameworks),
                    "applicable_types": sorted(control.applicable_types),
                    "enabled": control.enabled,
                }
            )
        return rows


__all__ = [
    "Control",
    "ControlCatalog",
    "ControlDefinition",
    "Predicate",
    "normalize_frameworks",
]
