"""Resource records and the indexed, read-only resource graph."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class _Missing:
    """Sentinel returned by :func:`get_path` when a field is absent."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

_PATH_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


def parse_path(path: str) -> Tuple[Any, ...]:
    """Split ``values.ingress[0].cidr_blocks[0]`` into ``("ingress", 0, "cidr_blocks", 0)``."""

    tokens: List[Any] = []
    for match in _PATH_TOKEN.finditer(path or ""):
        name, index = match.groups()
        if index is not None:
            tokens.append(int(index))
        else:
            tokens.append(name)
    if tokens and tokens[0] == "values":
        tokens = tokens[1:]
    return tuple(tokens)


def get_path(attributes: Any, path: str, default: Any = MISSING) -> Any:
    """Return the value at ``path`` inside ``attributes`` or ``default``."""

    current = attributes
    for token in parse_path(path):
        if isinstance(token, int):
            if not isinstance(current, (list, tuple)) or token >= len(current):
                return default
            current = current[token]
            continue
        if not isinstance(current, Mapping) or token not in current:
            return default
        current = current[token]
    return current


def freeze(value: Any) -> Any:
    """Return a deeply read-only copy of a JSON-like value."""

    if isinstance(value, Mapping):
        return MappingProxyType({str(key): freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`, used when serializing attributes."""

    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class Resource:
    address: str
    type: str
    provider: str
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    name: str = ""
    module_address: str = ""

    def __hash__(self) -> int:
        return hash(self.address)

    def get(self, path: str, default: Any = MISSING) -> Any:
        return get_path(self.attributes, path, default)


def _index_key(value: Any) -> Optional[Hashable]:
    # bools hash equal to 0/1, keep them apart.
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (str, int, float)):
        return value
    return None


def _index_keys(value: Any) -> List[Hashable]:
    if value is MISSING or value is None:
        return []
    if isinstance(value, tuple):
        keys = [_index_key(item) for item in value]
        return [key for key in keys if key is not None]
    key = _index_key(value)
    return [] if key is None else [key]


JoinIndex = Mapping[Hashable, Tuple[Resource, ...]]


class ResourceGraph:
    """All resources of one evaluation run plus lookup indices.

    The resource set is fixed at construction. ``by_type`` is built eagerly;
    join indices keyed by ``(type, field_path)`` are built on first use and
    cached for the lifetime of the graph.
    """

    def __init__(self, resources: Iterable[Resource]) -> None:
        ordered: List[Resource] = []
        by_address: Dict[str, Resource] = {}
        by_type: Dict[str, List[Resource]] = {}
        for resource in resources:
            if resource.address in by_address:
                raise ValueError(f"duplicate resource address: {resource.address}")
            by_address[resource.address] = resource
            by_type.setdefault(resource.type, []).append(resource)
            ordered.append(resource)
        self._resources: Tuple[Resource, ...] = tuple(ordered)
        self._by_address: Mapping[str, Resource] = MappingProxyType(by_address)
        self._by_type: Mapping[str, Tuple[Resource, ...]] = MappingProxyType(
            {rtype: tuple(items) for rtype, items in by_type.items()}
        )
        self._join_indices: Dict[Tuple[str, Tuple[Any, ...]], JoinIndex] = {}
        self._join_lock = threading.Lock()
        self.join_index_builds = 0

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources)

    def __contains__(self, address: object) -> bool:
        return address in self._by_address

    @property
    def resources(self) -> Tuple[Resource, ...]:
        return self._resources

    @property
    def by_type(self) -> Mapping[str, Tuple[Resource, ...]]:
        return self._by_type

    def get(self, address: str) -> Optional[Resource]:
        return self._by_address.get(address)

    def of_type(self, resource_type: str) -> Tuple[Resource, ...]:
        return self._by_type.get(resource_type, ())

    def types(self) -> List[str]:
        return sorted(self._by_type)

    def providers(self) -> List[str]:
        return sorted({resource.provider for resource in self._resources if resource.provider})

    def join_index(self, resource_type: str, field_path: str) -> JoinIndex:
        """Return ``field value -> resources`` for resources of ``resource_type``."""

        key = (resource_type, parse_path(field_path))
        index = self._join_indices.get(key)
        if index is not None:
            return index
        with self._join_lock:
            index = self._join_indices.get(key)
            if index is None:
                index = self._build_join_index(resource_type, field_path)
                self._join_indices[key] = index
                self.join_index_builds += 1
        return index

    def lookup(self, resource_type: str, field_path: str, value: Any) -> Tuple[Resource, ...]:
        """Resources of ``resource_type`` whose ``field_path`` equals (or contains) ``value``."""

        index = self.join_index(resource_type, field_path)
        matches: List[Resource] = []
        seen = set()
        for key in _index_keys(freeze(value)):
            for resource in index.get(key, ()):
                if resource.address not in seen:
                    seen.add(resource.address)
                    matches.append(resource)
        return tuple(matches)

    def _build_join_index(self, resource_type: str, field_path: str) -> JoinIndex:
        buckets: Dict[Hashable, List[Resource]] = {}
        for resource in self.of_type(resource_type):
            for key in _index_keys(resource.get(field_path)):
                bucket = buckets.setdefault(key, [])
                if not bucket or bucket[-1] is not resource:
                    bucket.append(resource)
        logger.debug(
            "Built join index %s.%s with %d key(s)", resource_type, field_path, len(buckets)
        )
        return MappingProxyType({key: tuple(items) for key, items in buckets.items()})


__all__ = [
    "MISSING",
    "Resource",
    "ResourceGraph",
    "freeze",
    "get_path",
    "parse_path",
    "thaw",
]
