from __future__ import annotations

import os
from typing import List, Mapping, Optional

_TRUTHY = {"1", "true", "yes", "on"}
_FALSEY = {"0", "false", "no", "off"}


def env_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY


def env_falsey(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _FALSEY


def env_value(name: str, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Stripped value of ``name``; blank values count as unset."""

    source = os.environ if environ is None else environ
    value = source.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def env_list(name: str, environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Comma or whitespace separated ids, order kept, blanks dropped."""

    value = env_value(name, environ)
    if value is None:
        return []
    tokens = value.replace(",", " ").split()
    return [token for token in tokens if token]


def is_verbose(environ: Optional[Mapping[str, str]] = None) -> bool:
    return env_truthy(env_value("POLICYSCAN_VERBOSE", environ))
