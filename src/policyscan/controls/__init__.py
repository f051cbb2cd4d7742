"""Control registry and the built-in control pack."""

from __future__ import annotations

from typing import List, Type

from ..catalog import ControlCatalog
from .base import BuiltinControl

_registry: List[Type[BuiltinControl]] = []


def register(control_cls: Type[BuiltinControl]) -> Type[BuiltinControl]:
    _registry.append(control_cls)
    return control_cls


def get_all_controls() -> List[Type[BuiltinControl]]:
    """Return the ordered list of control classes registered with the pack."""

    return list(_registry)


def build_default_catalog() -> ControlCatalog:
    """Fresh catalog of every built-in control; toggles never leak between runs."""

    return ControlCatalog(control_cls.to_control() for control_cls in get_all_controls())


# Ensure built-in controls register with the decorator at import time.
from . import identity as _identity  # noqa: F401,E402
from . import networking as _networking  # noqa: F401,E402
from . import data as _data  # noqa: F401,E402
from . import audit_logging as _audit_logging  # noqa: F401,E402
from . import governance as _governance  # noqa: F401,E402
