"""Global pytest configuration for policyscan tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
_SRC_ROOT = _REPO_ROOT / "src"

# Allow running the suite from a checkout without an editable install, and
# make `tests.helpers` importable.
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))
if str(_SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(_SRC_ROOT))

from policyscan.controls import build_default_catalog  # noqa: E402

_POLICYSCAN_ENV = (
    "POLICYSCAN_SEVERITY_THRESHOLD",
    "POLICYSCAN_SEVERITY_FILTER",
    "POLICYSCAN_WORKERS",
    "POLICYSCAN_TIMEOUT",
    "POLICYSCAN_ENVIRONMENT",
    "POLICYSCAN_DISABLED_CONTROLS",
    "POLICYSCAN_ENABLED_CONTROLS",
    "POLICYSCAN_OUTPUT_FORMAT",
    "POLICYSCAN_VERBOSE",
    "POLICYSCAN_TIMESTAMP",
    "SOURCE_DATE_EPOCH",
)


@pytest.fixture(autouse=True)
def _isolated_policyscan_env(monkeypatch):
    """Keep a developer's POLICYSCAN_* settings and SOURCE_DATE_EPOCH out of every test."""

    for name in _POLICYSCAN_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def catalog():
    """A fresh built-in catalog; toggles made by one test never reach another."""

    return build_default_catalog()


@pytest.fixture(autouse=True)
def _reset_policyscan_logging():
    """Drop handlers the CLI attaches so they never outlive a CliRunner stream."""

    yield
    package_logger = logging.getLogger("policyscan")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
