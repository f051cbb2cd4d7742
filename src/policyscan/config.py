"""Run configuration resolved from ``POLICYSCAN_*`` environment variables."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple

from .aggregator import normalize_severity
from .constants import ENV_PREFIX, OUTPUT_FORMATS
from .env_flags import env_list, env_value, is_verbose
from .errors import ConfigError
from .renderer import format_timestamp


@dataclass(frozen=True)
class ScanConfig:
    severity_threshold: Optional[str] = None
    severity_filter: Optional[str] = None
    workers: int = 1
    timeout: Optional[float] = None
    environment: str = "local"
    disabled_controls: Tuple[str, ...] = ()
    enabled_controls: Tuple[str, ...] = ()
    output_format: str = "json"
    verbose: bool = False
    timestamp: Optional[str] = None

    def with_overrides(self, **overrides: Any) -> "ScanConfig":
        """Return a copy with every non-``None`` override applied and validated."""

        values = {key: value for key, value in overrides.items() if value is not None}
        for key in ("disabled_controls", "enabled_controls"):
            if key in values:
                values[key] = tuple(values[key])
        return _validated(replace(self, **values))


def load_config(environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> ScanConfig:
    """Build a :class:`ScanConfig` from the environment, then apply ``overrides``."""

    config = ScanConfig(
        severity_threshold=env_value(f"{ENV_PREFIX}SEVERITY_THRESHOLD", environ),
        severity_filter=env_value(f"{ENV_PREFIX}SEVERITY_FILTER", environ),
        workers=_parse_int(env_value(f"{ENV_PREFIX}WORKERS", environ), "workers", default=1),
        timeout=_parse_float(env_value(f"{ENV_PREFIX}TIMEOUT", environ), "timeout"),
        environment=env_value(f"{ENV_PREFIX}ENVIRONMENT", environ) or "local",
        disabled_controls=tuple(env_list(f"{ENV_PREFIX}DISABLED_CONTROLS", environ)),
        enabled_controls=tuple(env_list(f"{ENV_PREFIX}ENABLED_CONTROLS", environ)),
        output_format=(env_value(f"{ENV_PREFIX}OUTPUT_FORMAT", environ) or "json").lower(),
        verbose=is_verbose(environ),
        timestamp=_pinned_timestamp(environ),
    )
    return config.with_overrides(**overrides)


def _validated(config: ScanConfig) -> ScanConfig:
    if config.workers < 1:
        raise ConfigError(f"workers must be >= 1 (got {config.workers})")
    if config.timeout is not None and config.timeout <= 0:
        raise ConfigError(f"timeout must be positive (got {config.timeout})")
    output_format = config.output_format.lower()
    if output_format not in OUTPUT_FORMATS:
        raise ConfigError(f"output format {config.output_format!r} is not one of {', '.join(OUTPUT_FORMATS)}")
    return replace(
        config,
        severity_threshold=normalize_severity(config.severity_threshold, label="severity threshold"),
        severity_filter=normalize_severity(config.severity_filter, label="severity filter"),
        output_format=output_format,
    )


def _parse_int(value: Optional[str], label: str, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{label} must be an integer (got {value!r})") from None


def _parse_float(value: Optional[str], label: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{label} must be a number of seconds (got {value!r})") from None


def _pinned_timestamp(environ: Optional[Mapping[str, str]]) -> Optional[str]:
    """``POLICYSCAN_TIMESTAMP`` (ISO-8601), else ``SOURCE_DATE_EPOCH`` (seconds)."""

    value = env_value(f"{ENV_PREFIX}TIMESTAMP", environ)
    if value is not None:
        try:
            moment = datetime.fromisoformat(value[:-1] + "+00:00" if value.endswith("Z") else value)
        except ValueError:
            raise ConfigError(f"timestamp must be ISO-8601 (got {value!r})") from None
        return format_timestamp(moment)
    epoch = env_value("SOURCE_DATE_EPOCH", environ)
    if epoch is None:
        return None
    try:
        return format_timestamp(datetime.fromtimestamp(int(epoch), tz=timezone.utc))
    except (ValueError, OverflowError, OSError):
        raise ConfigError(f"SOURCE_DATE_EPOCH must be integer seconds (got {epoch!r})") from None


__all__ = ["ScanConfig", "load_config"]
