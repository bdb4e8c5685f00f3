"""
Agent configuration.

Defaults live here as module constants; every value can be overridden through
``AAR_``-prefixed environment variables or CLI flags.
"""

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

# ---------------- Constants ----------------

# Poll cadence (seconds). Healthy: permission granted, scanning every cycle.
# Retry: permission missing, slower so the prompt is not hammered.
HEALTHY_INTERVAL = 5.0
RETRY_INTERVAL = 10.0

# Sleep jitter, as a fraction of the interval (±)
INTERVAL_TOLERANCE = 0.2

# Tree traversal limit
MAX_SCAN_DEPTH = 64

# Background priority for the agent process
NICENESS = 10

NOTIFICATION_CENTER_BUNDLE_ID = "com.apple.notificationcenterui"
SERVICE_LABEL = "io.github.accept-airplay.agent"

ENV_PREFIX = "AAR_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when a configuration value cannot be parsed."""


@dataclass(frozen=True)
class AgentConfig:
    healthy_interval: float = HEALTHY_INTERVAL
    retry_interval: float = RETRY_INTERVAL
    interval_tolerance: float = INTERVAL_TOLERANCE
    max_scan_depth: int = MAX_SCAN_DEPTH
    max_permission_attempts: Optional[int] = None
    niceness: Optional[int] = NICENESS
    service_label: str = SERVICE_LABEL
    register_service: bool = True
    notification_center_bundle_id: str = NOTIFICATION_CENTER_BUNDLE_ID
    log_level: str = "INFO"

    def __post_init__(self):
        if self.healthy_interval <= 0 or self.retry_interval <= 0:
            raise ConfigError("poll intervals must be positive")
        if not 0 <= self.interval_tolerance < 1:
            raise ConfigError("interval tolerance must be in [0, 1)")
        if self.max_scan_depth < 1:
            raise ConfigError("max scan depth must be at least 1")
        if self.max_permission_attempts is not None and self.max_permission_attempts < 1:
            raise ConfigError("max permission attempts must be at least 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AgentConfig":
        """Build a config from ``AAR_*`` environment variables."""
        env = os.environ if environ is None else environ
        values = {}

        def raw(name):
            v = env.get(ENV_PREFIX + name)
            if v is None or v.strip() == "":
                return None
            return v.strip()

        for name, field in (
            ("HEALTHY_INTERVAL", "healthy_interval"),
            ("RETRY_INTERVAL", "retry_interval"),
            ("INTERVAL_TOLERANCE", "interval_tolerance"),
        ):
            v = raw(name)
            if v is not None:
                values[field] = _parse_float(name, v)

        for name, field in (
            ("MAX_SCAN_DEPTH", "max_scan_depth"),
            ("MAX_PERMISSION_ATTEMPTS", "max_permission_attempts"),
        ):
            v = raw(name)
            if v is not None:
                values[field] = _parse_int(name, v)

        v = raw("NICENESS")
        if v is not None:
            values["niceness"] = None if v.lower() == "none" else _parse_int("NICENESS", v)

        v = raw("REGISTER_SERVICE")
        if v is not None:
            values["register_service"] = _parse_bool("REGISTER_SERVICE", v)

        v = raw("SERVICE_LABEL")
        if v is not None:
            values["service_label"] = v

        v = raw("LOG_LEVEL")
        if v is not None:
            values["log_level"] = v.upper()

        return cls(**values)

    def with_overrides(self, **changes) -> "AgentConfig":
        """Return a copy with the non-``None`` overrides applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _parse_float(name, value):
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name}: expected a number, got {value!r}") from None


def _parse_int(name, value):
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name}: expected an integer, got {value!r}") from None


def _parse_bool(name, value):
    v = value.lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigError(f"{ENV_PREFIX}{name}: expected a boolean, got {value!r}")
