"""Environment-based configuration loading.

Every setting is read from a ``CROSSVIEW_*`` environment variable. Numeric
values are clamped to a safe range instead of rejected; unknown enum values
raise ``ValueError`` so misconfiguration fails at startup.

    CROSSVIEW_LOG_LEVEL                 debug|info|warning|error   (info)
    CROSSVIEW_LOG_FORMAT                json|console               (json)
    CROSSVIEW_API_HOST                                             (0.0.0.0)
    CROSSVIEW_API_PORT                  1024-65535                 (8080)
    CROSSVIEW_REPOSITORY_MODE           cluster|api                (cluster)
    CROSSVIEW_API_URL                                              (http://localhost:8080)
    CROSSVIEW_REQUEST_TIMEOUT           1-300 s                    (30)
    CROSSVIEW_DEFINITION_CACHE_TTL      0-86400 s                  (300)
    CROSSVIEW_MANAGED_CACHE_TTL         0-86400 s                  (600)
    CROSSVIEW_DISCOVERY_ENABLED         bool                       (true)
    CROSSVIEW_TYPE_QUERY_TIMEOUT        0.5-120 s                  (5)
    CROSSVIEW_CLAIMS_PAGE_SIZE          1-5000                     (500)
"""

from __future__ import annotations

import os

from crossview.models.config import (
    ApiConfig,
    CacheConfig,
    CrossviewConfig,
    LogConfig,
    QueryConfig,
    RepositoryConfig,
)

_PREFIX = "CROSSVIEW_"
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off", ""})
_LOG_LEVELS = frozenset({"debug", "info", "warning", "error", "critical"})


def load_config() -> CrossviewConfig:
    """Build a :class:`CrossviewConfig` from the current environment."""
    log_level = _env_str("LOG_LEVEL", "info").lower()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"{_PREFIX}LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}, got: {log_level!r}")

    log_format = _env_str("LOG_FORMAT", "json").lower()
    if log_format not in ("json", "console"):
        raise ValueError(f"{_PREFIX}LOG_FORMAT must be 'json' or 'console', got: {log_format!r}")

    mode = _env_str("REPOSITORY_MODE", "cluster").lower()
    if mode not in ("cluster", "api"):
        raise ValueError(f"{_PREFIX}REPOSITORY_MODE must be 'cluster' or 'api', got: {mode!r}")

    return CrossviewConfig(
        log=LogConfig(level=log_level, format=log_format),  # type: ignore[arg-type]
        api=ApiConfig(
            host=_env_str("API_HOST", "0.0.0.0"),
            port=_env_int("API_PORT", 8080, 1024, 65535),
        ),
        repository=RepositoryConfig(
            mode=mode,  # type: ignore[arg-type]
            api_url=_env_str("API_URL", "http://localhost:8080"),
            request_timeout_seconds=_env_float("REQUEST_TIMEOUT", 30.0, 1.0, 300.0),
        ),
        cache=CacheConfig(
            definition_ttl_seconds=_env_int("DEFINITION_CACHE_TTL", 300, 0, 86_400),
            managed_ttl_seconds=_env_int("MANAGED_CACHE_TTL", 600, 0, 86_400),
        ),
        query=QueryConfig(
            discovery_enabled=_env_bool("DISCOVERY_ENABLED", True),
            type_timeout_seconds=_env_float("TYPE_QUERY_TIMEOUT", 5.0, 0.5, 120.0),
            claims_page_size=_env_int("CLAIMS_PAGE_SIZE", 500, 1, 5000),
        ),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(_PREFIX + name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(_PREFIX + name)
    if value is None:
        return default
    normalised = value.strip().lower()
    if normalised in _TRUTHY:
        return True
    if normalised in _FALSY:
        return False
    raise ValueError(f"{_PREFIX}{name} must be a boolean, got: {value!r}")


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    value = os.environ.get(_PREFIX + name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError as err:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got: {value!r}") from err
    return max(minimum, min(maximum, parsed))


def _env_float(name: str, default: float, minimum: float, maximum: float) -> float:
    value = os.environ.get(_PREFIX + name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError as err:
        raise ValueError(f"{_PREFIX}{name} must be a number, got: {value!r}") from err
    return max(minimum, min(maximum, parsed))
