"""
Logging configuration for the orchestrator.

Health check requests are dropped from the uvicorn access log, and each
orchestrator module (supervisor, api, policy, ...) can run at its own level,
e.g. LOG_LEVELS="supervisor=DEBUG,ratelimit=WARNING".
"""

import logging
import logging.config
from typing import Any, Dict, Mapping, Optional

ROOT_LOGGER = "orchestrator"

HEALTH_PATHS = ("/health", "/healthz")

LEVEL_NAMES = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


class HealthCheckFilter(logging.Filter):
    """Filter to suppress health check endpoint logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter out health check requests from uvicorn access logs."""
        if record.name == "uvicorn.access":
            message = record.getMessage()
            if "GET" in message and any(path in message for path in HEALTH_PATHS):
                return False
        return True


def parse_module_levels(value: Optional[str]) -> Dict[str, str]:
    """
    Parse "module=LEVEL,module=LEVEL" into {"module": "LEVEL"}.

    Raises:
        ValueError: On a malformed entry or unknown level name
    """
    levels: Dict[str, str] = {}
    if not value:
        return levels
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        module, sep, level = entry.partition("=")
        module, level = module.strip(), level.strip().upper()
        if not sep or not module:
            raise ValueError(f"LOG_LEVELS entry must look like module=LEVEL, got {entry!r}")
        if level not in LEVEL_NAMES:
            raise ValueError(f"LOG_LEVELS has unknown level {level!r} for {module}")
        levels[module] = level
    return levels


def _module_logger_name(module: str) -> str:
    if module == ROOT_LOGGER or module.startswith(ROOT_LOGGER + "."):
        return module
    return f"{ROOT_LOGGER}.{module}"


def get_logging_config(
    level: str = "INFO", module_levels: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Build a dictConfig for the service and for uvicorn's log_config.

    Args:
        level: Level for the orchestrator loggers and root
        module_levels: Per-module overrides keyed by module name
    """
    uvicorn_logger = {"handlers": ["default"], "level": "INFO", "propagate": False}
    loggers: Dict[str, Any] = {
        "uvicorn": dict(uvicorn_logger),
        "uvicorn.error": dict(uvicorn_logger),
        "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
        ROOT_LOGGER: {"handlers": ["default"], "level": level, "propagate": False},
    }
    # Module loggers inherit the orchestrator handler
    for module, module_level in (module_levels or {}).items():
        loggers[_module_logger_name(module)] = {"level": module_level}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "health_check_filter": {"()": HealthCheckFilter},
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "access": {"format": "%(message)s"},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
                "filters": ["health_check_filter"],
            },
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["default"]},
    }
