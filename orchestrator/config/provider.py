"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from ..logging_config import parse_module_levels


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    """Read an integer environment variable, failing loudly on bad values."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    """Read a float environment variable, failing loudly on bad values."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass
class APIConfig:
    """API configuration."""
    port: int
    host: str
    debug: bool
    log_level: str
    cors_origins: List[str]
    module_log_levels: Dict[str, str] = field(default_factory=dict)


@dataclass
class AuthConfig:
    """Authentication configuration."""
    api_key: Optional[str]

    @property
    def require_auth(self) -> bool:
        """Auth is only enforced when a key is configured."""
        return bool(self.api_key)


@dataclass
class ExecutionConfig:
    """Command execution configuration."""
    workspace: str = "/workspace"
    default_project_dir: str = "compose"
    max_output_lines: int = 20000
    command_timeout_seconds: float = 1800.0
    terminate_grace_seconds: float = 10.0
    concurrency: int = 1
    max_retained_jobs: int = 500
    status_tail_lines: int = 200
    events_meta_ttl_seconds: float = 60.0
    policy_file: Optional[str] = None
    extra_env: dict = field(
        default_factory=lambda: {"DOCKER_BUILDKIT": "1", "COMPOSE_DOCKER_CLI_BUILD": "1"}
    )


@dataclass
class RateLimitConfig:
    """Request rate limiting configuration."""
    max_requests: int = 60
    window_seconds: float = 60.0

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...

    def get_auth_config(self) -> AuthConfig:
        """Get authentication configuration."""
        ...

    def get_execution_config(self) -> ExecutionConfig:
        """Get command execution configuration."""
        ...

    def get_rate_limit_config(self) -> RateLimitConfig:
        """Get rate limit configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        origins = os.getenv("CORS_ORIGIN", "http://localhost:3001")
        return APIConfig(
            port=_env_int("PORT", 4000, minimum=1),
            host=os.getenv("HOST", "0.0.0.0"),
            debug=os.getenv("API_DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            module_log_levels=parse_module_levels(os.getenv("LOG_LEVELS")),
        )

    def get_auth_config(self) -> AuthConfig:
        """Get authentication configuration from environment variables."""
        return AuthConfig(api_key=os.getenv("ORCH_API_KEY") or None)

    def get_execution_config(self) -> ExecutionConfig:
        """Get execution configuration from environment variables."""
        return ExecutionConfig(
            workspace=os.getenv("WORKSPACE", "/workspace"),
            default_project_dir=os.getenv("DEFAULT_PROJECT_DIR", "compose"),
            max_output_lines=_env_int("MAX_OUTPUT_LINES", 20000, minimum=1),
            command_timeout_seconds=_env_float("COMMAND_TIMEOUT_SECONDS", 1800.0, minimum=1.0),
            terminate_grace_seconds=_env_float("TERMINATE_GRACE_SECONDS", 10.0),
            concurrency=_env_int("QUEUE_CONCURRENCY", 1, minimum=1),
            max_retained_jobs=_env_int("MAX_RETAINED_JOBS", 500, minimum=1),
            status_tail_lines=_env_int("STATUS_TAIL_LINES", 200, minimum=1),
            events_meta_ttl_seconds=_env_float("EVENTS_META_TTL_SECONDS", 60.0, minimum=1.0),
            policy_file=os.getenv("COMMAND_POLICY_FILE") or None,
        )

    def get_rate_limit_config(self) -> RateLimitConfig:
        """Get rate limit configuration from environment variables."""
        return RateLimitConfig(max_requests=_env_int("RATE_LIMIT_PER_MINUTE", 60))


@dataclass
class StaticConfigProvider:
    """Fixed configuration, used for tests and embedding."""
    api: APIConfig = field(
        default_factory=lambda: APIConfig(
            port=4000, host="127.0.0.1", debug=False, log_level="INFO", cors_origins=[]
        )
    )
    auth: AuthConfig = field(default_factory=lambda: AuthConfig(api_key=None))
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    def get_api_config(self) -> APIConfig:
        return self.api

    def get_auth_config(self) -> AuthConfig:
        return self.auth

    def get_execution_config(self) -> ExecutionConfig:
        return self.execution

    def get_rate_limit_config(self) -> RateLimitConfig:
        return self.rate_limit
