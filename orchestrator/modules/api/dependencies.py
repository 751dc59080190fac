"""
Module wiring and FastAPI dependency helpers.

The composition root builds one OrchestratorServices bundle and stores it on
app.state; routes reach the modules only through the helpers below.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from ...config import ConfigProvider, ExecutionConfig
from ..auth import BearerTokenAuth
from ..correlation import RunCorrelationGuard
from ..jobs import JobStore
from ..policy import CommandPolicy, PolicySettings
from ..ratelimit import SlidingWindowRateLimiter
from ..supervisor import ExecutionSupervisor

logger = logging.getLogger("orchestrator.api")


@dataclass
class OrchestratorServices:
    """Every module instance the API talks to."""

    execution: ExecutionConfig
    store: JobStore
    policy: CommandPolicy
    supervisor: ExecutionSupervisor
    guard: RunCorrelationGuard
    auth: BearerTokenAuth
    rate_limiter: SlidingWindowRateLimiter


def build_services(config_provider: ConfigProvider) -> OrchestratorServices:
    """
    Build module instances from configuration.

    Logic:
    1. Load the command policy (YAML overrides if configured)
    2. Create the job store and the supervisor that owns it
    3. Create guard, auth and rate limiter
    """
    execution = config_provider.get_execution_config()
    auth_config = config_provider.get_auth_config()
    rate_config = config_provider.get_rate_limit_config()

    settings = PolicySettings.load(execution.policy_file) if execution.policy_file else None
    policy = CommandPolicy(
        workspace=execution.workspace,
        default_project_dir=execution.default_project_dir,
        settings=settings,
    )
    store = JobStore(max_jobs=execution.max_retained_jobs)
    supervisor = ExecutionSupervisor(store, policy.build, execution)

    logger.info(
        f"Workspace: {execution.workspace}, "
        f"timeout: {execution.command_timeout_seconds:g}s, "
        f"concurrency: {execution.concurrency}"
    )

    return OrchestratorServices(
        execution=execution,
        store=store,
        policy=policy,
        supervisor=supervisor,
        guard=RunCorrelationGuard(request_ttl=execution.events_meta_ttl_seconds),
        auth=BearerTokenAuth(auth_config.api_key),
        rate_limiter=SlidingWindowRateLimiter(
            max_requests=rate_config.max_requests,
            window_seconds=rate_config.window_seconds,
        ),
    )


def get_services(request: Request) -> OrchestratorServices:
    services: Optional[OrchestratorServices] = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(503, "Service not initialized")
    return services


async def verify_bearer(
    request: Request,
    authorization: Optional[str] = Header(None, description="Bearer token"),
) -> str:
    """Verify the bearer token and return the caller identity."""
    services = get_services(request)
    result = services.auth.authenticate(authorization)
    if not result.ok:
        raise HTTPException(
            status_code=401,
            detail=f"Authentication failed: {result.error}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return result.identity


async def enforce_rate_limit(request: Request) -> None:
    """Count the request against the caller's window. Raises RateLimitExceededError."""
    services = get_services(request)
    client_id = request.client.host if request.client else "unknown"
    services.rate_limiter.check(client_id)
