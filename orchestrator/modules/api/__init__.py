"""
API Module - Black Box Interface

Purpose: HTTP routing and module orchestration
Interface: REST and SSE endpoints under /v1
Hidden: Module wiring, request handling, error responses

The API module only orchestrates - it contains no business logic.
All logic is delegated to appropriate modules.
"""

from .dependencies import OrchestratorServices, build_services, get_services
from .models import (
    ErrorResponse,
    EventsMetaResponse,
    HealthResponse,
    JobListResponse,
    JobStatusResponse,
    JobSummary,
    RunRequest,
    RunResponse,
)
from .routes import router

__all__ = [
    "ErrorResponse",
    "EventsMetaResponse",
    "HealthResponse",
    "JobListResponse",
    "JobStatusResponse",
    "JobSummary",
    "OrchestratorServices",
    "RunRequest",
    "RunResponse",
    "build_services",
    "get_services",
    "router",
]
