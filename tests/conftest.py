"""
Shared pytest fixtures for orchestrator tests.

This module provides common fixtures including:
- A temporary workspace with a compose project directory
- A python builder that runs `sys.executable -c <command>` in place of docker
- Execution configs with short timeouts
- FastAPI apps wired from a static config provider
"""

import os
import sys
from typing import Any, Dict, List

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orchestrator.config import (
    APIConfig,
    AuthConfig,
    ExecutionConfig,
    RateLimitConfig,
    StaticConfigProvider,
)
from orchestrator.modules.policy import CommandRejectedError, SpawnSpec

API_KEY = "test-key-123"


class EventCollector:
    """Sink that records every event it receives."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def __call__(self, event: Dict[str, Any]) -> None:
        self.events.append(event)

    @property
    def lines(self) -> List[str]:
        return [e["line"] for e in self.events if e["type"] == "line"]

    @property
    def seqs(self) -> List[int]:
        return [e["seq"] for e in self.events if e["type"] == "line"]


@pytest.fixture
def collector():
    return EventCollector()


@pytest.fixture
def workspace(tmp_path):
    """Workspace root containing the default `compose` project directory."""
    root = tmp_path / "workspace"
    (root / "compose").mkdir(parents=True)
    return str(root)


@pytest.fixture
def python_builder(workspace):
    """
    Builder that treats the command text as a python program.

    Commands starting with "reject:" are refused like a policy rejection.
    """

    def build(text: str) -> SpawnSpec:
        if text.startswith("reject:"):
            raise CommandRejectedError(text[len("reject:"):].strip())
        return SpawnSpec(program=sys.executable, args=("-u", "-c", text), working_directory=workspace)

    return build


@pytest.fixture
def execution_config(workspace):
    return ExecutionConfig(
        workspace=workspace,
        max_output_lines=100,
        command_timeout_seconds=10.0,
        terminate_grace_seconds=1.0,
        max_retained_jobs=50,
    )


@pytest.fixture
def config_provider(execution_config):
    return StaticConfigProvider(
        api=APIConfig(
            port=4000,
            host="127.0.0.1",
            debug=False,
            log_level="DEBUG",
            cors_origins=["http://localhost:3001"],
        ),
        auth=AuthConfig(api_key=API_KEY),
        execution=execution_config,
        rate_limit=RateLimitConfig(max_requests=1000, window_seconds=60.0),
    )


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_KEY}"}
