"""
Compose Orchestrator - Constrained command execution with live output streaming

Lets an operator run a restricted set of `docker compose` commands against a
local workspace, follow their output live, and reconnect safely.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- policy: Command tokenizing and allow-list validation
- jobs: Job records and the in-memory job store
- broadcast: Bounded per-job output buffer with live fan-out
- supervisor: Queued, serialized subprocess execution
- streaming: Server-Sent Events stream over a job's output
- correlation: Active run tracking for stale reconnect detection
- auth: Static bearer token authentication
- ratelimit: Per-client request ceiling
- api: REST API models and routes
"""

__version__ = "1.0.0"
