"""
Supervisor Module - Black Box Interface

Purpose: Run accepted jobs as subprocesses, one worker slot at a time
Interface: submit(), start(), shutdown(), join(), queue_depth
Hidden: Worker pool, process spawning, output reading, timeout escalation

Can be replaced with a different executor (containers, remote hosts) as long
as it drives jobs through the same lifecycle.
"""

from .supervisor import CommandBuilder, ExecutionSupervisor

__all__ = ["CommandBuilder", "ExecutionSupervisor"]
