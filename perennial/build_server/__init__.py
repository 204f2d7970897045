"""
perennial.build_server - Queued build and deploy server.

Accepts build requests over HTTP, runs them one at a time through the
BuildOrchestrator, and emails the outcome.
"""

from perennial.build_server.config import (
    BuildServerConfig,
    load_build_server_config,
)
from perennial.build_server.task import BuildTask
from perennial.build_server.orchestrator import BuildOrchestrator, TaskOutcome
from perennial.build_server.queue import PersistentQueue, TaskQueue
from perennial.build_server.server import BuildServer

__all__ = [
    # Configuration
    "BuildServerConfig",
    "load_build_server_config",
    # Tasks
    "BuildTask",
    "TaskOutcome",
    # Orchestration
    "BuildOrchestrator",
    "PersistentQueue",
    "TaskQueue",
    "BuildServer",
]
