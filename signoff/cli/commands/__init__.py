"""
CLI command modules for signoff.

Modules:
    init: Database and configuration initialization
    status: System status and health checks
    directory: User and document registration
    workflow: Approval workflow management
    sweep: Deadline sweeping
    serve: HTTP API server
"""

from signoff.cli.commands import (
    directory,
    init,
    serve,
    status,
    sweep,
    workflow,
)

__all__ = ["init", "status", "directory", "workflow", "sweep", "serve"]
