"""
signoff Command Line Interface.

Commands:
    init: Initialize a new signoff database and configuration
    status: System status and health checks
    directory: Register users and documents
    workflow: Create, inspect and decide approval workflows
    sweep: Flag overdue steps and workflows
    serve: Run the HTTP API server

Usage:
    signoff --help
    signoff init --path ./approvals
    signoff workflow pending --user alice
"""

from signoff.cli.main import main

__all__ = ["main"]
