"""
Workflow handlers for signoff server.

This module provides handlers for creating, viewing and deciding
approval workflows. Business failures raised by the service propagate
to the error handler middleware, which maps them to status codes.
"""

import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aiohttp import web

    from signoff.workflows.service import ApprovalWorkflowService

from signoff.exceptions import BadRequestError, StorageError

logger = logging.getLogger("signoff.server.handlers.workflows")


def get_service(request: "web.Request") -> "ApprovalWorkflowService":
    """Return the workflow service of the application."""
    service = request.app.get("service")
    if service is None:
        raise StorageError("Workflow service not configured")
    return service


async def read_json(request: "web.Request", required: bool = True) -> dict[str, Any]:
    """
    Read a JSON object from the request body.

    Args:
        request: The incoming request.
        required: Reject an empty body when True.

    Raises:
        BadRequestError: If the body is not a JSON object.
    """
    if not request.can_read_body:
        if required:
            raise BadRequestError("Request body is required")
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise BadRequestError(f"Invalid JSON in request body: {e}") from e
    if not isinstance(body, dict):
        raise BadRequestError("Request body must be a JSON object")
    return body


async def create_workflow(request: "web.Request") -> "web.Response":
    """
    Create an approval workflow for a document.

    Request body:
        document_id: Document to approve (required)
        type: SEQUENTIAL or PARALLEL (required)
        steps: List of {"approver_id", "order"} (required)
        deadline: Optional ISO timestamp

    Returns:
        201 with the created workflow.
    """
    from aiohttp import web

    service = get_service(request)
    body = await read_json(request)

    for key in ("document_id", "type"):
        if not body.get(key):
            raise BadRequestError(f"Missing required field: {key}")
    if not isinstance(body.get("steps"), list):
        raise BadRequestError("Field 'steps' must be a list")

    workflow = service.create_workflow(
        document_id=body["document_id"],
        workflow_type=body["type"],
        steps=body["steps"],
        initiator_id=request["user_id"],
        deadline=body.get("deadline"),
    )

    return web.json_response({"workflow": workflow.to_dict()}, status=201)


async def list_workflows(request: "web.Request") -> "web.Response":
    """List workflows the caller initiated or approves."""
    from aiohttp import web

    workflows = get_service(request).list_workflows(request["user_id"])
    return web.json_response({
        "workflows": [w.to_dict() for w in workflows],
        "total": len(workflows),
    })


async def list_pending(request: "web.Request") -> "web.Response":
    """List the steps awaiting the caller's decision."""
    from aiohttp import web

    steps = get_service(request).list_pending_approvals(request["user_id"])
    return web.json_response({
        "steps": [s.to_dict() for s in steps],
        "total": len(steps),
    })


async def list_returned(request: "web.Request") -> "web.Response":
    """List the steps returned to the caller for revision."""
    from aiohttp import web

    steps = get_service(request).list_returned_steps(request["user_id"])
    return web.json_response({
        "steps": [s.to_dict() for s in steps],
        "total": len(steps),
    })


async def get_statistics(request: "web.Request") -> "web.Response":
    from aiohttp import web

    statistics = get_service(request).get_statistics()
    return web.json_response({"statistics": statistics.to_dict()})


async def get_workflow(request: "web.Request") -> "web.Response":
    """Get a workflow with its steps."""
    from aiohttp import web

    workflow = get_service(request).get_workflow(
        request.match_info["workflow_id"],
        request["user_id"],
    )
    return web.json_response({"workflow": workflow.to_dict()})


async def update_workflow(request: "web.Request") -> "web.Response":
    """
    Change the deadline of a workflow.

    Request body:
        deadline: ISO timestamp, or null to clear it (required)
    """
    from aiohttp import web

    service = get_service(request)
    body = await read_json(request)
    if "deadline" not in body:
        raise BadRequestError("Missing required field: deadline")

    workflow = service.update_workflow_deadline(
        request.match_info["workflow_id"],
        body["deadline"],
        request["user_id"],
    )
    return web.json_response({"workflow": workflow.to_dict()})


async def get_return_history(request: "web.Request") -> "web.Response":
    """List the returned and resubmitted steps of a workflow."""
    from aiohttp import web

    history = get_service(request).get_return_history(
        request.match_info["workflow_id"],
        request["user_id"],
    )
    return web.json_response({
        "history": [entry.to_dict() for entry in history],
        "total": len(history),
    })


async def update_step(request: "web.Request") -> "web.Response":
    """
    Decide a step.

    Request body:
        status: APPROVED, REJECTED, RETURNED or RESUBMITTED (required)
        comment: Optional comment
        rejection_reason: Required for REJECTED, optional reason for RETURNED
        return_to_user_id: Approver to return to, for RETURNED
        resubmission_explanation: Required for RESUBMITTED
        resubmit_to_user_id: Approver to resubmit to, for RESUBMITTED
    """
    from aiohttp import web

    service = get_service(request)
    body = await read_json(request)

    step = service.update_step_status(
        request.match_info["workflow_id"],
        request.match_info["step_id"],
        body,
        request["user_id"],
    )
    return web.json_response({"step": step.to_dict()})


async def mark_step_read(request: "web.Request") -> "web.Response":
    from aiohttp import web

    step = get_service(request).mark_step_as_read(
        request.match_info["workflow_id"],
        request.match_info["step_id"],
        request["user_id"],
    )
    return web.json_response({"step": step.to_dict()})


async def get_returnable_users(request: "web.Request") -> "web.Response":
    """List the steps the caller may return the document to."""
    from aiohttp import web

    targets = get_service(request).get_returnable_users(
        request.match_info["workflow_id"],
        request.match_info["step_id"],
        request["user_id"],
    )
    return web.json_response({
        "users": [t.to_dict() for t in targets],
        "total": len(targets),
    })


async def get_resubmission_target(request: "web.Request") -> "web.Response":
    """Get the approver who returned the step to the caller."""
    from aiohttp import web

    target = get_service(request).get_resubmission_target(
        request.match_info["workflow_id"],
        request.match_info["step_id"],
        request["user_id"],
    )
    return web.json_response({"target": target})


async def run_sweep(request: "web.Request") -> "web.Response":
    """Run the deadline sweeper once and report what it flagged."""
    from aiohttp import web

    result = get_service(request).sweep_overdue()
    logger.info(
        f"Sweep requested by {request['user_id']}: "
        f"{len(result.overdue_steps)} step(s), "
        f"{len(result.overdue_workflows)} workflow(s) overdue"
    )
    return web.json_response({"sweep": result.to_dict()})
