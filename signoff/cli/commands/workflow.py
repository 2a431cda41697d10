"""
Workflow commands for signoff CLI.

This module implements the 'signoff workflow' commands for creating
and deciding approval workflows. Every command acts as the user given
with --user.

Usage:
    signoff workflow create DOCUMENT_ID --user U --type SEQUENTIAL --step A --step B
    signoff workflow list --user U
    signoff workflow show WORKFLOW_ID --user U
    signoff workflow decide WORKFLOW_ID STEP_ID --user U --status APPROVED
    signoff workflow pending --user U
    signoff workflow returned --user U
    signoff workflow returnable WORKFLOW_ID STEP_ID --user U
    signoff workflow resubmission-target WORKFLOW_ID STEP_ID --user U
    signoff workflow history WORKFLOW_ID --user U
    signoff workflow mark-read WORKFLOW_ID STEP_ID --user U
    signoff workflow set-deadline WORKFLOW_ID --user U [--deadline ISO | --clear]
    signoff workflow stats
"""

import argparse
from typing import TYPE_CHECKING, Any

from signoff.exceptions import BadRequestError

if TYPE_CHECKING:
    from signoff.cli.main import CLIContext
    from signoff.workflows.models import AssignedStep, Workflow


DECISIONS = ["APPROVED", "REJECTED", "RETURNED", "RESUBMITTED"]


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """
    Register the workflow command with the parser.

    Args:
        subparsers: Subparsers action to add command to.
    """
    parser = subparsers.add_parser(
        "workflow",
        help="Manage approval workflows",
        description="Create, inspect and decide document approval workflows.",
    )

    workflow_subparsers = parser.add_subparsers(
        dest="workflow_command",
        help="Workflow command to execute",
    )

    def add_user(p: argparse.ArgumentParser) -> None:
        p.add_argument("--user", "-u", required=True, help="Acting user ID")

    def add_step_ids(p: argparse.ArgumentParser) -> None:
        p.add_argument("workflow_id", help="Workflow ID")
        p.add_argument("step_id", help="Step ID")

    # workflow create
    create_parser = workflow_subparsers.add_parser(
        "create",
        help="Start an approval workflow for a document",
        description=(
            "Start an approval workflow. Steps are given as APPROVER or "
            "APPROVER:ORDER; without an order, sequential steps are numbered "
            "in the given order and parallel steps get order 1."
        ),
    )
    create_parser.add_argument("document_id", help="Document ID")
    add_user(create_parser)
    create_parser.add_argument(
        "--type",
        "-t",
        dest="workflow_type",
        choices=["SEQUENTIAL", "PARALLEL"],
        default="SEQUENTIAL",
        help="Workflow type (default: SEQUENTIAL)",
    )
    create_parser.add_argument(
        "--step",
        "-s",
        dest="steps",
        action="append",
        default=[],
        metavar="APPROVER[:ORDER]",
        help="Approval step (repeatable)",
    )
    create_parser.add_argument("--deadline", help="Overall deadline (ISO 8601)")
    create_parser.set_defaults(func=run_workflow_create)

    # workflow list
    list_parser = workflow_subparsers.add_parser(
        "list",
        help="List workflows you initiated or approve",
    )
    add_user(list_parser)
    list_parser.set_defaults(func=run_workflow_list)

    # workflow show
    show_parser = workflow_subparsers.add_parser("show", help="Show a workflow")
    show_parser.add_argument("workflow_id", help="Workflow ID")
    add_user(show_parser)
    show_parser.set_defaults(func=run_workflow_show)

    # workflow decide
    decide_parser = workflow_subparsers.add_parser(
        "decide",
        help="Approve, reject, return or resubmit a step",
    )
    add_step_ids(decide_parser)
    add_user(decide_parser)
    decide_parser.add_argument(
        "--status",
        required=True,
        type=str.upper,
        choices=DECISIONS,
        help="Decision",
    )
    decide_parser.add_argument("--comment", help="Comment")
    decide_parser.add_argument("--reason", help="Reason for a rejection or return")
    decide_parser.add_argument("--return-to", help="Approver to return the document to")
    decide_parser.add_argument("--explanation", help="Explanation for a resubmission")
    decide_parser.add_argument("--resubmit-to", help="Approver to resubmit the document to")
    decide_parser.set_defaults(func=run_workflow_decide)

    # workflow pending
    pending_parser = workflow_subparsers.add_parser(
        "pending",
        help="List steps awaiting your decision",
    )
    add_user(pending_parser)
    pending_parser.set_defaults(func=run_workflow_pending)

    # workflow returned
    returned_parser = workflow_subparsers.add_parser(
        "returned",
        help="List steps returned to you for revision",
    )
    add_user(returned_parser)
    returned_parser.set_defaults(func=run_workflow_returned)

    # workflow returnable
    returnable_parser = workflow_subparsers.add_parser(
        "returnable",
        help="List approvers a step may be returned to",
    )
    add_step_ids(returnable_parser)
    add_user(returnable_parser)
    returnable_parser.set_defaults(func=run_workflow_returnable)

    # workflow resubmission-target
    target_parser = workflow_subparsers.add_parser(
        "resubmission-target",
        help="Show who returned a step to you",
    )
    add_step_ids(target_parser)
    add_user(target_parser)
    target_parser.set_defaults(func=run_workflow_resubmission_target)

    # workflow history
    history_parser = workflow_subparsers.add_parser(
        "history",
        help="Show the return and resubmission history",
    )
    history_parser.add_argument("workflow_id", help="Workflow ID")
    add_user(history_parser)
    history_parser.set_defaults(func=run_workflow_history)

    # workflow mark-read
    read_parser = workflow_subparsers.add_parser(
        "mark-read",
        help="Mark a step as read",
    )
    add_step_ids(read_parser)
    add_user(read_parser)
    read_parser.set_defaults(func=run_workflow_mark_read)

    # workflow set-deadline
    deadline_parser = workflow_subparsers.add_parser(
        "set-deadline",
        help="Change or clear the workflow deadline",
    )
    deadline_parser.add_argument("workflow_id", help="Workflow ID")
    add_user(deadline_parser)
    deadline_group = deadline_parser.add_mutually_exclusive_group(required=True)
    deadline_group.add_argument("--deadline", help="New deadline (ISO 8601)")
    deadline_group.add_argument("--clear", action="store_true", help="Remove the deadline")
    deadline_parser.set_defaults(func=run_workflow_set_deadline)

    # workflow stats
    stats_parser = workflow_subparsers.add_parser(
        "stats",
        help="Show workflow statistics",
    )
    stats_parser.set_defaults(func=run_workflow_stats)

    parser.set_defaults(func=run_workflow)


def run_workflow(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute workflow command (shows help if no subcommand)."""
    from signoff.cli.main import EXIT_ERROR

    ctx.print_error("No workflow command specified. Use --help for usage.")
    return EXIT_ERROR


def run_workflow_create(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow create command."""
    from signoff.cli.main import EXIT_SUCCESS

    steps = _parse_steps(args.steps, args.workflow_type)
    workflow = ctx.service.create_workflow(
        document_id=args.document_id,
        workflow_type=args.workflow_type,
        steps=steps,
        initiator_id=args.user,
        deadline=args.deadline,
    )

    if ctx.output_format == "table":
        ctx.print(f"Created {workflow.workflow_type.value} workflow: {workflow.id}")
        _print_workflow(workflow, ctx)
    else:
        ctx.emit(workflow.to_dict())
    return EXIT_SUCCESS


def run_workflow_list(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow list command."""
    from signoff.cli.formatters import TableFormatter
    from signoff.cli.main import EXIT_SUCCESS

    workflows = ctx.service.list_workflows(args.user)

    if ctx.output_format != "table":
        ctx.emit([w.to_dict() for w in workflows])
    elif not workflows:
        ctx.print("No workflows found.")
    else:
        ctx.print(
            TableFormatter.format_table(
                ["ID", "Document", "Type", "Status", "Steps", "Deadline"],
                [
                    [
                        w.id,
                        w.document_id,
                        w.workflow_type.value,
                        w.status.value,
                        len(w.steps),
                        w.deadline.isoformat() if w.deadline else "",
                    ]
                    for w in workflows
                ],
            )
        )
        ctx.print("")
        ctx.print(f"Total: {len(workflows)} workflow(s)")
    return EXIT_SUCCESS


def run_workflow_show(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow show command."""
    from signoff.cli.main import EXIT_SUCCESS

    workflow = ctx.service.get_workflow(args.workflow_id, args.user)

    if ctx.output_format == "table":
        ctx.print(f"Workflow: {workflow.id}")
        _print_workflow(workflow, ctx)
    else:
        ctx.emit(workflow.to_dict())
    return EXIT_SUCCESS


def run_workflow_decide(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow decide command."""
    from signoff.cli.main import EXIT_SUCCESS

    update = {
        "status": args.status,
        "comment": args.comment,
        "rejection_reason": args.reason,
        "return_to_user_id": args.return_to,
        "resubmission_explanation": args.explanation,
        "resubmit_to_user_id": args.resubmit_to,
    }
    step = ctx.service.update_step_status(args.workflow_id, args.step_id, update, args.user)

    if ctx.output_format == "table":
        if args.status == "RETURNED":
            ctx.print(f"Step {step.id} returned to step {step.return_to_step_id} and reopened")
        else:
            ctx.print(f"Step {step.id} is now {step.status.value}")
        workflow = ctx.service.get_workflow(args.workflow_id, args.user)
        ctx.print(f"  Workflow status: {workflow.status.value}")
    else:
        ctx.emit(step.to_dict())
    return EXIT_SUCCESS


def run_workflow_pending(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow pending command."""
    from signoff.cli.main import EXIT_SUCCESS

    steps = ctx.service.list_pending_approvals(args.user)
    _print_assigned(steps, ctx, empty="No steps awaiting your decision.")
    return EXIT_SUCCESS


def run_workflow_returned(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow returned command."""
    from signoff.cli.main import EXIT_SUCCESS

    steps = ctx.service.list_returned_steps(args.user)
    _print_assigned(steps, ctx, empty="No steps returned to you.")
    return EXIT_SUCCESS


def run_workflow_returnable(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow returnable command."""
    from signoff.cli.main import EXIT_SUCCESS

    targets = ctx.service.get_returnable_users(args.workflow_id, args.step_id, args.user)

    if ctx.output_format != "table":
        ctx.emit([t.to_dict() for t in targets])
    elif not targets:
        ctx.print("No earlier approvers to return to.")
    else:
        for target in targets:
            name = (target.approver or {}).get("display_name") or target.approver_id
            ctx.print(f"[{target.order}] {name} (user {target.approver_id}, step {target.step_id})")
    return EXIT_SUCCESS


def run_workflow_resubmission_target(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow resubmission-target command."""
    from signoff.cli.main import EXIT_SUCCESS

    target = ctx.service.get_resubmission_target(args.workflow_id, args.step_id, args.user)
    ctx.emit(target, title="Resubmission target")
    return EXIT_SUCCESS


def run_workflow_history(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow history command."""
    from signoff.cli.main import EXIT_SUCCESS

    history = ctx.service.get_return_history(args.workflow_id, args.user)

    if ctx.output_format != "table":
        ctx.emit([entry.to_dict() for entry in history])
    elif not history:
        ctx.print("No returns or resubmissions.")
    else:
        for entry in history:
            if entry.status.value == "RETURNED":
                ctx.print(
                    f"[{entry.order}] {entry.approver_id} returned to step "
                    f"{entry.return_to_step_id}: {entry.rejection_reason or ''}"
                )
            else:
                ctx.print(
                    f"[{entry.order}] {entry.approver_id} resubmitted to step "
                    f"{entry.next_step_id}: {entry.resubmission_explanation or ''}"
                )
    return EXIT_SUCCESS


def run_workflow_mark_read(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow mark-read command."""
    from signoff.cli.main import EXIT_SUCCESS

    step = ctx.service.mark_step_as_read(args.workflow_id, args.step_id, args.user)
    if ctx.output_format == "table":
        ctx.print(f"Step {step.id} marked as read")
    else:
        ctx.emit(step.to_dict())
    return EXIT_SUCCESS


def run_workflow_set_deadline(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow set-deadline command."""
    from signoff.cli.main import EXIT_SUCCESS

    deadline = None if args.clear else args.deadline
    workflow = ctx.service.update_workflow_deadline(args.workflow_id, deadline, args.user)

    if ctx.output_format == "table":
        shown = workflow.deadline.isoformat() if workflow.deadline else "none"
        ctx.print(f"Deadline of workflow {workflow.id} set to {shown}")
    else:
        ctx.emit(workflow.to_dict(include_steps=False))
    return EXIT_SUCCESS


def run_workflow_stats(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the workflow stats command."""
    from signoff.cli.main import EXIT_SUCCESS

    ctx.emit(ctx.service.get_statistics().to_dict(), title="Workflow Statistics")
    return EXIT_SUCCESS


def _parse_steps(values: list[str], workflow_type: str) -> list[dict[str, Any]]:
    """Turn APPROVER[:ORDER] arguments into step payloads."""
    steps = []
    for position, value in enumerate(values, start=1):
        approver_id, _, order = value.partition(":")
        if not approver_id:
            raise BadRequestError(f"Invalid step '{value}'")
        if order:
            try:
                step_order = int(order)
            except ValueError as e:
                raise BadRequestError(f"Invalid step order in '{value}'") from e
        else:
            step_order = position if workflow_type == "SEQUENTIAL" else 1
        steps.append({"approver_id": approver_id, "order": step_order})
    return steps


def _print_workflow(workflow: "Workflow", ctx: "CLIContext") -> None:
    from signoff.cli.formatters import TableFormatter

    ctx.print(f"  Document: {workflow.document_id}")
    ctx.print(f"  Type: {workflow.workflow_type.value}")
    ctx.print(f"  Status: {workflow.status.value}")
    ctx.print(f"  Initiator: {workflow.initiator_id}")
    if workflow.deadline:
        ctx.print(f"  Deadline: {workflow.deadline.isoformat()}")
    ctx.print("")
    ctx.print(
        TableFormatter.format_table(
            ["Order", "Step", "Approver", "Status", "Overdue", "Read"],
            [
                [
                    s.order,
                    s.id,
                    s.approver_id,
                    s.status.value,
                    "yes" if s.is_overdue else "",
                    "yes" if s.is_read else "",
                ]
                for s in workflow.steps
            ],
        )
    )


def _print_assigned(steps: list["AssignedStep"], ctx: "CLIContext", empty: str) -> None:
    from signoff.cli.formatters import TableFormatter

    if ctx.output_format != "table":
        ctx.emit([s.to_dict() for s in steps])
        return
    if not steps:
        ctx.print(empty)
        return
    ctx.print(
        TableFormatter.format_table(
            ["Workflow", "Step", "Document", "Type", "Status"],
            [
                [
                    s.step.workflow_id,
                    s.step.id,
                    s.document_title or s.document_id,
                    s.workflow_type.value,
                    s.step.status.value,
                ]
                for s in steps
            ],
        )
    )
    ctx.print("")
    ctx.print(f"Total: {len(steps)} step(s)")
