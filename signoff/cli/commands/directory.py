"""
Directory commands for signoff CLI.

This module implements the 'signoff directory' commands for registering
the users and documents that workflows refer to.

Usage:
    signoff directory add-user USERNAME [--email EMAIL] [--display-name NAME] [--id ID]
    signoff directory add-document TITLE --owner USER_ID [--file-url URL] [--id ID]
    signoff directory list-users
"""

import argparse
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signoff.cli.main import CLIContext


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """
    Register the directory command with the parser.

    Args:
        subparsers: Subparsers action to add command to.
    """
    parser = subparsers.add_parser(
        "directory",
        help="Manage users and documents",
        description="Register users and documents in the local directory.",
    )

    directory_subparsers = parser.add_subparsers(
        dest="directory_command",
        help="Directory command to execute",
    )

    add_user_parser = directory_subparsers.add_parser(
        "add-user",
        help="Register a user",
    )
    add_user_parser.add_argument("username", help="Unique username")
    add_user_parser.add_argument("--email", default="", help="Email address")
    add_user_parser.add_argument("--display-name", default="", help="Display name")
    add_user_parser.add_argument("--id", dest="user_id", help="User ID (generated if omitted)")
    add_user_parser.set_defaults(func=run_add_user)

    add_document_parser = directory_subparsers.add_parser(
        "add-document",
        help="Register a document",
    )
    add_document_parser.add_argument("title", help="Document title")
    add_document_parser.add_argument("--owner", required=True, help="Owner user ID")
    add_document_parser.add_argument("--file-url", default="", help="Location of the file")
    add_document_parser.add_argument(
        "--id", dest="document_id", help="Document ID (generated if omitted)"
    )
    add_document_parser.set_defaults(func=run_add_document)

    list_users_parser = directory_subparsers.add_parser(
        "list-users",
        help="List registered users",
    )
    list_users_parser.set_defaults(func=run_list_users)

    parser.set_defaults(func=run_directory)


def run_directory(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute directory command (shows help if no subcommand)."""
    from signoff.cli.main import EXIT_ERROR

    ctx.print_error("No directory command specified. Use --help for usage.")
    return EXIT_ERROR


def run_add_user(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the directory add-user command."""
    from signoff.cli.main import EXIT_SUCCESS
    from signoff.storage.repositories import UserRepository

    users = UserRepository(ctx.database)
    user_id = users.create(
        username=args.username,
        email=args.email,
        display_name=args.display_name,
        user_id=args.user_id,
    )

    if ctx.output_format == "table":
        ctx.print(f"Registered user: {args.username}")
        ctx.print(f"  ID: {user_id}")
    else:
        ctx.emit({"id": user_id, "username": args.username})
    return EXIT_SUCCESS


def run_add_document(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the directory add-document command."""
    from signoff.cli.main import EXIT_SUCCESS
    from signoff.exceptions import NotFoundError
    from signoff.storage.repositories import DocumentRepository, UserRepository

    if UserRepository(ctx.database).get_user(args.owner) is None:
        raise NotFoundError(f"User with ID {args.owner} not found")

    document_id = DocumentRepository(ctx.database).create(
        title=args.title,
        owner_id=args.owner,
        file_url=args.file_url,
        document_id=args.document_id,
    )

    if ctx.output_format == "table":
        ctx.print(f"Registered document: {args.title}")
        ctx.print(f"  ID: {document_id}")
        ctx.print(f"  Owner: {args.owner}")
    else:
        ctx.emit({"id": document_id, "title": args.title, "owner_id": args.owner})
    return EXIT_SUCCESS


def run_list_users(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the directory list-users command."""
    from signoff.cli.formatters import TableFormatter
    from signoff.cli.main import EXIT_SUCCESS
    from signoff.storage.repositories import UserRepository

    rows = UserRepository(ctx.database).list_all()

    if ctx.output_format != "table":
        ctx.emit(rows)
    elif not rows:
        ctx.print("No users found.")
    else:
        ctx.print(
            TableFormatter.format_table(
                ["ID", "Username", "Display name", "Email"],
                [[r["id"], r["username"], r["display_name"], r["email"]] for r in rows],
            )
        )
        ctx.print("")
        ctx.print(f"Total: {len(rows)} user(s)")
    return EXIT_SUCCESS
