"""CLI entry point for basecamp-cli.

Usage:
    basecamp integration set|show|clear   # Manage OAuth integration credentials
    basecamp login                        # Authenticate in the browser
    basecamp logout                       # Clear the local session
    basecamp whoami                       # Show the current user
    basecamp todo search|add|edit         # Find, create and change to-dos
    basecamp todo complete|reopen         # Toggle completion
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import sys
from typing import Any

from loguru import logger

from basecamp_cli import __version__
from basecamp_cli.client import BasecampClient
from basecamp_cli.config import Settings
from basecamp_cli.errors import EXIT_GENERIC, BasecampCliError, InvalidInputError
from basecamp_cli.integration import IntegrationStore, LoginOverrides, SessionContext
from basecamp_cli.logging import configure_logging
from basecamp_cli.login import LoginOptions, run_login
from basecamp_cli.todos import (
    CompletionFilter,
    TodoAddRequest,
    TodoEditRequest,
    add_todo,
    complete_todo,
    edit_todo,
    re_open_todo,
    search_todos,
)

DEFAULT_REDIRECT_URI = "http://127.0.0.1:45455/callback"


def _open_store() -> IntegrationStore:
    return IntegrationStore.from_environment()


def _api_client(session: SessionContext) -> BasecampClient:
    return BasecampClient(session.account_id, session.access_token)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def _print_secret_store_location(store: IntegrationStore) -> None:
    info = store.secret_store_info()
    print(
        f"using secret store: keyring service={info.service} account={info.account}",
        file=sys.stderr,
    )
    print(f"using secret file: {info.file_path}", file=sys.stderr)


def _is_interactive() -> bool:
    return sys.stdin.isatty() and sys.stderr.isatty()


def _normalize(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _prompt(label: str, default: str | None = None) -> str:
    suffix = f" [{default}]" if default else ""
    try:
        answer = input(f"{label}{suffix}: ").strip()
    except EOFError as e:
        raise InvalidInputError(f"Failed to read {label}: no input.") from e
    if not answer and default:
        return default
    if not answer:
        raise InvalidInputError(f"{label} is required.")
    return answer


def _prompt_secret(label: str) -> str:
    try:
        answer = getpass.getpass(f"{label}: ").strip()
    except EOFError as e:
        raise InvalidInputError(f"Failed to read {label}: no input.") from e
    if not answer:
        raise InvalidInputError(f"{label} is required.")
    return answer


def _confirm(question: str) -> bool:
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# Integration


def cmd_integration_set(args: argparse.Namespace) -> int:
    """Save client id, client secret and redirect URI."""
    store = _open_store()
    client_id = _normalize(args.client_id)
    client_secret = _normalize(args.client_secret)
    redirect_uri = _normalize(args.redirect_uri)

    missing = [
        flag
        for flag, value in (
            ("--client-id", client_id),
            ("--client-secret", client_secret),
            ("--redirect-uri", redirect_uri),
        )
        if value is None
    ]
    if missing and not _is_interactive():
        raise InvalidInputError(
            f"Missing required arguments: {', '.join(missing)}. "
            "Provide all flags in non-interactive mode."
        )

    defaults = store.integration_defaults()
    if client_id is None:
        client_id = _prompt("Client ID", defaults.client_id)
    if client_secret is None:
        client_secret = _prompt_secret("Client Secret")
    if redirect_uri is None:
        redirect_uri = _prompt(
            "Redirect URI", defaults.redirect_uri or DEFAULT_REDIRECT_URI
        )

    _print_secret_store_location(store)
    store.set_integration(client_id, client_secret, redirect_uri)
    print("Integration credentials saved.")
    return 0


def cmd_integration_show(args: argparse.Namespace) -> int:
    """Show which integration values are configured."""
    store = _open_store()
    _print_secret_store_location(store)
    status = store.show_integration()

    if args.json:
        _print_json(
            {
                "has_client_id": status.has_client_id,
                "has_client_secret": status.has_client_secret,
                "has_redirect_uri": status.has_redirect_uri,
                "client_id": status.client_id,
                "redirect_uri": status.redirect_uri,
            }
        )
        return 0

    for name, present in (
        ("client_id", status.has_client_id),
        ("client_secret", status.has_client_secret),
        ("redirect_uri", status.has_redirect_uri),
    ):
        print(f"{name}: {'configured' if present else 'missing'}")
    if status.client_id is not None:
        print(f"client_id (redacted): {status.client_id}")
    if status.redirect_uri is not None:
        print(f"redirect_uri value: {status.redirect_uri}")
    return 0


def cmd_integration_clear(args: argparse.Namespace) -> int:
    """Remove integration credentials and the local session."""
    store = _open_store()
    _print_secret_store_location(store)
    if not args.force and not _confirm(
        "Clear integration credentials and local session?"
    ):
        print("Cancelled.")
        return 0

    store.clear_integration_and_session()
    print("Integration credentials and session cleared.")
    return 0


# Session


def cmd_login(args: argparse.Namespace) -> int:
    """Log in through the browser and store the session."""
    store = _open_store()
    _print_secret_store_location(store)
    options = LoginOptions(
        account_id=args.account_id,
        no_browser=args.no_browser,
        overrides=LoginOverrides(
            client_id=args.client_id,
            client_secret=args.client_secret,
            redirect_uri=args.redirect_uri,
        ),
    )
    result = run_login(options, store, prompt=input if _is_interactive() else None)

    if args.json:
        _print_json(
            {
                "ok": result.ok,
                "account_id": result.account_id,
                "account_name": result.account_name,
            }
        )
    else:
        print(
            f'Logged in to Basecamp account "{result.account_name}" '
            f"({result.account_id})."
        )
    return 0


def cmd_logout(args: argparse.Namespace) -> int:
    """Clear the stored session, and optionally the integration."""
    store = _open_store()
    _print_secret_store_location(store)
    store.clear_session()
    if args.forget_client:
        store.clear_integration_only()

    if args.json:
        _print_json({"ok": True})
    else:
        print("Logged out from local Basecamp session.")
    return 0


def cmd_whoami(args: argparse.Namespace) -> int:
    """Show the user behind the current session."""
    store = _open_store()
    _print_secret_store_location(store)
    session = store.resolve_session_context()
    return asyncio.run(_whoami(session, args.json))


async def _whoami(session: SessionContext, as_json: bool) -> int:
    async with _api_client(session) as client:
        profile = await client.fetch_my_profile()

    if as_json:
        _print_json(
            {
                "ok": True,
                "account_id": session.account_id,
                "account_name": session.account_name,
                **profile.model_dump(),
            }
        )
        return 0

    email = f" <{profile.email_address}>" if profile.email_address else ""
    if session.account_name:
        print(
            f"Current user: {profile.name}{email} (person {profile.id}) "
            f'on account "{session.account_name}" ({session.account_id}).'
        )
    else:
        print(
            f"Current user: {profile.name}{email} (person {profile.id}) "
            f"on account {session.account_id}."
        )
    return 0


# To-dos


def cmd_todo_search(args: argparse.Namespace) -> int:
    """Search to-dos in the current account."""
    store = _open_store()
    _print_secret_store_location(store)
    session = store.resolve_session_context()
    completion_filter = (
        CompletionFilter.COMPLETED if args.completed else CompletionFilter.INCOMPLETE
    )
    return asyncio.run(
        _todo_search(session, args.query, args.project_id, completion_filter, args.json)
    )


async def _todo_search(
    session: SessionContext,
    query: str,
    project_id: int | None,
    completion_filter: CompletionFilter,
    as_json: bool,
) -> int:
    async with _api_client(session) as client:
        matches = await search_todos(client, query, project_id, completion_filter)

    if as_json:
        _print_json(
            {
                "ok": True,
                "query": query.strip(),
                "scope_project_id": project_id,
                "count": len(matches),
                "todos": [
                    {
                        "todo_id": m.todo_id,
                        "project_id": m.project_id,
                        "project_name": m.project_name,
                        "content": m.content,
                    }
                    for m in matches
                ],
            }
        )
        return 0

    if not matches:
        print(f'No to-dos matched "{query.strip()}".')
        return 0

    for match in matches:
        print(f"  - {match.label()}")
    return 0


def cmd_todo_add(args: argparse.Namespace) -> int:
    """Create a to-do in a project's list or group."""
    store = _open_store()
    _print_secret_store_location(store)
    session = store.resolve_session_context()
    request = TodoAddRequest(
        project_id=args.project_id,
        content=args.content,
        todolist_id=args.todolist_id,
        group_id=args.group_id,
        notes=args.notes,
        due_on=args.due_on,
        assignee_id=args.assignee_id,
        notify_ids=tuple(args.notify_id or ()),
    )

    async def run() -> int:
        async with _api_client(session) as client:
            result = await add_todo(client, request)

        if args.json:
            _print_json(result.to_dict())
        else:
            print(
                f'Created todo "{result.content}" in project "{result.project_name}" '
                f'/ list "{result.todolist_name}" (id: {result.todo_id}).'
            )
        return 0

    return asyncio.run(run())


def cmd_todo_edit(args: argparse.Namespace) -> int:
    """Change a to-do's content, notes or due date."""
    store = _open_store()
    _print_secret_store_location(store)
    session = store.resolve_session_context()
    request = TodoEditRequest(
        project_id=args.project_id,
        todo_id=args.id,
        content=args.content,
        notes=args.notes,
        due_on=args.due_on,
    )

    async def run() -> int:
        async with _api_client(session) as client:
            result = await edit_todo(client, request)

        if args.json:
            _print_json(result.to_dict())
        else:
            print(
                f'Updated todo "{result.content}" '
                f"(id: {result.todo_id}, project: {result.project_id})."
            )
        return 0

    return asyncio.run(run())


def cmd_todo_complete(args: argparse.Namespace) -> int:
    """Mark a to-do as completed."""
    return _todo_action(args, complete=True)


def cmd_todo_reopen(args: argparse.Namespace) -> int:
    """Re-open a completed to-do."""
    return _todo_action(args, complete=False)


def _todo_action(args: argparse.Namespace, *, complete: bool) -> int:
    store = _open_store()
    _print_secret_store_location(store)
    session = store.resolve_session_context()

    async def run() -> int:
        async with _api_client(session) as client:
            if complete:
                result = await complete_todo(client, args.project_id, args.id)
            else:
                result = await re_open_todo(client, args.project_id, args.id)

        if args.json:
            _print_json(result.to_dict())
        else:
            verb = "Completed" if complete else "Re-opened"
            print(f"{verb} todo (id: {result.todo_id}, project: {result.project_id}).")
        return 0

    return asyncio.run(run())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="basecamp",
        description="Basecamp CLI - log in with OAuth and manage to-dos",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print debug logs to stderr",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # integration
    integration_parser = subparsers.add_parser(
        "integration", help="Manage OAuth integration credentials"
    )
    integration_sub = integration_parser.add_subparsers(
        dest="integration_command", required=True
    )

    set_parser = integration_sub.add_parser(
        "set", help="Save client id, client secret and redirect URI"
    )
    set_parser.add_argument("--client-id", help="OAuth client id")
    set_parser.add_argument("--client-secret", help="OAuth client secret")
    set_parser.add_argument(
        "--redirect-uri",
        help=f"OAuth redirect URI (default when prompting: {DEFAULT_REDIRECT_URI})",
    )
    set_parser.set_defaults(func=cmd_integration_set)

    show_parser = integration_sub.add_parser(
        "show", help="Show which integration values are configured"
    )
    show_parser.add_argument("--json", action="store_true", help="Output as JSON")
    show_parser.set_defaults(func=cmd_integration_show)

    clear_parser = integration_sub.add_parser(
        "clear", help="Clear integration credentials and the local session"
    )
    clear_parser.add_argument(
        "--force", "-f", action="store_true", help="Do not ask for confirmation"
    )
    clear_parser.set_defaults(func=cmd_integration_clear)

    # login
    login_parser = subparsers.add_parser(
        "login", help="Authenticate with Basecamp (opens browser)"
    )
    login_parser.add_argument(
        "--account-id", type=int, help="Basecamp account id to use"
    )
    login_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Print the authorization URL instead of opening a browser",
    )
    login_parser.add_argument("--json", action="store_true", help="Output as JSON")
    login_parser.add_argument(
        "--client-id", help="OAuth client id (or set BASECAMP_CLIENT_ID env var)"
    )
    login_parser.add_argument(
        "--client-secret",
        help="OAuth client secret (or set BASECAMP_CLIENT_SECRET env var)",
    )
    login_parser.add_argument(
        "--redirect-uri",
        help="OAuth redirect URI (or set BASECAMP_REDIRECT_URI env var)",
    )
    login_parser.set_defaults(func=cmd_login)

    # logout
    logout_parser = subparsers.add_parser("logout", help="Clear the local session")
    logout_parser.add_argument(
        "--forget-client",
        action="store_true",
        help="Also clear integration credentials",
    )
    logout_parser.add_argument("--json", action="store_true", help="Output as JSON")
    logout_parser.set_defaults(func=cmd_logout)

    # whoami
    whoami_parser = subparsers.add_parser("whoami", help="Show the current user")
    whoami_parser.add_argument("--json", action="store_true", help="Output as JSON")
    whoami_parser.set_defaults(func=cmd_whoami)

    # todo
    todo_parser = subparsers.add_parser("todo", help="Work with to-dos")
    todo_sub = todo_parser.add_subparsers(dest="todo_command", required=True)

    search_parser = todo_sub.add_parser("search", help="Search to-dos")
    search_parser.add_argument("query", help="Search text")
    search_parser.add_argument(
        "--project-id", type=int, help="Only search this project"
    )
    search_parser.add_argument(
        "--completed",
        action="store_true",
        help="Show completed to-dos instead of open ones",
    )
    search_parser.add_argument("--json", action="store_true", help="Output as JSON")
    search_parser.set_defaults(func=cmd_todo_search)

    add_parser = todo_sub.add_parser("add", help="Create a to-do")
    add_parser.add_argument("content", help="To-do title")
    add_parser.add_argument(
        "--project-id", type=int, required=True, help="Project (bucket) id"
    )
    add_parser.add_argument(
        "--todolist-id",
        type=int,
        help="To-do list id (optional when the project has a single list)",
    )
    add_parser.add_argument("--group-id", type=int, help="Group id inside the list")
    add_parser.add_argument("--notes", help="Notes (description)")
    add_parser.add_argument("--due-on", help="Due date, YYYY-MM-DD")
    add_parser.add_argument("--assignee-id", type=int, help="Person id to assign")
    add_parser.add_argument(
        "--notify-id",
        type=int,
        action="append",
        help="Person id to notify on completion (repeatable)",
    )
    add_parser.add_argument("--json", action="store_true", help="Output as JSON")
    add_parser.set_defaults(func=cmd_todo_add)

    edit_parser = todo_sub.add_parser("edit", help="Change a to-do")
    edit_parser.add_argument("--id", type=int, required=True, help="To-do id")
    edit_parser.add_argument(
        "--project-id", type=int, required=True, help="Project (bucket) id"
    )
    edit_parser.add_argument("--content", help="New title")
    edit_parser.add_argument("--notes", help='New notes ("" clears them)')
    edit_parser.add_argument("--due-on", help='New due date, YYYY-MM-DD ("" clears it)')
    edit_parser.add_argument("--json", action="store_true", help="Output as JSON")
    edit_parser.set_defaults(func=cmd_todo_edit)

    for name, func, help_text in (
        ("complete", cmd_todo_complete, "Mark a to-do as completed"),
        ("reopen", cmd_todo_reopen, "Re-open a completed to-do"),
    ):
        action_parser = todo_sub.add_parser(name, help=help_text)
        action_parser.add_argument("--id", type=int, required=True, help="To-do id")
        action_parser.add_argument(
            "--project-id", type=int, required=True, help="Project (bucket) id"
        )
        action_parser.add_argument(
            "--json", action="store_true", help="Output as JSON"
        )
        action_parser.set_defaults(func=func)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        log_level=Settings().basecamp_cli_log_level, verbose=args.verbose
    )

    try:
        result: int = args.func(args)
        return result
    except BasecampCliError as e:
        logger.debug("Command failed: {}", type(e).__name__)
        print(f"Error: {e.message}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("Error: Interrupted.", file=sys.stderr)
        return EXIT_GENERIC


if __name__ == "__main__":
    sys.exit(main())
