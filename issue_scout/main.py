#!/usr/bin/env python3
"""Issue Scout CLI - list issues in a repository that nobody is working on."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import MAX_ISSUES, get_env_token
from .discovery import IssueDiscoveryEngine
from .display import (
    console,
    display_device_code,
    display_rate_limit,
    display_results,
    display_user,
    format_wait,
)
from .errors import (
    DeviceFlowError,
    DiscoveryError,
    PartialPageError,
    RateLimitedError,
)
from .models import Credential
from .repo_ref import validate_repo_url
from .session import ScoutSession


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="issue-scout",
        description="Find open, unassigned GitHub issues without a linked pull request.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=False,
        help="Log API calls and pagination progress",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="List available issues in a repository")
    search.add_argument("repo", help="Repository URL or owner/repo")
    search.add_argument(
        "--token", default=None,
        help="GitHub token for this search (or set GITHUB_TOKEN). Defaults to the signed-in token.",
    )
    search.add_argument(
        "--max-issues", type=int, default=MAX_ISSUES,
        help=f"Stop after this many open unassigned issues (default: {MAX_ISSUES})",
    )
    search.add_argument(
        "--json", action="store_true", default=False,
        help="Print the result as JSON instead of a table",
    )

    sub.add_parser("login", help="Sign in with the GitHub device flow")
    sub.add_parser("logout", help="Forget the stored token")
    sub.add_parser("whoami", help="Show the signed-in user")
    sub.add_parser("rate-limit", help="Show the remaining API budget")
    return parser


def cmd_search(session: ScoutSession, args: argparse.Namespace) -> int:
    validation = validate_repo_url(args.repo)
    if not validation.is_valid:
        console.print(f"[red]{validation.message or 'Enter a repository URL.'}[/red]")
        return 1

    token = args.token or get_env_token()
    credential = Credential(token=token) if token else None
    repo_name = f"{validation.owner}/{validation.repo}"

    try:
        result = session.search(validation.owner, validation.repo, credential)
    except PartialPageError as e:
        console.print(f"[red]Error: {e}[/red]")
        result = e.partial_result
    except RateLimitedError as e:
        wait = format_wait(e.rate_limit.seconds_until_reset()) if e.rate_limit else "unknown"
        console.print(f"[red]Rate limit exhausted. Try again in {wait}, or sign in for a larger budget.[/red]")
        return 1
    except DiscoveryError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        display_results(result, repo_name)
    return 0


def cmd_login(session: ScoutSession, args: argparse.Namespace) -> int:
    auth = session.authenticator
    try:
        code = auth.login_with_device_flow()
        display_device_code(code)
        try:
            credential = auth.poll_device_flow()
        except KeyboardInterrupt:
            auth.cancel()
            raise
    except DeviceFlowError as e:
        console.print(f"[red]Sign-in failed ({e.reason}): {e}[/red]")
        return 1
    if credential.user is None:
        console.print("[green]Signed in[/green] [dim](profile unavailable)[/dim]")
    else:
        display_user(credential.user)
    return 0


def cmd_logout(session: ScoutSession, args: argparse.Namespace) -> int:
    session.logout()
    console.print("[green]Signed out.[/green]")
    return 0


def cmd_whoami(session: ScoutSession, args: argparse.Namespace) -> int:
    credential = session.credential
    if credential is not None and credential.user is None:
        console.print("Signed in [dim](profile unavailable)[/dim]")
        return 0
    display_user(credential.user if credential else None)
    return 0


def cmd_rate_limit(session: ScoutSession, args: argparse.Namespace) -> int:
    try:
        snapshot = session.engine.get_rate_limit(session.credential)
    except DiscoveryError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    display_rate_limit(snapshot)
    return 0


COMMANDS = {
    "search": cmd_search,
    "login": cmd_login,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "rate-limit": cmd_rate_limit,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    try:
        return _main_inner(argv)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        return 130


def _main_inner(argv: list[str] | None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    engine = IssueDiscoveryEngine(max_issues=getattr(args, "max_issues", MAX_ISSUES))
    session = ScoutSession(engine=engine)
    return COMMANDS[args.command](session, args)


if __name__ == "__main__":
    sys.exit(main())
