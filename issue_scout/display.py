"""Rich terminal output for search results, budget and sign-in state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import DeviceCode, DiscoveryResult, GitHubUser, Issue, RateLimitSnapshot

console = Console()

LOW_COMMENT_THRESHOLD = 5


def comment_color(count: int) -> str:
    if count == 0:
        return "green"
    if count <= LOW_COMMENT_THRESHOLD:
        return "yellow"
    return "red"


def format_age(created_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    days = (now - created_at).days
    if days < 0:
        return "in the future"
    if days == 0:
        return "today"
    if days == 1:
        return "yesterday"
    if days < 30:
        return f"{days} days ago"
    if days < 365:
        return f"{days // 30} months ago"
    return f"{days // 365} years ago"


def format_wait(seconds: Optional[int]) -> str:
    if seconds is None:
        return "unknown"
    minutes, secs = divmod(seconds, 60)
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _label_text(issue: Issue) -> Text:
    text = Text()
    for i, label in enumerate(issue.labels):
        if i:
            text.append(" ")
        style = f"#{label.color}" if len(label.color) == 6 else ""
        text.append(label.name, style=style)
    return text


def display_rate_limit(rate_limit: Optional[RateLimitSnapshot]) -> None:
    if rate_limit is None:
        console.print("[dim]Rate limit: unknown[/dim]")
        return
    color = "red" if rate_limit.is_exhausted else "green"
    limit = f"/{rate_limit.limit}" if rate_limit.limit else ""
    console.print(
        f"Rate limit: [{color}]{rate_limit.remaining}{limit}[/{color}] remaining, "
        f"resets in {format_wait(rate_limit.seconds_until_reset())}"
    )


def display_results(result: DiscoveryResult, repo_name: str) -> None:
    """Display a summary table of available issues."""
    for warning in result.warnings:
        console.print(f"[yellow]{warning}[/yellow]")

    if not result.issues:
        console.print(f"[yellow]No open, unassigned issues available in {repo_name}.[/yellow]")
        display_rate_limit(result.rate_limit)
        return

    table = Table(title=f"Available issues in {repo_name}", box=box.ROUNDED)
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Title", max_width=60)
    table.add_column("Labels", max_width=30)
    table.add_column("Comments", justify="right")
    table.add_column("Opened")
    table.add_column("URL", style="dim")

    for issue in result.issues:
        table.add_row(
            str(issue.number),
            issue.title,
            _label_text(issue),
            Text(str(issue.comment_count), style=comment_color(issue.comment_count)),
            format_age(issue.created_at),
            issue.url,
        )

    console.print()
    console.print(table)

    filtered = "linked PRs excluded" if result.filtering_applied else "linked PRs NOT checked"
    console.print(
        f"\n  {len(result.issues)} available of {result.total_candidates} open unassigned ({filtered})"
    )
    display_rate_limit(result.rate_limit)


def display_device_code(code: DeviceCode) -> None:
    body = Text()
    body.append("Open ", style="bold")
    body.append(code.verification_uri, style="bold cyan underline")
    body.append("\nand enter the code ", style="bold")
    body.append(code.user_code, style="bold green")
    console.print(Panel(body, title="Sign in to GitHub", box=box.DOUBLE))
    console.print("[dim]Waiting for authorization... (Ctrl+C to cancel)[/dim]")


def display_user(user: Optional[GitHubUser]) -> None:
    if user is None:
        console.print("[yellow]Not signed in.[/yellow]")
        return
    name = f" ({user.name})" if user.name else ""
    console.print(f"Signed in as [bold cyan]{user.login}[/bold cyan]{name}")
