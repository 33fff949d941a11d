"""Per-PR maintenance commands: check, sync, remove."""

from __future__ import annotations

import click
from rich.console import Console

from prpreview_cli.commands.common import get_config, reported_errors
from prpreview_cli.factory import build_components, build_store

console = Console()


@click.command("check")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def check_cmd(ctx, pr_number: int):
    """Show whether a PR is trusted, i.e. may have a public preview."""
    with reported_errors():
        components = build_components(get_config(ctx))
        trusted = components.service.can_have_public_preview(pr_number)

    if trusted:
        console.print(f"PR [bold]#{pr_number}[/bold] is [green]trusted[/green]: previews are public.")
    else:
        console.print(f"PR [bold]#{pr_number}[/bold] is [yellow]not trusted[/yellow]: previews stay hidden.")


@click.command("sync")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def sync_cmd(ctx, pr_number: int):
    """Recompute a PR's trust and move its builds to match.

    Posts the same PR comment the server would if the builds became public.
    """
    with reported_errors():
        components = build_components(get_config(ctx))
        try:
            event = components.service.handle_pr_updated(pr_number)
        finally:
            # Deliver whatever was emitted, including after a partial failure.
            components.notifier.drain(components.events)
            components.close()

    if event is None:
        console.print(f"[yellow]PR #{pr_number} has no preview builds.[/yellow]")
        return
    visibility = "public" if event.is_public else "hidden"
    console.print(f"PR [bold]#{pr_number}[/bold]: {len(event.shas)} build(s) now {visibility}: {', '.join(event.shas)}")


@click.command("remove")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def remove_cmd(ctx, pr_number: int):
    """Delete every preview build of a PR."""
    with reported_errors():
        removed = build_store(get_config(ctx)).remove_pr(pr_number)

    if not removed:
        console.print(f"[yellow]PR #{pr_number} has no preview builds.[/yellow]")
        return
    console.print(f"Removed {len(removed)} build(s) of PR [bold]#{pr_number}[/bold]: {', '.join(removed)}")
