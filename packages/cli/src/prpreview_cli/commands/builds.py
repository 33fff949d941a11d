"""builds command — list stored preview builds."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prpreview_cli.commands.common import get_config, reported_errors
from prpreview_cli.factory import build_store
from prpreview_core.notifier import preview_url

console = Console()


@click.command("builds")
@click.option("--pr", "pr_number", type=int, default=None, help="Only show builds of this PR.")
@click.pass_context
def builds_cmd(ctx, pr_number: int | None):
    """Show the preview builds currently on disk and whether they are public."""
    config = get_config(ctx)
    with reported_errors():
        store = build_store(config)
        builds = store.list_builds(pr_number)

    if not builds:
        console.print("[yellow]No preview builds found.[/yellow]")
        return

    domain = config.get("domain_name")
    table = Table(title=f"Preview builds — {store.builds_dir}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=8)
    table.add_column("SHA", width=10)
    table.add_column("Visibility", width=10)
    table.add_column("URL")

    for b in builds:
        visibility = "[green]public[/green]" if b.is_public else "[dim]hidden[/dim]"
        url = preview_url(b.pr, b.sha, domain) if domain and b.is_public else ""
        table.add_row(f"#{b.pr}", b.sha, visibility, url)

    console.print(table)
