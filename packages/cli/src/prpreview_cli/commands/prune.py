"""prune command — drop previews of PRs that are no longer open."""

from __future__ import annotations

import click
from rich.console import Console

from prpreview_cli.commands.common import get_config, reported_errors
from prpreview_cli.factory import build_components

console = Console()


@click.command("prune")
@click.pass_context
def prune_cmd(ctx):
    """Remove builds of closed or merged PRs and leftovers of interrupted operations.

    Meant to run periodically (e.g. from cron) next to the server, to catch
    PRs whose close notification was missed. Temporaries younger than
    ``leftover_max_age`` seconds are kept, since the server may still be using them.
    """
    config = get_config(ctx)
    with reported_errors():
        components = build_components(config)
        try:
            leftovers = components.purge_leftovers(config["leftover_max_age"])
            removed = components.service.prune()
        finally:
            components.close()

    if leftovers:
        console.print(f"Purged {len(leftovers)} leftover temporary file(s).")
    if not removed:
        console.print("[green]Nothing to prune.[/green]")
        return
    for pr, shas in removed.items():
        console.print(f"  [bold]#{pr}[/bold]  removed {len(shas)} build(s)")
