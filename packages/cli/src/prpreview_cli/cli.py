"""CLI entry point for prpreview.

Commands:
  serve    — run the webhook server that creates and publishes previews
  builds   — list stored preview builds
  check    — show whether a PR may have a public preview
  sync     — recompute a PR's trust and move its builds accordingly
  remove   — delete every build of a PR
  prune    — delete builds of PRs that are no longer open
"""

from __future__ import annotations

import logging

import click
from rich.logging import RichHandler

from prpreview_cli.commands.builds import builds_cmd
from prpreview_cli.commands.pr import check_cmd, remove_cmd, sync_cmd
from prpreview_cli.commands.prune import prune_cmd
from prpreview_cli.commands.serve import serve_cmd


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=str(level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


@click.group()
@click.version_option(package_name="prpreview", prog_name="prpreview")
@click.option(
    "--config",
    "config_path",
    default=".prpreview.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRPREVIEW_CONFIG",
)
@click.option("--log-level", default=None, help="Logging level. Overrides config file.")
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str | None):
    """Publish per-pull-request preview builds from CI artifacts."""
    from prpreview_cli.auth import resolve_circleci_token, resolve_github_token
    from prpreview_core.config import load_config

    ctx.ensure_object(dict)

    config = load_config(config_path, cli_overrides={"log_level": log_level})

    # Resolve tokens once so every subcommand sees the same credentials.
    config["github_token"] = resolve_github_token()
    config["circleci_token"] = resolve_circleci_token()

    _configure_logging(config["log_level"])
    ctx.obj["config"] = config


main.add_command(serve_cmd)
main.add_command(builds_cmd)
main.add_command(check_cmd)
main.add_command(sync_cmd)
main.add_command(remove_cmd)
main.add_command(prune_cmd)
