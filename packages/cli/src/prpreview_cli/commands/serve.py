"""serve command — run the preview webhook server."""

from __future__ import annotations

import logging

import click
import uvicorn

from prpreview_cli.commands.common import get_config, reported_errors
from prpreview_cli.factory import build_components
from prpreview_cli.server import create_app

logger = logging.getLogger(__name__)


@click.command("serve")
@click.option("--host", default=None, help="Interface to bind. Overrides config file.")
@click.option("--port", type=int, default=None, help="Port to listen on. Overrides config file.")
@click.pass_context
def serve_cmd(ctx, host: str | None, port: int | None):
    """Serve the CircleCI / GitHub webhook endpoints.

    \b
    Required environment variables:
      GITHUB_TOKEN      GitHub token with read access to PRs and org teams
      CIRCLE_CI_TOKEN   CircleCI API token
    """
    config = get_config(ctx)
    with reported_errors():
        components = build_components(config)
        purged = components.purge_leftovers(config["leftover_max_age"])
    if purged:
        logger.info("Purged %d leftover temporary file(s) on startup.", len(purged))

    app = create_app(components.service, components.notifier, components.events)
    host = host or config["host"]
    port = port or config["port"]
    logger.info("Up and running (and listening on %s:%s)...", host, port)
    try:
        uvicorn.run(app, host=host, port=port, log_level=str(config["log_level"]).lower())
    finally:
        components.close()
