from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import click

from prpreview_core.errors import PreviewError


@contextmanager
def reported_errors() -> Iterator[None]:
    """Turn library errors into a clean CLI failure instead of a traceback."""
    try:
        yield
    except PreviewError as e:
        context = e.context()
        raise click.ClickException(f"{e} ({context})" if context else str(e)) from e


def get_config(ctx: click.Context) -> dict:
    return ctx.obj["config"] if ctx.obj else {}
