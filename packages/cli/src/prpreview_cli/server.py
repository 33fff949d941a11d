"""HTTP boundary: CircleCI and GitHub webhooks in, status codes out.

Routes are plain (sync) functions, so FastAPI runs them on its thread pool
and several notifications can be in flight at once; the build store's per-PR
lock keeps them from interfering.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from prpreview_cli.service import BuildOutcome, PreviewService
from prpreview_core.errors import (
    ArtifactTooLarge,
    CorruptArtifact,
    InvalidInput,
    PreviewError,
)
from prpreview_core.events import EventQueue
from prpreview_core.notifier import EventNotifier

logger = logging.getLogger(__name__)

_OUTCOME_STATUS = {
    BuildOutcome.CREATED_PUBLIC: 201,
    BuildOutcome.CREATED_HIDDEN: 202,
    BuildOutcome.SKIPPED: 204,
}


def status_for(error: PreviewError) -> int:
    if isinstance(error, InvalidInput):
        return 400
    if isinstance(error, (ArtifactTooLarge, CorruptArtifact)):
        return 422
    return 500


def create_app(
    service: PreviewService,
    notifier: EventNotifier | None = None,
    events: EventQueue | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop = threading.Event()
        worker = None
        if notifier is not None and events is not None:
            worker = threading.Thread(target=notifier.run, args=(events, stop), name="event-notifier", daemon=True)
            worker.start()
        try:
            yield
        finally:
            stop.set()
            if worker is not None:
                worker.join(timeout=5)

    app = FastAPI(title="prpreview", lifespan=lifespan)

    @app.exception_handler(PreviewError)
    async def _preview_error(request: Request, exc: PreviewError):
        status = status_for(exc)
        log = logger.error if status >= 500 else logger.warning
        log("%s %s failed [%s]: %s", request.method, request.url.path, exc.context(), exc)
        return PlainTextResponse(str(exc), status_code=status)

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError):
        return PlainTextResponse(f"Invalid request: {request.method} {request.url.path}", status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def _unknown_resource(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return PlainTextResponse(f"Unknown resource in request: {request.method} {request.url.path}", 404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.get("/health-check")
    def health_check():
        return PlainTextResponse("OK")

    @app.get("/can-have-public-preview/{pr}")
    def can_have_public_preview(pr: int):
        return {"canHavePublicPreview": service.can_have_public_preview(pr)}

    @app.post("/circle-build")
    def circle_build(body: Any = Body(default=None)):
        build_num, job_name = _parse_circle_payload(body)
        outcome = service.handle_build_completed(build_num, job_name)
        return Response(status_code=_OUTCOME_STATUS[outcome])

    @app.post("/pr-updated")
    def pr_updated(body: Any = Body(default=None)):
        payload = body if isinstance(body, dict) else {}
        number = payload.get("number")
        if not isinstance(number, int) or isinstance(number, bool) or number <= 0:
            raise InvalidInput(
                f"Missing or empty 'number' field in request: POST /pr-updated {json.dumps(payload, separators=(',', ':'))}"
            )
        service.handle_pr_updated(number, payload.get("action"))
        return PlainTextResponse("OK")

    return app


def _parse_circle_payload(body) -> tuple[int, str]:
    payload = body.get("payload") if isinstance(body, dict) else None
    if not isinstance(payload, dict):
        raise InvalidInput("Incorrect body content: missing 'payload'.")
    build_num = payload.get("build_num")
    if not isinstance(build_num, int) or isinstance(build_num, bool) or build_num <= 0:
        raise InvalidInput(f"Incorrect body content: invalid 'build_num' {build_num!r}.")
    params = payload.get("build_parameters")
    job_name = params.get("CIRCLE_JOB") if isinstance(params, dict) else None
    if not isinstance(job_name, str) or not job_name:
        raise InvalidInput("Incorrect body content: missing 'build_parameters.CIRCLE_JOB'.")
    return build_num, job_name
