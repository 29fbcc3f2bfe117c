"""
Server entry point: FastAPI app setup and route configuration.

Exposes the evidence sink and finalize endpoint used during a live
scan, the audit controller operations (static analysis, results,
page list, token, export, consent view) and a streamed end-to-end
audit over Server-Sent Events.
"""

from __future__ import annotations

import contextlib
import functools
from collections.abc import AsyncGenerator
from typing import Any

import dotenv
import uvicorn
from fastapi import Body, Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import StreamingResponse

from consent_audit import config
from consent_audit.data import loader
from consent_audit.host import SiteSnapshot
from consent_audit.models import services
from consent_audit.pipeline import sse_helpers, stream
from consent_audit.pipeline.audit_run import AuditRun
from consent_audit.utils import logger

dotenv.load_dotenv()

log = logger.create_logger("Server")


@functools.cache
def get_run() -> AuditRun:
    """Process-wide audit run for the configured site snapshot."""
    settings = config.get_settings()
    host = SiteSnapshot.load(settings.site_snapshot)
    table = loader.get_reference(settings.reference_data)
    return AuditRun(host, table, settings)


@contextlib.asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    settings = config.get_settings()
    log.section("Consent Audit Server Started")
    log.info("Configuration", {"snapshot": settings.site_snapshot, "publicBaseUrl": settings.public_base_url})
    yield
    log.info("Server shutting down")


app = FastAPI(title="Consent Audit Server", lifespan=lifespan)

# ============================================================================
# Middleware
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def respond(envelope: services.Envelope[Any]) -> JSONResponse:
    """Map an envelope onto a JSON response (data on success, ``{"error"}`` otherwise)."""
    if envelope.success:
        return JSONResponse(sse_helpers.to_jsonable(envelope.data), status_code=envelope.status_code)
    return JSONResponse({"error": envelope.error}, status_code=envelope.status_code)


# ============================================================================
# Live-scan Endpoints
# ============================================================================


@app.post("/api/scan/evidence")
async def submit_evidence(payload: Any = Body(None), run: AuditRun = Depends(get_run)) -> JSONResponse:
    """Collector submission for one page: cookie names and storage keys."""
    return respond(run.submit_evidence(payload))


@app.post("/api/scan/finalize")
async def finalize_scan(payload: Any = Body(None), run: AuditRun = Depends(get_run)) -> JSONResponse:
    if not isinstance(payload, dict):
        return respond(services.Envelope.fail("Missing pages or token", 400))
    return respond(await run.finalize(payload.get("pages"), payload.get("token")))


@app.post("/api/scan/token")
async def issue_token(run: AuditRun = Depends(get_run)) -> JSONResponse:
    pages = run.page_list()
    if not pages.success:
        return respond(pages)
    token = run.issue_token()
    return JSONResponse(
        {
            "token": token.value,
            "expiresAt": token.expires_at,
            "pages": sse_helpers.to_jsonable(pages.data),
        }
    )


@app.get("/api/scan/status")
async def scan_status(run: AuditRun = Depends(get_run)) -> JSONResponse:
    return JSONResponse(run.status())


# ============================================================================
# Audit Endpoints
# ============================================================================


@app.post("/api/audit/static")
async def run_static(
    force: bool = Query(False, description="Ignore the cached static result"),
    run: AuditRun = Depends(get_run),
) -> JSONResponse:
    return respond(run.run_static(force))


@app.get("/api/audit/pages")
async def page_list(run: AuditRun = Depends(get_run)) -> JSONResponse:
    return respond(run.page_list())


@app.get("/api/audit/results")
async def get_results(run: AuditRun = Depends(get_run)) -> JSONResponse:
    return respond(run.results())


@app.delete("/api/audit/results")
async def clear_results(run: AuditRun = Depends(get_run)) -> JSONResponse:
    return respond(run.clear())


@app.get("/api/audit/export")
async def export_results(run: AuditRun = Depends(get_run)) -> JSONResponse:
    return respond(run.export())


@app.get("/api/audit/services")
async def consent_view(run: AuditRun = Depends(get_run)) -> JSONResponse:
    return respond(run.consent_view())


@app.get("/api/audit/stream")
async def audit_stream_endpoint(
    force: bool = Query(False, description="Ignore the cached static result"),
    clear_cache: bool = Query(False, description="Delete all cached results before starting"),
    run: AuditRun = Depends(get_run),
) -> StreamingResponse:
    """Run a complete audit with streaming progress via SSE."""

    async def event_generator() -> AsyncGenerator[str, None]:
        async for event_str in stream.audit_stream(run, force_static=force, clear_cache=clear_cache):
            yield event_str

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "Access-Control-Allow-Origin": "*",
        },
    )


# ============================================================================
# Start Server
# ============================================================================


def main() -> None:
    """Entry point for running the server."""
    settings = config.get_settings()
    log.success(f"Server listening on {settings.host}:{settings.port}")
    uvicorn.run("consent_audit.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
