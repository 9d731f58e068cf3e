# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# SHAPEPORT - FASTAPI INTERFACE
# -----------------------------------------------------------------------------
# HTTP surface for the export engine.
#
# Endpoints:
# - GET    /health                                           : Health check
# - GET    /onshape/documents                                : Document listing
# - GET    /onshape/documents/{id}/elements                  : Elements + configs
# - GET    /onshape/documents/{id}/elements/{eid}/parts      : Part listing
# - POST   /onshape/export                                   : Export to zip
# - GET    /jobs, /jobs/{id}, /jobs/{id}/download            : Caller's jobs
# - DELETE /jobs                                             : Forget caller's jobs
#
# Errors are returned as {"error": ..., "details": ...}.
# -----------------------------------------------------------------------------

import asyncio
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated
from urllib.parse import quote

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from rich.console import Console
from rich.panel import Panel
from starlette.exceptions import HTTPException as StarletteHTTPException

PROJECT_ROOT = Path(__file__).parent.parent

# Load environment variables
load_dotenv(PROJECT_ROOT / ".env")

from shapeport.core.engine import ExportEngine
from shapeport.core.errors import ExportError, ExportRequestError
from shapeport.core.settings import load_settings
from shapeport.domain.models import ExportRequest, Job
from shapeport.infra.onshape_client import (
    OnshapeAPIError,
    OnshapeClient,
    basic_auth_header,
    caller_identity,
)

console = Console()

VERSION = "1.0.0"

# Export engine (lazy init)
_engine: ExportEngine | None = None


def get_engine() -> ExportEngine:
    global _engine
    if _engine is None:
        _engine = ExportEngine(settings=load_settings())
    return _engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    print_banner()
    get_engine()
    console.print("[green]SHAPEPORT ONLINE[/green]")

    yield

    console.print("[yellow]SHAPEPORT SHUTTING DOWN[/yellow]")


app = FastAPI(
    title="Shapeport",
    description="Onshape part exports, every configuration, one archive",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Export-Summary"],
)


# =============================================================================
# ERROR HANDLERS
# =============================================================================


def _error_response(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body = {"error": error}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(ExportError)
async def export_error_handler(request: Request, exc: ExportError):
    console.print(f"[red][API] {exc.kind}: {exc.message}[/red]")
    return _error_response(exc.status_code or 500, exc.message, exc.details)


@app.exception_handler(OnshapeAPIError)
async def onshape_error_handler(request: Request, exc: OnshapeAPIError):
    console.print(f"[red][API] Onshape API error: {exc}[/red]")
    return _error_response(exc.status_code or 502, f"Onshape API error: {exc}", exc.body or None)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return _error_response(400, "Invalid export request", messages)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail))


# =============================================================================
# DEPENDENCY INJECTION
# =============================================================================


async def get_auth_header(
    request: Request, engine: Annotated[ExportEngine, Depends(get_engine)]
) -> str:
    """Caller's Authorization header, or one built from configured API keys."""
    header = request.headers.get("Authorization")
    if header:
        return header
    settings = engine.settings
    if settings.access_key and settings.secret_key:
        return basic_auth_header(settings.access_key, settings.secret_key)
    raise ExportRequestError("Missing authorization header", status_code=401)


async def get_client(
    auth_header: Annotated[str, Depends(get_auth_header)],
    engine: Annotated[ExportEngine, Depends(get_engine)],
) -> OnshapeClient:
    return engine.client_for(auth_header)


# =============================================================================
# ENDPOINTS
# =============================================================================


@app.get("/health")
async def health_check():
    """Health check for Docker and load balancers."""
    return {"status": "online", "service": "shapeport", "version": VERSION}


@app.get("/onshape/documents")
async def list_documents(
    client: Annotated[OnshapeClient, Depends(get_client)], q: str = ""
):
    """List documents visible to the caller."""
    items = await asyncio.to_thread(client.list_documents, q)
    return {"items": items}


def _workspace_or_fail(client: OnshapeClient, document_id: str) -> str:
    workspace_id = client.get_default_workspace(document_id)
    if not workspace_id:
        raise HTTPException(status_code=400, detail="No default workspace found")
    return workspace_id


def _elements_with_configuration(client: OnshapeClient, document_id: str) -> list[dict]:
    workspace_id = _workspace_or_fail(client, document_id)
    elements = client.list_elements(document_id, workspace_id)
    return [
        {
            **element,
            "configuration": client.get_element_configuration(
                document_id, workspace_id, element["id"]
            ),
        }
        for element in elements
    ]


@app.get("/onshape/documents/{document_id}/elements")
async def list_elements(
    document_id: str, client: Annotated[OnshapeClient, Depends(get_client)]
):
    """List a document's elements with their configuration (null if none)."""
    return await asyncio.to_thread(_elements_with_configuration, client, document_id)


def _studio_parts(client: OnshapeClient, document_id: str, element_id: str) -> list[dict]:
    workspace_id = _workspace_or_fail(client, document_id)
    return client.list_parts(document_id, workspace_id, element_id)


@app.get("/onshape/documents/{document_id}/elements/{element_id}/parts")
async def list_parts(
    document_id: str,
    element_id: str,
    client: Annotated[OnshapeClient, Depends(get_client)],
):
    """List the parts of a Part Studio."""
    return await asyncio.to_thread(_studio_parts, client, document_id, element_id)


@app.post("/onshape/export")
async def export(
    request: ExportRequest,
    client: Annotated[OnshapeClient, Depends(get_client)],
    engine: Annotated[ExportEngine, Depends(get_engine)],
):
    """Export every combination x format and return one zip archive."""
    outcome = await asyncio.to_thread(engine.run, request, client)

    filename = (
        f"onshape_exports_{request.document_id}_{request.element_id}_"
        f"{int(time.time() * 1000)}.zip"
    )
    return Response(
        content=outcome.archive,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Export-Summary": outcome.summary(),
        },
    )


@app.get("/jobs")
async def list_jobs(
    auth_header: Annotated[str, Depends(get_auth_header)],
    engine: Annotated[ExportEngine, Depends(get_engine)],
):
    """List the caller's export jobs."""
    jobs = engine.tracker.list_jobs(owner=caller_identity(auth_header))
    return {"count": len(jobs), "jobs": [job.model_dump(mode="json") for job in jobs]}


def _owned_job(engine: ExportEngine, job_id: str, auth_header: str) -> Job:
    job = engine.tracker.get(job_id, owner=caller_identity(auth_header))
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    auth_header: Annotated[str, Depends(get_auth_header)],
    engine: Annotated[ExportEngine, Depends(get_engine)],
):
    """Get one job's status."""
    return _owned_job(engine, job_id, auth_header).model_dump(mode="json")


@app.get("/jobs/{job_id}/download")
async def download_job(
    job_id: str,
    auth_header: Annotated[str, Depends(get_auth_header)],
    engine: Annotated[ExportEngine, Depends(get_engine)],
):
    """Download the file a finished job produced."""
    job = _owned_job(engine, job_id, auth_header)
    if job.payload is None:
        if job.has_output:
            raise HTTPException(status_code=410, detail="Job output is no longer stored; export again")
        raise HTTPException(status_code=409, detail=f"Job has no output (status: {job.status.value})")
    return Response(
        content=job.payload,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(job.entry_name or job.id)}"},
    )


@app.delete("/jobs")
async def clear_jobs(
    auth_header: Annotated[str, Depends(get_auth_header)],
    engine: Annotated[ExportEngine, Depends(get_engine)],
):
    """Forget the caller's jobs."""
    return {"cleared": engine.tracker.clear(owner=caller_identity(auth_header))}


# =============================================================================
# BANNER
# =============================================================================


def print_banner() -> None:
    """Print the Shapeport startup banner."""
    banner = f"""
    ╔═══════════════════════════════════════════════════╗
    ║              SHAPEPORT v{VERSION} (FastAPI)            ║
    ║  • STL / STEP / Parasolid / SolidWorks / ...      ║
    ║  • Every configuration, one archive               ║
    ╚═══════════════════════════════════════════════════╝
    """
    console.print(Panel(banner, border_style="cyan"))


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("SHAPEPORT_PORT", "5050"))
    uvicorn.run(app, host="0.0.0.0", port=port)
