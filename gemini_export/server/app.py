"""FastAPI application exposing conversation exports over HTTP.

WHY: Other tools (bookmarklets, chat bots, n8n flows) want exports
without a terminal. Uploading a saved page, or handing over a share
URL, and downloading the JSON/PDF afterwards covers them all.

HOW: POST /exports accepts either a multipart HTML upload or a share URL
as form data, creates a job and runs the export pipeline in the
background. Clients poll GET /exports/{id} and download the files once
the job is completed.

RULES:
- All endpoints have OpenAPI descriptions on every parameter and response
- Error responses use the ErrorResponse schema
- Background exports use FastAPI BackgroundTasks
- The job store is a module-level singleton
- Exactly one of ``file`` and ``url`` must be given
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from gemini_export import __version__
from gemini_export.config import API_HOST, API_PORT, READY_TIMEOUT_S
from gemini_export.formatters import FORMATTERS, parse_format_keys
from gemini_export.server.jobs import Job, JobStatus, JobStore
from gemini_export.server.models import (
    ErrorResponse,
    FileInfo,
    FileListResponse,
    FormatInfo,
    HealthResponse,
    JobCreatedResponse,
    JobResponse,
)

logger = logging.getLogger(__name__)

ALLOWED_UPLOAD_SUFFIXES = frozenset({".html", ".htm"})

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()


async def _periodic_cleanup() -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        job_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Gemini Conversation Exporter API",
    description=(
        "REST API for exporting shared Gemini conversations as JSON and PDF. "
        "Upload a saved share page or submit a share URL, poll for status, "
        "and download the results."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        status=job.status.value,
        source=job.source,
        created_at=job.created_at,
        config=job.config,
        title=job.title,
        message_count=job.message_count,
        error=job.error,
        output_files=job.output_files if job.output_files else None,
    )


def _get_job_or_404(job_id: str) -> Job:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return job


def _require_completed(job: Job) -> None:
    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail="Job is not completed (current status: {}).".format(job.status.value),
        )


def _infer_media_type(filename: str) -> str:
    """Infer MIME type from filename extension.

    RULES:
    - .json -> application/json
    - .pdf -> application/pdf
    - fallback -> application/octet-stream
    """
    ext = Path(filename).suffix.lower()
    mapping = {
        ".json": "application/json",
        ".pdf": "application/pdf",
    }
    return mapping.get(ext, "application/octet-stream")


async def _run_export_pipeline(job_id: str, store: JobStore) -> None:
    """Run the export pipeline for a job.

    WHY: This is the background task behind POST /exports: fetch or read
    the page, extract the turns, run the formatters, record the files.

    RULES:
    - Updates job status at each stage
    - Catches all exceptions and marks the job failed with the message
    - Output files are written into the job's output_dir
    """
    from gemini_export.api.client import ShareClient
    from gemini_export.core.pipeline import export_conversation, load_conversation

    job = store.get_job(job_id)
    if job is None:
        return

    config = job.config
    try:
        url = config.get("url")
        if url:
            store.update_job(job_id, status=JobStatus.FETCHING)
            async with ShareClient() as client:
                html = await client.fetch_until_ready(
                    url, timeout_s=config.get("wait", READY_TIMEOUT_S),
                )
            if html is None:
                raise RuntimeError("Fetching the share page was cancelled")
        else:
            html = job.input_path.read_text(encoding="utf-8", errors="replace")

        store.update_job(job_id, status=JobStatus.EXTRACTING)
        conversation = load_conversation(html, url=url or "", title=config.get("title"))
        store.update_job(
            job_id,
            title=conversation.title,
            message_count=len(conversation.turns),
        )

        store.update_job(job_id, status=JobStatus.RENDERING)
        format_keys = config.get("output_formats") or list(FORMATTERS.keys())
        paths = await export_conversation(conversation, format_keys, job.output_dir)

        store.update_job(
            job_id,
            status=JobStatus.COMPLETED,
            output_files=[path.name for path in paths],
        )
    except Exception as exc:
        logger.exception("Export pipeline failed for job %s", job_id)
        store.update_job(job_id, status=JobStatus.FAILED, error=str(exc))


def _run_export_sync(job_id: str, store: JobStore) -> None:
    """Synchronous wrapper for the async export pipeline.

    WHY: FastAPI runs plain-function background tasks in a worker
    thread; asyncio.run() gives the pipeline its own event loop there.
    """
    asyncio.run(_run_export_pipeline(job_id, store))


# ---------------------------------------------------------------------------
# Endpoints: Exports
# ---------------------------------------------------------------------------


@app.post(
    "/exports",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["exports"],
    summary="Submit an export job",
    description=(
        "Upload a saved Gemini share page, or pass a share URL, and choose "
        "the output formats. Returns a job ID immediately; poll "
        "GET /exports/{id} for status."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid source or format"},
        429: {"model": ErrorResponse, "description": "Too many concurrent jobs"},
    },
)
async def create_export(
    background_tasks: BackgroundTasks,
    file: Annotated[
        Optional[UploadFile],
        File(description="Saved share page (.html or .htm)."),
    ] = None,
    url: Annotated[
        Optional[str],
        Form(description="Share URL to fetch instead of uploading a page."),
    ] = None,
    output_formats: Annotated[
        Optional[str],
        Form(description="Comma-separated output formats. Available: json, pdf. Defaults to all."),
    ] = None,
    title: Annotated[
        Optional[str],
        Form(description="Override the conversation title read from the page."),
    ] = None,
    wait: Annotated[
        float,
        Form(description="For URLs: seconds to wait for the conversation to render."),
    ] = READY_TIMEOUT_S,
) -> JobCreatedResponse:
    from gemini_export.api.client import validate_share_url

    if (file is None) == (not url):
        raise HTTPException(
            status_code=400,
            detail="Provide exactly one of 'file' or 'url'.",
        )

    try:
        format_keys = parse_format_keys(output_formats)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if wait < 0 or wait > 120:
        raise HTTPException(status_code=422, detail="'wait' must be between 0 and 120 seconds")

    if url:
        try:
            source = validate_share_url(url)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
    else:
        # Sanitize filename to prevent path traversal
        source = Path(file.filename or "upload.html").name
        if Path(source).suffix.lower() not in ALLOWED_UPLOAD_SUFFIXES:
            raise HTTPException(
                status_code=400,
                detail="Unsupported file type '{}'. Upload a saved .html page.".format(
                    Path(source).suffix
                ),
            )

    config = {
        "url": source if url else None,
        "output_formats": format_keys,
        "title": title,
        "wait": wait,
    }

    try:
        job = job_store.create_job(source=source, config=config)
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    if file is not None:
        job.input_path.write_bytes(await file.read())

    background_tasks.add_task(_run_export_sync, job.id, job_store)

    return JobCreatedResponse(id=job.id, status=job.status.value, source=job.source)


@app.get(
    "/exports/{job_id}",
    response_model=JobResponse,
    tags=["exports"],
    summary="Get export job status",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def get_export(job_id: str) -> JobResponse:
    return _job_to_response(_get_job_or_404(job_id))


@app.get(
    "/exports/{job_id}/files",
    response_model=FileListResponse,
    tags=["exports"],
    summary="List output files for a completed job",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def list_export_files(job_id: str) -> FileListResponse:
    job = _get_job_or_404(job_id)
    _require_completed(job)

    files = []
    for fname in job.output_files:
        fpath = job.output_dir / fname
        if fpath.exists():
            files.append(FileInfo(
                filename=fname,
                media_type=_infer_media_type(fname),
                size=fpath.stat().st_size,
            ))
    return FileListResponse(job_id=job.id, files=files)


@app.get(
    "/exports/{job_id}/files/{filename}",
    tags=["exports"],
    summary="Download a single output file",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid filename"},
        404: {"model": ErrorResponse, "description": "Job or file not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def download_export_file(job_id: str, filename: str) -> Response:
    if "/" in filename or "\\" in filename or ".." in filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    job = _get_job_or_404(job_id)
    _require_completed(job)

    if filename not in job.output_files:
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found in job output files.".format(filename),
        )

    fpath = job.output_dir / filename
    if not fpath.exists():
        raise HTTPException(
            status_code=404,
            detail="File '{}' not found on disk.".format(filename),
        )

    return Response(
        content=fpath.read_bytes(),
        media_type=_infer_media_type(filename),
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


@app.delete(
    "/exports/{job_id}",
    status_code=204,
    tags=["exports"],
    summary="Delete an export job",
    description="Delete an export job and all its files.",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def delete_export(job_id: str) -> Response:
    if not job_store.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Formats and health
# ---------------------------------------------------------------------------


@app.get(
    "/formats",
    response_model=List[FormatInfo],
    tags=["formats"],
    summary="List available export formats",
)
async def list_formats() -> List[FormatInfo]:
    result = []
    for key, formatter_cls in sorted(FORMATTERS.items()):
        formatter = formatter_cls()
        result.append(FormatInfo(key=key, name=formatter.name, extension=formatter.extension))
    return result


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api():
    """Entry point for the gemini-export-api console script."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)
