"""Pydantic response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for response serialization
and automatic OpenAPI documentation. Pydantic models enforce field types
at runtime and generate the JSON Schema shown in the /docs UI.

HOW: One model per response shape. Request data arrives as multipart
form fields, declared directly on the endpoint.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Response models never expose internal paths (job directories)
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobResponse(BaseModel):
    """Export job status response.

    RULES:
    - error is only set when status is 'failed'
    - output_files is only populated when status is 'completed'
    """

    id: str = Field(description="Unique job identifier.")
    status: str = Field(description="Current job status.")
    source: str = Field(description="Uploaded filename or share URL.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    config: Dict[str, Any] = Field(description="Export options used for this job.")
    title: Optional[str] = Field(
        default=None,
        description="Conversation title, once the page has been read.",
    )
    message_count: Optional[int] = Field(
        default=None,
        description="Number of extracted messages, once the page has been read.",
    )
    error: Optional[str] = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )
    output_files: Optional[List[str]] = Field(
        default=None,
        description="Output filenames, only present when status is 'completed'.",
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "id": "550e8400e29b41d4a716446655440000",
                "status": "completed",
                "source": "https://gemini.google.com/share/abc123",
                "created_at": 1760870400.0,
                "config": {"output_formats": ["json", "pdf"], "title": None},
                "title": "Trip_planning",
                "message_count": 6,
                "error": None,
                "output_files": [
                    "Trip_planning_1760870401234.json",
                    "Trip_planning_1760870401234.pdf",
                ],
            }
        ]
    }}


class JobCreatedResponse(BaseModel):
    """Response returned when a new export job is submitted."""

    id: str = Field(description="Unique job identifier for polling status.")
    status: str = Field(description="Initial job status (always 'pending').")
    source: str = Field(description="Uploaded filename or share URL.")


class FileInfo(BaseModel):
    """Metadata for a single output file."""

    filename: str = Field(description="Output filename.")
    media_type: str = Field(description="MIME type of the file content.")
    size: int = Field(description="File size in bytes.")


class FileListResponse(BaseModel):
    """Output files of a completed job."""

    job_id: str = Field(description="The job ID these files belong to.")
    files: List[FileInfo] = Field(description="Available output files.")


class FormatInfo(BaseModel):
    """Description of an available export format."""

    key: str = Field(description="Format identifier used in API requests.")
    name: str = Field(description="Human-readable format name.")
    extension: str = Field(description="File extension produced (e.g. 'pdf').")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
