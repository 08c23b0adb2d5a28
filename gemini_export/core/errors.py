"""Typed exceptions for the export pipeline.

WHY: Callers (CLI, HTTP API, tests) need to tell apart "nothing to
export" from "a library is missing" from "the PDF stream broke". Each
maps to a different user-visible notice, while per-message render
failures must never reach the user at all.

RULES:
- Every exception here subclasses ExportError
- MessageRenderFailure is raised and caught inside the renderer only
- Setup failures (empty extraction, missing dependency, finalize
  failure) always propagate to the caller and abort the export
"""

from __future__ import annotations


class ExportError(Exception):
    """Base class for all export failures."""


class ExtractionEmpty(ExportError):
    """Raised when the source document contains no conversation turns."""

    def __init__(self, message: str = "No conversation data found.") -> None:
        super().__init__(message)


class DependencyUnavailable(ExportError):
    """Raised when a library required for rendering cannot be imported.

    WHY: The check runs before any output is produced, so a missing
    library never results in a half-written artifact.
    """

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            "Required libraries not available: {}".format(", ".join(self.missing))
        )


class MessageRenderFailure(ExportError):
    """Raised when a single message cannot be tokenized or rendered.

    Carries the zero-based message index so the log line points at the
    offending turn.
    """

    def __init__(self, index: int, cause: BaseException) -> None:
        self.index = index
        self.cause = cause
        super().__init__("Message {} failed to render: {}".format(index + 1, cause))


class StreamFinalizeFailure(ExportError):
    """Raised when the finished canvas cannot be turned into bytes."""


class RenderInProgressError(ExportError):
    """Raised when a renderer is asked to render while already rendering."""
