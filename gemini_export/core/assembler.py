"""Finished canvas to output bytes.

WHY: Serializing a long PDF is the slowest step of an export and the
only one that can fail after all the rendering work is done. Callers
need a single answer: either the bytes, or the reason there are none.

HOW: finalize() serializes the canvas in a worker thread via
asyncio.to_thread, so the event loop (HTTP server, CLI runner) stays
responsive, and wraps the outcome in an AssemblyResult.

RULES:
- finalize() never raises for serialization errors; it reports them
- Each assembler delivers exactly one result; a second finalize() call
  raises StreamFinalizeFailure
- An empty byte stream counts as a failure
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from gemini_export.core.errors import StreamFinalizeFailure

if TYPE_CHECKING:
    from gemini_export.core.canvas import Canvas

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblyResult:
    """Terminal outcome of one finalize() call.

    Exactly one of ``artifact`` (on success) and ``reason`` (on failure)
    is set.
    """

    ok: bool
    artifact: Optional[bytes] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, artifact: bytes) -> "AssemblyResult":
        return cls(ok=True, artifact=artifact)

    @classmethod
    def failure(cls, reason: str) -> "AssemblyResult":
        return cls(ok=False, reason=reason)

    def unwrap(self) -> bytes:
        """Return the artifact or raise StreamFinalizeFailure."""
        if not self.ok or self.artifact is None:
            raise StreamFinalizeFailure(self.reason or "PDF stream error.")
        return self.artifact


class OutputAssembler:
    """Turns one finished canvas into bytes, once."""

    def __init__(self) -> None:
        self._delivered = False

    @property
    def delivered(self) -> bool:
        return self._delivered

    async def finalize(self, canvas: Canvas) -> AssemblyResult:
        if self._delivered:
            raise StreamFinalizeFailure("Output has already been finalized")
        self._delivered = True

        try:
            data = await asyncio.to_thread(canvas.output)
        except Exception as exc:
            logger.exception("Finalizing document failed")
            return AssemblyResult.failure("PDF stream error: {}".format(exc))

        if not data:
            logger.error("Finalizing document produced no bytes")
            return AssemblyResult.failure("PDF stream error: empty output")

        logger.debug("Finalized document (%d bytes)", len(data))
        return AssemblyResult.success(bytes(data))
