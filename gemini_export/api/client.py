"""Async HTTP client for Gemini share pages.

WHY: Exports can start from a share URL instead of a saved page. The
share page is rendered client-side, so a first fetch may return a shell
without the conversation in it. The client fetches the page and, when
asked to, keeps re-fetching until the conversation anchor shows up or a
fixed time bound runs out.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. ShareClient is an
async context manager: enter it to open the connection pool, exit to
close it. fetch_until_ready() polls with exponential backoff and waits
on an asyncio.Event between polls, so a caller can cancel the wait at
any moment.

RULES:
- Always use the async context manager (async with ShareClient() as client:)
- Only http and https URLs are fetched
- Polling uses exponential backoff: 1s initial, 1.5x factor, 5s max
- The wait is bounded (READY_TIMEOUT_S, 15s by default); on expiry
  ShareTimeoutError is raised
- A set cancel event makes fetch_until_ready() return None promptly
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from urllib.parse import urlparse

import httpx

from gemini_export.config import FETCH_TIMEOUT_S, READY_TIMEOUT_S, USER_AGENT
from gemini_export.core.errors import ExportError
from gemini_export.core.extractor import is_ready

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_POLL_INITIAL_INTERVAL_S = 1.0
_POLL_BACKOFF_FACTOR = 1.5
_POLL_MAX_INTERVAL_S = 5.0


class ShareFetchError(ExportError):
    """Raised when the share page cannot be downloaded.

    Wraps the HTTP status code (0 for transport errors) and a message.
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Share page fetch failed ({status_code}): {message}")


class ShareTimeoutError(ExportError, TimeoutError):
    """Raised when the conversation does not appear within the time bound."""


def validate_share_url(url: str) -> str:
    """Return ``url`` stripped, or raise ValueError if it is not http(s)."""
    cleaned = (url or "").strip()
    parsed = urlparse(cleaned)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Not an http(s) URL: '{}'".format(url))
    return cleaned


class ShareClient:
    """Async client for downloading Gemini share pages.

    RULES:
    - Use as: async with ShareClient() as client: ...
    - ``transport`` is passed to httpx (tests use httpx.MockTransport)
    - Backoff timings are constructor arguments so tests can shrink them
    """

    def __init__(
        self,
        timeout_s: float = FETCH_TIMEOUT_S,
        user_agent: str = USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
        poll_initial_s: float = _POLL_INITIAL_INTERVAL_S,
        poll_max_s: float = _POLL_MAX_INTERVAL_S,
    ) -> None:
        self._timeout_s = timeout_s
        self._user_agent = user_agent
        self._transport = transport
        self._poll_initial_s = poll_initial_s
        self._poll_max_s = poll_max_s
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ShareClient:
        self._client = httpx.AsyncClient(
            headers={"User-Agent": self._user_agent, "Accept": "text/html"},
            timeout=httpx.Timeout(self._timeout_s, connect=10.0),
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "ShareClient must be used as an async context manager: "
                "async with ShareClient() as client: ..."
            )
        return self._client

    async def fetch_page(self, url: str) -> str:
        """Download the share page and return its HTML.

        Raises:
            ValueError: If ``url`` is not an http(s) URL.
            ShareFetchError: On transport errors and non-200 responses.
        """
        client = self._ensure_client()
        url = validate_share_url(url)
        try:
            resp = await client.get(url)
        except httpx.HTTPError as exc:
            raise ShareFetchError(0, str(exc)) from exc

        if resp.status_code != 200:
            raise ShareFetchError(resp.status_code, resp.reason_phrase or resp.text[:200])
        return resp.text

    async def fetch_until_ready(
        self,
        url: str,
        timeout_s: float = READY_TIMEOUT_S,
        cancel: asyncio.Event | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> str | None:
        """Fetch the page until the conversation anchor is present.

        WHY: Mirrors waiting for the conversation to render before
        exporting, with a hard upper bound so a page that never renders
        does not hang the caller.

        HOW: Fetch, probe for the anchor selector, then wait on the
        cancel event for the current backoff interval (1s, 1.5s, ...
        capped at 5s, never past the deadline) and try again.

        Returns:
            The page HTML, or None if ``cancel`` was set first.

        Raises:
            ShareTimeoutError: If the anchor is still missing after
                ``timeout_s`` seconds.
            ShareFetchError: If a fetch fails.
        """
        cancel = cancel or asyncio.Event()
        interval = self._poll_initial_s
        deadline = time.monotonic() + timeout_s
        attempt = 0

        while True:
            if cancel.is_set():
                logger.info("Share page wait cancelled")
                return None

            attempt += 1
            html = await self.fetch_page(url)
            if is_ready(html):
                logger.info("Conversation found after %d fetch(es)", attempt)
                return html

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ShareTimeoutError(
                    "Conversation not found on page after {:.0f}s".format(timeout_s)
                )

            if on_status:
                on_status("Waiting for conversation to render (attempt {})...".format(attempt))
            try:
                await asyncio.wait_for(cancel.wait(), timeout=min(interval, remaining))
            except asyncio.TimeoutError:
                pass
            interval = min(interval * _POLL_BACKOFF_FACTOR, self._poll_max_s)
