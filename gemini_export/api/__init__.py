"""Share page client package: async HTTP access to Gemini share pages.

WHY: Exports can start from a share URL. Fetching, retrying and the
bounded wait for the conversation to appear belong in one place so the
CLI and the HTTP API behave the same.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. ShareClient exposes
fetch_page() and fetch_until_ready().

RULES:
- All share page HTTP goes through ShareClient (no direct httpx elsewhere)
- Fetch failures surface as ShareFetchError, expired waits as
  ShareTimeoutError; both are ExportError subclasses
"""

from gemini_export.api.client import (
    ShareClient,
    ShareFetchError,
    ShareTimeoutError,
    validate_share_url,
)

__all__ = ["ShareClient", "ShareFetchError", "ShareTimeoutError", "validate_share_url"]
