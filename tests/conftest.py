"""Shared test fixtures for the gemini_export test suite.

WHY: Extractor, pipeline, CLI and API tests all need a realistic share
page. Keeping one canonical page here means every layer is tested
against the same markup, so a selector change breaks loudly everywhere.

HOW: SHARE_PAGE_HTML mirrors the structure of a rendered Gemini share
page: a title section, then one ``share-turn-viewer`` per exchange with
the user query and the assistant's rendered markdown. Fixtures expose
the raw HTML, the expected Conversation IR, and a RecordingCanvas.

RULES:
- The page holds exactly two exchanges (four messages)
- The first exchange is the minimal "Hello" / "Hi there" pair
- The second assistant reply exercises headings, lists, code and a table
"""

from __future__ import annotations

import pytest

from gemini_export.core.canvas import RecordingCanvas
from gemini_export.core.ir import Conversation, Role, Turn


# ---------------------------------------------------------------------------
# Sample share page
# ---------------------------------------------------------------------------

RICH_ANSWER_HTML = (
    "<h2>Packing list</h2>"
    "<p>Bring the <b>essentials</b>:</p>"
    "<ul><li>Passport</li><li>Charger</li></ul>"
    "<pre><code>print('bon voyage')\n</code></pre>"
    "<table><thead><tr><th>Day</th><th>City</th></tr></thead>"
    "<tbody><tr><td>1</td><td>Lisbon</td></tr><tr><td>2</td><td>Porto</td></tr></tbody></table>"
)

SHARE_PAGE_HTML = """<!DOCTYPE html>
<html>
<head><title>Gemini</title><script>window.x = 1;</script></head>
<body>
<div id="app-root">
  <div class="share-title-section"><h1>Trip planning: Portugal?</h1></div>
  <share-turn-viewer>
    <user-query><div class="query-text"><p>Hello</p></div></user-query>
    <response-container><message-content>
      <div class="markdown"><p>Hi there</p></div>
    </message-content></response-container>
  </share-turn-viewer>
  <share-turn-viewer>
    <user-query><div class="query-text"><p>What should I pack?</p></div></user-query>
    <response-container><message-content>
      <div class="markdown">{answer}</div>
    </message-content></response-container>
  </share-turn-viewer>
</div>
</body>
</html>
""".format(answer=RICH_ANSWER_HTML)

EMPTY_PAGE_HTML = """<html><body>
<div id="app-root"><div class="share-title-section"><h1>Nothing here</h1></div></div>
</body></html>
"""

SHARE_URL = "https://gemini.google.com/share/abc123"


@pytest.fixture
def share_page_html() -> str:
    return SHARE_PAGE_HTML


@pytest.fixture
def empty_page_html() -> str:
    return EMPTY_PAGE_HTML


@pytest.fixture
def share_url() -> str:
    return SHARE_URL


@pytest.fixture
def share_page_file(tmp_path):
    """The sample share page saved to disk, as a browser would."""
    path = tmp_path / "shared_chat.html"
    path.write_text(SHARE_PAGE_HTML, encoding="utf-8")
    return path


@pytest.fixture
def sample_conversation() -> Conversation:
    """A small two-turn conversation with simple assistant markup."""
    return Conversation(
        title="Greeting test",
        url=SHARE_URL,
        turns=(
            Turn(role=Role.USER, text="Hello"),
            Turn(role=Role.ASSISTANT, text="Hi there", markup="<p>Hi there</p>"),
        ),
    )


@pytest.fixture
def rich_conversation() -> Conversation:
    """A conversation whose assistant reply uses most block types."""
    return Conversation(
        title="Rich reply",
        url=SHARE_URL,
        turns=(
            Turn(role=Role.USER, text="What should I pack?"),
            Turn(
                role=Role.ASSISTANT,
                text="Packing list\nBring the essentials:",
                markup=RICH_ANSWER_HTML,
            ),
        ),
    )


@pytest.fixture
def canvas() -> RecordingCanvas:
    return RecordingCanvas()
