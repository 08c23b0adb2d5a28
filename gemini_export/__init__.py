"""Gemini Conversation Exporter: shared chat transcripts to JSON and PDF.

WHY: A Gemini shared conversation only exists as a rendered web page.
Users want to keep it as data (JSON) and as a readable document (PDF)
without copy-pasting turn by turn.

HOW: Four-stage pipeline: extract (turns from the page HTML), normalize
(assistant markup to markdown), tokenize (markdown to block tokens) and
render (block tokens onto a paginated canvas). The JSON export skips the
last three stages and serializes the extracted plain text directly.

RULES:
- Every export consumes the same Conversation IR
- Adding a new output format = one new formatter module, no core changes
- A failure inside one message never aborts the whole document
"""

__version__ = "0.1.0"
