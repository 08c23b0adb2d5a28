"""Core extraction, conversion and rendering modules.

WHY: The core package holds everything between "page HTML" and "file
bytes": the IR dataclasses, the extractor, the markup normalizer, the
markdown tokenizer and the document renderer. Front ends (CLI, HTTP
API) only talk to pipeline.py.

HOW: ir.py defines the data structures, extractor.py builds them from
share page HTML, normalizer.py and tokenizer.py turn assistant markup
into block tokens, renderer.py draws those tokens onto a canvas from
canvas.py, and assembler.py turns the canvas into bytes.

RULES:
- IR dataclasses are the contract; change with care
- Nothing in core writes files except pipeline.write_outputs()
- Per-message render failures stay inside renderer.py
"""
