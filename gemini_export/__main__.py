"""Package entry point for ``python -m gemini_export``.

WHY: Users run the exporter as ``python -m gemini_export page.html`` for
a one-off export, or ``python -m gemini_export --serve`` to start the
HTTP API.

HOW: Checks sys.argv for the ``--serve`` flag. If present, starts the
FastAPI app under uvicorn. Otherwise, delegates to the CLI's main().
"""

import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        from gemini_export.server.app import run_api
        run_api()
    else:
        from gemini_export.cli import main
        sys.exit(main())
