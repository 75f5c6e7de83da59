"""
Notice Capture Backend Entry Point

Run with: uvicorn main:app --reload --port 8000
Or: python main.py [--host 0.0.0.0] [--port 8000]
"""

import argparse
import os
import sys

# backend/ holds the top-level modules and packages (capture_config, acquisition, ...)
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'backend'))

from backend.main import app  # noqa: E402


def run() -> None:
    import uvicorn

    parser = argparse.ArgumentParser(description="Run the notice capture backend")
    parser.add_argument("--host", default=os.environ.get("CAPTURE_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("CAPTURE_PORT", "8000")))
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload")
    args = parser.parse_args()

    uvicorn.run("backend.main:app", host=args.host, port=args.port, reload=not args.no_reload)


if __name__ == "__main__":
    run()
