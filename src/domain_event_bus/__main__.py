"""
Main entry point for running the event bus debug API.
"""

import argparse
import logging
from typing import List, Optional

import uvicorn

from .api.app import app
from .utils.logging import setup_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Domain event bus debug API")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    parser.add_argument("--debug", action="store_true", help="Log every published event")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """Run the debug API."""
    args = parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        structured=args.json_logs,
    )
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="info",
        lifespan="on",
    )


if __name__ == "__main__":
    main()
