"""Serve the curves API with Uvicorn: ``python -m api``."""

from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional

import uvicorn


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Disbursement curves API server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", default=os.getenv("CURVES_HOST", "127.0.0.1"), help="Host to bind the server")
    parser.add_argument("--port", type=int, default=int(os.getenv("CURVES_PORT", "8080")), help="Port to bind the server")
    parser.add_argument("--reload", action="store_true", default=False, help="Enable auto-reload (development only)")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        default="info",
        help="Logging level",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
