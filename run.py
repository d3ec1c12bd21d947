#!/usr/bin/env python
"""
SmartLearn - Application Entry Point

Usage:
    python run.py [--host HOST] [--port PORT] [--reload]

Examples:
    python run.py                    # Start with defaults
    python run.py --reload           # Start with auto-reload
    python run.py --port 8080        # Start on custom port
"""
import argparse
import uvicorn

from smartlearn.config import settings


def main():
    parser = argparse.ArgumentParser(
        description="SmartLearn API Server"
    )
    parser.add_argument(
        "--host",
        default=settings.HOST,
        help=f"Host to bind (default: {settings.HOST})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help=f"Port to bind (default: {settings.PORT})"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )

    args = parser.parse_args()

    print(f"SmartLearn API on http://{args.host}:{args.port} (docs: /docs, reload: {args.reload})")

    uvicorn.run(
        "smartlearn.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
