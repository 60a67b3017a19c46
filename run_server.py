#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py
"""

import argparse
import os


def run_dev_server(port: int) -> None:
    """Run development server with auto-reload."""
    import uvicorn

    uvicorn.run(
        "kpi_engine.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_dirs=["kpi_engine"],
        log_level="debug",
    )


def run_prod_server(port: int) -> None:
    """Run production server with Uvicorn workers."""
    import uvicorn

    uvicorn.run(
        "kpi_engine.main:app",
        host="0.0.0.0",
        port=port,
        workers=int(os.getenv("WORKERS", 4)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Business Metrics API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", 8000)), help="Port to run on")
    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.port)
    else:
        run_prod_server(args.port)
