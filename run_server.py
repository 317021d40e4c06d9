#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py

    Or with Gunicorn:
    gunicorn footfall.main:app -c gunicorn.conf.py
"""

import argparse
import os
import subprocess

APP = "footfall.main:app"


def run_dev_server(port: int):
    """Single process with auto-reload."""
    import uvicorn

    uvicorn.run(
        APP,
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_dirs=["footfall"],
        log_level="debug",
    )


def run_prod_server(port: int):
    """
    Single Uvicorn process.

    The refresh scheduler lives inside the app process, so running several
    workers multiplies scheduled refreshes; keep WORKERS at 1 unless
    ROLLUP_SCHEDULER_ENABLED is off on all but one instance.
    """
    import uvicorn

    uvicorn.run(
        APP,
        host="0.0.0.0",
        port=port,
        workers=int(os.getenv("WORKERS", 1)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn():
    subprocess.run(["gunicorn", APP, "-c", "gunicorn.conf.py"], check=True)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Footfall Rollup API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", 8000)), help="Port to run on")
    args = parser.parse_args()

    if args.dev:
        run_dev_server(args.port)
    elif args.gunicorn:
        os.environ["PORT"] = str(args.port)
        run_gunicorn()
    else:
        run_prod_server(args.port)
