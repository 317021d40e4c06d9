"""
Gunicorn Configuration

Uvicorn workers under Gunicorn. Each worker runs its own refresh scheduler,
so the default is a single worker.
"""

import os

bind = os.getenv("BIND", f"0.0.0.0:{os.getenv('PORT', '8000')}")
backlog = 2048

workers = int(os.getenv("WORKERS", 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
# Foreground backfills of long ranges can take a while
timeout = 120
keepalive = 5
graceful_timeout = 30

proc_name = "footfall-rollups"
daemon = False

errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
