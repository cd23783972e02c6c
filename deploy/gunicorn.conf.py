"""
Gunicorn configuration for the prediction API.

    gunicorn -c deploy/gunicorn.conf.py podium.main:app
"""
import os
import multiprocessing

# Server socket
bind = os.environ.get("BIND", "0.0.0.0:8000")
backlog = 2048

# Per-round scoring locks are in-process; more workers means the round
# version check is what serializes concurrent saves across workers.
workers = int(os.environ.get("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 120
keepalive = 5

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()

proc_name = "podium-predictions"

limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190
