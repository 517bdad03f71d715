# backend/gunicorn_conf.py

# Gunicorn config file for the stepflow webhook service

import os

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.getenv("WORKERS", "2"))
worker_class = "uvicorn.workers.UvicornWorker"
wsgi_app = "stepflow.main:app"

# Conversation state is shared across workers only through Redis; keep
# REDIS_URL set when running more than one worker.

# Settings for running behind a reverse proxy like Nginx
forwarded_allow_ips = "*"

# --- Logging ---
accesslog = "-"
errorlog = "-"
loglevel = "info"
