# gunicorn.conf.py
import os

# Worker configuration
workers = int(os.getenv("GUNICORN_WORKERS", 2))
worker_class = "gthread"
threads = int(os.getenv("GUNICORN_THREADS", 4))
timeout = int(os.getenv("GUNICORN_TIMEOUT", 300))
keepalive = 2
max_requests = 1000
max_requests_jitter = 50

# Application
wsgi_app = "samiske.wsgi:application"

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")

# Process naming
proc_name = "samiske"

# Bind address
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")

# Security headers (if behind proxy)
forwarded_allow_ips = "*"
