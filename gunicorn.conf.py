"""Gunicorn configuration for the directory API.

The application is built by the davdir.flask_app.create_app() factory in
each worker, so every worker gets its own SQLAlchemy engine and connection
pool.

Secrets (DATABASE_URL, DAVDIR_API_TOKEN) are read by davdir.config.settings
from /run/secrets first, then from the environment.
"""
import os

wsgi_app = "davdir.flask_app:create_app()"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:5000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
accesslog = "-"


def post_fork(server, worker):
    """
    Called just after a worker has been forked.

    Enforces that demo defaults (SQLite database, generated API token) are
    never picked up silently by a production worker.
    """
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    if demo_mode:
        worker.log.warning("DEMO_MODE=true - default SQLite database and generated API token in use")
        return

    from pathlib import Path
    secrets_dir = Path("/run/secrets")
    if secrets_dir.exists() and secrets_dir.is_dir():
        secret_files = list(secrets_dir.glob("*"))
        if secret_files:
            worker.log.info(f"Found {len(secret_files)} secrets in /run/secrets (using cached secrets)")
            return

    if not os.environ.get("DATABASE_URL"):
        worker.log.error("DATABASE_URL not set and no /run/secrets mounted")
