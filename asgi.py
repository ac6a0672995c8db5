"""
asgi.py -- ASGI entry point for Gatekeeper.

Run with:  uvicorn asgi:app --reload
           uvicorn asgi:app --host 0.0.0.0 --port 8000 --workers 1

Sessions and users live in the database configured by DATABASE_URL, so
several workers can share one deployment; the in-process per-email locks
then only serialize requests within a worker and the database constraints
take over across workers.
"""

from api.main import app

__all__ = ["app"]
