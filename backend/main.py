"""Deployment entrypoint.

Most Python web start commands default to `uvicorn main:app`.
SmartSpec's FastAPI application is built in `server.py`.
"""

from server import app  # noqa: F401
