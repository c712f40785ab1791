"""
FastAPI/ASGI application entrypoint.

Run with: uvicorn backend_indexer.api_server.app:app --host 0.0.0.0 --port 4000
"""

from backend_indexer.api_server.server import create_app

app = create_app()

__all__ = ["app"]
