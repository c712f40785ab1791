"""
Main entrypoint: FastAPI server with the category queue workers in background threads.

The workers are started by the app lifespan when Redis is reachable and
ENABLE_QUEUE is not "false"; otherwise webhooks are processed inline.

Env: DATABASE_URL, REDIS_URL, ENABLE_QUEUE, WEBHOOK_AUTH_TOKEN, API_HOST, API_PORT, etc.

Workers only (no API): python -m backend_indexer.job_queue.runtime
API only: ENABLE_QUEUE=false uvicorn backend_indexer.api_server.app:app --host 0.0.0.0 --port 4000
"""

# Configure structured JSON logging before other imports that may log
from backend_indexer.indexer_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Run the FastAPI server in the main thread."""
    import uvicorn

    from backend_indexer.api_server.server import create_app
    from backend_indexer.config import get_settings

    settings = get_settings()
    app = create_app(settings=settings)

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port, env=settings.app_env)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
