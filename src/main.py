import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.admission import AdmissionController
from src.api import router
from src.config import AppConfig
from src.job_queue import JobScheduler
from src.log_handler.logging_config import get_logger, setup_logging_from_env, shutdown_logging
from src.worker import AIProviderClient, HandlerRegistry, build_handler_registry

logger = get_logger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    handlers: Optional[HandlerRegistry] = None,
) -> FastAPI:
    """
    Build the FastAPI application with its own scheduler and admission controller.

    Args:
        config: Service configuration; read from the environment when omitted
        handlers: Job handlers; defaults to the AI provider-backed handlers

    Returns:
        The configured FastAPI application
    """
    config = config or AppConfig.from_env()
    if handlers is None:
        client = AIProviderClient(config.provider, config.provider_retry)
        handlers = build_handler_registry(client)
        if client.mock_mode:
            logger.warning("No AI provider key configured, handlers run in mock mode")

    scheduler = JobScheduler(config.scheduler, handlers)
    admission = AdmissionController(config.admission)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the scheduler and admission sweeper, stop them on shutdown."""
        try:
            logger.info("Starting overlay backend services...")
            await scheduler.start()
            await admission.start()
            logger.info("Application startup complete")
            yield

            logger.info("Initiating graceful shutdown...")
            await admission.stop()
            await scheduler.stop()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.error(f"Error during application lifecycle: {str(e)}")
            raise

    app = FastAPI(
        title="Overlay AI Processing Service",
        description="Admission-controlled queue for AI image edits and chat",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.scheduler = scheduler
    app.state.admission = admission
    app.state.handlers = handlers

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        stats = await scheduler.get_queue_stats()
        return {"status": "ok", "scheduler_running": scheduler.running, "queue": stats}

    return app


def run_app():
    """Runs the application with Uvicorn"""
    setup_logging_from_env()
    try:
        app = create_app()

        server_config = uvicorn.Config(
            app=app,
            host=os.environ.get("OVERLAY_HOST", "0.0.0.0"),
            port=int(os.environ.get("OVERLAY_PORT", 8000)),
            log_level="info",
            timeout_graceful_shutdown=30,
        )
        server = uvicorn.Server(server_config)
        server.run()
    except Exception as e:
        logger.error(f"Failed to start application: {str(e)}")
        raise
    finally:
        shutdown_logging()


if __name__ == "__main__":
    run_app()
