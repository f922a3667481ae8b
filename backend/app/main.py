import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import build_voice_service
from app.services.voice_service import VoiceService
from app.utils.exceptions import AppException
from core.config import Settings, settings as default_settings
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def _cleanup_loop(service: VoiceService, interval: int):
    while True:
        await asyncio.sleep(interval)
        try:
            service.store.cleanup()
        except Exception as e:
            logger.error(f"Session cleanup failed: {e}")


def create_app(config: Optional[Settings] = None, service: Optional[VoiceService] = None) -> FastAPI:
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config.LOG_LEVEL, config.LOG_DIR)
        app.state.voice_service = service or build_voice_service(config)
        cleanup_task = asyncio.create_task(
            _cleanup_loop(app.state.voice_service, config.CLEANUP_INTERVAL_SECONDS)
        )
        logger.info("Conversation engine started")
        try:
            yield
        finally:
            cleanup_task.cancel()
            try:
                await cleanup_task
            except asyncio.CancelledError:
                pass
            await app.state.voice_service.audit.close()
            logger.info("Conversation engine stopped")

    app = FastAPI(
        title="VoiceOps Conversation API",
        version="1.0.0",
        description="Intent resolution and multi-turn session context for supply-chain analytics",
        lifespan=lifespan,
    )

    # CORS Configuration
    origins = ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from app.api.v1.api import api_router
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                "message": exc.message,
                "path": str(request.url)
            }
        )

    return app


app = create_app()
