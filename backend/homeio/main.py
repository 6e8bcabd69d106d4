import logging
from contextlib import asynccontextmanager
from typing import Callable, List, Optional

from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .adapters import VendorAdapter, build_adapters
from .core.config import Settings, settings as default_settings
from .core.exceptions import HomeIOError, NotFound, StoreError, ValidationError
from .db.database import SessionLocal, create_tables
from .routers.devices import router as devices_router
from .services.device_locks import DeviceLockRegistry
from .services.device_state import DeviceStateService
from .services.device_view import DeviceViewBuilder
from .services.reconciliation import ReconciliationEngine
from .services.reconciliation_scheduler import ReconciliationScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _status_for(error: HomeIOError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, StoreError):
        return 500
    return 503


def create_app(
    app_settings: Optional[Settings] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    adapters: Optional[List[VendorAdapter]] = None,
    create_schema: bool = True
) -> FastAPI:
    """Wire the services together and build the FastAPI application"""
    app_settings = app_settings or default_settings
    locks = DeviceLockRegistry()

    engine = ReconciliationEngine(
        adapters if adapters is not None else build_adapters(app_settings),
        session_factory,
        settings=app_settings,
        logger=logging.getLogger("homeio.reconciliation"),
        locks=locks,
    )
    scheduler = ReconciliationScheduler(engine, app_settings.RECONCILE_INTERVAL_SECONDS)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info(f"Starting {app_settings.PROJECT_NAME} backend...")

        if create_schema:
            create_tables()
            logger.info("Database tables created")

        await scheduler.start()

        yield

        logger.info(f"Shutting down {app_settings.PROJECT_NAME} backend...")
        await scheduler.stop()

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=app_settings.PROJECT_VERSION,
        lifespan=lifespan
    )

    app.state.settings = app_settings
    app.state.engine = engine
    app.state.scheduler = scheduler
    app.state.view_builder = DeviceViewBuilder()
    app.state.state_service = DeviceStateService(locks=locks)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=app_settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HomeIOError)
    async def homeio_error_handler(request: Request, exc: HomeIOError):
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error_response(status_code, str(exc))

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    app.include_router(devices_router, prefix=app_settings.API_BASE_PATH)

    @app.get("/health")
    async def health():
        return {"status": "ok", "scheduler_running": scheduler.running}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "homeio.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
