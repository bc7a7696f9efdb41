"""
Main FastAPI application for the Workdesk HR operations backend.
"""
from contextlib import asynccontextmanager
from typing import Callable, Optional
import logging
import logging.config

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from app.config import settings
from app.database import Base, SessionLocal, engine as default_engine, get_db
from app.exceptions import AppError
from app.scheduler import NotificationRetryScheduler
from app.services.mail_transport import MailTransport, build_mail_transport
from app.services.notification_dispatcher import DispatcherConfig, NotificationDispatcher
from app.services.template_service import seed_default_templates

# Import API routes
from app.api import attendance, leave, notifications, templates, audit_logs

logger = logging.getLogger(__name__)


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", []) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return "; ".join(messages)


def create_app(
    engine: Engine = None,
    session_factory: Callable[[], Session] = None,
    transport: Optional[MailTransport] = None,
    dispatcher_config: Optional[DispatcherConfig] = None,
    enable_retry: Optional[bool] = None,
    configure_logging: bool = True
) -> FastAPI:
    """
    建立 FastAPI 應用程式。

    Args:
        engine: 資料庫引擎（默認使用 app.database.engine）
        session_factory: Session 工廠（默認使用 SessionLocal）
        transport: 郵件傳輸（默認依 SMTP 設定建立）
        dispatcher_config: 通知派送配置（默認依環境變數）
        enable_retry: 是否啟動通知重試排程（默認依環境變數）
        configure_logging: 是否套用日誌配置
    """
    engine = engine or default_engine
    session_factory = session_factory or SessionLocal
    notification_config = settings.get_notification_config()
    if enable_retry is None:
        enable_retry = notification_config["retry"]["enabled"]

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            logging.config.dictConfig(settings.get_logging_config())

        logger.info("Starting Workdesk HR operations backend")

        missing = settings.validate_required_settings()
        if missing and settings.is_production:
            logger.warning(f"Missing required settings: {', '.join(missing)}")

        # 建立資料表，正式環境請使用 Alembic migrations
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables initialized")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")

        if settings.SEED_DEFAULT_TEMPLATES:
            db = session_factory()
            try:
                seed_default_templates(db)
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to seed notification templates: {e}")
            finally:
                db.close()

        dispatcher = NotificationDispatcher(
            session_factory=session_factory,
            transport=transport or build_mail_transport(settings),
            config=dispatcher_config or DispatcherConfig.from_settings(settings)
        )
        app.state.dispatcher = dispatcher

        retry_scheduler = None
        if enable_retry and dispatcher.config.enabled:
            retry_scheduler = NotificationRetryScheduler(
                dispatcher,
                interval_minutes=notification_config["retry"]["interval_minutes"],
                timezone=settings.TIMEZONE
            )
            retry_scheduler.start()

        logger.info("Workdesk HR operations backend started successfully")

        yield

        logger.info("Shutting down Workdesk HR operations backend")
        if retry_scheduler is not None:
            retry_scheduler.stop()

        remaining = await dispatcher.drain(timeout=5)
        if remaining:
            logger.warning(f"Cancelling {dispatcher.cancel_all()} unfinished notification dispatches")

    app = FastAPI(
        title="Workdesk HR Operations",
        description="Employee attendance tracking with templated notification fan-out",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "attendance", "description": "Employee attendance self-service"},
            {"name": "leave", "description": "Employee leave requests"},
            {"name": "notifications", "description": "Notification inbox and dispatch"},
            {"name": "notification-templates", "description": "Notification template management"},
            {"name": "audit-logs", "description": "Audit trail"},
        ]
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if session_factory is not SessionLocal:
        def get_test_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = get_test_db

    # Error handlers
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Validation error", "message": _format_validation_errors(exc)}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail), "message": str(exc.detail)},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "message": "An unexpected error occurred"}
        )

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring"""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            dispatcher = getattr(app.state, "dispatcher", None)
            return {
                "status": "healthy",
                "database": "connected",
                "notifications": "running" if dispatcher is not None else "stopped",
                "version": "1.0.0"
            }
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unavailable")

    # Include API routes
    app.include_router(attendance.router, prefix=settings.EMPLOYEE_API_PREFIX)
    app.include_router(leave.router, prefix=settings.EMPLOYEE_API_PREFIX)
    app.include_router(notifications.router, prefix=settings.API_PREFIX)
    app.include_router(templates.router, prefix=settings.API_PREFIX)
    app.include_router(audit_logs.router, prefix=settings.API_PREFIX)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # Development server
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
