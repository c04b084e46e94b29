import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.auth import TokenService
from app.config import Settings, settings as default_settings
from app.database import create_db_engine, create_session_factory, init_db
from app.errors import InvalidInput, LibraryError, StorageFailure, Unauthenticated
from app.routes import router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one engine and one token service.

    Raises ``ConfigurationError`` when no signing secret is configured, so a
    misconfigured server never starts accepting requests.
    """
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    token_service = TokenService.from_settings(settings)
    engine = create_db_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        logger.info(f"{settings.app_name} started")
        try:
            yield
        finally:
            engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.token_service = token_service
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"[REQ] {request.method} {request.url.path}")
        return await call_next(request)

    @app.exception_handler(LibraryError)
    async def library_error_handler(request: Request, exc: LibraryError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = InvalidInput("Invalid input")
        content = error.to_dict()
        content["errors"] = [
            {"loc": list(item.get("loc", ())), "msg": item.get("msg", "")} for item in exc.errors()
        ]
        return JSONResponse(status_code=error.status_code, content=content)

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Unhandled database error on {request.method} {request.url.path}: {exc}")
        error = StorageFailure()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    app.include_router(router)
    return app
