"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination

from marketchat.config import get_settings
from marketchat.core.change_feed import ChangeFeed
from marketchat.core.errors import AbsentIdentityError, ChatError, StoreError, ValidationError
from marketchat.db import db_manager
from marketchat.infra.logging_config import configure_logging, get_logger
from marketchat.routers.conversations_router import conversations_router
from marketchat.routers.system import router as system_router

logger = get_logger("main")

ERROR_STATUS = {
    ValidationError: 422,
    AbsentIdentityError: 401,
    StoreError: 503,
}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ChatError)
    async def chat_error_handler(_: Request, exc: ChatError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), 400)
        logger.warning("%s: %s", type(exc).__name__, exc.message)
        return JSONResponse(status_code=status_code, content={"detail": exc.message})


def create_app(testing: bool = False) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if not testing:
            db_manager.create_all()
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.change_feed = ChangeFeed()

    app.include_router(conversations_router)
    app.include_router(system_router)
    register_exception_handlers(app)
    add_pagination(app)
    return app
