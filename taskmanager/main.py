import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskmanager.core.config import Settings
from taskmanager.core.database import Database
from taskmanager.core.errors import AppError, ValidationError, coerce_error, format_error_response
from taskmanager.core.security import get_current_user
from taskmanager.models.user import User
from taskmanager.routers import auth, health, tasks
from taskmanager.schemas.user import UserResponse

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings()
    database = database or Database(settings.DATABASE_URL)
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Init DB
        database.initialize()
        logger.info("Environment: %s, database: %s", settings.APP_ENV, database.engine.url.render_as_string())
        yield
        database.close()

    app = FastAPI(title="Task Management API", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGIN.split(",")],
        allow_credentials=settings.CORS_ORIGIN != "*",
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        client = request.client.host if request.client else "-"
        logger.info("%s %s - %s - %s (%.1fms)", request.method, request.url.path, client,
                    response.status_code, (time.perf_counter() - start) * 1000)
        return response

    register_error_handlers(app)

    # Routes
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(tasks.router)

    @app.get("/")
    def root():
        return {
            "success": True,
            "message": "Task Management API",
            "version": VERSION,
            "endpoints": {
                "health": "/health",
                "auth": "/api/auth",
                "tasks": "/api/tasks",
                "protected": "/api/protected",
            },
            "rateLimit": {
                "windowMs": settings.RATE_LIMIT_WINDOW_MS,
                "maxRequests": settings.RATE_LIMIT_MAX_REQUESTS,
            },
        }

    @app.get("/api/protected")
    def protected(current_user: User = Depends(get_current_user)):
        return {
            "success": True,
            "message": "This is a protected route",
            "user": UserResponse.model_validate(current_user).model_dump(by_alias=True, mode="json"),
        }

    return app


def register_error_handlers(app: FastAPI) -> None:
    def render(request: Request, exc: Exception) -> JSONResponse:
        err = coerce_error(exc)
        settings: Settings = request.app.state.settings

        if err.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url, exc, exc_info=exc)
        else:
            logger.warning("%s %s -> %s %s", request.method, request.url.path, err.status_code, err.message)

        body = format_error_response(err, request, debug=not settings.is_production, original=exc)
        return JSONResponse(status_code=err.status_code, content=jsonable_encoder(body))

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return render(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        if any(error.get("type") == "json_invalid" for error in exc.errors()):
            return render(request, AppError("Invalid JSON format", 400))

        errors = [
            {
                "field": str(error["loc"][-1]) if error.get("loc") else "request",
                "message": error.get("msg", "Invalid value"),
                "value": error.get("input"),
            }
            for error in exc.errors()
        ]
        return render(request, ValidationError("Validation failed", errors))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={
                "success": False,
                "message": "Route not found",
                "path": request.url.path,
            })
        return render(request, AppError(str(exc.detail), exc.status_code))

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        return render(request, exc)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return render(request, exc)


def run() -> None:
    import uvicorn

    settings = Settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    run()
