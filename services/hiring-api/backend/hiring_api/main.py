import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from hiring_api.config import settings
from hiring_api.errors import ServiceError, request_validation_handler, service_error_handler
from hiring_api.routes import accounts
from hiring_api.routes import credits
from hiring_api.routes import invitations
from hiring_api.routes import pipeline

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Hiring API",
        version="0.1.0",
        root_path=settings.API_ROOT_PATH or None,
    )

    allowed_origins = settings.CORS_ALLOWED_ORIGINS or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
        allow_credentials=False,
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/health", tags=["system"])
    async def health() -> dict:
        return {"status": "ok"}

    app.include_router(accounts.router, prefix=settings.API_PREFIX)
    app.include_router(invitations.router, prefix=settings.API_PREFIX)
    app.include_router(pipeline.router, prefix=settings.API_PREFIX)
    app.include_router(credits.router, prefix=settings.API_PREFIX)
    app.include_router(credits.reports_router, prefix=settings.API_PREFIX)
    return app


app = create_app()
