from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from domain.errors import LedgerError, UploadTooLarge
from infrastructure.config import Settings
from interface.cli import Services, build_services
from interface.routes import auth, reports, subscription, transactions

logger = logging.getLogger(__name__)


def _field_errors(errors: list[dict[str, Any]]) -> list[dict[str, str]]:
    shaped = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        message = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
        shaped.append({"field": ".".join(loc), "message": message})
    return shaped


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    settings = services.settings if services is not None else (settings or Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(settings)
        yield

    app = FastAPI(title="Finance Ledger API", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def limit_upload_size(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Refuse oversized multipart bodies by declared length, before they are spooled.
        # Chunked uploads without a length are still checked per file once parsed.
        if request.headers.get("content-type", "").startswith("multipart/form-data"):
            length = request.headers.get("content-length", "")
            if length.isdigit() and int(length) > settings.max_upload_bytes:
                error = UploadTooLarge()
                logger.info("Upload rejected path=%s content_length=%s", request.url.path, length)
                return JSONResponse(status_code=error.status_code, content=error.payload())
        return await call_next(request)

    @app.exception_handler(LedgerError)
    async def ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("Request failed path=%s error=%s", request.url.path, exc.__class__.__name__)
        return JSONResponse(status_code=exc.status_code, content=exc.payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"errors": _field_errors(list(exc.errors()))})

    @app.exception_handler(ValidationError)
    async def model_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"errors": _field_errors(list(exc.errors()))})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error path=%s", request.url.path)
        content: dict[str, Any] = {"message": "Something went wrong!"}
        if settings.is_development:
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "message": "Finance SaaS API is running"}

    app.include_router(auth.router)
    app.include_router(transactions.router)
    app.include_router(reports.router)
    app.include_router(subscription.router)
    return app


app = create_app()
