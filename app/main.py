from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.ai import router as ai_router
from app.api import router
from app.auth import router as auth_router
from logging_config import configure_logging
from services.explainer import build_default_explainer
from services.readings import build_default_readings_service


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    readings = build_default_readings_service()
    try:
        yield
    finally:
        readings.shutdown()
        build_default_explainer.cache_clear()
        build_default_readings_service.cache_clear()


async def validation_exception_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed parameters as 400 with one entry per offending field."""
    errors = []
    for error in exc.errors():
        loc = error.get("loc") or ("request",)
        message = str(error.get("msg", "Invalid value")).replace("Value error, ", "")
        errors.append({"field": str(loc[-1]), "message": message})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request parameters", "errors": errors},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="GreenThread Monitor",
        description="Textile wastewater compliance monitoring with AI explanations.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(router)
    app.include_router(ai_router)
    app.include_router(auth_router)
    return app

app = create_app()
