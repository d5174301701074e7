"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from insurance_sales.api.routes.sales import router as sales_router
from insurance_sales.api.routes.signatures import router as signatures_router
from insurance_sales.api.state import get_services
from insurance_sales.services.errors import (
    AuthorizationError,
    DocumentGenerationError,
    GenerationInProgressError,
    PolicyDeniedError,
    SaleLifecycleError,
    SaleNotFoundError,
    SaleValidationError,
    StorageError,
    TransitionNotAllowedError,
)
from insurance_sales.utils.config import get_settings
from insurance_sales.utils.logging import configure_logging

logger = logging.getLogger(__name__)

# Most specific first: PolicyDeniedError is an AuthorizationError
ERROR_STATUS = [
    (SaleNotFoundError, 404),
    (SaleValidationError, 400),
    (TransitionNotAllowedError, 409),
    (GenerationInProgressError, 409),
    (PolicyDeniedError, 403),
    (AuthorizationError, 403),
    (DocumentGenerationError, 502),
    (StorageError, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    settings = get_settings()
    configure_logging(settings.log_level, rich_console=False)
    services = get_services()
    logger.info(f"API ready (db_mode={services.settings.db_mode})")
    yield


async def lifecycle_error_handler(request: Request, exc: SaleLifecycleError) -> JSONResponse:
    status_code = 500
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break

    body: dict = {"detail": str(exc)}
    if isinstance(exc, PolicyDeniedError):
        body["reasons"] = exc.reasons
    result = getattr(exc, "result", None)
    if result is not None:
        body["documents_created"] = len(result.documents)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=body)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Insurance Sales Lifecycle API",
        description="Auditoría, generación de documentos y firma de ventas de seguros",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SaleLifecycleError, lifecycle_error_handler)
    app.include_router(sales_router)
    app.include_router(signatures_router)

    return app
