"""
FastAPI Main Application

Entry point for the municipal revenue portal API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..database import configure_engine, init_db
from ..exceptions import PortalError
from .auth import get_settings
from .routes import (
    otp_router,
    business_tax_router,
    property_tax_router,
    registration_router,
    ledger_router,
    tax_config_router,
)

logger = logging.getLogger(__name__)


def configure_logging(development: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if development else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(settings.is_development)

    engine = configure_engine(settings)
    init_db(engine)
    logger.info(f"Starting Municipal Revenue API ({settings.environment})...")
    yield
    engine.dispose()
    logger.info("Shutting down Municipal Revenue API...")


app = FastAPI(
    title="Municipal Revenue API",
    description="Business tax, real property tax ledger and OTP payment API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "errors": errors,
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = "Server error: Please try again later"
    if get_settings().is_development:
        message = f"Server error: {exc}"
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "SERVER_ERROR", "message": message},
    )


# Include routers
app.include_router(otp_router, prefix="/api")
app.include_router(business_tax_router, prefix="/api")
app.include_router(property_tax_router, prefix="/api")
app.include_router(registration_router, prefix="/api")
app.include_router(ledger_router, prefix="/api")
app.include_router(tax_config_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Municipal Revenue API",
        "version": "1.0.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "revenue.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().is_development,
    )
