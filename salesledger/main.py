from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from salesledger.core.config import settings
from salesledger.core.exceptions import (
    LedgerError, ValidationError, InvalidAmountError, OverpaymentError,
    InvalidStateError, NotFoundError, ConcurrencyError
)

# Import routers
from salesledger.modules.sales.router import sales_router, clients_router
from salesledger.modules.credit_notes.router import credit_notes_router

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Sales Ledger API",
    description="Libro de ventas con ITBIS, pagos, ventas mixtas y notas de crédito",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error -> HTTP status
ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    InvalidAmountError: status.HTTP_400_BAD_REQUEST,
    OverpaymentError: status.HTTP_400_BAD_REQUEST,
    InvalidStateError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConcurrencyError: status.HTTP_409_CONFLICT,
}


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    logger.debug(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code}
    )


# Include routers
app.include_router(sales_router)
app.include_router(clients_router)
app.include_router(credit_notes_router)


@app.get("/")
async def read_root():
    return {
        "message": "Sales Ledger API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Sales Ledger API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"ITBIS rate: {settings.ITBIS_RATE} ({settings.CURRENCY})")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Sales Ledger API shutting down...")
