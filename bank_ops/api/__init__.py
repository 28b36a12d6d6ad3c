"""
Banking Operations API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..errors import (
    BankingError, NotFoundError, InvalidStateError, InsufficientFundsError,
    ExpiredError, ValidationError, PermissionDeniedError, StorageTimeoutError
)
from ..logging_config import get_logger
from .auth import router as auth_router
from .users import router as users_router
from .clients import router as clients_router
from .accounts import router as accounts_router
from .transfers import router as transfers_router
from .loans import router as loans_router
from .audit import router as audit_router
from .products import router as products_router


logger = get_logger("bank_ops.api")

# Most specific first: PermissionDeniedError is also an InvalidStateError
ERROR_STATUS = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (InsufficientFundsError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ExpiredError, status.HTTP_410_GONE),
    (ValidationError, 422),
]


def status_for_error(error: BankingError) -> int:
    """HTTP status for a business-rule failure"""
    for error_class, status_code in ERROR_STATUS:
        if isinstance(error, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def banking_error_handler(request: Request, exc: BankingError):
    return JSONResponse(
        status_code=status_for_error(exc),
        content={"detail": str(exc), "error": type(exc).__name__}
    )


async def storage_timeout_handler(request: Request, exc: StorageTimeoutError):
    logger.error(f"Store busy on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc), "error": type(exc).__name__}
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Banking Operations API",
        description="Accounts, transfers with supervisor approval, loans and audit log",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BankingError, banking_error_handler)
    app.add_exception_handler(StorageTimeoutError, storage_timeout_handler)

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(clients_router, prefix="/clients", tags=["Clients"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transfers_router, prefix="/transfers", tags=["Transfers"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(audit_router, prefix="/audit", tags=["Audit"])
    app.include_router(products_router, prefix="/products", tags=["Products"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "bank_ops_api",
            "version": "1.0.0"
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Banking Operations API",
            "version": "1.0.0",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/auth",
                "users": "/users",
                "clients": "/clients",
                "accounts": "/accounts",
                "transfers": "/transfers",
                "loans": "/loans",
                "audit": "/audit",
                "products": "/products",
            }
        }

    return app


app = create_app()


# Run server function
def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False,
               log_level: str = "info"):
    """Run the FastAPI server"""
    uvicorn.run(
        "bank_ops.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level=log_level.lower()
    )
