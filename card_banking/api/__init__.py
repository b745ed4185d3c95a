"""
Card Banking API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..errors import CardBankingError, ErrorKind
from ..logging_config import get_logger, log_action
from .cards import router as cards_router
from .transfers import router as transfers_router


STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.INVALID_TRANSFER: 400,
    ErrorKind.INSUFFICIENT_FUNDS: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.CRYPTO: 500,
    ErrorKind.TRANSFER_FAILED: 500,
}

logger = get_logger("card_banking.api")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Card Banking API",
        description="Card-to-card transfers over encrypted card numbers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CardBankingError)
    async def card_banking_error_handler(request: Request, exc: CardBankingError):
        status_code = STATUS_CODES.get(exc.kind, 500)
        if status_code >= 500:
            log_action(logger, "error", exc.message, action="http_request",
                       resource=request.url.path, extra={"kind": exc.kind.value})
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Submitted values are never echoed back; request bodies carry card numbers
        errors = [
            {"type": error.get("type"), "loc": list(error.get("loc", ())), "msg": error.get("msg")}
            for error in exc.errors()
        ]
        return JSONResponse(status_code=422, content={"detail": errors})

    app.include_router(cards_router, prefix="/cards", tags=["Cards"])
    app.include_router(transfers_router, prefix="/transfers", tags=["Transfers"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "card_banking_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Card Banking API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "cards": "/cards",
                "transfers": "/transfers",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "card_banking.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
