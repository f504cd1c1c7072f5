"""
Payments API application factory.

Routers:
    /transfers           money movement between accounts
    /proof-of-payment    receipt rendering, history and public verification
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .auth import get_payments_system
from .proofs import router as proofs_router
from .transfers import router as transfers_router
from .. import __version__
from ..config import get_config
from ..logging_config import correlation_context, setup_logging


REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    system = get_payments_system()
    if get_config().janitor_enabled:
        system.janitor.start()
    yield
    system.shutdown()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Payments Core API",
        description="Account transfers with verifiable proof of payment",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=["Content-Disposition", REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next):
        with correlation_context(request.headers.get(REQUEST_ID_HEADER)) as request_id:
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(transfers_router, prefix="/transfers", tags=["Transfers"])
    app.include_router(proofs_router, prefix="/proof-of-payment", tags=["Proof of Payment"])

    @app.get("/health")
    def health_check():
        return {
            "status": "healthy",
            "service": "core_payments_api",
            "version": __version__,
            "retention": get_payments_system().janitor.status()
        }

    return app


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Serve the API with uvicorn using the configured host, port and logging"""
    cfg = get_config()
    setup_logging(cfg.log_level, log_format=cfg.log_format)
    uvicorn.run(
        "core_payments.api:create_app",
        factory=True,
        host=host or cfg.api_host,
        port=port or cfg.api_port,
        reload=debug,
        log_level=cfg.log_level.lower()
    )
