"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from lending_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from lending_gateway.api.v1 import decision, history, policy
from lending_gateway.infrastructure.observability.logging import setup_logging
from lending_gateway.config import settings

setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Lending Decision Gateway",
        description="Credit scoring, loan pricing and decision ledger for partner banks",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Last added runs first
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name, "engine_version": settings.engine_version}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(decision.router, prefix="/v1", tags=["decisions"])
    app.include_router(history.router, prefix="/v1", tags=["history"])
    app.include_router(policy.router, prefix="/v1", tags=["policies"])

    return app


app = create_app()
