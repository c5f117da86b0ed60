"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from finledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from finledger.api.v1 import borrowed_fund, cron, loan, plan, profile, purchase, snapshot
from finledger.config import settings
from finledger.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="finledger",
        description="Period accounting and allocation engine",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(profile.router, prefix="/v1", tags=["profile"])
    app.include_router(loan.router, prefix="/v1", tags=["loans"])
    app.include_router(plan.router, prefix="/v1", tags=["plans"])
    app.include_router(purchase.router, prefix="/v1", tags=["purchases"])
    app.include_router(borrowed_fund.router, prefix="/v1", tags=["borrowed-funds"])
    app.include_router(snapshot.router, prefix="/v1", tags=["snapshots"])
    app.include_router(cron.router, prefix="/v1", tags=["cron"])

    return app


app = create_app()
