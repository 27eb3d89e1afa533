# storefront/main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.core.config import Settings, get_settings
from storefront.core.exceptions import ServiceError
from storefront.core.logging_config import configure_logging
from storefront.core.utils import utc_now
from storefront.routes import admin, checkout, health, payments
from storefront.runtime import Runtime

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, runtime: Optional[Runtime] = None) -> FastAPI:
    """
    Build the FastAPI application.

    A prepared Runtime can be passed in (tests do this to inject mocks); it is
    still opened and closed by the lifespan.
    """
    settings = settings or (runtime.settings if runtime else get_settings())
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.runtime = runtime or Runtime(settings)
        await app.state.runtime.open()
        try:
            yield
        finally:
            await app.state.runtime.close()

    app = FastAPI(title="Storefront Checkout", debug=settings.DEBUG, lifespan=lifespan)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.kind.value}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                **exc.to_dict(),
                "timestamp": utc_now().isoformat(),
            },
        )

    app.include_router(checkout.router)
    app.include_router(payments.router)
    app.include_router(admin.router)
    app.include_router(health.router)

    return app
