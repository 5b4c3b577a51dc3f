import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.config import Settings, get_settings
from app.core.errors import LedgerError
from app.core.logging import setup_logging
from app.core.results import fail
from app.routers import (
    device_router,
    health_router,
    products_router,
    readings_router,
    shelves_router,
)
from app.services import LedgerServices, build_services
from app.storage import build_storage

logger = logging.getLogger(__name__)


async def ledger_error_handler(_request: Request, exc: LedgerError):
    if exc.public:
        logger.info(
            "Request rejected (%s): %s",
            exc.status_code,
            exc.message,
            extra={"status_code": exc.status_code},
        )
    else:
        logger.error("Storage failure: %s", exc.message, exc_info=exc.__cause__ or exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(_request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(status_code=400, content=fail("Invalid request.", details))


def create_app(services: Optional[LedgerServices] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.services is None:
            app.state.services = build_services(build_storage(settings), settings)
            logger.info("Storage backend: %s", settings.STORAGE_BACKEND)
        if settings.SEED_DEFAULT_PRODUCTS:
            created = app.state.services.catalog.seed_defaults()
            if created:
                logger.info("Seeded %d default product(s).", created)
        yield

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.services = services
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(health_router)
    app.include_router(device_router)
    app.include_router(products_router)
    app.include_router(readings_router)
    app.include_router(shelves_router)
    return app


setup_logging()
app = create_app()


__all__ = ["app", "create_app"]
