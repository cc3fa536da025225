import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from twofactor.api.routes.twofa import router as twofa_router
from twofactor.core.config import settings
from twofactor.core.errors import ConfigurationError, InvalidStateError, StoreConflict
from twofactor.core.logging import configure_logging
from twofactor.db.init_db import init_db

logger = logging.getLogger(__name__)

configure_logging(settings.log_level)

app = FastAPI(title="Two Factor Service", version="0.1.0")

app.include_router(twofa_router)


@app.exception_handler(InvalidStateError)
async def _invalid_state(request: Request, exc: InvalidStateError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(StoreConflict)
async def _store_conflict(request: Request, exc: StoreConflict):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Concurrent update, please retry"},
    )


@app.exception_handler(ConfigurationError)
async def _configuration_error(request: Request, exc: ConfigurationError):
    logger.error("Configuration error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Two-factor service misconfigured"},
    )


@app.on_event("startup")
def _startup() -> None:
    init_db()


@app.get("/health")
def health():
    return {"status": "ok"}
