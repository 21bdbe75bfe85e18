"""
Translate domain errors into typed JSON responses.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from carpool.core.exceptions import CarpoolError
from carpool.core.logging import get_logger

logger = get_logger(__name__)


async def carpool_error_handler(request: Request, exc: CarpoolError) -> JSONResponse:
    logger.info("carpool_error", error=exc.code, status_code=exc.status_code, **exc.context)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CarpoolError, carpool_error_handler)
