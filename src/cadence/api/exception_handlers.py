"""Map domain exceptions to HTTP responses.

Every handler answers {"detail": message} like FastAPI's own HTTPException, so
clients parse one error shape.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cadence.domain.exceptions import (
    ConfigurationError,
    EntityNotFoundException,
    InvalidStateException,
    PersistenceError,
    TransportError,
    UnsupportedCapabilityError,
    ValidationException,
)

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for the domain exception hierarchy.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
        )
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message}
        )

    @app.exception_handler(ValidationException)
    async def validation_handler(
        request: Request, exc: ValidationException
    ) -> JSONResponse:
        logger.warning("Validation error at %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.message},
        )

    @app.exception_handler(InvalidStateException)
    async def invalid_state_handler(
        request: Request, exc: InvalidStateException
    ) -> JSONResponse:
        logger.info("Conflict at %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT, content={"detail": exc.message}
        )

    @app.exception_handler(UnsupportedCapabilityError)
    async def unsupported_handler(
        request: Request, exc: UnsupportedCapabilityError
    ) -> JSONResponse:
        logger.info(
            "%s not supported by %s server (%s)",
            exc.capability,
            exc.dialect,
            request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_501_NOT_IMPLEMENTED, content={"detail": exc.message}
        )

    @app.exception_handler(TransportError)
    async def transport_handler(request: Request, exc: TransportError) -> JSONResponse:
        logger.warning(
            "Media server error at %s: %s",
            request.url.path,
            exc.message,
            extra={"service": exc.service, "status_code": exc.status_code},
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": exc.message}
        )

    @app.exception_handler(PersistenceError)
    async def persistence_handler(
        request: Request, exc: PersistenceError
    ) -> JSONResponse:
        logger.error("Persistence failure at %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": exc.message},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.error("Configuration error at %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": exc.message},
        )
