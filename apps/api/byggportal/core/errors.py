"""
Application Errors

Exception hierarchy for the API. Every error carries an HTTP status code and a
Swedish, user-readable message; FastAPI handlers render them as
``{"detail": message}``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Något gick fel. Försök igen senare."


class AppError(Exception):
    """Base class for errors that are safe to show to the user."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = GENERIC_ERROR_MESSAGE

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticatedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Inte inloggad"


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Du har inte tillgång till detta projekt"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Hittades inte"


class InvalidOperationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Ogiltig åtgärd"


class OwnerProtectedError(InvalidOperationError):
    default_message = "Du kan inte ändra projektägaren"


class SelfModificationError(InvalidOperationError):
    default_message = "Du kan inte ändra ditt eget medlemskap"


class ProtocolLockedError(InvalidOperationError):
    default_message = "Protokollet är färdigställt och kan inte ändras"


class InvitationInvalidError(InvalidOperationError):
    default_message = "Inbjudan är ogiltig eller har gått ut"


class InvitationEmailMismatchError(InvalidOperationError):
    default_message = "Denna inbjudan är för en annan e-postadress"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Konflikt"


class AlreadyMemberError(ConflictError):
    default_message = "Användaren är redan medlem i projektet"


class DuplicateInvitationError(ConflictError):
    default_message = "Det finns redan en väntande inbjudan för denna e-postadress"


class DuplicateGroupError(ConflictError):
    default_message = "En grupp med detta namn finns redan"


class BackendError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ExternalServiceError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Extern tjänst svarade inte"


class ServiceNotConfiguredError(ExternalServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Tjänsten är inte konfigurerad"


# fastapi docs on error handlers: https://fastapi.tiangolo.com/tutorial/handling-errors/
async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as a JSON response."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(
            f"{request.method} {request.url.path} rejected "
            f"({exc.status_code} {type(exc).__name__}): {exc.message}"
        )

    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Log database failures and hide their details from the client."""
    logger.exception(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": GENERIC_ERROR_MESSAGE},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error handlers to the application."""
    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
