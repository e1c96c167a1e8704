"""Error taxonomy for note operations and the HTTP rendering of each kind.

Services raise these; the app factory registers `RegisterErrorHandlers` so
routes never translate them by hand. NotFound and AccessDenied for every note
operation share one external body so callers cannot probe for note existence.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("app.errors")

NOT_FOUND_OR_DENIED = "Note not found or access denied."


class NotesError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def ToPayload(self) -> dict:
        return {"success": False, "message": self.message}


class ValidationError(NotesError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request."


class NoteNotFoundError(NotesError):
    status_code = status.HTTP_404_NOT_FOUND
    message = NOT_FOUND_OR_DENIED


class VersionNotFoundError(NotesError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Version not found."


class AccessDeniedError(NotesError):
    """Carries the real reason for logs; callers only ever see the not-found body."""

    status_code = status.HTTP_404_NOT_FOUND
    message = NOT_FOUND_OR_DENIED

    def __init__(self, reason: str | None = None):
        super().__init__()
        self.reason = reason or "access denied"


class VersionConflictError(NotesError):
    status_code = status.HTTP_409_CONFLICT
    message = "Conflict: Note has been updated by another user."

    def __init__(self, current_version: int, provided_version: int):
        super().__init__()
        self.current_version = current_version
        self.provided_version = provided_version

    def ToPayload(self) -> dict:
        return {
            "success": False,
            "message": self.message,
            "currentVersion": self.current_version,
            "providedVersion": self.provided_version,
        }


class StorageFailureError(NotesError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error."


async def _HandleNotesError(request: Request, exc: NotesError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    elif isinstance(exc, AccessDeniedError):
        logger.info("%s %s denied: %s", request.method, request.url.path, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=exc.ToPayload())


async def _HandleRequestValidation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": ValidationError.message,
            "errors": jsonable_encoder(exc.errors()),
        },
    )


def RegisterErrorHandlers(app: FastAPI) -> None:
    app.add_exception_handler(NotesError, _HandleNotesError)
    app.add_exception_handler(RequestValidationError, _HandleRequestValidation)
