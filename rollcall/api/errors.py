"""Translation of engine errors into HTTP responses."""
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from rollcall.core.exceptions import (
    AlreadyRegisteredError,
    DecodeError,
    EmptyIndexError,
    FaceNotDetectedError,
    FaceRecognitionError,
    ForbiddenError,
    IndexUnavailableError,
    InvalidImageCountError,
    LowQualityError,
    MultipleFacesDetectedError,
    NoImageError,
    NoStudentsError,
    NotFoundError,
    RecognitionBusyError,
    ServiceNotInitializedError,
    UnauthorizedError,
)

# Most specific classes first
STATUS_CODES = (
    (ForbiddenError, 403),
    (UnauthorizedError, 401),
    (DecodeError, 400),
    (InvalidImageCountError, 400),
    (NoImageError, 400),
    (FaceNotDetectedError, 422),
    (MultipleFacesDetectedError, 422),
    (LowQualityError, 422),
    (NoStudentsError, 422),
    (EmptyIndexError, 422),
    (NotFoundError, 404),
    (AlreadyRegisteredError, 409),
    (RecognitionBusyError, 429),
    (IndexUnavailableError, 503),
    (ServiceNotInitializedError, 503),
)


def status_code_for(error: FaceRecognitionError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_response(error: FaceRecognitionError, **fields: Any) -> JSONResponse:
    """Build the ``{success: false, error_code, message}`` body for an engine error.

    Args:
        error: Engine error
        fields: Extra top-level fields, e.g. the student id the request was about
    """
    body = {
        "success": False,
        "error_code": error.error_code,
        "message": error.message,
        "details": error.details,
        **fields,
    }
    return JSONResponse(status_code=status_code_for(error), content=body)


async def face_recognition_error_handler(request: Request, exc: FaceRecognitionError) -> JSONResponse:
    """Application-wide handler for engine errors raised outside route bodies (e.g. dependencies)."""
    return error_response(exc)
