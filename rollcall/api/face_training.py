"""Face training API endpoints."""
import asyncio
from typing import Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from rollcall.api.errors import error_response
from rollcall.api.models.face import (
    BulkTrainingRequest,
    BulkTrainingResponse,
    FaceTrainingRequest,
    FaceTrainingResponse,
)
from rollcall.core.exceptions import FaceRecognitionError
from rollcall.core.logging import get_logger
from rollcall.core.security import AccessPolicy, Principal
from rollcall.infrastructure.dependencies import (
    get_access_policy,
    get_face_training_service,
    get_principal,
)
from rollcall.services.face_training import FaceTrainingService

logger = get_logger(__name__)
router = APIRouter(
    responses={
        400: {"description": "Invalid request"},
        401: {"description": "Authentication required"},
        403: {"description": "Role not allowed"},
        500: {"description": "Internal server error"}
    }
)

DISCONNECT_POLL_SECONDS = 0.5


@router.post(
    "",
    response_model=FaceTrainingResponse,
    summary="Register a student's face",
    description="Builds a face signature for one student from 5 to 10 images.",
    responses={
        200: {
            "description": "Face successfully registered",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "student_id": "7f6c2a0e-3f9b-4d2e-9a51-0c7d8e1b2a34",
                        "face_embedding_id": "550e8400-e29b-41d4-a716-446655440000",
                        "message": "Face registered from 5 image(s)",
                        "confidence_score": 0.8731,
                    }
                }
            },
        },
        409: {
            "description": "Student already registered",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "error_code": "already_registered",
                        "message": "Student 21CS001 already has a registered face",
                        "details": {"student_id": "7f6c2a0e-3f9b-4d2e-9a51-0c7d8e1b2a34"},
                        "student_id": "7f6c2a0e-3f9b-4d2e-9a51-0c7d8e1b2a34",
                    }
                }
            },
        },
        422: {
            "description": "Images rejected",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "error_code": "face_not_detected",
                        "message": "No face detected in image 3",
                        "details": {"image_index": 3},
                        "student_id": "7f6c2a0e-3f9b-4d2e-9a51-0c7d8e1b2a34",
                    }
                }
            },
        },
    },
)
async def train_face(
    request: FaceTrainingRequest,
    principal: Optional[Principal] = Depends(get_principal),
    policy: AccessPolicy = Depends(get_access_policy),
    service: FaceTrainingService = Depends(get_face_training_service)
) -> Union[FaceTrainingResponse, JSONResponse]:
    """Register one student's face.

    Args:
        request: Student identifier and enrollment images
        principal: Caller identity forwarded by the gateway
        policy: Role policy
        service: Face training service provided by dependency injection

    Returns:
        FaceTrainingResponse, or an error body with the matching status code
    """
    try:
        policy.authorize_enrollment(principal)
        outcome = await service.enroll_student(
            student_id=request.student_id,
            images=request.images,
            roll_number=request.roll_number,
            overwrite=request.overwrite,
        )
        return FaceTrainingResponse.from_outcome(outcome)

    except FaceRecognitionError as e:
        logger.warning(
            "Face training rejected",
            student_id=request.student_id,
            error_code=e.error_code,
            error=e.message
        )
        return error_response(e, student_id=request.student_id)
    except Exception as e:
        logger.error("Unexpected error during face training",
                     student_id=request.student_id, error=str(e), exc_info=True)
        return error_response(
            FaceRecognitionError("An unexpected error occurred while processing the request"),
            student_id=request.student_id,
        )


@router.post(
    "/bulk",
    response_model=BulkTrainingResponse,
    summary="Register faces for a whole section",
    description=(
        "Enrolls each student row with its image independently. "
        "One student's failure never affects the others."
    ),
    responses={
        200: {
            "description": "Batch processed",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "total": 3,
                        "trained": 2,
                        "failed": 1,
                        "cancelled": 0,
                        "results": [
                            {
                                "serial_no": 1,
                                "roll_number": "21CS001",
                                "status": "success",
                                "student_id": "7f6c2a0e-3f9b-4d2e-9a51-0c7d8e1b2a34",
                                "face_embedding_id": "550e8400-e29b-41d4-a716-446655440000",
                                "confidence_score": 1.0,
                                "message": "Face registered from 1 image(s)",
                            },
                            {
                                "serial_no": 2,
                                "roll_number": "21CS002",
                                "status": "failed",
                                "error_code": "no_image",
                                "message": "No image uploaded for serial number 2",
                            },
                        ],
                    }
                }
            },
        },
    },
)
async def train_faces_bulk(
    request: BulkTrainingRequest,
    http_request: Request,
    principal: Optional[Principal] = Depends(get_principal),
    policy: AccessPolicy = Depends(get_access_policy),
    service: FaceTrainingService = Depends(get_face_training_service)
) -> Union[BulkTrainingResponse, JSONResponse]:
    """Register faces for many students of a section.

    Stops starting new students if the client disconnects.

    Args:
        request: Section, student rows and images keyed by serial number
        http_request: Raw request, watched for client disconnects
        principal: Caller identity forwarded by the gateway
        policy: Role policy
        service: Face training service provided by dependency injection

    Returns:
        BulkTrainingResponse with per-student results
    """
    cancel_event = asyncio.Event()
    watcher: Optional[asyncio.Task] = None
    try:
        policy.authorize_enrollment(principal, request.section_id)
        watcher = asyncio.create_task(_watch_disconnect(http_request, cancel_event, request.section_id))
        summary = await service.enroll_bulk(
            section_id=request.section_id,
            students=[student.to_item() for student in request.students],
            images=request.images,
            overwrite=request.overwrite,
            cancel_event=cancel_event,
        )
        return BulkTrainingResponse.from_summary(summary)

    except FaceRecognitionError as e:
        logger.warning(
            "Bulk training rejected",
            section_id=request.section_id,
            error_code=e.error_code,
            error=e.message
        )
        return error_response(e)
    except Exception as e:
        logger.error("Unexpected error during bulk training",
                     section_id=request.section_id, error=str(e), exc_info=True)
        return error_response(
            FaceRecognitionError("An unexpected error occurred while processing the request")
        )
    finally:
        if watcher is not None:
            watcher.cancel()


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event, section_id: str) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.warning("Client disconnected, cancelling bulk training", section_id=section_id)
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)
