"""Face recognition API endpoints."""
from typing import Optional, Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rollcall.api.errors import error_response
from rollcall.api.models.face import FaceRecognitionRequest, FaceRecognitionResponse
from rollcall.core.exceptions import FaceRecognitionError, RecognitionBusyError
from rollcall.core.logging import get_logger
from rollcall.core.security import AccessPolicy, Principal
from rollcall.infrastructure.dependencies import (
    get_access_policy,
    get_face_recognition_service,
    get_principal,
)
from rollcall.services.face_recognition import FaceRecognitionService

logger = get_logger(__name__)
router = APIRouter(
    responses={
        400: {"description": "Invalid image"},
        401: {"description": "Authentication required"},
        403: {"description": "Role not allowed"},
        500: {"description": "Internal server error"}
    }
)


@router.post(
    "",
    response_model=FaceRecognitionResponse,
    summary="Recognize students in a frame",
    description=(
        "Detects every face in a camera frame and matches it against the "
        "section model. Faces below the recognition threshold, duplicates of "
        "a better match and faces that failed to process are reported as unrecognized."
    ),
    responses={
        200: {
            "description": "Frame processed",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "faces_detected": 2,
                        "recognized": [
                            {
                                "student_id": "7f6c2a0e-3f9b-4d2e-9a51-0c7d8e1b2a34",
                                "roll_number": "21CS001",
                                "student_name": "Asha Rao",
                                "confidence": 0.9123,
                                "match_tier": "auto",
                                "bounding_box": {"x": 120, "y": 80, "width": 96, "height": 110},
                            }
                        ],
                        "unrecognized": [
                            {
                                "bounding_box": {"x": 400, "y": 95, "width": 90, "height": 104},
                                "reason": "below_threshold",
                                "message": "No matching student found",
                                "confidence": 0.41,
                            }
                        ],
                        "index_status": "ready",
                        "model_id": "section-a-v3",
                    }
                }
            },
        },
        429: {
            "description": "A recognition for this class is already running",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "error_code": "recognition_busy",
                        "message": "Recognition already in progress for class-42",
                        "details": {"stream": "class-42"},
                    }
                }
            },
        },
        503: {"description": "Section model could not be loaded"},
    },
)
async def recognize_faces(
    request: FaceRecognitionRequest,
    principal: Optional[Principal] = Depends(get_principal),
    policy: AccessPolicy = Depends(get_access_policy),
    service: FaceRecognitionService = Depends(get_face_recognition_service)
) -> Union[FaceRecognitionResponse, JSONResponse]:
    """Recognize enrolled students in one camera frame.

    Args:
        request: Section, stream and encoded frame
        principal: Caller identity forwarded by the gateway
        policy: Role policy
        service: Face recognition service provided by dependency injection

    Returns:
        FaceRecognitionResponse, or an error body with the matching status code
    """
    try:
        policy.authorize_recognition(principal, request.section_id)
        result = await service.recognize(
            section_id=request.section_id,
            image=request.image,
            class_id=request.class_id,
        )
        return FaceRecognitionResponse.from_result(result, timestamp=request.timestamp)

    except RecognitionBusyError as e:
        logger.info("Dropped overlapping frame", class_id=request.class_id, section_id=request.section_id)
        return error_response(e)
    except FaceRecognitionError as e:
        logger.warning(
            "Face recognition failed",
            section_id=request.section_id,
            error_code=e.error_code,
            error=e.message
        )
        return error_response(e)
    except Exception as e:
        logger.error("Unexpected error during face recognition",
                     section_id=request.section_id, error=str(e), exc_info=True)
        return error_response(
            FaceRecognitionError("An unexpected error occurred while processing the request")
        )
