"""Section model API endpoints."""
from typing import Optional, Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rollcall.api.errors import error_response
from rollcall.api.models.face import (
    ModelStatusResponse,
    TrainModelRequest,
    TrainModelResponse,
)
from rollcall.core.exceptions import FaceRecognitionError
from rollcall.core.logging import get_logger
from rollcall.core.security import AccessPolicy, Principal
from rollcall.infrastructure.dependencies import (
    get_access_policy,
    get_model_lifecycle,
    get_principal,
)
from rollcall.services.model_lifecycle import ModelLifecycleManager

logger = get_logger(__name__)
router = APIRouter(
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Role not allowed"},
        500: {"description": "Internal server error"}
    }
)


@router.post(
    "/train",
    response_model=TrainModelResponse,
    summary="Train a section model",
    description="Builds a new recognition index from every registered face in the section.",
    responses={
        200: {
            "description": "Model trained",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "message": "Model trained with 42 student(s)",
                        "model_id": "section-a-v3",
                        "students_count": 42,
                    }
                }
            },
        },
        422: {
            "description": "No registered faces in the section",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "error_code": "no_students",
                        "message": "No students with registered faces in this section",
                        "details": {"section_id": "section-a", "students_count": 0},
                    }
                }
            },
        },
    },
)
async def train_model(
    request: TrainModelRequest,
    principal: Optional[Principal] = Depends(get_principal),
    policy: AccessPolicy = Depends(get_access_policy),
    lifecycle: ModelLifecycleManager = Depends(get_model_lifecycle)
) -> Union[TrainModelResponse, JSONResponse]:
    """Build and publish the recognition index for a section.

    Args:
        request: Section to train
        principal: Caller identity forwarded by the gateway
        policy: Role policy
        lifecycle: Section model manager provided by dependency injection

    Returns:
        TrainModelResponse with the new model id
    """
    try:
        policy.authorize_enrollment(principal, request.section_id)
        index = await lifecycle.train_model(request.section_id)
        return TrainModelResponse.from_index(index)

    except FaceRecognitionError as e:
        logger.warning(
            "Model training failed",
            section_id=request.section_id,
            error_code=e.error_code,
            error=e.message
        )
        return error_response(e)
    except Exception as e:
        logger.error("Unexpected error during model training",
                     section_id=request.section_id, error=str(e), exc_info=True)
        return error_response(
            FaceRecognitionError("An unexpected error occurred while processing the request")
        )


@router.get(
    "/status/{section_id}",
    response_model=ModelStatusResponse,
    summary="Get section model status",
    description="Reports whether a section has a trained model and how many students are registered.",
)
async def get_model_status(
    section_id: str,
    principal: Optional[Principal] = Depends(get_principal),
    policy: AccessPolicy = Depends(get_access_policy),
    lifecycle: ModelLifecycleManager = Depends(get_model_lifecycle)
) -> Union[ModelStatusResponse, JSONResponse]:
    """Report the training state of a section model.

    Args:
        section_id: Section to inspect
        principal: Caller identity forwarded by the gateway
        policy: Role policy
        lifecycle: Section model manager provided by dependency injection
    """
    try:
        policy.authorize_recognition(principal, section_id)
        status = await lifecycle.get_status(section_id)
        return ModelStatusResponse.from_status(status)

    except FaceRecognitionError as e:
        logger.warning("Model status failed", section_id=section_id, error_code=e.error_code, error=e.message)
        return error_response(e)
    except Exception as e:
        logger.error("Unexpected error reading model status",
                     section_id=section_id, error=str(e), exc_info=True)
        return error_response(
            FaceRecognitionError("An unexpected error occurred while processing the request")
        )
