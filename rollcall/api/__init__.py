"""API router initialization."""
from fastapi import APIRouter

from .face_recognition import router as face_recognition_router
from .face_training import router as face_training_router
from .model import router as model_router

# Create API router
router = APIRouter()

# Include face training endpoints
router.include_router(
    face_training_router,
    prefix="/face-training",
    tags=["face-training"]
)

# Include face recognition endpoints
router.include_router(
    face_recognition_router,
    prefix="/face-recognition",
    tags=["face-recognition"]
)

# Include section model endpoints
router.include_router(
    model_router,
    prefix="/model",
    tags=["model"]
)
