"""FastAPI dependency providers."""
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header

from rollcall.core.container import ServiceContainer, container
from rollcall.core.exceptions import ServiceNotInitializedError
from rollcall.core.security import AccessPolicy, Principal
from rollcall.services.face_recognition import FaceRecognitionService
from rollcall.services.face_training import FaceTrainingService
from rollcall.services.model_lifecycle import ModelLifecycleManager


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance."""
    if not container.is_initialized:
        # Attempt to initialize if not already done (e.g., during testing)
        try:
            await container.initialize()
        except Exception as e:
            raise ServiceNotInitializedError(f"Service container could not be initialized: {e}")
    return container


async def get_principal(
    x_principal_id: Optional[str] = Header(None),
    x_principal_role: Optional[str] = Header(None),
) -> Optional[Principal]:
    """Read the caller identity forwarded by the authentication layer.

    Returns:
        Principal, or None when the request carries no identity
    """
    if not x_principal_id or not x_principal_role:
        return None
    return Principal(id=x_principal_id, role=x_principal_role.strip().lower())


async def get_access_policy(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[AccessPolicy, None]:
    """Provide the role policy."""
    if container.access_policy is None:
        raise ServiceNotInitializedError("Access policy not initialized")
    yield container.access_policy


async def get_face_training_service(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[FaceTrainingService, None]:
    """Provide the face training service.

    Raises:
        ServiceNotInitializedError: If service is not initialized
    """
    if container.face_training_service is None:
        raise ServiceNotInitializedError("FaceTrainingService not found in initialized container")
    yield container.face_training_service


async def get_face_recognition_service(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[FaceRecognitionService, None]:
    """Provide the face recognition service.

    Raises:
        ServiceNotInitializedError: If service is not initialized
    """
    if container.face_recognition_service is None:
        raise ServiceNotInitializedError("FaceRecognitionService not found in initialized container")
    yield container.face_recognition_service


async def get_model_lifecycle(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[ModelLifecycleManager, None]:
    """Provide the section model manager.

    Raises:
        ServiceNotInitializedError: If service is not initialized
    """
    if container.model_lifecycle is None:
        raise ServiceNotInitializedError("ModelLifecycleManager not found in initialized container")
    yield container.model_lifecycle
