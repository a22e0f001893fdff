"""Service container for dependency injection."""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from rollcall.core.config import settings
from rollcall.core.logging import get_logger
from rollcall.core.security import AccessPolicy
from rollcall.core.utils.concurrency import InferencePool
from rollcall.domain.interfaces.recognition.face_recognition import FaceDetector, FaceEncoder
from rollcall.domain.interfaces.storage.embedding_store import EmbeddingStore
from rollcall.domain.interfaces.storage.roster import RosterStore
from rollcall.infrastructure.database.session import create_engine, create_session_factory, init_models
from rollcall.infrastructure.storage.embedding_store import SqlEmbeddingStore
from rollcall.infrastructure.storage.roster import SqlRosterStore
from rollcall.services.face_pipeline import FacePipeline
from rollcall.services.face_recognition import FaceRecognitionService
from rollcall.services.face_training import FaceTrainingService
from rollcall.services.model_lifecycle import ModelLifecycleManager
from rollcall.services.signature_aggregator import SignatureAggregator

logger = get_logger(__name__)


class ServiceContainer:
    """Container for application services.

    This container manages the lifecycle and dependencies of all services in the application.
    The face models are loaded once here and shared read-only by every request.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        # Get services from container
        training = container.face_training_service
        recognition = container.face_recognition_service
        ```
    """

    def __init__(self) -> None:
        """Initialize empty container."""
        # Core services - Use interface type hints
        self.detector: Optional[FaceDetector] = None
        self.encoder: Optional[FaceEncoder] = None
        self.inference_pool: Optional[InferencePool] = None
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.embedding_store: Optional[EmbeddingStore] = None
        self.roster: Optional[RosterStore] = None
        self.access_policy: Optional[AccessPolicy] = None

        # Domain services (depend on interfaces)
        self.model_lifecycle: Optional[ModelLifecycleManager] = None
        self.face_training_service: Optional[FaceTrainingService] = None
        self.face_recognition_service: Optional[FaceRecognitionService] = None

    @property
    def is_initialized(self) -> bool:
        return self.face_recognition_service is not None

    async def initialize(
        self,
        detector: Optional[FaceDetector] = None,
        encoder: Optional[FaceEncoder] = None,
        database_url: Optional[str] = None,
    ) -> None:
        """Initialize all services in the correct order.

        Args:
            detector: Detector to use instead of the InsightFace one
            encoder: Encoder to use instead of the InsightFace one
            database_url: Database to use instead of settings.DATABASE_URL
        """
        if detector is None or encoder is None:
            from rollcall.services.recognition.insight_face import (
                InsightFaceDetector,
                InsightFaceEncoder,
                InsightFaceModel,
            )
            model = InsightFaceModel.load()
            detector = detector or InsightFaceDetector(model)
            encoder = encoder or InsightFaceEncoder(model)
        self.detector = detector
        self.encoder = encoder
        self.inference_pool = InferencePool(max_workers=settings.INFERENCE_WORKERS)

        self.engine = create_engine(database_url)
        await init_models(self.engine)
        self.session_factory = create_session_factory(self.engine)
        self.embedding_store = SqlEmbeddingStore(self.session_factory, model_name=self.encoder.model_name)
        self.roster = SqlRosterStore(self.session_factory)
        self.access_policy = AccessPolicy()

        pipeline = FacePipeline(self.detector, self.encoder, self.inference_pool)
        self.model_lifecycle = ModelLifecycleManager(self.embedding_store, self.roster)
        self.face_training_service = FaceTrainingService(
            pipeline=pipeline,
            aggregator=SignatureAggregator(),
            embedding_store=self.embedding_store,
            roster=self.roster,
            lifecycle=self.model_lifecycle,
        )
        self.face_recognition_service = FaceRecognitionService(
            pipeline=pipeline,
            lifecycle=self.model_lifecycle,
            roster=self.roster,
        )
        logger.info(
            "Service container initialized",
            encoder=self.encoder.model_name,
            inference_workers=settings.INFERENCE_WORKERS
        )

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        # Cleanup domain services
        self.face_recognition_service = None
        self.face_training_service = None
        self.model_lifecycle = None

        # Cleanup storage
        self.access_policy = None
        self.roster = None
        self.embedding_store = None
        self.session_factory = None
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

        # Cleanup inference
        if self.inference_pool is not None:
            self.inference_pool.shutdown()
            self.inference_pool = None
        self.encoder = None
        self.detector = None


# Global container instance
container = ServiceContainer()
