"""Shared fixtures wiring the services to fake models and a SQLite database."""
import pytest

from rollcall.core.utils.concurrency import InferencePool
from rollcall.infrastructure.database.session import create_engine, create_session_factory, init_models
from rollcall.infrastructure.storage.embedding_store import SqlEmbeddingStore
from rollcall.infrastructure.storage.roster import SqlRosterStore
from rollcall.services.face_pipeline import FacePipeline
from rollcall.services.face_recognition import FaceRecognitionService
from rollcall.services.face_training import FaceTrainingService
from rollcall.services.model_lifecycle import ModelLifecycleManager
from rollcall.services.signature_aggregator import SignatureAggregator
from tests.helpers import ColorBlockDetector, ColorHashEncoder


@pytest.fixture
def detector() -> ColorBlockDetector:
    return ColorBlockDetector(min_confidence=0.5, min_face_size=16, max_faces=10)


@pytest.fixture
def encoder() -> ColorHashEncoder:
    return ColorHashEncoder()


@pytest.fixture
def inference_pool():
    pool = InferencePool(max_workers=2)
    yield pool
    pool.shutdown()


@pytest.fixture
def pipeline(detector, encoder, inference_pool) -> FacePipeline:
    return FacePipeline(
        detector,
        encoder,
        inference_pool,
        decode_timeout=5.0,
        detect_timeout=5.0,
        encode_timeout=5.0,
        encode_attempts=2,
    )


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'rollcall-test.db'}"


@pytest.fixture
async def session_factory(database_url):
    engine = create_engine(database_url)
    await init_models(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def embedding_store(session_factory) -> SqlEmbeddingStore:
    return SqlEmbeddingStore(session_factory, model_name=ColorHashEncoder.model_name)


@pytest.fixture
def roster(session_factory) -> SqlRosterStore:
    return SqlRosterStore(session_factory)


@pytest.fixture
def lifecycle(embedding_store, roster) -> ModelLifecycleManager:
    return ModelLifecycleManager(embedding_store, roster, lazy_rebuild=True)


@pytest.fixture
def training_service(pipeline, embedding_store, roster, lifecycle) -> FaceTrainingService:
    return FaceTrainingService(
        pipeline=pipeline,
        aggregator=SignatureAggregator(min_images=5, consistency_floor=0.4),
        embedding_store=embedding_store,
        roster=roster,
        lifecycle=lifecycle,
        min_images=5,
        max_images=10,
        bulk_min_images=1,
        bulk_concurrency=2,
        allow_overwrite_default=False,
    )


@pytest.fixture
def recognition_service(pipeline, lifecycle, roster) -> FaceRecognitionService:
    return FaceRecognitionService(
        pipeline=pipeline,
        lifecycle=lifecycle,
        roster=roster,
        high_threshold=0.85,
        low_threshold=0.70,
    )
