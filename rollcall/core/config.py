"""Configuration settings for the attendance face engine."""
from typing import List, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        DATABASE_URL: SQLAlchemy async URL for signatures and the roster tables
        RECOGNITION_HIGH_THRESHOLD: Cosine similarity at or above which a match is auto-accepted
        RECOGNITION_LOW_THRESHOLD: Cosine similarity at or above which a match is suggested
        SIGNATURE_CONSISTENCY_FLOOR: Minimum pairwise similarity among enrollment embeddings
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        env_nested_delimiter="__"
    )

    # Core Settings
    PROJECT_NAME: str = "Rollcall Face Engine"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api"
    ENVIRONMENT: str = "development"

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:5173,http://localhost:8080"

    @property
    def cors_origins(self) -> List[str]:
        """Get list of allowed origins."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./rollcall.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_TIMEOUT: int = 30

    # Model Settings
    MODEL_PATH: str = "buffalo_l"
    MODEL_CACHE_DIR: str = ".model_cache"
    MODEL_DET_SIZE: int = 640
    MODEL_PROVIDERS: str = "CPUExecutionProvider"

    @property
    def model_providers(self) -> List[str]:
        """Get list of ONNX runtime execution providers."""
        return [provider.strip() for provider in self.MODEL_PROVIDERS.split(",")]

    @property
    def det_size(self) -> Tuple[int, int]:
        """Detector input size."""
        return (self.MODEL_DET_SIZE, self.MODEL_DET_SIZE)

    # Image Decoder Settings
    MAX_IMAGE_BYTES: int = 8 * 1024 * 1024
    MIN_IMAGE_SIDE: int = 64
    MAX_IMAGE_PIXELS: int = 4096 * 4096
    ALLOWED_IMAGE_FORMATS: str = "jpeg,png,webp,bmp"

    @property
    def allowed_image_formats(self) -> List[str]:
        """Get list of accepted image formats."""
        return [fmt.strip().lower() for fmt in self.ALLOWED_IMAGE_FORMATS.split(",")]

    # Face Detector Settings
    MIN_FACE_CONFIDENCE: float = 0.5
    MIN_FACE_SIZE: int = 32
    MAX_FACES_PER_IMAGE: int = 60

    # Signature Aggregator Settings
    ENROLLMENT_MIN_IMAGES: int = 5
    ENROLLMENT_MAX_IMAGES: int = 10
    BULK_MIN_IMAGES: int = 1
    SIGNATURE_CONSISTENCY_FLOOR: float = 0.4

    # Recognition Settings
    RECOGNITION_HIGH_THRESHOLD: float = 0.85
    RECOGNITION_LOW_THRESHOLD: float = 0.70

    # Inference Settings
    INFERENCE_WORKERS: int = 4
    DECODE_TIMEOUT_SECONDS: float = 2.0
    DETECT_TIMEOUT_SECONDS: float = 3.0
    ENCODE_TIMEOUT_SECONDS: float = 2.0
    ENCODE_ATTEMPTS: int = 2

    # Training Settings
    BULK_CONCURRENCY: int = 4
    ALLOW_OVERWRITE_DEFAULT: bool = False
    LAZY_INDEX_REBUILD: bool = True

    # Authorization Settings
    ENROLLMENT_ROLES: str = "admin,teacher"
    RECOGNITION_ROLES: str = "admin,teacher"

    @property
    def enrollment_roles(self) -> List[str]:
        """Roles allowed to enroll faces and train section models."""
        return [role.strip() for role in self.ENROLLMENT_ROLES.split(",") if role.strip()]

    @property
    def recognition_roles(self) -> List[str]:
        """Roles allowed to run recognition against a section."""
        return [role.strip() for role in self.RECOGNITION_ROLES.split(",") if role.strip()]

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

settings = Settings()
