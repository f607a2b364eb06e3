"""Runtime settings for circle-recall, read from the environment or a .env file."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RecallSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Embedding provider
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = 1024
    EMBEDDING_CACHE_SIZE: int = Field(default=1000, gt=0)
    CLIP_MODEL: str = "clip-ViT-B-32"
    ENABLE_VISUAL_EMBEDDING: bool = False

    # Vector provider
    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_API_KEY: Optional[str] = None
    SEMANTIC_COLLECTION: str = "personal-ai-data"
    VISUAL_COLLECTION: str = "personal-ai-visual"
    UPSERT_BATCH_SIZE: int = Field(default=100, gt=0, le=100)

    # Relationship settings + usage events
    DATABASE_URL: str = "sqlite:///circle_recall.db"
    RELATIONSHIP_FETCH_CONCURRENCY: int = Field(default=50, gt=0)

    # Remote call policy
    REMOTE_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    MAX_RETRIES: int = Field(default=2, ge=0)
    RETRY_BACKOFF_SECONDS: float = Field(default=0.5, ge=0)
