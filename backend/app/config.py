"""Application configuration."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://prospecting:prospecting@db:5432/prospecting"

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Enrichment providers
    APOLLO_API_KEY: Optional[str] = None
    APOLLO_API_URL: str = "https://api.apollo.io/v1"
    HUNTER_API_KEY: Optional[str] = None
    HUNTER_API_URL: str = "https://api.hunter.io/v2"

    # Embeddings + vector index
    OPENAI_API_KEY: Optional[str] = None
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_BATCH_SIZE: int = 100
    PINECONE_API_KEY: Optional[str] = None
    PINECONE_INDEX_HOST: Optional[str] = None  # e.g. https://icps-abc123.svc.us-east-1.pinecone.io

    # Quotas
    APOLLO_QUOTA_LIMIT: int = 10000  # per calendar year
    HUNTER_QUOTA_LIMIT: int = 25  # per calendar month
    QUOTA_WARNING_RATIO: float = 0.8

    # Provider calls
    ENRICHMENT_TIMEOUT_SECONDS: float = 10.0
    ENRICHMENT_MAX_ATTEMPTS: int = 3
    ENRICHMENT_BACKOFF_BASE_SECONDS: float = 1.0
    HIGH_VALUE_SCORE_THRESHOLD: float = 0.85

    # Batch scoring
    BATCH_SCORING_MAX_COUNT: int = 100
    SEQUENTIAL_SCORING_CHUNK_SIZE: int = 10

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
