"""
Core settings and environment variables for CivicTrack.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "CivicTrack"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - Frontend URLs allowed to access this API
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON
    ISSUES_COLLECTION: str = "issues"
    USERS_COLLECTION: str = "users"

    # In-memory repository for local development without Firebase credentials
    USE_MOCK_DB: bool = False

    # External priority signal (hosted AI classifier)
    AI_ENABLED: bool = True
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    AI_TIMEOUT_SECONDS: float = 10.0

    # Priority fusion
    AI_OVERRIDE_CONFIDENCE: float = 0.8  # External signal wins outright above this
    DEFAULT_PRIORITY_CONFIDENCE: float = 0.7
    FALLBACK_PRIORITY_CONFIDENCE: float = 0.5
    # Accept externalSignal from the POST /issues body (only behind a trusted gateway)
    TRUST_CLIENT_EXTERNAL_SIGNAL: bool = False

    # SLA lifecycle
    SLA_SWEEP_ENABLED: bool = True
    SLA_SWEEP_INTERVAL_HOURS: float = 12.0

    # Write-back queue for lazily migrated / refreshed issues
    WRITEBACK_MAX_ATTEMPTS: int = 3
    WRITEBACK_BACKOFF_SECONDS: float = 0.5
    WRITEBACK_FAILED_LIMIT: int = 100  # Exhausted jobs kept for inspection

    # Hotspot clustering
    CLUSTER_RADIUS_METERS: float = 500.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @property
    def cors_origins_list(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
