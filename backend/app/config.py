import os
from typing import List, Optional


class Config:
    """Application configuration loaded from environment variables."""

    # Route Store
    ROUTE_STORE_BACKEND: str = os.getenv("ROUTE_STORE_BACKEND", "redis").strip().lower()
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_PASSWORD: Optional[str] = os.getenv("REDIS_PASSWORD") or None

    # Trip simulation
    MAX_TRIPS: int = int(os.getenv("MAX_TRIPS", "10"))
    DEFAULT_DURATION_MINUTES: int = int(os.getenv("DEFAULT_DURATION_MINUTES", "210"))

    # Route editor
    EDITOR_SESSION_EXPIRY: int = int(os.getenv("EDITOR_SESSION_EXPIRY", "3600"))  # 1 hour idle

    # API
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    @classmethod
    def cors_origins_list(cls) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in cls.CORS_ORIGINS.split(",") if origin.strip()]

    @classmethod
    def get_config_dict(cls) -> dict:
        """Return configuration as dictionary (for debugging)."""
        return {
            "ROUTE_STORE_BACKEND": cls.ROUTE_STORE_BACKEND,
            "REDIS_HOST": cls.REDIS_HOST,
            "REDIS_PORT": cls.REDIS_PORT,
            "REDIS_PASSWORD": "***" if cls.REDIS_PASSWORD else None,
            "MAX_TRIPS": cls.MAX_TRIPS,
            "DEFAULT_DURATION_MINUTES": cls.DEFAULT_DURATION_MINUTES,
            "EDITOR_SESSION_EXPIRY": cls.EDITOR_SESSION_EXPIRY,
            "LOG_LEVEL": cls.LOG_LEVEL,
        }


config = Config()
