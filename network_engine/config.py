from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Calendar days, ISO weeks and scheduler hours are evaluated in this zone
    TIMEZONE: str = "UTC"

    # Storage
    DATABASE_URL: str = "postgresql://localhost:5432/network_engine"
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # =================================================================
    # LINKEDIN SEND LIMITS - defaults, scoring_config rows may override
    # =================================================================
    LINKEDIN_DAILY_LIMIT: int = 20
    LINKEDIN_WEEKLY_LIMIT: int = 100
    LINKEDIN_REQUEST_GAP_MIN: int = 120  # seconds
    LINKEDIN_REQUEST_GAP_MAX: int = 300  # seconds
    COOLDOWN_DAYS: int = 7
    RATE_LIMIT_WINDOW_MODE: str = "calendar"  # "calendar" or "rolling"

    # =================================================================
    # QUEUE + JOB SETTINGS
    # =================================================================
    QUEUE_SAFETY_CAP: int = 50
    SEND_BATCH_SAFETY_LIMIT: int = 5
    QUEUE_GENERATION_HOUR: int = 7
    SCORE_BATCH_HOUR: int = 2
    DUPLICATE_SCAN_HOUR: int = 3
    BATCH_PAGE_SIZE: int = 100

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 8
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # Batch jobs run single-writer; a small pool is plenty locally
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
