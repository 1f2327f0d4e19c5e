from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import os


class Settings(BaseSettings):
    APP_NAME: str = "Promo Engine"
    DEBUG: bool = False

    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "data/promo_engine.db")
    # Full SQLAlchemy URL (e.g. postgresql+psycopg2://...). Takes precedence over DATABASE_PATH.
    DATABASE_DSN: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_DSN:
            return self.DATABASE_DSN
        # Always resolve path relative to backend directory, not current working directory
        db_path = self.DATABASE_PATH
        if not os.path.isabs(db_path):
            # promo_engine/core/config.py -> promo_engine/core -> promo_engine -> backend
            backend_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
            db_path = os.path.join(backend_dir, db_path)
        return f"sqlite:///{os.path.abspath(db_path)}"

    SECRET_KEY: str = os.getenv("SECRET_KEY", "promo-dev-secret-change-me")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    HOST: str = "127.0.0.1"
    PORT: int = 8765

    # Calendar days for DAILY_LIMIT codes are counted in this zone (IANA name)
    SERVER_TIMEZONE: str = "UTC"

    # Discount codes read by evaluate() may be served from memory for this long; 0 disables
    DISCOUNT_CACHE_TTL_SECONDS: int = 30

    # Upper bound on waiting for the ledger lock during redemption
    REDEEM_TIMEOUT_SECONDS: float = 10.0
    # How many times a redemption re-validates after a write conflict before giving up
    REDEEM_CONFLICT_RETRIES: int = 1

    LIST_PAGE_SIZE: int = 12

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"  # Ignore extra environment variables
    )


settings = Settings()
