from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod")
    )

    database_url: str = "sqlite:///./job_tracker.db"

    # Token signing
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # Password hashing cost factor
    bcrypt_rounds: int = 12

    cors_origins: List[str] = [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Built single-page app served for non-API routes
    frontend_dist_dir: str = "frontend/dist"

    request_timeout_seconds: float = 30.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()
