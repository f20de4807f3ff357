import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()  # Load variables from .env file


class Settings(BaseModel):
    database_path: str = "events.db"
    secret_key: str = "default-secret"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]


def load_settings() -> Settings:
    """Build settings from environment variables."""
    origins_raw = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    origins = [o.strip() for o in origins_raw.split(",") if o.strip()]
    return Settings(
        database_path=os.getenv("DATABASE_PATH", "events.db"),
        secret_key=os.getenv("SECRET_KEY", "default-secret"),
        algorithm=os.getenv("ALGORITHM", "HS256"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")),
        refresh_token_expire_days=int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=origins,
    )
