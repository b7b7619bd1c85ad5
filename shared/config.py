from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List, Optional

class Settings(BaseSettings):
    DATABASE_URL: str = f"sqlite:///{Path(__file__).parent.parent / 'pulsecity.db'}"
    NATS_URL: Optional[str] = None
    API_PREFIX: str = "/api"
    TOKEN_TTL_MINUTES: int = 60 * 24 * 7
    DEFAULT_PER_PAGE: int = 12
    MAX_PER_PAGE: int = 100
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]
    STATUS_SUBJECT: str = "events.status"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = Path(__file__).parent.parent / ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
