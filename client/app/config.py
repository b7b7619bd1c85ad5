from pathlib import Path

from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    API_URL: str = "http://localhost:8000/api"
    TIMEOUT: float = 10.0

    class Config:
        env_prefix = "PULSECITY_"
        env_file = Path(__file__).parent.parent.parent / ".env"
        case_sensitive = True
        extra = "ignore"
