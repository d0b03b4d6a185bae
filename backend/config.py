from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Round clock, started by the first kill
    round_duration_seconds: int = 300
    tick_interval_seconds: float = 1.0
    # Opt-in server-side proximity check for kills; None trusts the client
    max_interaction_distance: Optional[float] = None
    max_chat_length: int = 200
    # Start a fresh session once the last player disconnects
    reset_when_empty: bool = False
    # CORS origins — set ALLOWED_ORIGINS env var for production (JSON list)
    allowed_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
