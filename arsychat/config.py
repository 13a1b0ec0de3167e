from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    telegram_bot_token: str = ""
    webhook_url: Optional[str] = None

    # Empty channel disables the membership gate
    required_channel: Optional[str] = None
    admin_id: Optional[str] = None

    completion_api_base: str = "https://arsychat-api.metaspace.workers.dev/api"
    default_model: str = "GLM"
    completion_timeout_seconds: float = 60.0
    completion_max_attempts: int = 2
    completion_retry_backoff_seconds: float = 0.5

    user_directory_backend: Literal["firebase", "sql"] = "firebase"
    firebase_db_url: Optional[str] = None
    directory_timeout_seconds: float = 10.0
    database_url: str = "sqlite:///./arsychat.db"

    redis_url: Optional[str] = None
    broadcast_session_ttl_seconds: int = 3600
    broadcast_delay_seconds: float = 0.03

    telegram_timeout_seconds: float = 30.0

    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None

    log_level: str = "INFO"
    log_json: bool = True
    debug: bool = False
    cors_allow_origins: str = "*"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
