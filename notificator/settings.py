from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True)

    # Storage backend selector
    NOTIFICATOR_STORAGE: Literal["memory", "redis"] = "memory"

    # Shared secret for the control plane (X-AUTH-TOKEN header)
    AUTH_TOKEN: SecretStr

    # HTTP server settings
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGIN: str = "*"

    # Redis settings (durable backend)
    REDIS_IP: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: SecretStr | None = None

    # Redis connection pool settings
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_CONNECT_TIMEOUT: int = 5
    REDIS_HEALTH_CHECK_INTERVAL: int = 30

    SLOT_KEY_PREFIX: str = "notificator:user:"

    # Default cutoff for administrative purge of never-bound slots
    PENDING_SLOT_MAX_AGE_SECONDS: int = 86400

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE_PATH: str = "logs/notificator_errors.log"
    LOG_JSON: bool = False
    ENVIRONMENT: str = "development"

    # Build metadata fallback for /api/status/info
    APP_NAME: str = "notificator"
    APP_VERSION: str = "1.0.0"

    @property
    def REDIS_URL(self) -> str:
        """Construct the Redis URL from individual components."""
        if self.REDIS_PASSWORD is None:
            return f"redis://{self.REDIS_IP}:{self.REDIS_PORT}"
        password = self.REDIS_PASSWORD.get_secret_value()
        return f"redis://:{password}@{self.REDIS_IP}:{self.REDIS_PORT}"


app_settings = Settings()
