import os
import secrets
import logging
from pydantic_settings import BaseSettings
from typing import List, Optional

logger = logging.getLogger(__name__)


ENV_PRODUCTION = os.getenv("ENVIRONMENT", "development").lower() == "production"


class Settings(BaseSettings):

    environment: str = "development"
    server_host: str = "0.0.0.0"
    port: int = 5000


    mongodb_uri: str = "mongodb://localhost:27017"
    db_name: str = "medcontrol"


    firebase_credentials_path: str = "./firebase-credentials.json"


    secret_key: Optional[str] = None


    cors_origins: str = "http://localhost:8081,http://localhost:19006"


    dose_check_interval_seconds: float = 60.0
    missed_grace_minutes: int = 60
    take_dose_tolerance_minutes: int = 5


    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    push_timeout_seconds: float = 10.0


    free_plan_medication_limit: int = 10
    free_plan_connection_limit: int = 1

    @property
    def cors_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def missed_grace_ms(self) -> int:
        return self.missed_grace_minutes * 60 * 1000

    @property
    def take_dose_tolerance_ms(self) -> int:
        return self.take_dose_tolerance_minutes * 60 * 1000

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._validate_production_settings()

    def _validate_production_settings(self):
        if ENV_PRODUCTION:
            if not self.secret_key:
                raise ValueError(
                    "SECRET_KEY environment variable must be set in production. "
                    "Generate a secure key using: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
                )
        else:

            if not self.secret_key:
                self.secret_key = secrets.token_urlsafe(32)
                logger.warning(
                    "Using auto-generated SECRET_KEY for development. "
                    "Set SECRET_KEY environment variable for production."
                )

    class Config:
        env_file = ".env"


settings = Settings()
