# slashy/core_app/config.py
import os
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

AUTH_CONFIG_ENV_PREFIX = "COMPOSIO_AUTH_"

# Integration ids shown in the UI that differ from the provider's app slug.
INTEGRATION_TOOLKITS = {
    "calendar": "googlecalendar",
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_host = os.getenv("DB_HOST", "postgres")
    db_port = os.getenv("DB_PORT", "5432")
    db_name = os.getenv("DB_NAME", "slashy")
    db_user = os.getenv("DB_USER", "slashy")
    db_pass = os.getenv("DB_PASSWORD", "secret")

    return f"postgresql+psycopg2://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}"


class Settings(BaseModel):
    database_url: str = "sqlite:///./slashy.db"

    composio_api_key: Optional[str] = None
    composio_base_url: str = "https://backend.composio.dev"

    gemini_api_key: Optional[str] = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_model: str = "gemini-2.0-flash-exp"
    gemini_temperature: float = 0.7
    gemini_max_output_tokens: int = 2048

    auth_service_url: Optional[str] = None
    auth_service_key: Optional[str] = None
    auth_mode: Literal["bearer", "trusted_owner"] = "bearer"
    verify_callback_status: bool = True

    http_timeout: float = 15.0
    http_max_retries: int = 3

    history_limit: int = 20

    poll_interval: float = 5.0
    poll_max_attempts: int = 60

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    integration_auth_configs: Dict[str, str] = Field(default_factory=dict)

    def auth_config_for(self, integration_id: str) -> Optional[str]:
        return self.integration_auth_configs.get(integration_id.lower())

    @staticmethod
    def toolkit_for(integration_id: str) -> str:
        key = integration_id.lower()
        return INTEGRATION_TOOLKITS.get(key, key)

    @classmethod
    def from_env(cls) -> "Settings":
        auth_configs = {
            key[len(AUTH_CONFIG_ENV_PREFIX):].lower(): value
            for key, value in os.environ.items()
            if key.startswith(AUTH_CONFIG_ENV_PREFIX) and value
        }
        origins = os.getenv("CORS_ORIGINS", "*")

        return cls(
            database_url=get_database_url(),
            composio_api_key=os.getenv("COMPOSIO_API_KEY"),
            composio_base_url=os.getenv("COMPOSIO_BASE_URL", "https://backend.composio.dev"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_base_url=os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash-exp"),
            auth_service_url=os.getenv("AUTH_SERVICE_URL") or os.getenv("SUPABASE_URL"),
            auth_service_key=os.getenv("AUTH_SERVICE_KEY") or os.getenv("SUPABASE_ANON_KEY"),
            auth_mode=os.getenv("AUTH_MODE", "bearer"),
            verify_callback_status=_env_bool("VERIFY_CALLBACK_STATUS", True),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "15")),
            http_max_retries=int(os.getenv("HTTP_MAX_RETRIES", "3")),
            history_limit=int(os.getenv("HISTORY_LIMIT", "20")),
            poll_interval=float(os.getenv("POLL_INTERVAL", "5")),
            poll_max_attempts=int(os.getenv("POLL_MAX_ATTEMPTS", "60")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            integration_auth_configs=auth_configs,
        )


@lru_cache()
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
