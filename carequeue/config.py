from enum import Enum

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreBackend(Enum):
    REST = "rest"
    MEMORY = "memory"


class SupabaseConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_", env_file=".env", extra="ignore", populate_by_name=True
    )

    url: str = Field(
        default="",
        validation_alias=AliasChoices(
            "SUPABASE_URL",
            "NEXT_PUBLIC_SUPABASE_URL",
        ),
    )
    anon_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "SUPABASE_ANON_KEY",
            "NEXT_PUBLIC_SUPABASE_ANON_KEY",
        ),
    )
    service_role_key: str = ""
    access_token: str = ""
    timeout: float = 30.0


class QueueConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="QUEUE_", env_file=".env", extra="ignore")

    poll_interval_seconds: float = 30.0
    waiting_room_poll_seconds: float = 5.0
    notification_ttl_seconds: float = 5.0

    # Per-stage wait estimate, in minutes per booking at that stage.
    provider_minutes: int = 15
    ready_minutes: int = 10
    intake_minutes: int = 5


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    store_backend: StoreBackend = StoreBackend.REST
    log_level: str = "INFO"
    supabase: SupabaseConfig = Field(default_factory=lambda: SupabaseConfig())
    queue: QueueConfig = Field(default_factory=lambda: QueueConfig())
