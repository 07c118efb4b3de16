"""
Configuration settings for a SERMAS application connection.
"""
from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_CLIENT_ID = "sermas-app"
DEFAULT_CLIENT_SECRET = "sermas-app-secret"
DEFAULT_APP_ID = "sermas-app"


class SermasConfig(BaseSettings):
    """
    Connection settings loaded from environment variables.

    Empty values fall back to the defaults, so `SERMAS_APPID=""` behaves the
    same as leaving the variable unset.
    """
    model_config = ConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    # Platform credentials
    sermas_base_url: str = DEFAULT_BASE_URL
    sermas_client_id: str = DEFAULT_CLIENT_ID
    sermas_client_secret: str = DEFAULT_CLIENT_SECRET
    sermas_appid: str = DEFAULT_APP_ID

    # Runtime settings
    sermas_retry_interval: float = Field(default=1.0, gt=0)  # seconds
    sermas_request_timeout: float = Field(default=30.0, gt=0)  # seconds
    sermas_prefetch_app: bool = True
    sermas_single_flight_app: bool = False

    @field_validator("sermas_base_url", mode="before")
    @classmethod
    def _default_base_url(cls, value):
        return value or DEFAULT_BASE_URL

    @field_validator("sermas_client_id", mode="before")
    @classmethod
    def _default_client_id(cls, value):
        return value or DEFAULT_CLIENT_ID

    @field_validator("sermas_client_secret", mode="before")
    @classmethod
    def _default_client_secret(cls, value):
        return value or DEFAULT_CLIENT_SECRET

    @field_validator("sermas_appid", mode="before")
    @classmethod
    def _default_app_id(cls, value):
        return value or DEFAULT_APP_ID

    # Convenience accessors

    @property
    def base_url(self) -> str:
        return self.sermas_base_url.rstrip("/")

    @property
    def client_id(self) -> str:
        return self.sermas_client_id

    @property
    def client_secret(self) -> str:
        return self.sermas_client_secret

    @property
    def app_id(self) -> str:
        return self.sermas_appid
