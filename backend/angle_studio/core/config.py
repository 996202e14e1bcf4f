"""Configuration management using pydantic-settings."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gemini credentials. An API key takes precedence; otherwise Vertex AI
    # is used when a GCP project is configured.
    gemini_api_key: str = ""
    gcp_project_id: str = ""
    vertex_ai_location: str = "global"
    image_model: str = "gemini-2.5-flash-image-preview"

    # Application settings
    app_name: str = "angle-studio"
    max_optimized_images: int = 9

    # Server settings
    backend_host: str = "localhost"
    backend_port: int = 8000
    frontend_port: int = 3000

    @property
    def image_service_configured(self) -> bool:
        """True when either an API key or a Vertex AI project is available."""
        return bool(self.gemini_api_key or self.gcp_project_id)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
