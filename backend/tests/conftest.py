"""Shared test fixtures and configuration."""
import pytest

from angle_studio.core.config import get_settings


@pytest.fixture(autouse=True)
def set_required_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Use a fake Gemini API key so no test picks up real credentials."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-api-key")
    monkeypatch.delenv("GCP_PROJECT_ID", raising=False)
    get_settings.cache_clear()
