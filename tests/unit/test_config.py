"""Unit tests for configuration loading."""

import pytest
from pydantic import ValidationError

from src.services.config import BillingSettings, get_settings, reset_settings

pytestmark = pytest.mark.unit


class TestBillingSettings:
    """Defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        """Generation bounds and batch size default to safe values."""
        for name in ("GENERATION_HORIZON_MONTHS", "MAX_GENERATION_STEPS", "WRITE_BATCH_SIZE", "SERVICE_CATEGORY_NAME"):
            monkeypatch.delenv(name, raising=False)

        settings = BillingSettings(_env_file=None)

        assert settings.generation_horizon_months == 6
        assert settings.max_generation_steps == 365
        assert settings.write_batch_size == 400
        assert settings.service_category_name == "Service Revenue"
        assert settings.service_category_color == "#22c55e"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("WRITE_BATCH_SIZE", "50")
        monkeypatch.setenv("generation_horizon_months", "3")

        settings = BillingSettings(_env_file=None)

        assert settings.write_batch_size == 50
        assert settings.generation_horizon_months == 3

    def test_batch_size_capped(self, monkeypatch):
        """Atomic write groups may not exceed 500 writes."""
        monkeypatch.setenv("WRITE_BATCH_SIZE", "900")

        with pytest.raises(ValidationError):
            BillingSettings(_env_file=None)

    def test_horizon_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("GENERATION_HORIZON_MONTHS", "0")

        with pytest.raises(ValidationError):
            BillingSettings(_env_file=None)


class TestGetSettings:
    """Lazy settings singleton."""

    def test_cached_until_reset(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first

        monkeypatch.setenv("SERVICE_CATEGORY_NAME", "Receita de Servicos")
        reset_settings()

        assert get_settings() is not first
        assert get_settings().service_category_name == "Receita de Servicos"

    def test_test_database_is_in_memory(self):
        assert get_settings().database_url == "sqlite:///:memory:"
