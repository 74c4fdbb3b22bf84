"""Unit tests for settings and the pooled database engine"""

from lending_gateway.config import Settings, settings
from lending_gateway.infrastructure.database.session import engine


def test_pool_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DB_POOL_SIZE", "3")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "0")

    configured = Settings()

    assert configured.db_pool_size == 3
    assert configured.db_max_overflow == 0


def test_engine_uses_pool_settings():
    assert engine.pool.size() == settings.db_pool_size
