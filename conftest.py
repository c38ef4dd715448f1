import pytest

from mamastale import config
from mamastale.ratelimit import reset_limiters


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    """Reset cached config and limiter tables before every test."""
    for name in ("MAMASTALE_CONFIG", "ANTHROPIC_API_KEY", "ANTHROPIC_MODEL", "SUPABASE_JWT_SECRET"):
        monkeypatch.delenv(name, raising=False)
    config.reload_config()
    reset_limiters()
    yield
    reset_limiters()
