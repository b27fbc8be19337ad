import pytest
from pydantic import ValidationError

from gateway_ext.core.config import RateLimitSettings, RedisSettings


def test_rate_limit_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("ENABLED", "POINTS", "DURATION", "BLOCK_DURATION"):
        monkeypatch.delenv(f"RATE_LIMIT_{name}", raising=False)

    cfg = RateLimitSettings()

    assert cfg.enabled is False
    assert (cfg.points, cfg.duration, cfg.block_duration) == (100, 60, 60)


def test_rate_limit_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
    monkeypatch.setenv("RATE_LIMIT_POINTS", "5")
    monkeypatch.setenv("RATE_LIMIT_DURATION", "10")
    monkeypatch.setenv("RATE_LIMIT_BLOCK_DURATION", "300")

    cfg = RateLimitSettings()

    assert cfg.enabled is True
    assert (cfg.points, cfg.duration, cfg.block_duration) == (5, 10, 300)


def test_rate_limit_rejects_zero_points(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_POINTS", "0")

    with pytest.raises(ValidationError):
        RateLimitSettings()


def test_redis_key_prefix_default() -> None:
    assert RedisSettings().key_prefix == "ratelimit:apikey:"
