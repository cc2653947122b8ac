from __future__ import annotations

import pytest

from beetle.config import BeetleConfig, ConfigurationError, get_beetle_config


def test_defaults_without_environment() -> None:
    assert get_beetle_config() == BeetleConfig()


def test_values_are_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BEETLE_MAX_RESULT_COUNT", "250")
    monkeypatch.setenv("BEETLE_CHECK_REQUEST_HASH", "true")
    monkeypatch.setenv("BEETLE_MAP_UNKNOWNS", "1")

    assert get_beetle_config() == BeetleConfig(
        max_result_count=250, check_request_hash=True, map_unknowns=True
    )


def test_zero_result_count_means_unlimited(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BEETLE_MAX_RESULT_COUNT", "0")

    assert get_beetle_config().max_result_count is None


def test_invalid_values_raise(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BEETLE_MAX_RESULT_COUNT", "lots")

    with pytest.raises(ConfigurationError, match="BEETLE_MAX_RESULT_COUNT"):
        get_beetle_config()
