"""Service-level configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_flag, env_int


@dataclass(frozen=True, slots=True)
class BeetleConfig:
    """Options a service applies to every request it handles."""

    max_result_count: int | None = None
    check_request_hash: bool = False
    map_unknowns: bool = False


def get_beetle_config() -> BeetleConfig:
    max_result_count = env_int("BEETLE_MAX_RESULT_COUNT")
    return BeetleConfig(
        # zero means "no limit", matching an unset variable
        max_result_count=max_result_count or None,
        check_request_hash=env_flag("BEETLE_CHECK_REQUEST_HASH"),
        map_unknowns=env_flag("BEETLE_MAP_UNKNOWNS"),
    )
