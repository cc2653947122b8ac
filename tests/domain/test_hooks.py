from __future__ import annotations

import pytest

from beetle.domain.errors import BeetleError, ConcurrencyConflict
from beetle.domain.hooks import HookEvent, Hooks, fire_all


def test_hooks_run_in_registration_order() -> None:
    calls: list[str] = []
    hooks = Hooks()
    hooks.register(HookEvent.BEFORE_SAVE, lambda _args: calls.append("first"))
    hooks.register(HookEvent.BEFORE_SAVE, lambda _args: calls.append("second"))

    hooks.fire(HookEvent.BEFORE_SAVE, object())

    assert calls == ["first", "second"]


def test_returned_error_stops_remaining_hooks() -> None:
    calls: list[str] = []
    hooks = Hooks()
    hooks.register(HookEvent.AFTER_SAVE, lambda _args: ConcurrencyConflict("stop"))
    hooks.register(HookEvent.AFTER_SAVE, lambda _args: calls.append("late"))

    with pytest.raises(ConcurrencyConflict):
        hooks.fire(HookEvent.AFTER_SAVE, object())

    assert calls == []


def test_raised_error_propagates() -> None:
    hooks = Hooks()

    def explode(_args: object) -> None:
        raise BeetleError("boom")

    hooks.on_before_save(explode)

    with pytest.raises(BeetleError, match="boom"):
        hooks.fire(HookEvent.BEFORE_SAVE, object())


def test_handle_removes_registration() -> None:
    calls: list[int] = []
    hooks = Hooks()
    handle = hooks.on_after_save(lambda _args: calls.append(1))

    handle.remove()
    hooks.fire(HookEvent.AFTER_SAVE, object())

    assert calls == []
    assert hooks.count(HookEvent.AFTER_SAVE) == 0


def test_fire_all_runs_registries_in_turn_and_skips_missing() -> None:
    calls: list[str] = []
    service_hooks, adapter_hooks = Hooks(), Hooks()
    service_hooks.on_before_save(lambda _args: calls.append("service"))
    adapter_hooks.on_before_save(lambda _args: calls.append("adapter"))

    fire_all((service_hooks, None, adapter_hooks), HookEvent.BEFORE_SAVE, object())

    assert calls == ["service", "adapter"]


def test_hook_returning_a_non_error_value_is_rejected() -> None:
    hooks = Hooks()
    hooks.on_before_save(lambda _args: True)  # type: ignore[arg-type, return-value]

    with pytest.raises(TypeError, match="expected None or a BeetleError"):
        hooks.fire(HookEvent.BEFORE_SAVE, object())
