"""Ordered, synchronous lifecycle hooks around query handling and saving.

A hook receives the event arguments and either returns ``None`` to continue or a
:class:`~beetle.domain.errors.BeetleError` describing why the pipeline must stop.
Raising works the same way; in both cases the remaining hooks and stages are skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from beetle.domain.errors import BeetleError

if TYPE_CHECKING:
    from beetle.domain.model import ActionContext, SaveContext, SaveResult
    from beetle.domain.query.queryable import Queryable

log = logging.getLogger(__name__)


class HookEvent(StrEnum):
    BEFORE_HANDLE_QUERY = "before_handle_query"
    BEFORE_QUERY_EXECUTE = "before_query_execute"
    AFTER_QUERY_EXECUTE = "after_query_execute"
    BEFORE_SAVE = "before_save"
    AFTER_SAVE = "after_save"


@dataclass(slots=True)
class QueryHookArgs:
    """Arguments of the query events; hooks may replace ``query`` or set ``user_data``."""

    action_context: ActionContext
    query: Queryable[Any]
    result: list[Any] | None = None
    user_data: Any = None


@dataclass(slots=True)
class BeforeSaveArgs:
    save_context: SaveContext


@dataclass(slots=True)
class AfterSaveArgs:
    save_context: SaveContext
    save_result: SaveResult


type Hook = Callable[[Any], BeetleError | None]
type QueryHook = Callable[[QueryHookArgs], BeetleError | None]
type BeforeSaveHook = Callable[[BeforeSaveArgs], BeetleError | None]
type AfterSaveHook = Callable[[AfterSaveArgs], BeetleError | None]


@dataclass(eq=False, slots=True)
class HookHandle:
    event: HookEvent
    callback: Hook
    _hooks: Hooks = field(repr=False)

    def remove(self) -> None:
        self._hooks.unregister(self)


class Hooks:
    """Registry of hooks, invoked per event in registration order."""

    def __init__(self) -> None:
        self._handles: dict[HookEvent, list[HookHandle]] = {event: [] for event in HookEvent}

    def register(self, event: HookEvent, callback: Hook) -> HookHandle:
        handle = HookHandle(event=event, callback=callback, _hooks=self)
        self._handles[event].append(handle)
        return handle

    def unregister(self, handle: HookHandle) -> None:
        handles = self._handles[handle.event]
        if handle in handles:
            handles.remove(handle)

    def on_before_handle_query(self, callback: QueryHook) -> HookHandle:
        return self.register(HookEvent.BEFORE_HANDLE_QUERY, callback)

    def on_before_query_execute(self, callback: QueryHook) -> HookHandle:
        return self.register(HookEvent.BEFORE_QUERY_EXECUTE, callback)

    def on_after_query_execute(self, callback: QueryHook) -> HookHandle:
        return self.register(HookEvent.AFTER_QUERY_EXECUTE, callback)

    def on_before_save(self, callback: BeforeSaveHook) -> HookHandle:
        return self.register(HookEvent.BEFORE_SAVE, callback)

    def on_after_save(self, callback: AfterSaveHook) -> HookHandle:
        return self.register(HookEvent.AFTER_SAVE, callback)

    def count(self, event: HookEvent) -> int:
        return len(self._handles[event])

    def fire(self, event: HookEvent, args: object) -> None:
        # snapshot: hooks may unregister themselves while firing
        for handle in tuple(self._handles[event]):
            failure = handle.callback(args)
            if failure is None:
                continue
            if not isinstance(failure, BeetleError):
                raise TypeError(
                    f"Hook {handle.callback!r} for {event} returned {failure!r}; "
                    "expected None or a BeetleError"
                )
            log.debug("Hook %r rejected %s: %s", handle.callback, event, failure)
            raise failure


def fire_all(registries: tuple[Hooks | None, ...], event: HookEvent, args: object) -> None:
    """Fire ``event`` on each registry in turn (service hooks before adapter hooks)."""

    for hooks in registries:
        if hooks is not None:
            hooks.fire(event, args)
