"""Per-request data model of the save and query pipelines."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

from beetle.domain.errors import InvalidSaveBundle

if TYPE_CHECKING:
    from collections.abc import Mapping

    from beetle.domain.metadata import EntityType


class EntityState(StrEnum):
    UNCHANGED = "Unchanged"
    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"


@dataclass(eq=False, slots=True)
class EntityBag:
    """One client-submitted mutation paired with its server-side correlate.

    ``index`` is the position in the submitted batch. Every bag derived from this
    one (for example by mapping an unknown shape onto a persistence type) must keep it.
    """

    client_entity: Any
    entity: Any
    entity_state: EntityState
    index: int
    type_name: str
    original_values: dict[str, Any] | None = None
    force_update: bool = False
    entity_type: EntityType | None = None

    @property
    def is_known(self) -> bool:
        return self.entity_type is not None

    def derive(
        self,
        *,
        client_entity: Any,
        entity: Any,
        entity_type: EntityType | None,
        original_values: dict[str, Any] | None,
    ) -> EntityBag:
        """Return a bag for a mapped shape, carrying index, state and force flag forward."""

        return EntityBag(
            client_entity=client_entity,
            entity=entity,
            entity_state=self.entity_state,
            index=self.index,
            type_name=entity_type.name if entity_type is not None else self.type_name,
            original_values=original_values,
            force_update=self.force_update,
            entity_type=entity_type,
        )


@dataclass(frozen=True, slots=True)
class GeneratedValue:
    """A backend-produced value correlated to the bag index and property it belongs to."""

    index: int
    property: str
    value: Any


@dataclass(slots=True)
class SaveContext(Sequence[EntityBag]):
    """Ordered bags of one save request plus batch-wide state."""

    entity_bags: list[EntityBag]
    user_data: dict[str, Any] = field(default_factory=dict[str, Any])
    session_state: dict[str, Any] = field(default_factory=dict[str, Any])

    def __post_init__(self) -> None:
        seen: set[int] = set()
        for bag in self.entity_bags:
            if bag.index in seen:
                raise InvalidSaveBundle(
                    f"Entity bag index {bag.index} is not unique within the save request",
                    index=bag.index,
                )
            seen.add(bag.index)

    def __len__(self) -> int:
        return len(self.entity_bags)

    def __iter__(self) -> Iterator[EntityBag]:
        return iter(self.entity_bags)

    def __getitem__(self, position: int) -> EntityBag:  # type: ignore[override]
        return self.entity_bags[position]

    def by_index(self, index: int) -> EntityBag:
        for bag in self.entity_bags:
            if bag.index == index:
                return bag
        raise KeyError(index)


@dataclass(frozen=True, slots=True)
class SaveResult:
    affected_count: int = 0
    generated_values: tuple[GeneratedValue, ...] = ()
    user_data: Mapping[str, Any] | None = None

    EMPTY: ClassVar[SaveResult]

    def to_payload(self) -> dict[str, object]:
        from beetle.domain.schema import SaveResultPayload  # noqa: PLC0415

        return SaveResultPayload.from_result(self).model_dump(mode="json", by_alias=True)


SaveResult.EMPTY = SaveResult()


@dataclass(frozen=True, slots=True)
class BeetleParameter:
    """One already-parsed query directive."""

    name: str
    value: str


@dataclass(slots=True)
class ActionContext:
    """Inputs of a non-save request: the action's value and its query directives."""

    name: str
    value: Any
    parameters: tuple[BeetleParameter, ...] = ()
    max_result_count: int | None = None
    query_string: str | None = None
    user_data: dict[str, Any] = field(default_factory=dict[str, Any])

    @classmethod
    def from_mapping(
        cls,
        name: str,
        value: Any,
        parameters: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> ActionContext:
        params = tuple(BeetleParameter(key, val) for key, val in (parameters or {}).items())
        return cls(name=name, value=value, parameters=params, **kwargs)


@dataclass(slots=True)
class ProcessResult:
    """Result payload plus out-of-band values (inline count and user data)."""

    action_context: ActionContext
    result: Any
    inline_count: int | None = None
    user_data: Any = None
