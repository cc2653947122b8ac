"""Pydantic models describing the inbound save bundle and the outbound save result."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from beetle.domain.errors import InvalidSaveBundle
from beetle.domain.model import EntityState

if TYPE_CHECKING:
    from beetle.domain.model import SaveResult

_STATE_BY_NAME = {state.value.lower(): state for state in EntityState}


class BeetleBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EntityChangePayload(BeetleBaseModel):
    type_name: str = Field(validation_alias=AliasChoices("type", "$type", "typeName"))
    state: EntityState = EntityState.UNCHANGED
    values: dict[str, Any] = Field(default_factory=dict)
    original_values: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("originalValues", "original_values")
    )
    force_update: bool = Field(
        default=False, validation_alias=AliasChoices("forceUpdate", "force_update")
    )

    @field_validator("type_name")
    @classmethod
    def _strip_type_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Entity type name must not be blank")
        return stripped

    @field_validator("state", mode="before")
    @classmethod
    def _parse_state(cls, value: object) -> object:
        if isinstance(value, str):
            state = _STATE_BY_NAME.get(value.strip().lower())
            if state is None:
                raise ValueError(f"Unknown entity state: {value}")
            return state
        return value


class SaveBundlePayload(BeetleBaseModel):
    entities: list[EntityChangePayload] = Field(default_factory=list)
    force_update: bool = Field(
        default=False, validation_alias=AliasChoices("forceUpdate", "force_update")
    )
    user_data: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("userData", "user_data")
    )


class GeneratedValuePayload(BeetleBaseModel):
    index: int
    property: str
    value: Any


class SaveResultPayload(BeetleBaseModel):
    affected_count: int = Field(serialization_alias="affectedCount")
    generated_values: list[GeneratedValuePayload] = Field(serialization_alias="generatedValues")
    user_data: dict[str, Any] | None = Field(default=None, serialization_alias="userData")

    @classmethod
    def from_result(cls, result: SaveResult) -> SaveResultPayload:
        return cls(
            affected_count=result.affected_count,
            generated_values=[
                GeneratedValuePayload(index=value.index, property=value.property, value=value.value)
                for value in result.generated_values
            ],
            user_data=dict(result.user_data) if result.user_data is not None else None,
        )


def parse_save_bundle(raw_bundle: object) -> SaveBundlePayload:
    """Validate a raw bundle: a JSON document, a mapping, or a bare list of entity changes."""

    try:
        if isinstance(raw_bundle, SaveBundlePayload):
            return raw_bundle
        if isinstance(raw_bundle, str | bytes | bytearray):
            return SaveBundlePayload.model_validate_json(raw_bundle)
        if isinstance(raw_bundle, list):
            return SaveBundlePayload.model_validate({"entities": raw_bundle})
        return SaveBundlePayload.model_validate(raw_bundle)
    except ValidationError as exc:
        raise InvalidSaveBundle(f"Malformed save bundle: {exc}") from exc
