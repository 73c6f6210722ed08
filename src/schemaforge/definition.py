"""Typed model of a user-supplied schema definition.

Field descriptors are a tagged union keyed on ``type``; each variant only
accepts the options that make sense for it. Unknown keys (UI hints,
validation rules, relationship metadata) are kept so they round-trip
through storage untouched.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

FIELD_TYPES = ("string", "integer", "number", "boolean", "array", "object")
FIELD_FORMATS = ("uuid", "email", "date", "date-time", "time", "uri", "hostname", "ipv4", "ipv6")
INDEX_TYPES = ("btree", "hash", "gin", "gist", "spgist", "brin")
WORKFLOW_EVENTS = (
    "beforeCreate",
    "afterCreate",
    "beforeUpdate",
    "afterUpdate",
    "beforeDelete",
    "afterDelete",
)

FieldFormat = Literal["uuid", "email", "date", "date-time", "time", "uri", "hostname", "ipv4", "ipv6"]
IndexType = Literal["btree", "hash", "gin", "gist", "spgist", "brin"]
WorkflowEvent = Literal[
    "beforeCreate",
    "afterCreate",
    "beforeUpdate",
    "afterUpdate",
    "beforeDelete",
    "afterDelete",
]


class _Descriptor(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class DatabaseOptions(_Descriptor):
    type: Optional[str] = None  # explicit SQL type, used verbatim
    not_null: bool = Field(False, alias="notNull")
    unique: bool = False
    primary_key: bool = Field(False, alias="primaryKey")


class _FieldBase(_Descriptor):
    format: Optional[FieldFormat] = None
    description: Optional[str] = None
    database: DatabaseOptions = Field(default_factory=DatabaseOptions)
    default: Any = None

    @property
    def has_default(self) -> bool:
        # An explicit ``"default": null`` still renders DEFAULT NULL.
        return "default" in self.model_fields_set


class StringField(_FieldBase):
    type: Literal["string"]
    max_length: Optional[int] = Field(None, alias="maxLength", ge=1)


class IntegerField(_FieldBase):
    type: Literal["integer"]


class NumberField(_FieldBase):
    type: Literal["number"]
    precision: Optional[int] = Field(None, ge=1)
    scale: Optional[int] = Field(None, ge=0)


class BooleanField(_FieldBase):
    type: Literal["boolean"]


class ArrayField(_FieldBase):
    type: Literal["array"]
    items: Optional[dict[str, Any]] = None


class ObjectField(_FieldBase):
    type: Literal["object"]
    properties: Optional[dict[str, Any]] = None


FieldDescriptor = Annotated[
    Union[StringField, IntegerField, NumberField, BooleanField, ArrayField, ObjectField],
    Field(discriminator="type"),
]

_field_adapter = TypeAdapter(FieldDescriptor)


class IndexDescriptor(_Descriptor):
    name: Optional[str] = None
    fields: list[str] = Field(min_length=1)
    unique: bool = False
    type: Optional[IndexType] = None


class WorkflowHook(_Descriptor):
    event: WorkflowEvent
    workflow_id: str = Field(alias="workflowId", min_length=1)
    condition: Optional[str] = None
    run_async: Optional[bool] = Field(None, alias="async")


class SchemaDefinition(_Descriptor):
    type: Literal["object"]
    properties: dict[str, FieldDescriptor]
    required: list[str] = Field(default_factory=list)
    indexes: list[IndexDescriptor] = Field(default_factory=list)
    # Side-channel metadata; stored and returned, never interpreted here.
    workflows: Optional[list[WorkflowHook]] = None
    permissions: Optional[dict[str, Any]] = None

    def is_required(self, field_name: str) -> bool:
        return field_name in self.required


def parse_field(raw: dict[str, Any]):
    """Parse one field descriptor into its typed variant."""
    return _field_adapter.validate_python(raw)


def parse_definition(raw: dict[str, Any]) -> SchemaDefinition:
    """Parse a raw definition, raising pydantic's ValidationError on shape errors.

    Callers that need the full error list should go through
    :func:`schemaforge.validation.validate_definition` first.
    """
    return SchemaDefinition.model_validate(raw)
