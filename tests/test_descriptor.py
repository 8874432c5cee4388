"""Tests for schema descriptors and their builders."""

from typing import Literal

import pytest
from pydantic import BaseModel, Field, ValidationError

from structured_conversion.errors import ConfigurationError
from structured_conversion.schema.descriptor import (
    FieldSpec,
    FieldType,
    SchemaDescriptor,
    descriptor_from_json_schema,
    descriptor_from_model,
)


class Address(BaseModel):
    city: str
    zip_code: str | None = None


class Person(BaseModel):
    name: str
    age: int
    nickname: str | None = None
    tags: list[str] = Field(default_factory=list)
    status: Literal["active", "inactive"] = "active"
    address: Address


def test_descriptor_from_model_keeps_order_and_requiredness() -> None:
    """Builds fields in declaration order with optional fields not required."""
    descriptor = descriptor_from_model(Person)

    assert descriptor.name == "Person"
    assert [spec.name for spec in descriptor.fields] == [
        "name",
        "age",
        "nickname",
        "tags",
        "status",
        "address",
    ]
    assert [spec.name for spec in descriptor.required_fields()] == ["name", "age", "address"]
    assert descriptor.field("nickname").type == FieldType.STRING
    assert descriptor.field("tags").items == FieldType.STRING
    assert descriptor.field("status").enum == ("active", "inactive")


def test_descriptor_from_model_inlines_nested_objects() -> None:
    """Nested models become object fields with their own field specs."""
    descriptor = descriptor_from_model(Person)

    city = descriptor.resolve("address.city")
    zip_code = descriptor.resolve("address.zip_code")

    assert city is not None and city.required
    assert zip_code is not None and not zip_code.required
    assert descriptor.resolve("address.missing") is None


def test_descriptor_from_model_rejects_non_models() -> None:
    """Raises a configuration error for anything but a pydantic model class."""
    with pytest.raises(ConfigurationError, match="pydantic model"):
        descriptor_from_model(dict)  # type: ignore[arg-type]


def test_empty_descriptor_is_rejected() -> None:
    """A descriptor must declare at least one field."""
    with pytest.raises(ValidationError, match="at least one field"):
        SchemaDescriptor(name="Empty", fields=())


def test_duplicate_field_names_are_rejected() -> None:
    """Field names must be unique within a descriptor."""
    with pytest.raises(ValidationError, match="Duplicate field names"):
        SchemaDescriptor(
            name="Dup",
            fields=(
                FieldSpec(name="a", type=FieldType.STRING),
                FieldSpec(name="a", type=FieldType.INTEGER),
            ),
        )


def test_descriptor_is_immutable(person_descriptor: SchemaDescriptor) -> None:
    """Descriptors cannot be changed after construction."""
    with pytest.raises(ValidationError):
        person_descriptor.name = "Other"  # type: ignore[misc]


def test_descriptor_from_json_schema_requires_properties() -> None:
    """A schema without properties is a setup-time error."""
    with pytest.raises(ConfigurationError, match="no properties"):
        descriptor_from_json_schema({"type": "object", "properties": {}})


def test_descriptor_from_json_schema_rejects_non_object() -> None:
    """Top-level schemas must describe objects."""
    with pytest.raises(ConfigurationError, match="must describe an object"):
        descriptor_from_json_schema({"type": "array", "items": {"type": "string"}})


def test_descriptor_from_json_schema_reads_coercion_extension() -> None:
    """The x-allow-coercion extension opts a field into near-miss coercion."""
    descriptor = descriptor_from_json_schema(
        {
            "title": "Order",
            "type": "object",
            "properties": {
                "quantity": {"type": "integer", "x-allow-coercion": True},
                "note": {"type": ["string", "null"]},
            },
            "required": ["quantity"],
        }
    )

    assert descriptor.name == "Order"
    assert descriptor.field("quantity").allow_coercion
    assert descriptor.field("note").type == FieldType.STRING
    assert not descriptor.field("note").required


def test_to_json_schema_has_stable_shape(person_descriptor: SchemaDescriptor) -> None:
    """Renders title, type, properties and required in a fixed order."""
    schema = person_descriptor.to_json_schema()

    assert list(schema) == ["title", "type", "properties", "required"]
    assert schema["required"] == ["name", "age"]
    assert schema["properties"]["nickname"] == {"type": "string"}


def test_subset_keeps_descriptor_order(person_descriptor: SchemaDescriptor) -> None:
    """Subsets keep only the named fields, in descriptor order."""
    subset = person_descriptor.subset(["nickname", "name"])

    assert subset.name == "Person_subset"
    assert [spec.name for spec in subset.fields] == ["name", "nickname"]


class Memo(BaseModel):
    title: str
    note: str | None


def test_required_nullable_field_is_marked_nullable() -> None:
    """A required ``X | None`` field stays required and accepts null."""
    descriptor = descriptor_from_model(Memo)

    note = descriptor.field("note")
    assert note.required and note.nullable
    assert not descriptor.field("title").nullable
    assert descriptor.to_json_schema()["properties"]["note"]["type"] == ["string", "null"]


def test_non_object_property_is_a_configuration_error() -> None:
    """Malformed property nodes fail at setup time."""
    with pytest.raises(ConfigurationError, match="'age' must be a schema object"):
        descriptor_from_json_schema(
            {"type": "object", "properties": {"age": "int"}, "required": ["age"]}
        )


def test_non_object_schema_is_a_configuration_error() -> None:
    """Schemas and nested property maps must be JSON objects."""
    with pytest.raises(ConfigurationError, match="must be a JSON object"):
        descriptor_from_json_schema(["not", "a", "schema"])  # type: ignore[arg-type]
    with pytest.raises(ConfigurationError, match="must be a schema object"):
        descriptor_from_json_schema(
            {"type": "object", "properties": {"address": {"type": "object", "properties": [1]}}}
        )
