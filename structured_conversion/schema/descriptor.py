"""Language-neutral descriptors of the value a model is asked to produce."""

import logging
from enum import StrEnum
from typing import Any, Iterable, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from structured_conversion.core import inline_json_schema, split_path
from structured_conversion.errors import ConfigurationError

logger = logging.getLogger(__name__)


class FieldType(StrEnum):
    """JSON types a field may take."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class FieldSpec(BaseModel):
    """Description of a single field of the target value."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    type: FieldType
    required: bool = True
    nullable: bool = Field(False, description="Accept null even when required.")
    description: str = ""
    items: FieldType | None = Field(None, description="Element type for arrays.")
    enum: tuple[Any, ...] | None = Field(None, description="Allowed literal values.")
    allow_coercion: bool = Field(
        False, description="Accept numeric/boolean strings for this field."
    )
    fields: tuple["FieldSpec", ...] = Field(
        default_factory=tuple, description="Nested fields for objects."
    )

    @model_validator(mode="after")
    def validate_shape(self) -> Self:
        """Validate that nested fields and element types match the field type."""
        if self.items is not None and self.type != FieldType.ARRAY:
            raise ValueError(f"Field '{self.name}': items is only valid for arrays")
        if self.fields and self.type != FieldType.OBJECT:
            raise ValueError(f"Field '{self.name}': fields is only valid for objects")
        _ensure_unique_names(self.fields, owner=self.name)
        return self

    def to_json_schema(self) -> dict[str, Any]:
        """Render this field as a JSON Schema property."""
        schema: dict[str, Any] = {
            "type": [self.type.value, "null"] if self.nullable else self.type.value
        }
        if self.description:
            schema["description"] = self.description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.items is not None:
            schema["items"] = {"type": self.items.value}
        if self.fields:
            schema["properties"] = {f.name: f.to_json_schema() for f in self.fields}
            schema["required"] = [f.name for f in self.fields if f.required]
        return schema


class SchemaDescriptor(BaseModel):
    """
    Immutable, ordered description of the expected structured value.

    Built once at startup and shared read-only between concurrent requests.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    description: str = ""
    fields: tuple[FieldSpec, ...]

    @model_validator(mode="after")
    def validate_fields(self) -> Self:
        """Validate that the descriptor has at least one uniquely named field."""
        if not self.fields:
            raise ValueError(f"Schema '{self.name}' must declare at least one field")
        _ensure_unique_names(self.fields, owner=self.name)
        return self

    def field(self, name: str) -> FieldSpec | None:
        """Return the top-level field with the given name."""
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def resolve(self, path: str) -> FieldSpec | None:
        """
        Resolve a dotted path (``address.city``, ``tags[0]``) to its field spec.

        Args:
            path (str): Field path as reported in validation issues.

        Returns:
            FieldSpec | None: The innermost matching spec, or None.
        """
        specs: Iterable[FieldSpec] = self.fields
        found: FieldSpec | None = None
        for segment in split_path(path):
            found = next((spec for spec in specs if spec.name == segment), None)
            if found is None:
                return None
            specs = found.fields
        return found

    def required_fields(self) -> list[FieldSpec]:
        return [spec for spec in self.fields if spec.required]

    def optional_fields(self) -> list[FieldSpec]:
        return [spec for spec in self.fields if not spec.required]

    def subset(self, names: Iterable[str]) -> "SchemaDescriptor":
        """
        Build a descriptor restricted to the named top-level fields.

        Args:
            names (Iterable[str]): Field names to keep; order follows this descriptor.

        Returns:
            SchemaDescriptor: Narrowed descriptor named ``<name>_subset``.
        """
        wanted = set(names)
        kept = tuple(spec for spec in self.fields if spec.name in wanted)
        return SchemaDescriptor(
            name=f"{self.name}_subset",
            description=self.description,
            fields=kept,
        )

    def to_json_schema(self) -> dict[str, Any]:
        """Render the descriptor as a JSON Schema object with a stable key order."""
        schema: dict[str, Any] = {"title": self.name}
        if self.description:
            schema["description"] = self.description
        schema["type"] = "object"
        schema["properties"] = {
            spec.name: spec.to_json_schema() for spec in self.fields
        }
        schema["required"] = [spec.name for spec in self.fields if spec.required]
        return schema


def _ensure_unique_names(fields: Iterable[FieldSpec], owner: str) -> None:
    names = [spec.name for spec in fields]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate field names in '{owner}': {duplicates}")


def _ensure_properties(properties: Any, owner: str) -> None:
    if not isinstance(properties, dict):
        raise ConfigurationError(
            f"Properties of '{owner}' must be a schema object, got {type(properties).__name__}"
        )


_ENUM_TYPES: dict[type, FieldType] = {
    bool: FieldType.BOOLEAN,
    int: FieldType.INTEGER,
    float: FieldType.NUMBER,
    str: FieldType.STRING,
}


def _collapse_property(prop: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """
    Reduce anyOf/allOf/type-list constructs to a single property.

    Returns:
        tuple[dict[str, Any], bool]: The collapsed property and whether null was allowed.
    """
    nullable = False
    for combinator in ("anyOf", "oneOf"):
        options = prop.get(combinator)
        if options:
            if not all(isinstance(opt, dict) for opt in options):
                raise ConfigurationError(f"Unsupported union in schema property: {options}")
            non_null = [opt for opt in options if opt.get("type") != "null"]
            nullable = len(non_null) != len(options)
            if len(non_null) != 1:
                raise ConfigurationError(
                    f"Unsupported union in schema property: {options}"
                )
            merged = {k: v for k, v in prop.items() if k != combinator}
            collapsed, inner_nullable = _collapse_property({**non_null[0], **merged})
            return collapsed, nullable or inner_nullable

    all_of = prop.get("allOf")
    if all_of and len(all_of) == 1 and isinstance(all_of[0], dict):
        merged = {k: v for k, v in prop.items() if k != "allOf"}
        return _collapse_property({**all_of[0], **merged})

    declared = prop.get("type")
    if isinstance(declared, list):
        non_null_types = [t for t in declared if t != "null"]
        nullable = len(non_null_types) != len(declared)
        if len(non_null_types) != 1:
            raise ConfigurationError(f"Unsupported type list: {declared}")
        prop = {**prop, "type": non_null_types[0]}
    return prop, nullable


def _resolve_type(prop: dict[str, Any]) -> FieldType:
    declared = prop.get("type")
    if declared is None and prop.get("enum"):
        kinds = {_ENUM_TYPES.get(type(value)) for value in prop["enum"]}
        if len(kinds) == 1 and None not in kinds:
            return kinds.pop()
    if declared is None and "properties" in prop:
        return FieldType.OBJECT
    try:
        return FieldType(declared)
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported or missing field type: {declared!r}") from exc


def _field_from_property(name: str, prop: dict[str, Any], required: bool) -> FieldSpec:
    if not isinstance(prop, dict):
        raise ConfigurationError(
            f"Property '{name}' must be a schema object, got {type(prop).__name__}"
        )
    prop, nullable = _collapse_property(prop)
    field_type = _resolve_type(prop)

    items = None
    if field_type == FieldType.ARRAY and isinstance(prop.get("items"), dict):
        item_prop, _ = _collapse_property(prop["items"])
        items = _resolve_type(item_prop)

    nested: tuple[FieldSpec, ...] = ()
    if field_type == FieldType.OBJECT and prop.get("properties"):
        _ensure_properties(prop["properties"], owner=name)
        nested_required = set(prop.get("required", []))
        nested = tuple(
            _field_from_property(key, value, key in nested_required)
            for key, value in prop["properties"].items()
        )

    enum = prop.get("enum")
    return FieldSpec(
        name=name,
        type=field_type,
        required=required,
        nullable=nullable,
        description=prop.get("description", ""),
        items=items,
        enum=tuple(enum) if enum is not None else None,
        allow_coercion=bool(prop.get("x-allow-coercion", False)),
        fields=nested,
    )


def descriptor_from_json_schema(
    schema: dict[str, Any], name: str | None = None
) -> SchemaDescriptor:
    """
    Build a descriptor from a JSON Schema object definition.

    Args:
        schema (dict[str, Any]): JSON Schema with ``properties`` and ``required``.
        name (str | None): Descriptor name; defaults to the schema title.

    Returns:
        SchemaDescriptor: Immutable descriptor.

    Raises:
        ConfigurationError: If the schema is empty or uses unsupported constructs.
    """
    if not isinstance(schema, dict):
        raise ConfigurationError(f"Schema must be a JSON object, got {type(schema).__name__}")
    if schema.get("type", "object") != "object":
        raise ConfigurationError(
            f"Top-level schema must describe an object, got {schema.get('type')!r}"
        )
    properties = schema.get("properties") or {}
    if not properties:
        raise ConfigurationError("Schema declares no properties")
    _ensure_properties(properties, owner=schema.get("title") or "Output")

    required = set(schema.get("required", []))
    try:
        fields = tuple(
            _field_from_property(key, prop, key in required)
            for key, prop in properties.items()
        )
        descriptor = SchemaDescriptor(
            name=name or schema.get("title") or "Output",
            description=schema.get("description", ""),
            fields=fields,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid schema definition: {exc}") from exc

    logger.debug(
        "Built descriptor %s with %d fields", descriptor.name, len(descriptor.fields)
    )
    return descriptor


def descriptor_from_model(model: type[BaseModel]) -> SchemaDescriptor:
    """
    Build a descriptor from a pydantic model class.

    Optional fields (``X | None``) become non-required fields of type X.

    Args:
        model (type[BaseModel]): Model whose JSON schema describes the value.

    Returns:
        SchemaDescriptor: Immutable descriptor named after the model.

    Raises:
        ConfigurationError: If model is not a pydantic model or declares no fields.
    """
    if not (isinstance(model, type) and issubclass(model, BaseModel)):
        raise ConfigurationError(f"Expected a pydantic model class, got {model!r}")
    return descriptor_from_json_schema(inline_json_schema(model), name=model.__name__)
