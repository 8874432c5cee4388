"""Tests for core JSON extraction and path helpers."""

import importlib
import pkgutil

from pydantic import BaseModel

from structured_conversion.core import (
    extract_json_payload,
    get_path,
    has_path,
    inline_json_schema,
    set_path,
    split_path,
)


class Address(BaseModel):
    city: str


class Customer(BaseModel):
    name: str
    address: Address


def test_extract_json_payload_prefers_fenced_block_with_prose() -> None:
    """Extracts JSON from a fenced block even with leading prose."""
    raw = 'Summary first.\n```json\n{"a": 1}\n```\nMore text.'
    assert extract_json_payload(raw) == '{"a": 1}'


def test_extract_json_payload_returns_raw_when_no_fence() -> None:
    """Returns the raw text when no fenced block exists."""
    raw = '{"ok": true}'
    assert extract_json_payload(raw) == raw


def test_extract_json_payload_empty_string() -> None:
    """Returns empty string when input is empty."""
    assert extract_json_payload("") == ""


def test_inline_json_schema_resolves_refs() -> None:
    """Inlines nested model definitions in place of $ref."""
    schema = inline_json_schema(Customer)

    assert "$defs" not in schema
    assert schema["properties"]["address"]["properties"]["city"]["type"] == "string"


def test_split_path_drops_array_indices() -> None:
    """Splits dotted paths and ignores element indices."""
    assert split_path("address.lines[1]") == ["address", "lines"]
    assert split_path("name") == ["name"]


def test_get_and_has_path_walk_nested_objects() -> None:
    """Looks up nested values and reports missing segments."""
    value = {"address": {"city": "Oslo"}}

    assert get_path(value, "address.city") == "Oslo"
    assert get_path(value, "address.zip", default="-") == "-"
    assert has_path(value, "address.city")
    assert not has_path(value, "phone")


def test_set_path_creates_intermediate_objects() -> None:
    """Creates missing parent objects when setting a nested path."""
    value: dict = {}
    set_path(value, "address.city", "Oslo")

    assert value == {"address": {"city": "Oslo"}}


def test_every_module_has_a_docstring() -> None:
    """Each module in the package documents its purpose."""
    package = importlib.import_module("structured_conversion")
    missing = [
        info.name
        for info in pkgutil.walk_packages(package.__path__, prefix="structured_conversion.")
        if not importlib.import_module(info.name).__doc__
    ]

    assert missing == []
