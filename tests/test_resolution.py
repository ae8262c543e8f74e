# tests/test_resolution.py
import pytest

from docschema.analyzer import FieldInfo
from docschema.config import TypeSystemConfig
from docschema.errors import ClassifiedError, ErrorKind
from docschema.resolution import (
    determine_nullability, infer_number_type, is_id_field, primitive_to_scalar, resolve_array_element_type,
    resolve_type_conflict,
)

CFG = TypeSystemConfig()


def _field(frequency, *types, nullable=False):
    return FieldInfo(name="f", observed_types=set(types or ("string",)), frequency=frequency, is_nullable=nullable)


def test_required_at_threshold_optional_below():
    assert determine_nullability(_field(95), 100, CFG) == "required"
    assert determine_nullability(_field(94), 100, CFG) == "optional"
    assert determine_nullability(_field(100), 100, CFG) == "required"


def test_null_or_marked_nullable_is_optional():
    assert determine_nullability(_field(100, "string", "null"), 100, CFG) == "optional"
    assert determine_nullability(_field(100, nullable=True), 100, CFG) == "optional"


def test_empty_scope_is_optional():
    assert determine_nullability(_field(0), 0, CFG) == "optional"


def test_custom_threshold():
    lenient = TypeSystemConfig(required_threshold=0.5)
    assert determine_nullability(_field(50), 100, lenient) == "required"


@pytest.mark.parametrize("values, expected", [
    ([1, 2, 3], "Int"),
    ([1.0, 2.0], "Int"),
    ([1, 2.5], "Float"),
    ([], "Float"),
    ([2 ** 31], "Float"),
    ([-(2 ** 31), 2 ** 31 - 1], "Int"),
    ([float("inf")], "Float"),
])
def test_strict_number_inference(values, expected):
    assert infer_number_type(values, CFG) == expected


def test_float_mode_always_float():
    assert infer_number_type([1, 2, 3], TypeSystemConfig(number_inference="float")) == "Float"


@pytest.mark.parametrize("name", ["id", "ID", "_id", "pk", "Key", "uuid", "GUID"])
def test_id_names(name):
    assert is_id_field(name, CFG)


@pytest.mark.parametrize("name", ["userId", "identifier", "product_id", "paid", "keys", "idx"])
def test_id_lookalikes_are_not_ids(name):
    assert not is_id_field(name, CFG)


def test_custom_id_patterns():
    config = TypeSystemConfig(id_patterns=[r".*_id", "sku"])
    assert is_id_field("product_id", config)
    assert is_id_field("SKU", config)
    assert not is_id_field("id", config)


def test_conflict_widens_to_string():
    assert resolve_type_conflict({"number", "string"}, CFG) == "String"
    assert resolve_type_conflict({"number", "boolean", "null"}, TypeSystemConfig(conflict_resolution="union")) == "String"


def test_conflict_error_strategy_raises():
    strict = TypeSystemConfig(conflict_resolution="error")
    with pytest.raises(ClassifiedError) as info:
        resolve_type_conflict({"string", "number", "null"}, strict, "age")
    assert info.value.kind is ErrorKind.TYPE_CONFLICT
    assert "number" in info.value.message and "string" in info.value.message
    assert "null" not in info.value.message


def test_single_type_after_stripping_null():
    assert resolve_type_conflict({"number", "null"}, CFG) == "Float"
    assert resolve_type_conflict({"number", "null"}, CFG, numeric_samples=[1, 2]) == "Int"
    assert resolve_type_conflict({"boolean"}, CFG) == "Boolean"
    assert resolve_type_conflict({"null"}, CFG) == "String"
    assert resolve_type_conflict(set(), CFG) == "String"


def test_object_falls_back_to_configured_scalar():
    assert primitive_to_scalar("object", CFG) == "JSON"
    assert primitive_to_scalar("object", TypeSystemConfig(nested_type_fallback="String")) == "String"
    assert primitive_to_scalar("array", CFG) == "String"


def test_array_element_types():
    assert resolve_array_element_type(set()) == "String"
    assert resolve_array_element_type(None) == "String"
    assert resolve_array_element_type({"number"}, CFG, [1, 2]) == "Int"
    assert resolve_array_element_type({"number", "string"}, CFG) == "String"
    assert resolve_array_element_type({"string", "null"}, CFG) == "String"
