# tests/test_analyzer.py
import pytest

from docschema.analyzer import analyze_documents, detect_type
from docschema.errors import ClassifiedError, ErrorKind


@pytest.mark.parametrize("value, tag", [
    (None, "null"),
    (True, "boolean"),
    (0, "number"),
    (2.5, "number"),
    ("x", "string"),
    ({}, "object"),
    ([], "array"),
    ((1, 2), "array"),
    (object(), "string"),
])
def test_detect_type(value, tag):
    assert detect_type(value) == tag


def test_counts_frequency_and_types():
    s = analyze_documents([{"a": 1, "b": "x"}, {"a": 2.5}, {"a": None, "c": True}])
    assert s.document_count == 3
    assert s.field_count == 3
    assert list(s.fields) == ["a", "b", "c"]
    a = s.fields["a"]
    assert a.frequency == 3
    assert a.observed_types == {"number", "null"}
    assert a.numeric_samples == [1, 2.5]
    assert s.conflicts == []


def test_numeric_samples_skip_bool_and_nan():
    s = analyze_documents([{"v": True}, {"v": float("nan")}, {"v": 3}])
    assert s.fields["v"].numeric_samples == [3]


def test_nested_objects_are_recursed():
    s = analyze_documents([{"address": {"city": "X", "geo": {"lat": 1.5}}}, {"address": {"city": "Y"}}])
    address = s.fields["address"]
    assert address.observed_types == {"object"}
    assert address.nested_fields["city"].frequency == 2
    assert address.nested_fields["geo"].nested_fields["lat"].numeric_samples == [1.5]


def test_array_elements_merge_into_one_nested_map():
    s = analyze_documents([
        {"items": [{"sku": "a", "qty": 1}, {"sku": "b"}]},
        {"items": [{"sku": "c", "qty": 2}, 7, None]},
    ])
    items = s.fields["items"]
    assert items.is_array
    assert items.frequency == 2
    assert items.array_element_types == {"object", "number", "null"}
    assert items.polymorphic_object_count == 3
    assert items.array_numeric_samples == [7]
    assert items.nested_fields["sku"].frequency == 3
    assert items.nested_fields["qty"].frequency == 2
    assert not items.nested_fields["sku"].is_nullable
    assert items.nested_fields["qty"].is_nullable


def test_empty_arrays_still_mark_array():
    s = analyze_documents([{"tags": []}])
    assert s.fields["tags"].is_array
    assert s.fields["tags"].array_element_types == set()


def test_self_reference_does_not_recurse_forever():
    doc = {"name": "root"}
    doc["self"] = doc
    loop = []
    loop.append(loop)
    s = analyze_documents([doc, {"loop": loop}])
    assert s.fields["self"].observed_types == {"object"}
    assert s.fields["self"].nested_fields == {}
    assert s.fields["loop"].array_element_types == {"array"}


def test_shared_subtree_is_counted_each_time():
    shared = {"x": 1}
    s = analyze_documents([{"a": shared, "b": shared}])
    assert s.fields["a"].nested_fields["x"].frequency == 1
    assert s.fields["b"].nested_fields["x"].frequency == 1


def test_conflicts_ignore_null_and_include_nested_paths():
    s = analyze_documents([
        {"age": 1, "score": 1, "address": {"zip": 12345}},
        {"age": "old", "score": None, "address": {"zip": "12345"}},
    ])
    assert s.conflicts == ["age", "address.zip"]


def test_non_object_documents_are_skipped():
    s = analyze_documents([{"a": 1}, "junk", {"a": 2}])
    assert s.document_count == 2
    assert s.fields["a"].frequency == 2


def test_empty_input_is_a_configuration_error():
    with pytest.raises(ClassifiedError) as info:
        analyze_documents([])
    assert info.value.kind is ErrorKind.CONFIGURATION
    assert info.value.context.component == "analyzer"
