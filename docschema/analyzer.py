# docschema/analyzer.py
import math, logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from docschema.errors import configuration_error

logger = logging.getLogger(__name__)

COMPONENT = "analyzer"

STRING, NUMBER, BOOLEAN, NULL, OBJECT, ARRAY = "string", "number", "boolean", "null", "object", "array"


@dataclass
class FieldInfo:
    name: str
    observed_types: Set[str] = field(default_factory=set)
    frequency: int = 0
    is_array: bool = False
    array_element_types: Optional[Set[str]] = None
    nested_fields: Optional[Dict[str, "FieldInfo"]] = None
    numeric_samples: List[float] = field(default_factory=list)
    array_numeric_samples: List[float] = field(default_factory=list)
    is_nullable: bool = False
    polymorphic_object_count: int = 0
    array_derived: bool = False

    @property
    def non_null_types(self) -> Set[str]:
        return self.observed_types - {NULL}

    @property
    def has_nested(self) -> bool:
        return bool(self.nested_fields)

    @property
    def scope_size(self) -> int:
        """Occurrences a nested sub-field is counted against."""
        if self.array_derived:
            return max(self.frequency, self.polymorphic_object_count)
        return self.frequency


@dataclass
class JSONStructure:
    fields: Dict[str, FieldInfo]
    field_count: int
    conflicts: List[str]
    document_count: int


def detect_type(value: Any) -> str:
    if value is None:
        return NULL
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        return NUMBER
    if isinstance(value, str):
        return STRING
    if isinstance(value, Mapping):
        return OBJECT
    if isinstance(value, (list, tuple)):
        return ARRAY
    return STRING


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not (isinstance(value, float) and math.isnan(value))


class _Walker:
    """Accumulates FieldInfo for one analysis run; `path` holds ids of the containers being walked."""

    def __init__(self):
        self.path: Set[int] = set()

    def walk(self, obj: Mapping[str, Any], fields: Dict[str, FieldInfo]):
        if id(obj) in self.path:
            return
        self.path.add(id(obj))
        try:
            for key, value in obj.items():
                self.record(fields, str(key), value)
        finally:
            self.path.discard(id(obj))

    def record(self, fields: Dict[str, FieldInfo], key: str, value: Any):
        info = fields.get(key)
        if info is None:
            info = fields[key] = FieldInfo(name=key)
        tag = detect_type(value)
        info.observed_types.add(tag)
        info.frequency += 1
        if _is_number(value):
            info.numeric_samples.append(value)

        if tag == ARRAY:
            info.is_array = True
            if info.array_element_types is None:
                info.array_element_types = set()
            if id(value) in self.path:
                return
            self.path.add(id(value))
            try:
                self._record_elements(info, value)
            finally:
                self.path.discard(id(value))
        elif tag == OBJECT:
            if info.nested_fields is None:
                info.nested_fields = {}
            self.walk(value, info.nested_fields)

    def _record_elements(self, info: FieldInfo, values: Sequence[Any]):
        for elem in values:
            elem_tag = detect_type(elem)
            info.array_element_types.add(elem_tag)
            if _is_number(elem):
                info.array_numeric_samples.append(elem)
            if elem_tag == OBJECT:
                info.polymorphic_object_count += 1
                info.array_derived = True
                if info.nested_fields is None:
                    info.nested_fields = {}
                self.walk(elem, info.nested_fields)


def mark_array_nullability(fields: Dict[str, FieldInfo]):
    """Sub-fields that are missing from some array elements cannot be required."""
    for info in fields.values():
        if not info.nested_fields:
            continue
        if info.array_derived:
            scope = info.scope_size
            for sub in info.nested_fields.values():
                if sub.frequency < scope:
                    sub.is_nullable = True
        mark_array_nullability(info.nested_fields)


def find_conflicts(fields: Dict[str, FieldInfo], prefix: str = "") -> List[str]:
    conflicts = []
    for name, info in fields.items():
        path = prefix + name
        if len(info.non_null_types) > 1:
            conflicts.append(path)
        if info.nested_fields:
            conflicts.extend(find_conflicts(info.nested_fields, path + "."))
    return conflicts


def analyze_documents(documents: Sequence[Mapping[str, Any]]) -> JSONStructure:
    """
    Walk every document once and collect per-field statistics.
    Field order follows first observation, so output is stable for a given sample.
    """
    if not documents:
        raise configuration_error("Cannot analyze an empty document set", COMPONENT)

    fields: Dict[str, FieldInfo] = {}
    walker = _Walker()
    analyzed = 0
    for doc in documents:
        if not isinstance(doc, Mapping):
            logger.warning("skipping non-object document of type %s", type(doc).__name__)
            continue
        walker.walk(doc, fields)
        analyzed += 1

    mark_array_nullability(fields)
    conflicts = find_conflicts(fields)
    if conflicts:
        logger.debug("type conflicts in %d field(s): %s", len(conflicts), ", ".join(conflicts))
    return JSONStructure(fields=fields, field_count=len(fields), conflicts=conflicts, document_count=analyzed)
