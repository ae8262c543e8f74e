# docschema/resolution.py
import math
from typing import Iterable, Literal, Optional, Sequence

from docschema.analyzer import FieldInfo, NUMBER, BOOLEAN, NULL, OBJECT
from docschema.config import TypeSystemConfig
from docschema.errors import type_conflict_error

# GraphQL Int is a signed 32-bit integer
INT_MIN, INT_MAX = -(2 ** 31), 2 ** 31 - 1

Nullability = Literal["required", "optional"]


def determine_nullability(field: FieldInfo, scope_size: int, config: TypeSystemConfig) -> Nullability:
    if field.is_nullable or NULL in field.observed_types:
        return "optional"
    if scope_size <= 0:
        return "optional"
    if field.frequency / scope_size >= config.required_threshold:
        return "required"
    return "optional"


def _is_integral(value) -> bool:
    if isinstance(value, int):
        return INT_MIN <= value <= INT_MAX
    if not math.isfinite(value) or not float(value).is_integer():
        return False
    return INT_MIN <= value <= INT_MAX


def infer_number_type(values: Sequence[float], config: TypeSystemConfig) -> str:
    """Int only in strict mode, and only when every sample is a whole number in Int range."""
    if config.number_inference == "float" or not values:
        return "Float"
    return "Int" if all(_is_integral(v) for v in values) else "Float"


def is_id_field(name: str, config: TypeSystemConfig) -> bool:
    return any(p.fullmatch(name) for p in config.id_patterns)


def primitive_to_scalar(tag: str, config: TypeSystemConfig, numeric_samples: Optional[Sequence[float]] = None) -> str:
    if tag == NUMBER:
        return infer_number_type(numeric_samples or [], config)
    if tag == BOOLEAN:
        return "Boolean"
    if tag == OBJECT:
        return config.nested_type_fallback
    # string, null, array and anything unknown
    return "String"


def resolve_type_conflict(types: Iterable[str], config: TypeSystemConfig, field_name: Optional[str] = None,
                          numeric_samples: Optional[Sequence[float]] = None) -> str:
    """
    Collapse a set of observed primitive tags to one scalar.
    Under the 'error' strategy a real conflict raises; 'widen' and 'union' fall back to String.
    """
    remaining = set(types) - {NULL}
    if not remaining:
        return "String"
    if len(remaining) == 1:
        return primitive_to_scalar(next(iter(remaining)), config, numeric_samples)
    if config.conflict_resolution == "error":
        raise type_conflict_error(remaining, field_name)
    return "String"


def resolve_array_element_type(element_types: Optional[Iterable[str]], config: Optional[TypeSystemConfig] = None,
                               numeric_samples: Optional[Sequence[float]] = None,
                               field_name: Optional[str] = None) -> str:
    config = config or TypeSystemConfig()
    return resolve_type_conflict(element_types or (), config, field_name, numeric_samples)
