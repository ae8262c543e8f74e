# docschema/nested.py
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from docschema.analyzer import FieldInfo, NULL, OBJECT
from docschema.config import StabilityThresholds, TypeSystemConfig
from docschema.naming import NamingStrategy, TypeNameRegistry, generate_type_name
from docschema.resolution import is_id_field

logger = logging.getLogger(__name__)

FieldPath = Tuple[str, ...]


@dataclass
class NestedTypePlan:
    name: str
    fields: Dict[str, FieldInfo]
    parent_type: str
    depth: int
    parent_frequency: int
    path: FieldPath
    is_array: bool = False


def is_nested_object_stable(nested_fields: Optional[Dict[str, FieldInfo]], containing_frequency: int, depth: int,
                            thresholds: Optional[StabilityThresholds] = None) -> bool:
    """
    Whether a nested object looks like a real structure rather than a sparse bag of keys.
    `depth` is the depth the promoted type would have (direct children of the root are depth 1).
    """
    if not nested_fields or containing_frequency <= 0:
        return False
    thresholds = thresholds or StabilityThresholds()

    frequencies = [f.frequency for f in nested_fields.values()]
    floor = containing_frequency * thresholds.field_stability_threshold
    sparse = sum(1 for freq in frequencies if freq < floor)
    if sparse / len(frequencies) > thresholds.polymorphic_threshold(depth):
        return False

    if depth >= thresholds.dominant_field_min_depth:
        if max(frequencies) < containing_frequency * thresholds.dominant_field_min_ratio:
            return False
    return True


def _is_object_array(info: FieldInfo) -> bool:
    elements = (info.array_element_types or set()) - {NULL}
    return bool(info.is_array and info.nested_fields and elements == {OBJECT})


def derive_nested_types(fields: Dict[str, FieldInfo], parent_type_name: str, config: TypeSystemConfig,
                        registry: TypeNameRegistry, depth: int = 0, path: FieldPath = (),
                        strategy: Optional[NamingStrategy] = None) -> List[NestedTypePlan]:
    """
    Promote stable nested objects and object arrays into named types.
    Names are registered before recursing, so a parent keeps the base name on a collision.
    The result is post-order: deeper types come before the type that contains them.
    """
    if depth >= config.max_nesting_depth:
        return []
    strategy = strategy or config.naming_strategy()
    plans: List[NestedTypePlan] = []

    for name, info in fields.items():
        # conflicted fields resolve to a scalar
        if not info.nested_fields or is_id_field(name, config) or len(info.non_null_types) > 1:
            continue
        child_depth = depth + 1

        if _is_object_array(info):
            is_array = True
            scope = info.scope_size
        elif OBJECT in info.observed_types and not info.is_array:
            is_array = False
            scope = info.frequency
            if not is_nested_object_stable(info.nested_fields, scope, child_depth, config.stability):
                logger.debug("not promoting unstable nested object %s", ".".join(path + (name,)))
                continue
        else:
            continue

        type_name = registry.register(generate_type_name(strategy, parent_type_name, name, child_depth, is_array))
        child_path = path + (name,)
        plans.extend(derive_nested_types(info.nested_fields, type_name, config, registry,
                                         child_depth, child_path, strategy))
        plans.append(NestedTypePlan(name=type_name, fields=info.nested_fields, parent_type=parent_type_name,
                                    depth=child_depth, parent_frequency=scope, path=child_path,
                                    is_array=is_array))
    return plans
