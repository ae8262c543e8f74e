# docschema/type_builder.py
import logging
from typing import Dict, List, Optional, Union

from pydantic import BaseModel

from docschema.analyzer import FieldInfo, JSONStructure, NULL, OBJECT
from docschema.config import TypeSystemConfig, ensure_config
from docschema.naming import TypeNameRegistry
from docschema.nested import FieldPath, NestedTypePlan, derive_nested_types
from docschema.resolution import (
    determine_nullability, is_id_field, primitive_to_scalar, resolve_array_element_type, resolve_type_conflict,
)

logger = logging.getLogger(__name__)


class FieldDefinition(BaseModel):
    name: str
    type: str
    required: bool
    is_array: bool = False
    custom_type_name: Optional[str] = None


class TypeDefinition(BaseModel):
    name: str
    fields: List[FieldDefinition]
    is_nested: bool = False
    parent_type: Optional[str] = None
    depth: int = 0
    parent_frequency: Optional[int] = None

    def field(self, name: str) -> Optional[FieldDefinition]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


class TypeDefinitions(BaseModel):
    root: TypeDefinition
    nested: List[TypeDefinition]

    def all_types(self) -> List[TypeDefinition]:
        return [self.root] + list(self.nested)

    def get(self, name: str) -> Optional[TypeDefinition]:
        for t in self.all_types():
            if t.name == name:
                return t
        return None


def _base_type(info: FieldInfo, path: FieldPath, config: TypeSystemConfig,
               type_names: Dict[FieldPath, str]):
    """Returns (graphql type without '!', custom type name or None)."""
    dotted = ".".join(path)
    non_null = info.non_null_types

    if len(non_null) > 1:
        return resolve_type_conflict(non_null, config, dotted), None

    nested_name = type_names.get(path)
    if info.is_array:
        elements = (info.array_element_types or set()) - {NULL}
        if nested_name and elements == {OBJECT}:
            return f"[{nested_name}]", nested_name
        return f"[{resolve_array_element_type(elements, config, info.array_numeric_samples, dotted)}]", None

    if OBJECT in non_null:
        if nested_name:
            return nested_name, nested_name
        return config.nested_type_fallback, None

    tag = next(iter(non_null)) if non_null else NULL
    return primitive_to_scalar(tag, config, info.numeric_samples), None


def create_field_definition(info: FieldInfo, path: FieldPath, scope_size: int, config: TypeSystemConfig,
                            type_names: Dict[FieldPath, str]) -> FieldDefinition:
    required = determine_nullability(info, scope_size, config) == "required"
    if is_id_field(info.name, config):
        # ID wins over nested, array and conflict resolution
        base, custom = "ID", None
    else:
        base, custom = _base_type(info, path, config, type_names)
    return FieldDefinition(
        name=info.name,
        type=base + "!" if required else base,
        required=required,
        is_array=base.startswith("["),
        custom_type_name=custom,
    )


def _fields_for(fields: Dict[str, FieldInfo], path: FieldPath, scope_size: int, config: TypeSystemConfig,
                type_names: Dict[FieldPath, str]) -> List[FieldDefinition]:
    return [create_field_definition(info, path + (name,), scope_size, config, type_names)
            for name, info in fields.items()]


def build_type_definitions(structure: Union[JSONStructure, Dict[str, FieldInfo]], root_type_name: str,
                           config: Union[TypeSystemConfig, dict, None] = None,
                           document_count: Optional[int] = None) -> TypeDefinitions:
    """
    Turn analyzer output into the root type plus every promoted nested type.
    Nested names are all registered up front; each field then looks its type up by path.
    """
    config = ensure_config(config)
    if isinstance(structure, JSONStructure):
        fields = structure.fields
        if document_count is None:
            document_count = structure.document_count
    else:
        fields = structure
        if document_count is None:
            document_count = max((f.frequency for f in fields.values()), default=0)

    registry = TypeNameRegistry()
    root_name = registry.register(root_type_name)
    plans: List[NestedTypePlan] = derive_nested_types(fields, root_name, config, registry)
    type_names = {plan.path: plan.name for plan in plans}

    nested = [
        TypeDefinition(
            name=plan.name,
            fields=_fields_for(plan.fields, plan.path, plan.parent_frequency, config, type_names),
            is_nested=True,
            parent_type=plan.parent_type,
            depth=plan.depth,
            parent_frequency=plan.parent_frequency,
        )
        for plan in plans
    ]
    root = TypeDefinition(name=root_name, fields=_fields_for(fields, (), document_count, config, type_names))
    logger.debug("built %s with %d field(s) and %d nested type(s)", root_name, len(root.fields), len(nested))
    return TypeDefinitions(root=root, nested=nested)
