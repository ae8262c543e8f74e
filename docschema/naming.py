# docschema/naming.py
import re
from typing import Callable, Dict, Optional, Protocol

from docschema.errors import configuration_error

VOWELS = set("aeiouAEIOU")
# plural-looking endings that are not plurals
NON_PLURAL_SUFFIXES = ("ss", "ess", "ness", "ress", "ous", "us", "is")


class NamingStrategy(Protocol):
    def __call__(self, parent_type: str, field_name: str, depth: int, is_array: bool = False) -> str:
        ...


def capitalize(word: str) -> str:
    return word[:1].upper() + word[1:]


def singularize(word: str) -> str:
    if len(word) <= 2 or not word.endswith("s"):
        return word
    if word.lower().endswith(NON_PLURAL_SUFFIXES):
        return word
    return word[:-1]


def abbreviate(word: str) -> str:
    """First letter plus following consonants, at most 4 characters."""
    if len(word) <= 4:
        return word
    consonants = "".join(c for c in word[1:] if c not in VOWELS)
    if not consonants:
        return word[:4]
    return word[0] + consonants[:3]


def initials(type_name: str) -> str:
    segments = re.findall(r"[A-Z][a-z0-9]*", type_name) or [type_name]
    return "".join(s[0] for s in segments if s)


class HierarchicalNaming:
    """Parent type name followed by the capitalized field name: User + address -> UserAddress."""

    def __call__(self, parent_type, field_name, depth, is_array=False):
        return parent_type + capitalize(field_name)


class FlatNaming:
    def __call__(self, parent_type, field_name, depth, is_array=False):
        if is_array and depth > 2:
            return initials(parent_type) + capitalize(field_name)
        return capitalize(field_name)


class ShortNaming:
    def __call__(self, parent_type, field_name, depth, is_array=False):
        if depth > 3:
            return abbreviate(parent_type) + abbreviate(capitalize(field_name))
        if depth > 1:
            return initials(parent_type) + capitalize(field_name)
        return parent_type + capitalize(field_name)


class TemplateNaming:
    """Wraps a user function (parent_type, field_name, depth) -> name; its result is used as-is."""

    def __init__(self, template: Callable[[str, str, int], str]):
        self.template = template

    def __call__(self, parent_type, field_name, depth, is_array=False):
        return self.template(parent_type, field_name, depth)


BUILTIN_STRATEGIES = {
    "hierarchical": HierarchicalNaming,
    "flat": FlatNaming,
    "short": ShortNaming,
}


def strategy_for(name: str, template: Optional[Callable[[str, str, int], str]] = None) -> NamingStrategy:
    if template is not None:
        return TemplateNaming(template)
    if name not in BUILTIN_STRATEGIES:
        raise configuration_error(f"Unknown naming strategy: {name}", "naming",
                                  valid_strategies=sorted(BUILTIN_STRATEGIES))
    return BUILTIN_STRATEGIES[name]()


def generate_type_name(strategy: NamingStrategy, parent_type: str, field_name: str, depth: int,
                       is_array: bool = False) -> str:
    if isinstance(strategy, TemplateNaming):
        return strategy(parent_type, field_name, depth, is_array)
    base = singularize(field_name) if is_array else field_name
    return strategy(parent_type, base, depth, is_array)


class TypeNameRegistry:
    """
    Hands out unique type names for a single inference run.
    The first request for a name gets it unchanged; later requests get name_2, name_3, ...
    """

    def __init__(self):
        self._counts: Dict[str, int] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._counts

    def register(self, name: str) -> str:
        if name not in self._counts:
            self._counts[name] = 1
            return name
        n = self._counts[name]
        while True:
            n += 1
            candidate = f"{name}_{n}"
            if candidate not in self._counts:
                break
        self._counts[name] = n
        self._counts[candidate] = 1
        return candidate
