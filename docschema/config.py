# docschema/config.py
import os, re, json, hashlib
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from docschema.errors import configuration_error

COMPONENT = "config"

# --- TUNABLES ---------------------------------------------------------------
@dataclass(frozen=True)
class StabilityThresholds:
    # sub-field counts as sparse below this fraction of the containing occurrences
    field_stability_threshold: float = 0.5
    # allowed sparse sub-field ratio at shallow depth (1.0 = never reject)
    shallow_polymorphic_threshold: float = 1.0
    # allowed sparse sub-field ratio once deeper than shallow_depth_limit
    deep_polymorphic_threshold: float = 0.3
    shallow_depth_limit: int = 1
    # most frequent sub-field must reach this fraction of containing occurrences
    dominant_field_min_ratio: float = 0.4
    dominant_field_min_depth: int = 2

    def polymorphic_threshold(self, depth: int) -> float:
        if depth <= self.shallow_depth_limit:
            return self.shallow_polymorphic_threshold
        return self.deep_polymorphic_threshold

DEFAULT_ID_PATTERNS = ["id", "_id", "pk", "key", "uuid", "guid"]
# ----------------------------------------------------------------------------

ConflictStrategy = Literal["widen", "union", "error"]
NamingStrategyName = Literal["hierarchical", "flat", "short", "custom"]
TypeNameTemplate = Callable[[str, str, int], str]

# camelCase keys accepted by the loaders
_ALIASES = {
    "sampleSize": "sample_size",
    "requiredThreshold": "required_threshold",
    "conflictResolution": "conflict_resolution",
    "idPatterns": "id_patterns",
    "maxNestingDepth": "max_nesting_depth",
    "nestedTypeFallback": "nested_type_fallback",
    "numberInference": "number_inference",
    "nestedNamingStrategy": "nested_naming_strategy",
    "typeNameTemplate": "type_name_template",
    "baseDelayMs": "base_delay_ms",
    "maxDelayMs": "max_delay_ms",
    "jitterFactor": "jitter_factor",
    "maxRetries": "max_retries",
    "maxRetryRUBudget": "max_retry_ru_budget",
    "respectRetryAfter": "respect_retry_after",
    "shouldRetry": "should_retry",
    "onRetry": "on_retry",
}


class TypeSystemConfig(BaseModel):
    """Options for one inference run. Immutable; build a new one to change anything."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    sample_size: int = Field(500, gt=0)
    required_threshold: float = Field(0.95, ge=0.0, le=1.0)
    conflict_resolution: ConflictStrategy = "widen"
    id_patterns: List[Union[str, re.Pattern]] = Field(default_factory=lambda: list(DEFAULT_ID_PATTERNS),
                                                     validate_default=True)
    max_nesting_depth: int = Field(10, ge=0)
    nested_type_fallback: Literal["JSON", "String"] = "JSON"
    number_inference: Literal["strict", "float"] = "strict"
    nested_naming_strategy: NamingStrategyName = "hierarchical"
    type_name_template: Optional[TypeNameTemplate] = None
    stability: StabilityThresholds = Field(default_factory=StabilityThresholds)

    @field_validator("id_patterns")
    @classmethod
    def _compile_patterns(cls, patterns):
        compiled = []
        for p in patterns:
            source = p.pattern if isinstance(p, re.Pattern) else p
            try:
                compiled.append(re.compile(source, re.IGNORECASE))
            except re.error as e:
                raise ValueError(f"invalid id pattern {source!r}: {e}")
        return compiled

    @model_validator(mode="after")
    def _check_naming(self):
        if self.nested_naming_strategy == "custom" and self.type_name_template is None:
            raise ValueError("nested_naming_strategy 'custom' requires type_name_template")
        return self

    def naming_strategy(self):
        from docschema.naming import strategy_for
        return strategy_for(self.nested_naming_strategy, self.type_name_template)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_size": self.sample_size,
            "required_threshold": self.required_threshold,
            "conflict_resolution": self.conflict_resolution,
            "id_patterns": [p.pattern for p in self.id_patterns],
            "max_nesting_depth": self.max_nesting_depth,
            "nested_type_fallback": self.nested_type_fallback,
            "number_inference": self.number_inference,
            "nested_naming_strategy": self.nested_naming_strategy,
            # repr includes the object id
            "type_name_template": repr(self.type_name_template) if self.type_name_template else None,
            "stability": asdict(self.stability),
        }

    def fingerprint(self) -> str:
        """Short stable hash of the settings, usable as part of a cache key."""
        payload = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:12]

    @classmethod
    def from_env(cls, prefix: str = "DOCSCHEMA_", **overrides) -> "TypeSystemConfig":
        """
        Read settings from environment variables, e.g. DOCSCHEMA_SAMPLE_SIZE=200.
        Keyword overrides win over the environment.
        """
        options: Dict[str, Any] = {}
        for name in ("sample_size", "required_threshold", "conflict_resolution", "max_nesting_depth",
                     "nested_type_fallback", "number_inference", "nested_naming_strategy"):
            value = os.getenv(prefix + name.upper())
            if value not in (None, ""):
                options[name] = value
        patterns = os.getenv(prefix + "ID_PATTERNS")
        if patterns:
            options["id_patterns"] = [p.strip() for p in patterns.split(",") if p.strip()]
        options.update(overrides)
        return load_type_system_config(options)


def cache_key(database: str, container: str, config: TypeSystemConfig) -> str:
    return f"{database}:{container}:{config.sample_size}:{config.fingerprint()}"


def _normalize(options: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {_ALIASES.get(k, k): v for k, v in (options or {}).items()}


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "config"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def load_type_system_config(options: Optional[Mapping[str, Any]] = None) -> TypeSystemConfig:
    if isinstance(options, TypeSystemConfig):
        return options
    try:
        return TypeSystemConfig(**_normalize(options))
    except ValidationError as e:
        raise configuration_error(f"Invalid type system config: {_describe(e)}", COMPONENT,
                                  errors=e.error_count()) from e


def load_retry_config(options: Optional[Mapping[str, Any]] = None):
    from docschema.backoff import RetryConfig
    if isinstance(options, RetryConfig):
        return options
    try:
        return RetryConfig(**_normalize(options))
    except ValidationError as e:
        raise configuration_error(f"Invalid retry config: {_describe(e)}", COMPONENT,
                                  errors=e.error_count()) from e


def ensure_config(config: Union[TypeSystemConfig, Mapping[str, Any], None]) -> TypeSystemConfig:
    if config is None:
        return TypeSystemConfig()
    return load_type_system_config(config)
