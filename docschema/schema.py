# docschema/schema.py
import json, time, asyncio, logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from docschema.analyzer import analyze_documents
from docschema.backoff import RetryConfig
from docschema.config import TypeSystemConfig, ensure_config
from docschema.errors import ClassifiedError, validation_error
from docschema.logs import log_exception
from docschema.sampler import Container, SampleResult, sample_documents
from docschema.type_builder import TypeDefinition, build_type_definitions

logger = logging.getLogger(__name__)

COMPONENT = "schema-inference"


@dataclass
class ProgressEvent:
    stage: str
    message: str
    progress: float
    metadata: Dict[str, Any] = field(default_factory=dict)


ProgressCallback = Callable[[ProgressEvent], None]


class InferenceStats(BaseModel):
    documents_analyzed: int
    fields_analyzed: int
    types_generated: int
    conflicts_resolved: int
    conflicted_fields: List[str]
    nested_types_created: int


class InferredSchema(BaseModel):
    root_type: TypeDefinition
    nested_types: List[TypeDefinition]
    stats: InferenceStats

    def types(self) -> List[TypeDefinition]:
        return [self.root_type] + list(self.nested_types)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()

    def to_json(self, indent: Optional[int] = None) -> str:
        """Canonical JSON; identical samples and config give identical text."""
        return json.dumps(self.model_dump(), sort_keys=True, indent=indent)


def _emit(on_progress: Optional[ProgressCallback], stage: str, message: str, progress: float, **metadata):
    if on_progress is not None:
        on_progress(ProgressEvent(stage=stage, message=message, progress=progress, metadata=metadata))


def infer_schema(documents: Sequence[Mapping[str, Any]], type_name: str,
                 config: Union[TypeSystemConfig, Mapping[str, Any], None] = None,
                 on_progress: Optional[ProgressCallback] = None) -> InferredSchema:
    """
    Sample documents in, type definitions out.
    Raises a validation error for an empty sample and a type-conflict error when the
    'error' conflict strategy meets a field with several types.
    """
    if not documents:
        raise validation_error("Cannot infer schema from an empty document set", COMPONENT)
    config = ensure_config(config)
    started = time.monotonic()

    _emit(on_progress, "inference_started", f"Analyzing {len(documents)} documents", 0.0,
          document_count=len(documents))
    structure = analyze_documents(documents)
    definitions = build_type_definitions(structure, type_name, config)

    stats = InferenceStats(
        documents_analyzed=structure.document_count,
        fields_analyzed=structure.field_count,
        types_generated=len(definitions.nested) + 1,
        conflicts_resolved=len(structure.conflicts),
        conflicted_fields=structure.conflicts,
        nested_types_created=len(definitions.nested),
    )
    elapsed_ms = int((time.monotonic() - started) * 1000)
    _emit(on_progress, "inference_complete", f"Generated {stats.types_generated} types", 1.0,
          duration_ms=elapsed_ms, **stats.model_dump())
    logger.info("inferred %s from %d document(s): %d type(s), %d conflict(s) in %d ms",
                type_name, stats.documents_analyzed, stats.types_generated, stats.conflicts_resolved, elapsed_ms)
    return InferredSchema(root_type=definitions.root, nested_types=definitions.nested, stats=stats)


async def sample_and_infer(container: Container, type_name: str,
                           config: Union[TypeSystemConfig, Mapping[str, Any], None] = None, *,
                           strategy: str = "partition", retry: Optional[RetryConfig] = None,
                           cancel: Optional[asyncio.Event] = None,
                           on_progress: Optional[ProgressCallback] = None, **sample_options) -> InferredSchema:
    config = ensure_config(config)

    def sampling_progress(sampled: int, target: int, ru: float):
        _emit(on_progress, "sampling", f"Sampled {sampled}/{target} documents", sampled / target if target else 1.0,
              sampled=sampled, target=target, ru_consumed=ru)

    try:
        result: SampleResult = await sample_documents(container, config.sample_size, strategy, retry,
                                                      on_progress=sampling_progress, cancel=cancel, **sample_options)
    except ClassifiedError as e:
        log_exception(e, context={"type_name": type_name, "strategy": strategy,
                                  "container": getattr(container, "id", None)})
        raise
    if result.status != "completed":
        logger.warning("sampling ended with status %s after %d document(s)", result.status, len(result.documents))
    return infer_schema(result.documents, type_name, config, on_progress)
