# docschema/sampler.py
import asyncio, logging, random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Protocol, Sequence

from docschema.backoff import RetryConfig, with_retry
from docschema.errors import validation_error

logger = logging.getLogger(__name__)

COMPONENT = "document-sampler"
VALID_STRATEGIES = ("top", "random", "partition", "schema")
MAX_RECOMMENDED_SAMPLE = 10000
RANDOM_OVERSAMPLE = 3
DEFAULT_PARTITION_KEY_PATH = "/partition"

QueryKind = Literal["top", "recent", "distinct", "partition", "scan"]
ProgressFn = Callable[[int, int, float], None]


@dataclass(frozen=True)
class SampleQuery:
    kind: QueryKind
    limit: Optional[int] = None
    field: Optional[str] = None
    value: Any = None

    def to_sql(self) -> str:
        """Cosmos DB SQL text for this query; parameter @value stands for `value`."""
        top = f"TOP {self.limit} " if self.limit else ""
        if self.kind == "recent":
            return f"SELECT {top}* FROM c ORDER BY c._ts DESC"
        if self.kind == "distinct":
            return f"SELECT DISTINCT VALUE c.{self.field} FROM c"
        if self.kind == "partition":
            return f"SELECT {top}* FROM c WHERE c.{self.field} = @value"
        return f"SELECT {top}* FROM c"


@dataclass
class FeedPage:
    resources: List[Any]
    request_charge: float = 0.0


class FeedIterator(Protocol):
    def has_more_results(self) -> bool:
        ...

    async def fetch_next(self) -> FeedPage:
        ...


class Container(Protocol):
    """Minimal query capability the sampler needs from a document store."""

    def query(self, query: SampleQuery) -> FeedIterator:
        ...


@dataclass
class SampleResult:
    documents: List[Mapping[str, Any]]
    status: Literal["completed", "budget_exceeded", "partial"] = "completed"
    ru_consumed: float = 0.0
    partitions_covered: Optional[int] = None
    schema_variants: Optional[int] = None


@dataclass
class _Run:
    container: Container
    target: int
    max_ru: Optional[float]
    on_progress: Optional[ProgressFn]
    ru_consumed: float = 0.0
    budget_exceeded: bool = False
    sampled: int = 0

    def over_budget(self) -> bool:
        if self.max_ru is not None and self.ru_consumed >= self.max_ru:
            self.budget_exceeded = True
        return self.budget_exceeded

    async def drain(self, query: SampleQuery, limit: Optional[int] = None) -> List[Any]:
        """Read pages until `limit` items are collected, the feed ends, or the RU cap is hit."""
        items: List[Any] = []
        feed = self.container.query(query)
        while feed.has_more_results():
            if self.over_budget():
                break
            page = await feed.fetch_next()
            self.ru_consumed += page.request_charge or 0.0
            items.extend(page.resources)
            if limit is not None and len(items) >= limit:
                break
        return items[:limit] if limit is not None else items

    def progress(self, added: int):
        self.sampled += added
        if self.on_progress is not None:
            self.on_progress(self.sampled, self.target, self.ru_consumed)


def _documents(items: Sequence[Any]) -> List[Mapping[str, Any]]:
    docs = [d for d in items if isinstance(d, Mapping)]
    if len(docs) != len(items):
        logger.warning("dropped %d non-object result(s)", len(items) - len(docs))
    return docs


def schema_signature(doc: Mapping[str, Any]) -> str:
    """Sorted top-level keys, system properties (leading underscore) excluded."""
    return "|".join(sorted(str(k) for k in doc.keys() if not str(k).startswith("_")))


async def _sample_top(run: _Run, n: int) -> SampleResult:
    docs = _documents(await run.drain(SampleQuery("top", limit=n), n))
    run.progress(len(docs))
    return SampleResult(documents=docs)


async def _sample_random(run: _Run, n: int, rng: random.Random) -> SampleResult:
    pool_size = n * RANDOM_OVERSAMPLE
    pool = _documents(await run.drain(SampleQuery("recent", limit=pool_size), pool_size))
    rng.shuffle(pool)
    docs = pool[:n]
    run.progress(len(docs))
    return SampleResult(documents=docs)


async def resolve_partition_key_path(container: Container, configured: Optional[str] = None) -> str:
    if configured:
        return configured
    reader = getattr(container, "read_partition_key_path", None)
    if reader is not None:
        path = reader()
        if asyncio.iscoroutine(path):
            path = await path
        if path:
            return path
    logger.warning("partition key path unknown, falling back to %s", DEFAULT_PARTITION_KEY_PATH)
    return DEFAULT_PARTITION_KEY_PATH


def split_evenly(total: int, buckets: int) -> List[int]:
    """max(1, total // buckets) per bucket, remainder handed to the first buckets."""
    base = max(1, total // buckets)
    remainder = total - base * buckets if total > buckets else 0
    return [base + (1 if i < remainder else 0) for i in range(buckets)]


async def _sample_partition(run: _Run, n: int, key_path: str) -> SampleResult:
    key_field = key_path.strip("/").replace("/", ".")
    keys = [k for k in await run.drain(SampleQuery("distinct", field=key_field)) if k is not None]
    if not keys:
        logger.info("no partition key values found for %s, using top sampling", key_path)
        return await _sample_top(run, n)

    docs: List[Mapping[str, Any]] = []
    covered = 0
    for key, quota in zip(keys, split_evenly(n, len(keys))):
        if len(docs) >= n or run.over_budget():
            break
        batch = _documents(await run.drain(SampleQuery("partition", limit=quota, field=key_field, value=key), quota))
        batch = batch[: n - len(docs)]
        if batch:
            covered += 1
        docs.extend(batch)
        run.progress(len(batch))
    return SampleResult(documents=docs, partitions_covered=covered)


async def _sample_schema(run: _Run, n: int, min_variants: int) -> SampleResult:
    per_signature: Dict[str, int] = {}
    docs: List[Mapping[str, Any]] = []
    feed = run.container.query(SampleQuery("scan"))
    while feed.has_more_results() and len(docs) < n:
        if run.over_budget():
            break
        page = await feed.fetch_next()
        run.ru_consumed += page.request_charge or 0.0
        added = 0
        for doc in _documents(page.resources):
            signature = schema_signature(doc)
            if per_signature.get(signature, 0) >= min_variants:
                continue
            per_signature[signature] = per_signature.get(signature, 0) + 1
            docs.append(doc)
            added += 1
            if len(docs) >= n:
                break
        run.progress(added)
    status = "completed" if len(docs) >= n else "partial"
    return SampleResult(documents=docs, status=status, schema_variants=len(per_signature))


def _validate(sample_size: Any, strategy: str):
    if isinstance(sample_size, bool) or not isinstance(sample_size, int) or sample_size <= 0:
        raise validation_error(f"Sample size must be a positive integer, got {sample_size!r}", COMPONENT,
                               sample_size=repr(sample_size))
    if strategy not in VALID_STRATEGIES:
        raise validation_error(f"Invalid sampling strategy: {strategy}", COMPONENT,
                               strategy=strategy, valid_strategies=list(VALID_STRATEGIES))
    if sample_size > MAX_RECOMMENDED_SAMPLE:
        logger.warning("sample size %d exceeds recommended maximum %d", sample_size, MAX_RECOMMENDED_SAMPLE)


async def sample_documents(container: Container, sample_size: int, strategy: str = "partition",
                           retry: Optional[RetryConfig] = None, *, partition_key_path: Optional[str] = None,
                           max_ru: Optional[float] = None, min_schema_variants: int = 3,
                           on_progress: Optional[ProgressFn] = None, cancel: Optional[asyncio.Event] = None,
                           rng: Optional[random.Random] = None) -> SampleResult:
    """
    Draw up to `sample_size` documents from `container` with the given strategy.
    Transient failures are retried per `retry`; anything that still fails is raised
    as a ClassifiedError. Documents are returned exactly as the store produced them.
    """
    _validate(sample_size, strategy)
    rng = rng or random.Random()

    async def attempt() -> SampleResult:
        run = _Run(container=container, target=sample_size, max_ru=max_ru, on_progress=on_progress)
        if strategy == "top":
            result = await _sample_top(run, sample_size)
        elif strategy == "random":
            result = await _sample_random(run, sample_size, rng)
        elif strategy == "schema":
            result = await _sample_schema(run, sample_size, min_schema_variants)
        else:
            key_path = await resolve_partition_key_path(container, partition_key_path)
            result = await _sample_partition(run, sample_size, key_path)
        result.ru_consumed = run.ru_consumed
        if run.budget_exceeded:
            result.status = "budget_exceeded"
        return result

    result = await with_retry(attempt, retry, component=COMPONENT, operation_name=f"{strategy} sampling",
                              cancel=cancel)
    logger.info("sampled %d document(s) with %s strategy (%s, %.2f RU)",
                len(result.documents), strategy, result.status, result.ru_consumed)
    return result
