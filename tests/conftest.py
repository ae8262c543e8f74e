# tests/conftest.py
from collections import deque
from typing import Any, Dict, List, Optional

import pytest

from docschema.sampler import FeedPage, SampleQuery


class StoreError(Exception):
    """Stand-in for a document store SDK error."""

    def __init__(self, status_code: int, message: str = "", request_charge: Optional[float] = None,
                 retry_after_ms: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.request_charge = request_charge
        self.retry_after_ms = retry_after_ms


class ScriptedFeed:
    def __init__(self, outcomes):
        self.outcomes = deque(outcomes)

    def has_more_results(self) -> bool:
        return bool(self.outcomes)

    async def fetch_next(self) -> FeedPage:
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            self.outcomes.clear()
            raise outcome
        return outcome


class InMemoryContainer:
    """
    Answers sampler queries from a list of documents.
    Each entry in `failures` is raised by the next query's first page, in order.
    """

    def __init__(self, documents: List[Dict[str, Any]], page_size: int = 10, charge: float = 1.0,
                 failures=(), partition_key_path: Optional[str] = None):
        self.id = "items"
        self.documents = documents
        self.page_size = page_size
        self.charge = charge
        self.failures = deque(failures)
        self.partition_key_path = partition_key_path
        self.queries: List[SampleQuery] = []

    def query(self, query: SampleQuery) -> ScriptedFeed:
        self.queries.append(query)
        if self.failures:
            return ScriptedFeed([self.failures.popleft()])
        rows = self._rows(query)
        pages = [FeedPage(rows[i:i + self.page_size], self.charge) for i in range(0, len(rows), self.page_size)]
        return ScriptedFeed(pages or [FeedPage([], self.charge)])

    def _rows(self, query: SampleQuery) -> List[Any]:
        docs = self.documents
        if query.kind == "recent":
            docs = sorted(docs, key=lambda d: d.get("_ts", 0), reverse=True)
        elif query.kind == "distinct":
            seen = []
            for d in docs:
                if query.field in d and d[query.field] not in seen:
                    seen.append(d[query.field])
            return seen
        elif query.kind == "partition":
            docs = [d for d in docs if d.get(query.field) == query.value]
        return list(docs[:query.limit] if query.limit else docs)

    async def read_partition_key_path(self) -> Optional[str]:
        return self.partition_key_path


@pytest.fixture
def make_container():
    return InMemoryContainer


@pytest.fixture
def store_error():
    return StoreError


@pytest.fixture
def no_sleep():
    delays = []

    async def sleep(ms, cancel=None):
        delays.append(ms)

    sleep.delays = delays
    return sleep
