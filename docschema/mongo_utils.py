# docschema/mongo_utils.py
import re, logging
from typing import Any, Dict, List, Optional

from pymongo import AsyncMongoClient, DESCENDING, errors

from docschema.sampler import FeedPage, SampleQuery

logger = logging.getLogger(__name__)

# Cosmos DB for MongoDB reports throttling as OperationFailure 16500 with "RetryAfterMs=<n>" in the message
THROTTLED = 16500
RETRY_AFTER_RE = re.compile(r"RetryAfterMs=(\d+)")

# mongo error code -> http-style status
CODE_STATUS = {
    THROTTLED: 429,
    13: 401,      # Unauthorized
    18: 401,      # AuthenticationFailed
    26: 404,      # NamespaceNotFound
    50: 408,      # MaxTimeMSExpired
    11000: 409,   # DuplicateKey
}


class MongoRequestError(Exception):
    """pymongo failure restated with the fields the error classifier reads."""

    def __init__(self, message: str, status_code: Optional[int] = None, retry_after_ms: Optional[int] = None,
                 request_charge: Optional[float] = None, mongo_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms
        self.request_charge = request_charge
        self.mongo_code = mongo_code


def translate_mongo_error(exc: errors.PyMongoError) -> MongoRequestError:
    message = str(exc)
    if isinstance(exc, errors.ExecutionTimeout):
        return MongoRequestError(message, 408, mongo_code=exc.code)
    if isinstance(exc, errors.OperationFailure):
        details = exc.details or {}
        retry_after = None
        match = RETRY_AFTER_RE.search(message) or RETRY_AFTER_RE.search(str(details.get("errmsg", "")))
        if match:
            retry_after = int(match.group(1))
        return MongoRequestError(message, CODE_STATUS.get(exc.code), retry_after_ms=retry_after,
                                 request_charge=details.get("RequestCharge"), mongo_code=exc.code)
    if isinstance(exc, errors.NetworkTimeout):
        return MongoRequestError(message, 408)
    if isinstance(exc, errors.ConnectionFailure):
        return MongoRequestError(message, 503)
    return MongoRequestError(message)


class _MongoFeed:
    def __init__(self, container: "MongoContainer", query: SampleQuery):
        self.container = container
        self.query = query
        self._cursor = None
        self._done = False

    def has_more_results(self) -> bool:
        return not self._done

    async def fetch_next(self) -> FeedPage:
        try:
            resources = await self._next_batch()
            charge = await self.container.last_request_charge()
        except errors.PyMongoError as e:
            raise translate_mongo_error(e) from e
        return FeedPage(resources=resources, request_charge=charge)

    async def _next_batch(self) -> List[Any]:
        q = self.query
        collection = self.container.collection
        if q.kind == "distinct":
            self._done = True
            return list(await collection.distinct(q.field))
        if self._cursor is None:
            spec: Dict[str, Any] = {q.field: q.value} if q.kind == "partition" else {}
            self._cursor = collection.find(spec)
            if q.kind == "recent":
                self._cursor = self._cursor.sort("_ts", DESCENDING)
            if q.limit:
                self._cursor = self._cursor.limit(q.limit)
        size = self.container.page_size
        batch = await self._cursor.to_list(length=size)
        if len(batch) < size:
            self._done = True
        return batch


class MongoContainer:
    """Sampler container over a pymongo async collection (MongoDB or Cosmos DB for MongoDB)."""

    def __init__(self, collection, page_size: int = 100, track_request_charge: bool = True):
        self.collection = collection
        self.page_size = page_size
        self.track_request_charge = track_request_charge

    @property
    def id(self) -> str:
        return self.collection.name

    def query(self, query: SampleQuery) -> _MongoFeed:
        return _MongoFeed(self, query)

    async def last_request_charge(self) -> float:
        if not self.track_request_charge:
            return 0.0
        try:
            stats = await self.collection.database.command({"getLastRequestStatistics": 1})
        except errors.OperationFailure as e:
            # plain MongoDB has no such command
            logger.debug("request charge tracking disabled: %s", e)
            self.track_request_charge = False
            return 0.0
        return float(stats.get("RequestCharge", 0.0) or 0.0)

    async def read_partition_key_path(self) -> Optional[str]:
        try:
            info = await self.collection.database.command(
                {"customAction": "GetCollection", "collection": self.collection.name})
        except errors.OperationFailure as e:
            logger.debug("could not read shard key for %s: %s", self.collection.name, e)
            return None
        keys = list((info.get("shardKeyDefinition") or {}).keys())
        return "/" + keys[0] if keys else None


def open_container(uri: str, db_name: str, collection_name: str, **client_options) -> MongoContainer:
    """
    uri: mongodb connection string, e.g. "mongodb://localhost:27017"
    """
    client = AsyncMongoClient(uri, **client_options)
    return MongoContainer(client[db_name][collection_name])
