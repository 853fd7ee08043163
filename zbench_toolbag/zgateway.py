# zbench_toolbag/zgateway.py
import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Union

import motor.motor_asyncio
from bson import json_util
from bson.errors import InvalidDocument
from pymongo.errors import (
    CollectionInvalid,
    ConnectionFailure,
    DocumentTooLarge,
    DuplicateKeyError,
    ExecutionTimeout,
    OperationFailure,
    PyMongoError,
    WriteError,
)

from zbench_toolbag.data_processing import (
    FailureKind,
    OperationOutcome,
    QueryResult,
    SafeResult,
)
from zbench_toolbag.zconstants import BenchConfig, normalize_partition_key
from zbench_toolbag.zdocument import Document

logger = logging.getLogger(__name__)

JsonDict = Dict[str, Any]
DocLike = Union[Document, JsonDict]

# Cosmos DB reports "Request rate is large" as 16500; 429 shows up on some gateways.
THROTTLE_CODES = {16500, 429}


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


class ZCosmosGateway:
    """
    Request/response boundary to the document container.

    Each operation wraps one remote call and returns an OperationOutcome or
    QueryResult; driver exceptions are classified into a FailureKind and never
    leave this class.
    """

    def __init__(
        self,
        db: Optional[motor.motor_asyncio.AsyncIOMotorDatabase] = None,
        config: Optional[BenchConfig] = None,
        *,
        container: Optional[str] = None,
        partition_key: Optional[str] = None,
        page_size: Optional[int] = None,
        track_request_charge: Optional[bool] = None,
    ):
        self.config = config or BenchConfig.from_env()
        if db is not None:
            self.db = db
        else:
            client = motor.motor_asyncio.AsyncIOMotorClient(
                self.config.mongo_uri, maxPoolSize=self.config.max_pool_size
            )
            self.db = client[self.config.database_name]

        self.container_name = container or self.config.container_name
        self.partition_key_field = normalize_partition_key(partition_key or self.config.partition_key)
        self.page_size = page_size or self.config.query_page_size
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.track_request_charge = (
            self.config.track_request_charge if track_request_charge is None else track_request_charge
        )

    async def __aenter__(self) -> "ZCosmosGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def collection(self):
        return self.db[self.container_name]

    def close(self):
        """Closes the underlying client connection."""
        if self.db is not None and self.db.client is not None:
            self.db.client.close()
            logger.info("Database connection closed.")

    # ---------- Helpers ----------
    @staticmethod
    def classify(exc: BaseException) -> FailureKind:
        if isinstance(exc, DuplicateKeyError):
            return FailureKind.CONFLICT
        if getattr(exc, "code", None) in THROTTLE_CODES:
            return FailureKind.THROTTLED
        if isinstance(exc, (ConnectionFailure, ExecutionTimeout, asyncio.TimeoutError)):
            return FailureKind.TRANSPORT
        if isinstance(exc, (WriteError, DocumentTooLarge, InvalidDocument)):
            return FailureKind.VALIDATION
        return FailureKind.ERROR

    @staticmethod
    def parse_query(query_text: Optional[str]) -> JsonDict:
        """Turn ad-hoc query text (Extended JSON filter) into a filter dict."""
        if query_text is None or not query_text.strip():
            return {}
        try:
            parsed = json_util.loads(query_text)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Query is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ValueError("Query must be a JSON object, e.g. {\"metadata.docClass\": \"Policy Schedule\"}")
        return parsed

    def _to_wire(self, document: DocLike) -> JsonDict:
        if isinstance(document, Document):
            return document.to_mongo(self.partition_key_field)
        return dict(document)

    def _point_filter(self, document_ref: str) -> JsonDict:
        query = {"_id": document_ref}
        if self.partition_key_field != "_id":
            query[self.partition_key_field] = document_ref
        return query

    async def _last_request_charge(self) -> float:
        """RequestCharge of the previous command on this connection, 0.0 when unknown."""
        if not self.track_request_charge:
            return 0.0
        try:
            stats = await self.db.command({"getLastRequestStatistics": 1})
        except OperationFailure as e:
            # concurrent callers all see the rejection; only the first one reports it
            if self.track_request_charge:
                logger.warning("Server does not report request charges (%s); recording 0 RU from now on.", e)
                self.track_request_charge = False
            return 0.0
        except PyMongoError as e:
            logger.debug("getLastRequestStatistics failed: %s", e)
            return 0.0
        try:
            return float(stats.get("RequestCharge") or 0.0)
        except (TypeError, ValueError):
            return 0.0

    # ---------- Provisioning ----------
    async def ensure_container(self) -> SafeResult:
        """Create the container (sharded on the partition key where supported) if it is missing."""
        try:
            names = await self.db.list_collection_names()
            if self.container_name in names:
                return SafeResult.ok({"container": self.container_name, "created": False})
            try:
                await self.db.command({
                    "customAction": "CreateCollection",
                    "collection": self.container_name,
                    "shardKey": self.partition_key_field,
                })
            except OperationFailure as e:
                logger.info("customAction CreateCollection unavailable (%s); creating a plain collection.", e)
                try:
                    await self.db.create_collection(self.container_name)
                except CollectionInvalid:
                    return SafeResult.ok({"container": self.container_name, "created": False})
            logger.info("Container: %s created in database: %s", self.container_name, self.db.name)
            return SafeResult.ok({"container": self.container_name, "created": True})
        except Exception as e:
            logger.error("Error occurred when creating container %s: %s", self.container_name, e)
            return SafeResult.fail(str(e), exc=e)

    # ---------- Operations ----------
    async def create_one(self, document: DocLike) -> OperationOutcome:
        try:
            doc = self._to_wire(document)
        except Exception as e:
            return OperationOutcome.fail(str(e), exc=e, failure_kind=FailureKind.VALIDATION)
        start = time.perf_counter()
        try:
            await self.collection.insert_one(doc)
        except Exception as e:
            kind = self.classify(e)
            logger.debug("insert of %s failed (%s): %s", doc.get("_id"), kind.value, e)
            return OperationOutcome.fail(str(e), exc=e, elapsed_ms=_elapsed_ms(start), failure_kind=kind)
        elapsed = _elapsed_ms(start)
        charge = await self._last_request_charge()
        return OperationOutcome.ok(doc, request_charge=charge, elapsed_ms=elapsed)

    async def read_one(self, document_ref: str, *, with_count: bool = True) -> OperationOutcome:
        start = time.perf_counter()
        try:
            doc = await self.collection.find_one(self._point_filter(document_ref))
        except Exception as e:
            kind = self.classify(e)
            logger.warning("Point read of %s failed (%s): %s", document_ref, kind.value, e)
            return OperationOutcome.fail(str(e), exc=e, elapsed_ms=_elapsed_ms(start), failure_kind=kind)
        elapsed = _elapsed_ms(start)
        charge = await self._last_request_charge()
        count = await self.count() if with_count else None
        if doc is None:
            return OperationOutcome.fail(
                f"Document {document_ref} not found",
                request_charge=charge,
                elapsed_ms=elapsed,
                failure_kind=FailureKind.NOT_FOUND,
                document_count=count,
            )
        return OperationOutcome.ok(doc, request_charge=charge, elapsed_ms=elapsed, document_count=count)

    async def read_many(self, document_refs: Iterable[str]) -> List[OperationOutcome]:
        """Sequential point reads, one outcome per reference in input order."""
        return [await self.read_one(ref) for ref in document_refs]

    async def query(self, query_text: Optional[str]) -> QueryResult:
        try:
            query_filter = self.parse_query(query_text)
        except ValueError as e:
            return QueryResult.fail(str(e), exc=e, failure_kind=FailureKind.VALIDATION)

        documents: List[JsonDict] = []
        page_charges: List[float] = []
        elapsed = 0
        try:
            cursor = self.collection.find(query_filter, batch_size=self.page_size)
            while True:
                start = time.perf_counter()
                page = await cursor.to_list(length=self.page_size)
                elapsed += _elapsed_ms(start)
                page_charges.append(await self._last_request_charge())
                documents.extend(page)
                if len(page) < self.page_size or not cursor.alive:
                    break
        except Exception as e:
            kind = self.classify(e)
            logger.warning("Query %s failed after %d page(s) (%s): %s", query_filter, len(page_charges), kind.value, e)
            return QueryResult.fail(str(e), data=documents, exc=e, page_charges=page_charges,
                                    elapsed_ms=elapsed, failure_kind=kind)

        count = await self.count()
        logger.info("Query returned %d document(s) over %d page(s), %.2f RU",
                    len(documents), len(page_charges), sum(page_charges))
        return QueryResult.ok(documents, page_charges=page_charges, elapsed_ms=elapsed, document_count=count)

    async def count(self) -> int:
        try:
            return int(await self.collection.count_documents({}))
        except Exception as e:
            logger.error("Document count failed: %s", e)
            return -1

