"""
Data Processing Module
=======================

- SafeResult: a predictable, serializable wrapper for operation outcomes.
  Every gateway call returns one instead of raising driver exceptions.
- OperationOutcome / QueryResult: SafeResult variants that also carry the
  request charge, latency and container count of a gateway call.
- DataProcessor: small helpers for turning BSON documents into plain,
  JSON-friendly Python values.
"""
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from bson.objectid import ObjectId

# Configure module-level logger
logger = logging.getLogger(__name__)


class SafeResult:
    """
    A predictable, serializable wrapper for operation results.
    """

    def __init__(self, data: Any = None, *, success: bool, error: Optional[str] = None,
                 original_exc: Optional[Exception] = None):
        self.success = success
        self.error = error
        self.data = DataProcessor.convert_bson(data)
        self._original_exc = original_exc

    @classmethod
    def ok(cls, data: Any = None, **kwargs) -> 'SafeResult':
        return cls(data=data, success=True, **kwargs)

    @classmethod
    def fail(cls, error: str, data: Any = None, exc: Optional[Exception] = None, **kwargs) -> 'SafeResult':
        return cls(data=data, success=False, error=error, original_exc=exc, **kwargs)

    def model_dump(self) -> Dict[str, Any]:
        return {"success": self.success, "error": self.error, "data": self.data}

    def original(self) -> Any:
        """The data on success, the captured exception on failure."""
        if not self.success:
            return self._original_exc
        return self.data

    def to_json(self, indent: int = 4) -> str:
        if not self.success or self.data is None:
            return json.dumps({"error": self.error, "success": False}, indent=indent)
        return json.dumps(self.data, indent=indent, default=str)

    def unwrap(self, *, quiet: bool = False) -> Any:
        """
        Return the data on success.

        On failure either raise RuntimeError (default) or, with quiet=True,
        log the error and return None.
        """
        if self.success:
            return self.data
        if quiet:
            logger.info("Operation error: %s", self.error)
            return None
        raise RuntimeError(self.error)

    def __bool__(self):
        return self.success

    def __repr__(self):
        return f"SafeResult(success={self.success}, error='{self.error}', data_preview='{str(self.data)[:100]}...')"


class DataProcessor:
    @staticmethod
    def convert_bson(obj: Any) -> Any:
        if isinstance(obj, ObjectId):
            return str(obj)
        if isinstance(obj, dict):
            return {k: DataProcessor.convert_bson(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [DataProcessor.convert_bson(x) for x in obj]
        return obj



class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    THROTTLED = "throttled"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    ERROR = "error"


class OperationOutcome(SafeResult):
    """
    Result of one gateway call, with what it cost.

    request_charge is the backend's reported cost (0.0 when it reports none),
    elapsed_ms the wall-clock time of the remote call and document_count the
    container count observed alongside it (-1 when not fetched).
    """

    def __init__(self, data: Any = None, *, success: bool, error: Optional[str] = None,
                 original_exc: Optional[Exception] = None, request_charge: float = 0.0,
                 elapsed_ms: int = 0, failure_kind: Optional[FailureKind] = None,
                 document_count: Optional[int] = -1):
        super().__init__(data, success=success, error=error, original_exc=original_exc)
        self.request_charge = max(float(request_charge or 0.0), 0.0)
        self.elapsed_ms = max(int(elapsed_ms or 0), 0)
        if success:
            self.failure_kind = None
        else:
            self.failure_kind = failure_kind or FailureKind.ERROR
        self.document_count = -1 if document_count is None else document_count

    @property
    def document(self) -> Optional[Dict[str, Any]]:
        return self.data if self.success else None

    @property
    def not_found(self) -> bool:
        return self.failure_kind is FailureKind.NOT_FOUND

    def model_dump(self) -> Dict[str, Any]:
        dumped = super().model_dump()
        dumped.update(
            request_charge=self.request_charge,
            elapsed_ms=self.elapsed_ms,
            failure_kind=self.failure_kind.value if self.failure_kind else None,
            document_count=self.document_count,
        )
        return dumped

    def __repr__(self):
        return (f"OperationOutcome(success={self.success}, failure_kind={self.failure_kind}, "
                f"request_charge={self.request_charge}, elapsed_ms={self.elapsed_ms})")


class QueryResult(SafeResult):
    """Documents from a fully drained query; the charge is summed over every page."""

    def __init__(self, data: Any = None, *, success: bool, error: Optional[str] = None,
                 original_exc: Optional[Exception] = None, page_charges: Optional[List[float]] = None,
                 elapsed_ms: int = 0, document_count: Optional[int] = -1,
                 failure_kind: Optional[FailureKind] = None):
        super().__init__(data if data is not None else [], success=success, error=error,
                         original_exc=original_exc)
        self.page_charges = [max(float(c or 0.0), 0.0) for c in (page_charges or [])]
        self.elapsed_ms = max(int(elapsed_ms or 0), 0)
        self.document_count = -1 if document_count is None else document_count
        if success:
            self.failure_kind = None
        else:
            self.failure_kind = failure_kind or FailureKind.ERROR

    @property
    def documents(self) -> List[Dict[str, Any]]:
        # partial pages survive a failed drain
        return self.data or []

    @property
    def request_charge(self) -> float:
        return sum(self.page_charges)

    @property
    def pages(self) -> int:
        return len(self.page_charges)

    def model_dump(self) -> Dict[str, Any]:
        dumped = super().model_dump()
        dumped.update(
            page_charges=self.page_charges,
            request_charge=self.request_charge,
            elapsed_ms=self.elapsed_ms,
            failure_kind=self.failure_kind.value if self.failure_kind else None,
            document_count=self.document_count,
        )
        return dumped
