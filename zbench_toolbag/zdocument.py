# zbench_toolbag/zdocument.py
"""
Synthetic documents for load testing.

A Document mirrors the records the harness pushes into the container: a unique
reference (stored as ``_id`` and copied into the ``documentRef`` partition key),
a storage-location hint, an ISO-8601 timestamp and a small metadata payload.
"""
import random
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

Scalar = Union[str, int, float, bool, None]

DEFAULT_SP_URL = "https://contoso.sharepoint.com/sites/Documents/Shared%20Documents/policy-schedule.pdf"
DEFAULT_DOC_CLASS = "Policy Schedule"
DEFAULT_MIME_TYPE = "application/pdf"
CUSTOMER_PREFIX = "CUST-"
DEFAULT_CUSTOMER_RANGE = (100000, 999999)
DEFAULT_POLICY_RANGE = (1000000, 9999999)
DEFAULT_WINDOW_START = date(2015, 1, 1)
DEFAULT_WINDOW_DAYS = 365 * 5


class DocumentMetadata(BaseModel):
    doc_class: str = Field(..., alias="docClass")
    customer_ref: str = Field(..., alias="customerRef")
    policy_ref: str = Field(..., alias="policyRef")
    mime_type: str = Field(..., alias="mimeType")
    notes: str = ""
    # free-form fields beyond the fixed set
    extensions: Dict[str, Scalar] = Field(default_factory=dict)

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }


class Document(BaseModel):
    document_ref: str = Field(..., alias="_id")
    sp_url: str = Field(..., alias="spUrl")
    time_stamp: str = Field(..., alias="timeStamp")
    metadata: DocumentMetadata

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

    def to_mongo(self, partition_key_field: str = "documentRef") -> Dict[str, Any]:
        """Wire form: aliased fields plus the partition key set to the reference."""
        doc = self.model_dump(by_alias=True)
        if partition_key_field != "_id":
            *parents, leaf = partition_key_field.split(".")
            target = doc
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = self.document_ref
        return doc


@dataclass(frozen=True)
class TimeWindow:
    start: date = DEFAULT_WINDOW_START
    span_days: int = DEFAULT_WINDOW_DAYS

    def __post_init__(self):
        if self.span_days < 0:
            raise ValueError("span_days must be non-negative")


def format_timestamp(moment: datetime) -> str:
    """ISO-8601, millisecond precision, UTC designator: 2019-04-02T13:05:09.123Z"""
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class DocumentGenerator:
    """
    Produces synthetic Documents from an injected random source.

    Pass a seeded ``random.Random`` for reproducible output. Unique references
    are UUID4 values drawn from the same source, so successive calls on one
    generator never repeat a reference.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        window: TimeWindow = TimeWindow(),
        customer_range: Tuple[int, int] = DEFAULT_CUSTOMER_RANGE,
        policy_range: Tuple[int, int] = DEFAULT_POLICY_RANGE,
        sp_url: str = DEFAULT_SP_URL,
        doc_class: str = DEFAULT_DOC_CLASS,
        mime_type: str = DEFAULT_MIME_TYPE,
        notes: str = "",
    ):
        for name, (low, high) in (("customer_range", customer_range), ("policy_range", policy_range)):
            if low > high:
                raise ValueError(f"{name} lower bound {low} exceeds upper bound {high}")
        self.rng = rng if rng is not None else random.Random()
        self.window = window
        self.customer_range = customer_range
        self.policy_range = policy_range
        self.sp_url = sp_url
        self.doc_class = doc_class
        self.mime_type = mime_type
        self.notes = notes

    def new_reference(self) -> str:
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    def random_timestamp(self) -> str:
        # Day first, then independent hour/minute/second/millisecond offsets.
        day = self.window.start + timedelta(days=self.rng.randint(0, self.window.span_days))
        moment = datetime.combine(day, time()) + timedelta(
            hours=self.rng.randint(0, 23),
            minutes=self.rng.randint(0, 59),
            seconds=self.rng.randint(0, 59),
            milliseconds=self.rng.randint(0, 999),
        )
        return format_timestamp(moment)

    def make_document(self) -> Document:
        metadata = DocumentMetadata(
            doc_class=self.doc_class,
            customer_ref=f"{CUSTOMER_PREFIX}{self.rng.randint(*self.customer_range)}",
            policy_ref=str(self.rng.randint(*self.policy_range)),
            mime_type=self.mime_type,
            notes=self.notes,
        )
        return Document(
            document_ref=self.new_reference(),
            sp_url=self.sp_url,
            time_stamp=self.random_timestamp(),
            metadata=metadata,
        )

    def generate(self, count: int) -> List[Document]:
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        return [self.make_document() for _ in range(count)]
