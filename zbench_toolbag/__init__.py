# zbench_toolbag/__init__.py
"""
Public package API.
Use only relative imports here to avoid circular imports.
"""
from .data_processing import FailureKind, OperationOutcome, QueryResult, SafeResult
from .zbulk_loader import ZBulkLoader, partition, plan_batches
from .zconstants import BenchConfig
from .zdocument import Document, DocumentGenerator, DocumentMetadata, TimeWindow
from .zgateway import ZCosmosGateway
from .zmetrics import BatchResult, RunResult, summarize_batch, summarize_run
from .zreport import ZReportSink

__all__ = [
    "BatchResult",
    "BenchConfig",
    "Document",
    "DocumentGenerator",
    "DocumentMetadata",
    "FailureKind",
    "OperationOutcome",
    "QueryResult",
    "RunResult",
    "SafeResult",
    "TimeWindow",
    "ZBulkLoader",
    "ZCosmosGateway",
    "ZReportSink",
    "partition",
    "plan_batches",
    "summarize_batch",
    "summarize_run",
]
