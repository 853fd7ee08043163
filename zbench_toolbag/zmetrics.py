# zbench_toolbag/zmetrics.py
"""
Pure accumulation of gateway outcomes into batch- and run-level summaries.

Batch elapsed time is the wall-clock time of the whole concurrent group and is
supplied by the caller; run elapsed time is the sum over batches, which ran
one after another.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from zbench_toolbag.data_processing import OperationOutcome


@dataclass
class BatchResult:
    batch_size: int
    successes: int = 0
    request_charge: float = 0.0
    elapsed_ms: int = 0
    generation: int = 0
    index: int = 0
    documents: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if self.successes > self.batch_size:
            raise ValueError(f"successes ({self.successes}) exceed batch size ({self.batch_size})")
        if self.request_charge < 0:
            raise ValueError("request_charge must be non-negative")

    @property
    def failures(self) -> int:
        return self.batch_size - self.successes


@dataclass
class RunResult:
    """
    Totals for one bulk insert. elapsed_ms is the sum of batch wall-clock times,
    which include the request-charge lookup after each insert when charge
    tracking is on.
    """
    requested: int
    successes: int = 0
    request_charge: float = 0.0
    elapsed_ms: int = 0
    generations: int = 0
    batches: List[BatchResult] = field(default_factory=list, repr=False)

    @property
    def attempted(self) -> int:
        return sum(b.batch_size for b in self.batches)

    @property
    def failures(self) -> int:
        return self.attempted - self.successes

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.successes, 0)

    @property
    def complete(self) -> bool:
        return self.shortfall == 0

    @property
    def docs_per_second(self) -> float:
        return self.successes * 1000.0 / self.elapsed_ms if self.elapsed_ms > 0 else 0.0

    @property
    def charge_per_second(self) -> float:
        return self.request_charge * 1000.0 / self.elapsed_ms if self.elapsed_ms > 0 else 0.0

    def summary(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "inserted": self.successes,
            "attempted": self.attempted,
            "failed": self.failures,
            "shortfall": self.shortfall,
            "generations": self.generations,
            "batches": len(self.batches),
            "elapsed_ms": self.elapsed_ms,
            "request_charge": round(self.request_charge, 2),
            "docs_per_second": round(self.docs_per_second, 2),
            "ru_per_second": round(self.charge_per_second, 2),
        }


def summarize_batch(
    outcomes: Iterable[OperationOutcome],
    elapsed_ms: int,
    *,
    batch_size: Optional[int] = None,
    generation: int = 0,
    index: int = 0,
    keep_documents: bool = True,
) -> BatchResult:
    """
    Fold one batch of outcomes. Only successful outcomes contribute cost and
    documents; failures are implied by ``batch_size - successes``.
    """
    outcomes = list(outcomes)
    successful = [o for o in outcomes if o.success]
    return BatchResult(
        batch_size=len(outcomes) if batch_size is None else batch_size,
        successes=len(successful),
        request_charge=sum(o.request_charge for o in successful),
        elapsed_ms=max(int(elapsed_ms), 0),
        generation=generation,
        index=index,
        documents=[o.document for o in successful] if keep_documents else [],
    )


def summarize_run(batches: Iterable[BatchResult], requested: int) -> RunResult:
    batches = list(batches)
    return RunResult(
        requested=requested,
        successes=sum(b.successes for b in batches),
        request_charge=sum(b.request_charge for b in batches),
        elapsed_ms=sum(b.elapsed_ms for b in batches),
        generations=len({b.generation for b in batches}),
        batches=batches,
    )
