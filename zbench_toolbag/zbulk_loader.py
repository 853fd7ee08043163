# zbench_toolbag/zbulk_loader.py
"""
Bulk ingestion engine.

Inserts N synthetic documents in sequential batches of at most
``concurrency_limit`` concurrent ``create_one`` calls. Each batch is awaited in
full before the next one starts, which caps in-flight requests at the limit.
Whatever falls short after a pass is retried as a fresh set of documents in
the next generation, up to ``max_generations`` passes.
"""
import asyncio
import logging
import time
from collections import Counter
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from zbench_toolbag.data_processing import FailureKind, OperationOutcome
from zbench_toolbag.zconstants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_GENERATION_BACKOFF,
    DEFAULT_MAX_GENERATIONS,
    BenchConfig,
)
from zbench_toolbag.zdocument import Document, DocumentGenerator
from zbench_toolbag.zgateway import ZCosmosGateway
from zbench_toolbag.zmetrics import BatchResult, RunResult, summarize_batch, summarize_run

logger = logging.getLogger(__name__)

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> List[Sequence[T]]:
    """Consecutive slices of ``size`` items; the last one may be shorter."""
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


def plan_batches(total: int, size: int) -> List[int]:
    """Batch sizes partition() would produce for ``total`` items."""
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    if total < 0:
        raise ValueError(f"total must be non-negative, got {total}")
    full, rest = divmod(total, size)
    return [size] * full + ([rest] if rest else [])


class ZBulkLoader:
    def __init__(
        self,
        gateway: ZCosmosGateway,
        generator: Optional[DocumentGenerator] = None,
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        max_generations: int = DEFAULT_MAX_GENERATIONS,
        generation_backoff: float = DEFAULT_GENERATION_BACKOFF,
        keep_documents: bool = False,
        on_batch: Optional[Callable[[BatchResult], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be non-negative")
        if max_generations < 1:
            raise ValueError("max_generations must be at least 1")
        if generation_backoff < 1:
            raise ValueError("generation_backoff must be at least 1")
        self.gateway = gateway
        self.generator = generator or DocumentGenerator()
        self.cooldown_seconds = cooldown_seconds
        self.max_generations = max_generations
        self.generation_backoff = generation_backoff
        self.keep_documents = keep_documents
        self.on_batch = on_batch
        self._sleep = sleep

    @classmethod
    def from_config(cls, gateway: ZCosmosGateway, config: BenchConfig, **kwargs) -> "ZBulkLoader":
        kwargs.setdefault("cooldown_seconds", config.cooldown_seconds)
        kwargs.setdefault("max_generations", config.max_generations)
        kwargs.setdefault("generation_backoff", config.generation_backoff)
        return cls(gateway, **kwargs)

    def cooldown_for(self, generation: int) -> float:
        return self.cooldown_seconds * (self.generation_backoff ** generation)

    async def insert(self, total_count: int, concurrency_limit: int = DEFAULT_CONCURRENCY) -> RunResult:
        if total_count < 0:
            raise ValueError(f"total_count must be non-negative, got {total_count}")
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be at least 1, got {concurrency_limit}")
        if total_count == 0:
            return RunResult(requested=0)

        batches: List[BatchResult] = []
        remaining = total_count
        generation = 0
        while remaining > 0 and generation < self.max_generations:
            if generation:
                logger.info("Retrying shortfall of %d document(s), generation %d of %d",
                            remaining, generation + 1, self.max_generations)
            documents = self.generator.generate(remaining)
            inserted = 0
            for index, batch in enumerate(partition(documents, concurrency_limit)):
                if batches:
                    delay = self.cooldown_for(generation)
                    if delay > 0:
                        await self._sleep(delay)
                result = await self._run_batch(batch, generation, index)
                batches.append(result)
                inserted += result.successes
                if self.on_batch is not None:
                    self.on_batch(result)
            remaining -= inserted
            logger.info("Generation %d: %d of %d document(s) added, %d short",
                        generation, inserted, len(documents), remaining)
            generation += 1

        run = summarize_run(batches, total_count)
        run.generations = generation
        if run.shortfall:
            logger.warning(
                "Run ended short after %d generation(s): %d of %d requested document(s) added "
                "(%d attempted, %d failed)",
                run.generations, run.successes, run.requested, run.attempted, run.failures,
            )
        else:
            logger.info("%d documents added, took %dms, %.2f RU (%.1f docs/s, %.1f RU/s)",
                        run.successes, run.elapsed_ms, run.request_charge,
                        run.docs_per_second, run.charge_per_second)
        return run

    async def _run_batch(self, batch: Sequence[Document], generation: int, index: int) -> BatchResult:
        start = time.perf_counter()
        settled = await asyncio.gather(
            *(self.gateway.create_one(document) for document in batch),
            return_exceptions=True,
        )
        elapsed_ms = int(round((time.perf_counter() - start) * 1000))

        outcomes: List[OperationOutcome] = []
        for item in settled:
            if isinstance(item, BaseException):
                logger.error("create_one raised instead of returning an outcome: %r", item)
                item = OperationOutcome.fail(str(item), exc=item, failure_kind=FailureKind.ERROR)
            outcomes.append(item)

        result = summarize_batch(
            outcomes,
            elapsed_ms,
            batch_size=len(batch),
            generation=generation,
            index=index,
            keep_documents=self.keep_documents,
        )
        logger.info("%d documents added, took %dms, %.2f RU (generation %d, batch %d)",
                    result.successes, result.elapsed_ms, result.request_charge, generation, index)
        if result.failures:
            kinds = Counter(o.failure_kind.value for o in outcomes if not o.success)
            logger.warning("%d of %d insert(s) failed in batch %d: %s", result.failures, result.batch_size,
                           index, ", ".join(f"{k}={v}" for k, v in sorted(kinds.items())))
        return result
