# zbench_toolbag/zbench_cli.py
"""
Command-line harness.

    zbench insert --count 45000 --concurrency 20000
    zbench read 6f1c... 9a42...
    zbench query '{"metadata.customerRef": "CUST-104233"}'
    zbench count
    zbench menu

Every command makes sure the container exists and appends its measurements to
the matching CSV report in ZBENCH_REPORT_DIR. Rows that cannot be written
because the report is locked are printed and the command exits with 4.
"""
import argparse
import asyncio
import dataclasses
import logging
import random
import sys
from pathlib import Path
from typing import Callable, List, Optional

from zbench_toolbag.zbulk_loader import ZBulkLoader
from zbench_toolbag.zconstants import INSERT_REPORT, QUERY_REPORT, READ_REPORT, BenchConfig
from zbench_toolbag.zdocument import DocumentGenerator
from zbench_toolbag.zgateway import ZCosmosGateway
from zbench_toolbag.zmetrics import RunResult
from zbench_toolbag.zreport import ZReportSink

logger = logging.getLogger(__name__)


class ZBenchHarness:
    """Drives the gateway, the bulk loader and the report sink for one session."""

    def __init__(
        self,
        gateway: ZCosmosGateway,
        loader: ZBulkLoader,
        sink: ZReportSink,
        config: BenchConfig,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ):
        self.gateway = gateway
        self.loader = loader
        self.sink = sink
        self.config = config
        self.input = input_fn
        self.output = output_fn

    @classmethod
    def from_config(cls, config: BenchConfig, *, seed: Optional[int] = None, interactive: bool = False,
                    **loader_overrides) -> "ZBenchHarness":
        gateway = ZCosmosGateway(config=config)
        generator = DocumentGenerator(rng=random.Random(seed))
        loader = ZBulkLoader.from_config(gateway, config, generator=generator, **loader_overrides)
        harness = cls(gateway, loader, ZReportSink(config.report_dir), config)
        if interactive:
            harness.sink.on_locked = harness._prompt_unlock
        return harness

    def _prompt_unlock(self, path: Path, attempt: int) -> None:
        self.input(f"The file: {path} is in use, please close it and press Enter to try again. ")

    async def prepare(self) -> bool:
        result = await self.gateway.ensure_container()
        if not result.success:
            self.output(f"Error occurred when creating container: {result.error}")
        return result.success

    async def show_count(self) -> int:
        count = await self.gateway.count()
        self.output(f"Document Count: {count}")
        return count

    def _report(self, results, destination: str) -> bool:
        if self.sink.append(results, destination):
            return True
        self.output(f"Could not write to {self.sink.path_for(destination)}, it is locked. "
                    "The row is kept and will be retried before exit.")
        return False

    def flush_reports(self) -> bool:
        """Retry queued report rows; print whatever is still unwritten."""
        if self.sink.flush():
            return True
        for path, rows in self.sink.unwritten().items():
            self.output(f"Unwritten row(s) for {path}:")
            for row in rows:
                self.output(row)
        return False

    async def run_insert(self, amount: int, concurrency: Optional[int] = None) -> RunResult:
        run = await self.loader.insert(amount, concurrency or self.config.concurrency)
        for key, value in run.summary().items():
            self.output(f"{key:<16}: {value}")
        if not run.complete:
            self.output(f"Shortfall: {run.shortfall} of {run.requested} document(s) were not inserted.")
        if run.requested:
            count = await self.gateway.count()
            self._report([(count, run.elapsed_ms, run.request_charge)], INSERT_REPORT)
        return run

    async def run_reads(self, document_refs: List[str]):
        outcomes = await self.gateway.read_many(document_refs)
        for ref, outcome in zip(document_refs, outcomes):
            if outcome.success:
                self.output(f"{ref}: {outcome.elapsed_ms}ms, {outcome.request_charge} RU")
            else:
                self.output(f"{ref}: {outcome.failure_kind.value} ({outcome.error})")
        if outcomes:
            self._report(outcomes, READ_REPORT)
        return outcomes

    async def run_query(self, query_text: str, show: bool = False):
        result = await self.gateway.query(query_text)
        if not result.success:
            self.output(f"Query failed: {result.error}")
            return result
        self.output(f"{len(result.documents)} document(s) over {result.pages} page(s), "
                    f"{result.elapsed_ms}ms, {result.request_charge:.2f} RU")
        if show:
            self.output(result.to_json())
        self._report([result], QUERY_REPORT)
        return result

    def _prompt_amount(self) -> Optional[int]:
        entry = self.input("Amount to add: ").strip()
        if not entry:
            return None
        try:
            amount = int(entry)
        except ValueError:
            self.output(f"'{entry}' is not a whole number.")
            return None
        if amount < 0:
            self.output("Amount must not be negative.")
            return None
        return amount

    def _prompt_ids(self) -> List[str]:
        ids = []
        while True:
            entry = self.input("Enter id to query (leave blank to exit): ").strip()
            if not entry:
                return ids
            ids.append(entry)

    async def menu(self) -> None:
        while True:
            self.output("")
            self.output("MENU")
            await self.show_count()
            self.output("Add random documents: 1")
            self.output("Read documents with point read: 2")
            self.output("Run query on container: 3")
            entry = self.input("Enter: ").strip()
            if entry == "1":
                amount = self._prompt_amount()
                if amount is not None:
                    await self.run_insert(amount)
            elif entry == "2":
                ids = self._prompt_ids()
                if ids:
                    await self.run_reads(ids)
            elif entry == "3":
                text = self.input("Enter query (JSON filter, blank to exit): ")
                if text.strip():
                    await self.run_query(text)
            else:
                break
        self.output("Terminated")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zbench",
        description="Load-test a document container: bulk inserts, point reads and ad-hoc queries.",
        epilog="Exit codes: 0 ok, 1 setup failed, 2 bad configuration, 3 run fell short, "
               "4 report rows left unwritten.",
    )
    sub = parser.add_subparsers(dest="command")

    insert = sub.add_parser("insert", help="Insert random documents")
    insert.add_argument("--count", type=int, required=True, help="Number of documents to insert")
    insert.add_argument("--concurrency", type=int, help="Maximum concurrent inserts per batch")
    insert.add_argument("--max-generations", type=int, help="Passes allowed to make up a shortfall")
    insert.add_argument("--cooldown", type=float, help="Seconds to wait between batches")
    insert.add_argument("--seed", type=int,
                        help="Seed for reproducible documents. The same seed yields the same references, "
                             "so rerunning it against a populated container fails with duplicate keys")
    insert.add_argument("--no-charge", action="store_true",
                        help="Skip the per-insert request-charge lookup (same as ZBENCH_TRACK_CHARGE=false). "
                             "The lookup is an extra round trip inside each timed batch, so this gives "
                             "pure throughput figures and records 0 RU")

    read = sub.add_parser("read", help="Point-read documents by reference")
    read.add_argument("ids", nargs="+", metavar="ID")

    query = sub.add_parser("query", help="Run a JSON filter query and drain every page")
    query.add_argument("text", metavar="QUERY")
    query.add_argument("--show", action="store_true", help="Print the matching documents as JSON")

    sub.add_parser("count", help="Print the container's document count")
    sub.add_parser("menu", help="Interactive menu")
    return parser


async def _run(args: argparse.Namespace, config: BenchConfig) -> int:
    if getattr(args, "no_charge", False):
        config = dataclasses.replace(config, track_request_charge=False)
    overrides = {}
    if getattr(args, "max_generations", None) is not None:
        overrides["max_generations"] = args.max_generations
    if getattr(args, "cooldown", None) is not None:
        overrides["cooldown_seconds"] = args.cooldown
    harness = ZBenchHarness.from_config(
        config, seed=getattr(args, "seed", None), interactive=args.command == "menu", **overrides
    )
    try:
        if not await harness.prepare():
            return 1
        code = await _dispatch(args, harness)
        if not harness.flush_reports():
            return 4
        return code
    finally:
        harness.gateway.close()


async def _dispatch(args: argparse.Namespace, harness: ZBenchHarness) -> int:
    if args.command == "insert":
        run = await harness.run_insert(args.count, args.concurrency)
        return 0 if run.complete else 3
    if args.command == "read":
        outcomes = await harness.run_reads(args.ids)
        return 0 if all(o.success for o in outcomes) else 3
    if args.command == "query":
        result = await harness.run_query(args.text, show=args.show)
        return 0 if result.success else 3
    if args.command == "count":
        return 0 if await harness.show_count() >= 0 else 1
    await harness.menu()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    if args.command == "insert" and args.count < 0:
        parser.error("--count must not be negative")
    if getattr(args, "concurrency", None) is not None and args.concurrency < 1:
        parser.error("--concurrency must be at least 1")
    if getattr(args, "max_generations", None) is not None and args.max_generations < 1:
        parser.error("--max-generations must be at least 1")
    if getattr(args, "cooldown", None) is not None and args.cooldown < 0:
        parser.error("--cooldown must not be negative")
    try:
        config = BenchConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    return asyncio.run(_run(args, config))


if __name__ == "__main__":
    sys.exit(main())
