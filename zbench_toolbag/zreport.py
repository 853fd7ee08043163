# zbench_toolbag/zreport.py
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

Trial = Tuple[int, int, float]
LINE_END = "\r\n"


class ZReportSink:
    """
    Appends benchmark rows to CSV reports.

    A new report starts with a two-line header::

        ,Time Taken(ms),,Request Charge (RU)
        Total Documents,1,2,1,2

    followed by one row per ``append``: the document count, every trial's
    elapsed time, then every trial's request charge.

    A report that is locked by another process (a spreadsheet holding it open)
    is retried with exponential backoff. Rows that still cannot be written stay
    queued and go out ahead of the next row for the same report.
    """

    def __init__(
        self,
        report_dir: Union[str, Path] = ".",
        *,
        max_attempts: int = 5,
        wait_min: float = 0.5,
        wait_max: float = 10.0,
        on_locked: Optional[Callable[[Path, int], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.report_dir = Path(report_dir)
        self.max_attempts = max_attempts
        self.wait_min = wait_min
        self.wait_max = wait_max
        self.on_locked = on_locked
        self._pending: Dict[Path, List[str]] = {}
        self._trials: Dict[Path, int] = {}

    def path_for(self, destination: Union[str, Path]) -> Path:
        path = Path(destination)
        if path.suffix.lower() != ".csv":
            path = path.with_name(path.name + ".csv")
        return path if path.is_absolute() else self.report_dir / path

    def pending(self, destination: Union[str, Path]) -> List[str]:
        return list(self._pending.get(self.path_for(destination), []))

    def unwritten(self) -> Dict[Path, List[str]]:
        """Every report that still has queued rows."""
        return {path: list(rows) for path, rows in self._pending.items() if rows}

    @staticmethod
    def header_lines(trials: int) -> List[str]:
        trial_numbers = "," + ",".join(str(i) for i in range(1, trials + 1))
        return [
            ",Time Taken(ms)" + "," * trials + "Request Charge (RU)",
            "Total Documents" + trial_numbers * 2,
        ]

    @staticmethod
    def as_trial(result: Any) -> Trial:
        if isinstance(result, (tuple, list)):
            count, elapsed, charge = result
        else:
            count, elapsed, charge = result.document_count, result.elapsed_ms, result.request_charge
        return (-1 if count is None else int(count)), int(elapsed), float(charge)

    @staticmethod
    def format_row(trials: Sequence[Trial]) -> str:
        elapsed = "".join(f",{t[1]}" for t in trials)
        charges = "".join(f",{t[2]}" for t in trials)
        return f"{trials[0][0]}{elapsed}{charges}"

    def append(self, results: Sequence[Any], destination: Union[str, Path]) -> bool:
        trials = [self.as_trial(r) for r in results]
        if not trials:
            raise ValueError("append needs at least one result")
        path = self.path_for(destination)
        self._pending.setdefault(path, []).append(self.format_row(trials))
        self._trials.setdefault(path, len(trials))
        return self._flush_path(path)

    def flush(self) -> bool:
        """Retry every queued row; True when nothing is left pending."""
        results = [self._flush_path(path) for path in list(self._pending)]
        return all(results)

    def _flush_path(self, path: Path) -> bool:
        rows = self._pending[path]
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.wait_min, min=self.wait_min, max=self.wait_max),
            retry=retry_if_exception_type(OSError),
            before_sleep=lambda state: self._locked(path, state.attempt_number, state.outcome.exception()),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._write(path, self._trials[path], rows)
        except OSError as e:
            logger.error("Could not write %s after %d attempt(s): %s. %d row(s) kept for the next append.",
                         path, self.max_attempts, e, len(rows))
            return False

        del self._pending[path]
        del self._trials[path]
        logger.info("Wrote %d row(s) to %s", len(rows), path)
        return True

    def _locked(self, path: Path, attempt: int, exc: Optional[BaseException]):
        logger.warning("The file: %s is in use (%s), retrying (attempt %d of %d).",
                       path, exc, attempt, self.max_attempts)
        if self.on_locked is not None:
            self.on_locked(path, attempt)

    def _write(self, path: Path, trials: int, rows: List[str]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        new_file = not path.exists()
        with open(path, "a", newline="", encoding="utf-8") as fh:
            if new_file:
                fh.write(LINE_END.join(self.header_lines(trials)) + LINE_END)
            fh.write("".join(row + LINE_END for row in rows))

    def load(self, destination: Union[str, Path]) -> pd.DataFrame:
        """Read a report back with named columns: document_count, time_ms_<n>, charge_ru_<n>."""
        path = self.path_for(destination)
        df = pd.read_csv(path, skiprows=2, header=None)
        trials = (df.shape[1] - 1) // 2
        df.columns = (
            ["document_count"]
            + [f"time_ms_{i}" for i in range(1, trials + 1)]
            + [f"charge_ru_{i}" for i in range(1, trials + 1)]
        )
        return df
