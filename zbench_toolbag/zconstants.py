# zbench_toolbag/zconstants.py
"""
Environment-driven settings for the load-testing harness.

Values come from ``~/resources/.env_local`` (if present) and then the process
environment. ``BenchConfig.from_env()`` collects them into one object that the
gateway, the bulk loader and the CLI share.
"""
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path.home() / "resources" / ".env_local")

DEFAULT_MONGO_URI = "mongodb://127.0.0.1:27017"
DEFAULT_DATABASE_NAME = "FunctionTestDatabase"
DEFAULT_CONTAINER_NAME = "DocRefContainer"
DEFAULT_PARTITION_KEY = "/documentRef"
DEFAULT_CONCURRENCY = 5000
DEFAULT_COOLDOWN_SECONDS = 2.0
DEFAULT_MAX_GENERATIONS = 5
DEFAULT_GENERATION_BACKOFF = 2.0
DEFAULT_QUERY_PAGE_SIZE = 100
DEFAULT_MAX_POOL_SIZE = 500

INSERT_REPORT = "Cosmos_Insert_Test"
READ_REPORT = "Cosmos_Read_By_Id_Test"
QUERY_REPORT = "Cosmos_Query_Test"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


def normalize_partition_key(path: str) -> str:
    """'/documentRef' -> 'documentRef'. Nested paths become dotted field names."""
    field = path.strip().strip("/").replace("/", ".")
    if not field:
        raise ValueError("Partition key path must name a field")
    return field


@dataclass
class BenchConfig:
    mongo_uri: str = DEFAULT_MONGO_URI
    database_name: str = DEFAULT_DATABASE_NAME
    container_name: str = DEFAULT_CONTAINER_NAME
    partition_key: str = DEFAULT_PARTITION_KEY
    concurrency: int = DEFAULT_CONCURRENCY
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    max_generations: int = DEFAULT_MAX_GENERATIONS
    generation_backoff: float = DEFAULT_GENERATION_BACKOFF
    query_page_size: int = DEFAULT_QUERY_PAGE_SIZE
    max_pool_size: int = DEFAULT_MAX_POOL_SIZE
    report_dir: Path = Path(".")
    track_request_charge: bool = True

    @property
    def partition_key_field(self) -> str:
        return normalize_partition_key(self.partition_key)

    @classmethod
    def from_env(cls) -> "BenchConfig":
        return cls(
            mongo_uri=os.getenv("MONGO_URI", DEFAULT_MONGO_URI),
            database_name=os.getenv("MONGO_DATABASE_NAME", DEFAULT_DATABASE_NAME),
            container_name=os.getenv("ZBENCH_CONTAINER", DEFAULT_CONTAINER_NAME),
            partition_key=os.getenv("ZBENCH_PARTITION_KEY", DEFAULT_PARTITION_KEY),
            concurrency=_env_int("ZBENCH_CONCURRENCY", DEFAULT_CONCURRENCY),
            cooldown_seconds=_env_float("ZBENCH_COOLDOWN_SECONDS", DEFAULT_COOLDOWN_SECONDS),
            max_generations=_env_int("ZBENCH_MAX_GENERATIONS", DEFAULT_MAX_GENERATIONS),
            generation_backoff=_env_float("ZBENCH_GENERATION_BACKOFF", DEFAULT_GENERATION_BACKOFF),
            query_page_size=_env_int("ZBENCH_QUERY_PAGE_SIZE", DEFAULT_QUERY_PAGE_SIZE),
            max_pool_size=_env_int("MAX_POOL_SIZE", DEFAULT_MAX_POOL_SIZE),
            report_dir=Path(os.getenv("ZBENCH_REPORT_DIR", ".")),
            track_request_charge=_env_bool("ZBENCH_TRACK_CHARGE", True),
        )
