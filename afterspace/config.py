import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from botocore.config import Config
from dotenv import load_dotenv

from afterspace.errors import ConfigurationError


class QueryStrategy(str, Enum):
    """How relationship lookups use the secondary index.

    INDEX_FIRST: query the index, scan the base table only if the index errors.
    SCAN_FALLBACK: query the index, scan if it errors or returns no rows.
    SCAN_ONLY: always scan the base table.
    """

    INDEX_FIRST = "INDEX_FIRST"
    SCAN_FALLBACK = "SCAN_FALLBACK"
    SCAN_ONLY = "SCAN_ONLY"


@dataclass(frozen=True)
class Settings:
    table: str
    region: str = "ap-southeast-1"
    endpoint_url: Optional[str] = None
    related_index: str = "GSI1"
    geohash_index: str = "GSI3"
    query_strategy: QueryStrategy = QueryStrategy.SCAN_FALLBACK
    geohash_precision: int = 6
    max_attempts: int = 3
    timeout_seconds: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        if environ is None:
            load_dotenv()
            environ = os.environ

        table = environ.get("TABLE")
        if not table:
            raise ConfigurationError("TABLE must be set")

        strategy = environ.get("QUERY_STRATEGY", QueryStrategy.SCAN_FALLBACK.value)
        try:
            query_strategy = QueryStrategy(strategy.strip().upper())
        except ValueError:
            raise ConfigurationError(f"unknown QUERY_STRATEGY {strategy!r}") from None

        settings = cls(
            table=table,
            region=environ.get("AWS_REGION", "ap-southeast-1"),
            endpoint_url=environ.get("DYNAMODB_ENDPOINT_URL") or None,
            related_index=environ.get("RELATED_INDEX", "GSI1"),
            geohash_index=environ.get("GEOHASH_INDEX", "GSI3"),
            query_strategy=query_strategy,
            geohash_precision=_int(environ, "GEOHASH_PRECISION", 6),
            max_attempts=_int(environ, "STORE_MAX_ATTEMPTS", 3),
            timeout_seconds=_float(environ, "STORE_TIMEOUT_SECONDS", 5.0),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if not 1 <= self.geohash_precision <= 12:
            raise ConfigurationError("GEOHASH_PRECISION must be between 1 and 12")
        if self.max_attempts < 1:
            raise ConfigurationError("STORE_MAX_ATTEMPTS must be at least 1")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("STORE_TIMEOUT_SECONDS must be positive")

    def boto_config(self) -> Config:
        # total attempts including the first call; 1 means no retry (at-most-once writes)
        return Config(
            region_name=self.region,
            connect_timeout=self.timeout_seconds,
            read_timeout=self.timeout_seconds,
            retries={"total_max_attempts": self.max_attempts, "mode": "standard"},
        )


def _int(environ, name, default):
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _float(environ, name, default):
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
