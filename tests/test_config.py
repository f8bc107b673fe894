"""Environment configuration."""

import pytest

from afterspace.config import QueryStrategy, Settings
from afterspace.errors import ConfigurationError
from afterspace.store import Store


def test_defaults():
    settings = Settings.from_env({"TABLE": "yas"})
    assert settings.table == "yas"
    assert settings.region == "ap-southeast-1"
    assert settings.endpoint_url is None
    assert settings.related_index == "GSI1"
    assert settings.geohash_index == "GSI3"
    assert settings.query_strategy == QueryStrategy.SCAN_FALLBACK
    assert settings.geohash_precision == 6
    assert settings.max_attempts == 3
    assert settings.timeout_seconds == 5.0
    assert settings.log_level == "INFO"


def test_overrides():
    settings = Settings.from_env(
        {
            "TABLE": "yas",
            "AWS_REGION": "eu-west-1",
            "DYNAMODB_ENDPOINT_URL": "http://localhost:8000",
            "RELATED_INDEX": "RelatedIdx",
            "GEOHASH_INDEX": "GeoIdx",
            "QUERY_STRATEGY": "index_first",
            "GEOHASH_PRECISION": "7",
            "STORE_MAX_ATTEMPTS": "1",
            "STORE_TIMEOUT_SECONDS": "2.5",
            "LOG_LEVEL": "debug",
        }
    )
    assert settings.region == "eu-west-1"
    assert settings.endpoint_url == "http://localhost:8000"
    assert settings.related_index == "RelatedIdx"
    assert settings.geohash_index == "GeoIdx"
    assert settings.query_strategy == QueryStrategy.INDEX_FIRST
    assert settings.geohash_precision == 7
    assert settings.max_attempts == 1
    assert settings.timeout_seconds == 2.5
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {},
        {"TABLE": ""},
        {"TABLE": "yas", "QUERY_STRATEGY": "SOMETIMES"},
        {"TABLE": "yas", "GEOHASH_PRECISION": "six"},
        {"TABLE": "yas", "GEOHASH_PRECISION": "0"},
        {"TABLE": "yas", "GEOHASH_PRECISION": "13"},
        {"TABLE": "yas", "STORE_MAX_ATTEMPTS": "0"},
        {"TABLE": "yas", "STORE_TIMEOUT_SECONDS": "-1"},
        {"TABLE": "yas", "STORE_TIMEOUT_SECONDS": "soon"},
    ],
)
def test_invalid_settings(env):
    with pytest.raises(ConfigurationError):
        Settings.from_env(env)


def test_boto_config_carries_retry_policy():
    config = Settings(table="yas", max_attempts=1, timeout_seconds=2).boto_config()
    assert config.retries == {"total_max_attempts": 1, "mode": "standard"}
    assert config.connect_timeout == 2
    assert config.read_timeout == 2
    assert config.region_name == "ap-southeast-1"


@pytest.mark.parametrize("attempts", [1, 3])
def test_store_client_makes_exactly_the_configured_attempts(aws, attempts):
    settings = Settings(table="yas", region="us-east-1", max_attempts=attempts)
    client = Store.from_settings(settings).table.meta.client
    assert client.meta.config.retries["total_max_attempts"] == attempts


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("TABLE", "from-process")
    monkeypatch.setenv("QUERY_STRATEGY", "SCAN_ONLY")
    settings = Settings.from_env()
    assert settings.table == "from-process"
    assert settings.query_strategy == QueryStrategy.SCAN_ONLY
