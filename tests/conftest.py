"""Shared fixtures: an in-process DynamoDB (moto) with the afterspace table."""

from datetime import datetime, timezone

import boto3
import pytest
from moto import mock_aws

from afterspace import schema
from afterspace.backend import Backend
from afterspace.config import QueryStrategy, Settings
from afterspace.router import IndexRouter
from afterspace.store import Store

REGION = "us-east-1"
TABLE = "afterspace-test"


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can reach a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture
def settings():
    return Settings(table=TABLE, region=REGION)


@pytest.fixture
def aws():
    with mock_aws():
        yield


@pytest.fixture
def client(aws):
    return boto3.client("dynamodb", region_name=REGION)


@pytest.fixture
def table(client, settings):
    """Table with both secondary indexes."""
    schema.create_table(client, settings, poll_seconds=0)
    return boto3.resource("dynamodb", region_name=REGION).Table(TABLE)


@pytest.fixture
def store(table):
    return Store(table)


def make_backend(store, settings, strategy=QueryStrategy.SCAN_FALLBACK):
    router = IndexRouter.from_settings(store, settings)
    router.strategy = strategy
    return Backend(store, router, settings.geohash_precision)


@pytest.fixture
def backend(store, settings):
    return make_backend(store, settings)


@pytest.fixture
def bare_table(client, settings):
    """Table without any secondary index."""
    schema.create_table(client, settings, with_indexes=False, poll_seconds=0)
    return boto3.resource("dynamodb", region_name=REGION).Table(TABLE)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)
