"""Table and index provisioning."""
import logging
import time

from botocore.exceptions import ClientError

from afterspace.config import Settings

logger = logging.getLogger(__name__)

THROUGHPUT = {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5}


def index_definitions(settings: Settings):
    related = {
        "IndexName": settings.related_index,
        "KeySchema": [{"AttributeName": "GSI1PK", "KeyType": "HASH"}, {"AttributeName": "GSI1SK", "KeyType": "RANGE"}],
        "Projection": {"ProjectionType": "ALL"},
    }
    geohash = {
        "IndexName": settings.geohash_index,
        "KeySchema": [{"AttributeName": "geohash_prefix", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
        "Projection": {"ProjectionType": "ALL"},
    }
    attributes = {
        settings.related_index: [
            {"AttributeName": "GSI1PK", "AttributeType": "S"},
            {"AttributeName": "GSI1SK", "AttributeType": "S"},
        ],
        settings.geohash_index: [{"AttributeName": "geohash_prefix", "AttributeType": "S"}],
    }
    return [related, geohash], attributes


def create_table(client, settings: Settings, with_indexes: bool = True, poll_seconds: float = 3) -> None:
    """Create the ``pk``/``sk`` table (and both GSIs) unless it already exists."""
    indexes, index_attributes = index_definitions(settings)
    attributes = [{"AttributeName": "pk", "AttributeType": "S"}, {"AttributeName": "sk", "AttributeType": "S"}]
    kwargs = {
        "TableName": settings.table,
        "KeySchema": [{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
        "BillingMode": "PAY_PER_REQUEST",
    }
    if with_indexes:
        for idx in indexes:
            for attr in index_attributes[idx["IndexName"]]:
                if attr not in attributes:
                    attributes.append(attr)
        kwargs["GlobalSecondaryIndexes"] = indexes
    kwargs["AttributeDefinitions"] = attributes

    try:
        client.create_table(**kwargs)
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") != "ResourceInUseException":
            raise
        logger.info("table %s already exists", settings.table)
    else:
        logger.info("creating table %s", settings.table)
    client.get_waiter("table_exists").wait(
        TableName=settings.table, WaiterConfig={"Delay": max(1, int(poll_seconds))}
    )
    if with_indexes:
        ensure_indexes(client, settings, poll_seconds=poll_seconds)


def ensure_indexes(client, settings: Settings, poll_seconds: float = 3) -> None:
    """Add any missing GSI and wait until every index reports ACTIVE."""
    indexes, index_attributes = index_definitions(settings)
    desc = client.describe_table(TableName=settings.table)["Table"]
    existing = {i["IndexName"] for i in desc.get("GlobalSecondaryIndexes", []) or []}
    provisioned = desc.get("BillingModeSummary", {}).get("BillingMode", "PROVISIONED") == "PROVISIONED"

    for idx in indexes:
        name = idx["IndexName"]
        if name in existing:
            continue
        create = dict(idx)
        if provisioned:
            create["ProvisionedThroughput"] = THROUGHPUT
        logger.info("creating index %s on %s", name, settings.table)
        client.update_table(
            TableName=settings.table,
            AttributeDefinitions=index_attributes[name],
            GlobalSecondaryIndexUpdates=[{"Create": create}],
        )
        # one index can be created per update
        _wait_active(client, settings.table, name, poll_seconds)

    for name in existing:
        _wait_active(client, settings.table, name, poll_seconds)


def _wait_active(client, table: str, index_name: str, poll_seconds: float) -> None:
    while True:
        gsi = client.describe_table(TableName=table)["Table"].get("GlobalSecondaryIndexes", []) or []
        if any(i["IndexName"] == index_name and i.get("IndexStatus", "ACTIVE") == "ACTIVE" for i in gsi):
            return
        time.sleep(poll_seconds)
