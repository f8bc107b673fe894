#!/usr/bin/env python3
import boto3
from dotenv import load_dotenv

from afterspace import Settings, configure_logging
from afterspace.schema import create_table

load_dotenv()
settings = Settings.from_env()
configure_logging(settings.log_level)

client = boto3.client("dynamodb", region_name=settings.region, endpoint_url=settings.endpoint_url)
# table first, then each GSI in turn until it reports ACTIVE
create_table(client, settings)

desc = client.describe_table(TableName=settings.table)["Table"]
print("Table", settings.table, "->", desc["TableStatus"])
for idx in desc.get("GlobalSecondaryIndexes", []) or []:
    print("  index", idx["IndexName"], [k["AttributeName"] for k in idx["KeySchema"]], idx.get("IndexStatus"))
