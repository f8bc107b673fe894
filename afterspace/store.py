"""Thin typed layer over the shared boto3 ``Table``.

All rows go through here. Floats become ``Decimal`` on the way in and
numbers come back as ``int``/``float``; botocore failures surface as
``StoreUnavailableError`` (or ``IndexUnavailableError`` for index queries).
Nothing is retried here beyond what the botocore client config allows.
"""
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from afterspace.errors import ConflictError, IndexUnavailableError, StoreUnavailableError
from afterspace.keys import GUARD_SK, EntityType, next_sk

logger = logging.getLogger(__name__)

Item = Dict[str, Any]
Predicate = Callable[[Item], bool]

# sort-key moves tried before a create gives up
SK_ATTEMPTS = 5


def to_store(value):
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_store(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [to_store(v) for v in value]
    return value


def from_store(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_store(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_store(v) for v in value]
    if isinstance(value, set):
        return {from_store(v) for v in value}
    return value


def _failed_condition(exc: ClientError) -> bool:
    code = exc.response.get("Error", {}).get("Code")
    if code == "ConditionalCheckFailedException":
        return True
    if code == "TransactionCanceledException":
        reasons = exc.response.get("CancellationReasons") or []
        if reasons:
            return any(r.get("Code") == "ConditionalCheckFailed" for r in reasons)
        return "ConditionalCheckFailed" in exc.response.get("Error", {}).get("Message", "")
    return False


class Store:
    def __init__(self, table):
        self.table = table

    @classmethod
    def from_settings(cls, settings) -> "Store":
        ddb = boto3.resource(
            "dynamodb",
            region_name=settings.region,
            endpoint_url=settings.endpoint_url,
            config=settings.boto_config(),
        )
        return cls(ddb.Table(settings.table))

    @property
    def table_name(self) -> str:
        return self.table.name

    # writes

    def put(self, item: Item) -> None:
        try:
            self.table.put_item(Item=to_store(item))
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailableError("put_item", exc) from exc

    def put_if_absent(self, item: Item) -> bool:
        """Insert unless a row with the same key exists. Returns False on collision."""
        try:
            self.table.put_item(Item=to_store(item), ConditionExpression=Attr("pk").not_exists())
        except ClientError as exc:
            if _failed_condition(exc):
                return False
            raise StoreUnavailableError("put_item", exc) from exc
        except BotoCoreError as exc:
            raise StoreUnavailableError("put_item", exc) from exc
        return True

    def update_fields(
        self,
        pk: str,
        sk: str,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Item:
        """SET the non-null ``fields`` on an existing row and return the new row.

        ``expected`` maps attribute names to the value they must still hold
        (``None`` meaning absent); a mismatch raises ``ConflictError``.
        """
        fields = {k: v for k, v in fields.items() if v is not None and k not in ("pk", "sk")}
        if not fields:
            return self.get(pk, sk)

        names, values, assignments = {}, {}, []
        for n, (name, value) in enumerate(fields.items()):
            names[f"#u{n}"] = name
            values[f":u{n}"] = to_store(value)
            assignments.append(f"#u{n} = :u{n}")

        condition = Attr("pk").exists()
        for name, value in (expected or {}).items():
            condition &= Attr(name).not_exists() if value is None else Attr(name).eq(to_store(value))

        try:
            resp = self.table.update_item(
                Key={"pk": pk, "sk": sk},
                UpdateExpression="SET " + ", ".join(assignments),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ConditionExpression=condition,
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if _failed_condition(exc):
                raise ConflictError(f"{pk}/{sk} changed or disappeared before update") from exc
            raise StoreUnavailableError("update_item", exc) from exc
        except BotoCoreError as exc:
            raise StoreUnavailableError("update_item", exc) from exc
        return from_store(resp.get("Attributes", {}))

    def delete(self, pk: str, sk: str) -> None:
        try:
            self.table.delete_item(Key={"pk": pk, "sk": sk})
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailableError("delete_item", exc) from exc

    def insert(self, item: Item, attempts: int = SK_ATTEMPTS) -> Item:
        """Create ``item`` without overwriting any existing row.

        Sort keys are write instants, so a row written at the same instant
        to the same partition holds the key already; the sort key then moves
        forward one microsecond. Returns the item as stored.
        """
        item = dict(item)
        for _ in range(attempts):
            if self.put_if_absent(item):
                return item
            logger.debug("%s/%s already taken, moving sort key", item["pk"], item["sk"])
            item["sk"] = next_sk(item["sk"])
        raise ConflictError(f"no free sort key in {item['pk']} after {attempts} attempts")

    def put_unique(self, item: Item, guard_pk: str, attempts: int = SK_ATTEMPTS) -> bool:
        """Write ``item`` together with a guard row, failing if the guard exists.

        Returns False when another writer already holds the guard. Neither
        row overwrites an existing one; a taken sort key is moved forward as
        in :meth:`insert`.
        """
        item = dict(item)
        for _ in range(attempts):
            if self._put_guarded(item, guard_pk):
                return True
            if self.get(guard_pk, GUARD_SK) is not None:
                return False
            logger.debug("%s/%s already taken, moving sort key", item["pk"], item["sk"])
            item["sk"] = next_sk(item["sk"])
        raise ConflictError(f"no free sort key in {item['pk']} after {attempts} attempts")

    def _put_guarded(self, item: Item, guard_pk: str) -> bool:
        guard = {"pk": guard_pk, "sk": GUARD_SK, "entityType": EntityType.GUARD.value, "target": f"{item['pk']}|{item['sk']}"}
        client = self.table.meta.client
        try:
            client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table_name,
                            "Item": guard,
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table_name,
                            "Item": to_store(item),
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                ]
            )
        except ClientError as exc:
            if _failed_condition(exc):
                return False
            raise StoreUnavailableError("transact_write_items", exc) from exc
        except BotoCoreError as exc:
            raise StoreUnavailableError("transact_write_items", exc) from exc
        return True

    def delete_unique(self, pk: str, sk: str, guard_pk: str) -> None:
        client = self.table.meta.client
        try:
            client.transact_write_items(
                TransactItems=[
                    {"Delete": {"TableName": self.table_name, "Key": {"pk": guard_pk, "sk": GUARD_SK}}},
                    {"Delete": {"TableName": self.table_name, "Key": {"pk": pk, "sk": sk}}},
                ]
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailableError("transact_write_items", exc) from exc

    # reads

    def get(self, pk: str, sk: str) -> Optional[Item]:
        try:
            resp = self.table.get_item(Key={"pk": pk, "sk": sk}, ConsistentRead=True)
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailableError("get_item", exc) from exc
        item = resp.get("Item")
        return from_store(item) if item is not None else None

    def iter_partition(self, pk: str, newest_first: bool = True) -> Iterator[Item]:
        kwargs = {
            "KeyConditionExpression": Key("pk").eq(pk),
            "ScanIndexForward": not newest_first,
            "ConsistentRead": True,
        }
        while True:
            try:
                resp = self.table.query(**kwargs)
            except (ClientError, BotoCoreError) as exc:
                raise StoreUnavailableError("query", exc) from exc
            for item in resp.get("Items", []):
                yield from_store(item)
            if "LastEvaluatedKey" not in resp:
                return
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]

    def query_partition(self, pk: str, predicate: Optional[Predicate] = None) -> List[Item]:
        return [i for i in self.iter_partition(pk) if predicate is None or predicate(i)]

    def latest(self, pk: str, predicate: Optional[Predicate] = None) -> Optional[Item]:
        """Newest row of the partition accepted by ``predicate``."""
        for item in self.iter_partition(pk, newest_first=True):
            if predicate is None or predicate(item):
                return item
        return None

    def query_index(self, index_name: str, key_attr: str, value: str) -> List[Item]:
        kwargs = {"IndexName": index_name, "KeyConditionExpression": Key(key_attr).eq(value)}
        items: List[Item] = []
        while True:
            try:
                resp = self.table.query(**kwargs)
            except (ClientError, BotoCoreError) as exc:
                raise IndexUnavailableError(index_name, exc) from exc
            items.extend(from_store(i) for i in resp.get("Items", []))
            if "LastEvaluatedKey" not in resp:
                return items
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]

    def scan(self, filter_expression=None) -> List[Item]:
        kwargs: Dict[str, Any] = {"ConsistentRead": True}
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        items: List[Item] = []
        pages = 0
        while True:
            try:
                resp = self.table.scan(**kwargs)
            except (ClientError, BotoCoreError) as exc:
                raise StoreUnavailableError("scan", exc) from exc
            pages += 1
            items.extend(from_store(i) for i in resp.get("Items", []))
            if "LastEvaluatedKey" not in resp:
                break
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        logger.debug("scan of %s read %d page(s), %d match(es)", self.table_name, pages, len(items))
        return items


def newest_by(items: List[Item], key: Callable[[Item], Any]) -> List[Item]:
    """Keep the newest row (highest ``sk``) for each ``key``, newest first."""
    best: Dict[Any, Item] = {}
    for item in items:
        k = key(item)
        if k not in best or str(item.get("sk", "")) > str(best[k].get("sk", "")):
            best[k] = item
    return sorted(best.values(), key=lambda i: str(i.get("sk", "")), reverse=True)
