from decimal import Decimal

from botocore.exceptions import ClientError

from conftest import build_transaction
from finance_engine.db.dynamo import DynamoAlertStore, DynamoTransactionStore, _convert_for_dynamo, _from_dynamo
from finance_engine.models.alert_rule import AlertRule, RuleType, Suppression


def client_error(code, operation="UpdateItem"):
    return ClientError({"Error": {"Code": code, "Message": f"{code} raised"}}, operation)


class FakeTable:
    """Records calls and replays canned responses; no AWS access."""

    def __init__(self, pages=None, item=None, error=None):
        self.pages = list(pages or [])
        self.item = item
        self.error = error
        self.calls = []

    def _record(self, name, kwargs):
        self.calls.append((name, kwargs))
        if self.error is not None:
            raise self.error

    def put_item(self, **kwargs):
        self._record("put_item", kwargs)

    def get_item(self, **kwargs):
        self._record("get_item", kwargs)
        return {"Item": self.item} if self.item else {}

    def update_item(self, **kwargs):
        self._record("update_item", kwargs)
        return {}

    def scan(self, **kwargs):
        self._record("scan", kwargs)
        return self.pages.pop(0)

    def query(self, **kwargs):
        self._record("query", kwargs)
        return self.pages.pop(0)


rule_item = {
    "rule_id": "r1",
    "rule_type": "BUDGET_LIMIT",
    "threshold": Decimal("1000"),
    "period": "MONTHLY",
    "enabled": True,
    "category_ids": ["food"],
    "last_alert_percentage": Decimal("90"),
    "last_alert_period": "2024-05",
}


def test_decimal_helpers():
    converted = _convert_for_dynamo({"a": 1.5, "b": [2.25], "c": True, "d": 3})
    assert converted == {"a": Decimal("1.5"), "b": [Decimal("2.25")], "c": True, "d": 3}
    assert _from_dynamo({"a": Decimal("1.5"), "b": Decimal("4")}) == {"a": 1.5, "b": 4}


def test_get_rule_maps_record():
    store = DynamoAlertStore(table=FakeTable(item=rule_item))
    rule = store.get_rule("r1")
    assert rule.rule_type == RuleType.BUDGET_LIMIT
    assert rule.threshold == 1000.0
    assert rule.suppression == Suppression(90, "2024-05")
    assert rule.category_filter.matches("food")


def test_get_rule_client_error_returns_none():
    store = DynamoAlertStore(table=FakeTable(error=client_error("ResourceNotFoundException", "GetItem")))
    assert store.get_rule("r1") is None


def test_list_enabled_rules_follows_pages():
    table = FakeTable(
        pages=[
            {"Items": [rule_item], "LastEvaluatedKey": {"rule_id": "r1"}},
            {"Items": [dict(rule_item, rule_id="r2", threshold=Decimal("-5"))]},
        ]
    )
    rules = DynamoAlertStore(table=table).list_enabled_rules()
    assert [r.id for r in rules] == ["r1"]
    assert table.calls[1][1]["ExclusiveStartKey"] == {"rule_id": "r1"}


def test_list_enabled_rules_filters_by_category():
    table = FakeTable(pages=[{"Items": [rule_item]}])
    assert DynamoAlertStore(table=table).list_enabled_rules(category_id="rent") == []


def test_suppression_update_is_conditional():
    table = FakeTable()
    store = DynamoAlertStore(table=table)

    assert store.update_rule_suppression("r1", Suppression(), Suppression(90, "2024-05")) is True
    name, kwargs = table.calls[0]
    assert name == "update_item"
    assert "attribute_not_exists(last_alert_period)" in kwargs["ConditionExpression"]
    assert kwargs["ExpressionAttributeValues"][":new_pct"] == 90
    assert kwargs["ExpressionAttributeValues"][":exp_period"] == ""

    store.update_rule_suppression("r1", Suppression(90, "2024-05"), Suppression(100, "2024-05"))
    assert "attribute_not_exists(last_alert_period)" not in table.calls[1][1]["ConditionExpression"]


def test_lost_race_and_errors_return_false():
    lost = DynamoAlertStore(table=FakeTable(error=client_error("ConditionalCheckFailedException")))
    assert lost.update_rule_suppression("r1", Suppression(), Suppression(90, "2024-05")) is False

    broken = DynamoAlertStore(table=FakeTable(error=client_error("ProvisionedThroughputExceededException")))
    assert broken.update_rule_suppression("r1", Suppression(), Suppression(90, "2024-05")) is False


def test_put_rule_serializes_record():
    table = FakeTable()
    rule = AlertRule(id="r9", rule_type=RuleType.LARGE_TRANSACTION, threshold=250.5)
    assert DynamoAlertStore(table=table).put_rule(rule) is True
    item = table.calls[0][1]["Item"]
    assert item["threshold"] == Decimal("250.5")
    assert item["last_alert_period"] == ""


def test_transaction_store_round_trip():
    tx = build_transaction(id="t1", date_iso="2024-05-10T12:00:00", amount=12.5, converted_amount=46.25)
    table = FakeTable()
    store = DynamoTransactionStore(table=table)
    assert store.add_transaction("owner", tx) is True

    stored = table.calls[0][1]["Item"]
    assert stored["tx_key"] == "2024-05-10T12:00:00#t1"
    assert stored["converted_amount"] == Decimal("46.25")
    assert "person_company" not in stored

    table.pages = [{"Items": [stored]}]
    loaded = store.list_transactions("owner", since="2024-05-01")
    assert loaded == [tx]


def test_transaction_store_client_error_returns_empty():
    store = DynamoTransactionStore(table=FakeTable(error=client_error("AccessDeniedException", "Query")))
    assert store.list_transactions("owner") == []
