import logging
from decimal import Decimal
from typing import Any, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from finance_engine.core.config import settings
from finance_engine.models.alert_rule import AlertRule, Suppression
from finance_engine.models.transaction import Transaction
from finance_engine.utils.normalizer import normalize_record

logger = logging.getLogger(__name__)


def _table(name: str, region: str):
    return boto3.resource("dynamodb", region_name=region).Table(name)


def _error_message(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Message", str(e))


class DynamoAlertStore:
    """
    Alert rules in a DynamoDB table keyed by ``rule_id``.

    The suppression pair is only ever written through a conditional update,
    so two writers that read the same state cannot both win.
    """

    def __init__(self, table=None, table_name: str = None, region: str = None):
        self._table = table
        self.table_name = table_name or settings.DYNAMO_ALERT_RULES_TABLE
        self.region = region or settings.DYNAMO_REGION

    @property
    def table(self):
        if self._table is None:
            self._table = _table(self.table_name, self.region)
        return self._table

    def put_rule(self, rule: AlertRule) -> bool:
        try:
            self.table.put_item(Item=_convert_for_dynamo(rule.to_record()))
            return True
        except ClientError as e:
            logger.error(f"put_rule failed: {_error_message(e)}")
            return False

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        try:
            response = self.table.get_item(Key={"rule_id": rule_id})
        except ClientError as e:
            logger.error(f"get_rule failed: {_error_message(e)}")
            return None
        item = response.get("Item")
        return AlertRule.from_record(_from_dynamo(item)) if item else None

    def list_enabled_rules(self, category_id: str = None, account_id: str = None) -> List[AlertRule]:
        items = []
        kwargs = {"FilterExpression": Attr("enabled").eq(True)}
        try:
            while True:
                response = self.table.scan(**kwargs)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            logger.error(f"list_enabled_rules failed: {_error_message(e)}")
            return []

        rules = []
        for item in items:
            try:
                rules.append(AlertRule.from_record(_from_dynamo(item)))
            except ValueError as e:
                logger.warning(f"Skipping malformed alert rule {item.get('rule_id')}: {str(e)}")

        if category_id is None and account_id is None:
            return rules
        return [rule for rule in rules if rule.applies_to(category_id, account_id)]

    def update_rule_suppression(self, rule_id: str, expected: Suppression, new: Suppression) -> bool:
        values = {
            ":new_pct": new.percentage,
            ":new_period": new.period_id,
            ":exp_pct": expected.percentage,
            ":exp_period": expected.period_id,
        }
        condition = "last_alert_percentage = :exp_pct AND last_alert_period = :exp_period"
        if expected == Suppression():
            # Rules written before suppression tracking carry neither attribute
            condition = f"attribute_not_exists(last_alert_period) OR ({condition})"

        try:
            self.table.update_item(
                Key={"rule_id": rule_id},
                UpdateExpression="SET last_alert_percentage = :new_pct, last_alert_period = :new_period",
                ConditionExpression=f"attribute_exists(rule_id) AND ({condition})",
                ExpressionAttributeValues=_convert_for_dynamo(values),
            )
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            logger.error(f"update_rule_suppression failed: {_error_message(e)}")
            return False


class DynamoTransactionStore:
    """Transactions keyed by ``owner_id`` with sort key ``tx_key`` = ``<date_iso>#<id>``."""

    def __init__(self, table=None, table_name: str = None, region: str = None):
        self._table = table
        self.table_name = table_name or settings.DYNAMO_TRANSACTIONS_TABLE
        self.region = region or settings.DYNAMO_REGION

    @property
    def table(self):
        if self._table is None:
            self._table = _table(self.table_name, self.region)
        return self._table

    def add_transaction(self, owner_id: str, transaction: Transaction) -> bool:
        item = transaction.to_dict()
        item.update({"owner_id": owner_id, "tx_key": f"{transaction.date_iso}#{transaction.id}"})
        item = {k: v for k, v in item.items() if v is not None}
        try:
            self.table.put_item(Item=_convert_for_dynamo(item))
            return True
        except ClientError as e:
            logger.error(f"add_transaction failed: {_error_message(e)}")
            return False

    def list_transactions(self, owner_id: str, since: Optional[str] = None) -> List[Transaction]:
        condition = Key("owner_id").eq(owner_id)
        if since:
            condition = condition & Key("tx_key").gte(since)

        items = []
        kwargs = {"KeyConditionExpression": condition}
        try:
            while True:
                response = self.table.query(**kwargs)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            logger.error(f"list_transactions failed: {_error_message(e)}")
            return []

        return [normalize_record(_from_dynamo(item), settings.REPORTING_CURRENCY) for item in items]


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    """
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj
