import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from app.core.errors import StoreUnavailableError
from app.models.analytics import AggregateRow, DateRange, GroupBy

logger = logging.getLogger(__name__)


def aggregate_rows(expenses: Iterable[Dict[str, Any]], group_by: GroupBy) -> List[AggregateRow]:
    """
    Group expenses and sum their amounts.
    Rows are ordered by month (when grouped by month), then by total descending.
    """
    totals: Dict[Tuple[str, Optional[str]], float] = defaultdict(float)
    counts: Dict[Tuple[str, Optional[str]], int] = defaultdict(int)

    for exp in expenses:
        month = exp["timestamp"][:7] if group_by == GroupBy.CATEGORY_MONTH else None
        key = (exp["category"], month)
        totals[key] += float(exp.get("amount", 0))
        counts[key] += 1

    rows = [
        AggregateRow(category=category, month=month, total=round(total, 2), count=counts[(category, month)])
        for (category, month), total in totals.items()
    ]
    rows.sort(key=lambda row: (row.month or "", -row.total, row.category))
    return rows


class ExpenseStore:
    """
    DynamoDB-backed expense records.
    Expenses table: partition key user_id, sort key expense_id, ISO `timestamp` attribute.
    """

    def __init__(self, expenses_table, users_table=None) -> None:
        self._expenses = expenses_table
        self._users = users_table

    @classmethod
    def from_resource(cls, dynamodb, expenses_table_name: str, users_table_name: str) -> "ExpenseStore":
        return cls(dynamodb.Table(expenses_table_name), dynamodb.Table(users_table_name))

    # ------------------------------------------------------------------
    # Aggregation (read-only, used by the analytics core)
    # ------------------------------------------------------------------

    def aggregate(
        self,
        user_id: str,
        date_range: Optional[DateRange] = None,
        group_by: GroupBy = GroupBy.CATEGORY,
    ) -> List[AggregateRow]:
        """
        Sum and count a user's expenses grouped by category (or category and month).
        Raises StoreUnavailableError if DynamoDB cannot be queried.
        """
        try:
            expenses = self._query_user_expenses(user_id, date_range)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Aggregate query failed for user {user_id}: {str(e)}")
            raise StoreUnavailableError(f"Expense store unavailable: {e}") from e
        return aggregate_rows(expenses, group_by)

    def list_expenses(self, user_id: str, date_range: Optional[DateRange] = None) -> List[Dict[str, Any]]:
        try:
            expenses = self._query_user_expenses(user_id, date_range)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"list_expenses failed for user {user_id}: {str(e)}")
            return []
        return sorted(expenses, key=lambda exp: exp.get("timestamp", ""), reverse=True)

    def _query_user_expenses(self, user_id: str, date_range: Optional[DateRange]) -> List[Dict[str, Any]]:
        query_kwargs: Dict[str, Any] = {"KeyConditionExpression": Key("user_id").eq(user_id)}
        if date_range is not None:
            query_kwargs["FilterExpression"] = Attr("timestamp").gte(date_range.start_iso) & Attr(
                "timestamp"
            ).lt(date_range.end_iso)

        items: List[Dict[str, Any]] = []
        while True:
            response = self._expenses.query(**query_kwargs)
            items.extend(_from_dynamo(response.get("Items", [])))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            query_kwargs["ExclusiveStartKey"] = last_key
        return items

    # ------------------------------------------------------------------
    # Record CRUD (glue for the HTTP layer)
    # ------------------------------------------------------------------

    def put_expense(self, expense_item: dict) -> bool:
        """Insert or update an expense for a user."""
        try:
            self._expenses.put_item(Item=_convert_for_dynamo(expense_item))
            return True
        except ClientError as e:
            logger.error(f"put_expense failed: {e.response['Error']['Message']}")
            return False

    def update_expense(self, user_id: str, expense_id: str, updates: dict):
        """
        Apply partial updates to an expense. Returns the updated item or None.
        """
        if not updates:
            return None

        update_expression_parts = []
        expression_attribute_values = {}
        expression_attribute_names = {}

        for idx, (key, value) in enumerate(updates.items()):
            placeholder = f"#f{idx}"
            value_placeholder = f":v{idx}"
            update_expression_parts.append(f"{placeholder} = {value_placeholder}")
            expression_attribute_names[placeholder] = key
            expression_attribute_values[value_placeholder] = value

        try:
            response = self._expenses.update_item(
                Key={"user_id": user_id, "expense_id": expense_id},
                UpdateExpression="SET " + ", ".join(update_expression_parts),
                ConditionExpression=Attr("expense_id").exists(),
                ExpressionAttributeNames=expression_attribute_names,
                ExpressionAttributeValues=_convert_for_dynamo(expression_attribute_values),
                ReturnValues="ALL_NEW",
            )
            attributes = response.get("Attributes")
            return _from_dynamo(attributes) if attributes else None
        except ClientError as e:
            logger.error(f"update_expense failed: {e.response['Error']['Message']}")
            return None

    def delete_expense(self, user_id: str, expense_id: str) -> bool:
        """Delete a specific expense item."""
        try:
            response = self._expenses.delete_item(
                Key={"user_id": user_id, "expense_id": expense_id},
                ReturnValues="ALL_OLD",
            )
            return "Attributes" in response
        except ClientError as e:
            logger.error(f"delete_expense failed: {e.response['Error']['Message']}")
            return False

    # ------------------------------------------------------------------
    # Users (report recipients)
    # ------------------------------------------------------------------

    def get_user(self, user_id: str):
        """Get user by user_id from the Users table."""
        if self._users is None:
            return None
        try:
            response = self._users.get_item(Key={"user_id": user_id})
            item = response.get("Item")
            return _from_dynamo(item) if item else None
        except ClientError as e:
            logger.error(f"get_user failed: {e.response['Error']['Message']}")
            return None

    def list_report_subscribers(self) -> List[Dict[str, Any]]:
        """Users with the monthly report enabled."""
        if self._users is None:
            return []
        scan_kwargs: Dict[str, Any] = {"FilterExpression": Attr("monthly_report").eq(True)}
        users: List[Dict[str, Any]] = []
        try:
            while True:
                response = self._users.scan(**scan_kwargs)
                users.extend(_from_dynamo(response.get("Items", [])))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            logger.error(f"list_report_subscribers failed: {e.response['Error']['Message']}")
        return users


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
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
