from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from upsell_navigator.util.errors import NotFoundError, PersistenceError, StaleUpdateError

RECORD_TYPE = "analysis_run"
CREATED_AT_INDEX = "created_at-index"
MUTABLE_FIELDS = {"status", "progress", "report_url", "error_message"}


def utcnow_iso() -> str:
    return datetime.utcnow().isoformat()


@dataclass
class AnalysisRunRecord:
    id: str
    run_id: str
    live_name: str
    sales_result: str
    status: str
    progress: int
    created_at: str
    updated_at: str
    report_url: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "AnalysisRunRecord":
        known = {field.name for field in fields(cls)}
        data = {key: value for key, value in item.items() if key in known}
        if isinstance(data.get("progress"), Decimal):
            data["progress"] = int(data["progress"])
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def check_changes(changes: Dict[str, Any]) -> None:
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"fields cannot be updated: {', '.join(sorted(unknown))}")


class DynamoRuns:
    def __init__(self, table_name: str) -> None:
        self.table = boto3.resource("dynamodb").Table(table_name)

    def create(self, record: AnalysisRunRecord) -> AnalysisRunRecord:
        item = {key: value for key, value in record.to_dict().items() if value is not None}
        item["record_type"] = RECORD_TYPE
        try:
            self.table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(run_id)",
            )
        except ClientError as exc:
            if exc.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise PersistenceError(f"run {record.run_id} already exists") from exc
            raise PersistenceError(str(exc)) from exc
        except BotoCoreError as exc:
            raise PersistenceError(str(exc)) from exc
        return record

    def update(
        self,
        run_id: str,
        changes: Dict[str, Any],
        *,
        allowed_statuses: Optional[Iterable[str]] = None,
    ) -> AnalysisRunRecord:
        check_changes(changes)
        names = {"#updated_at": "updated_at"}
        values: Dict[str, Any] = {":updated_at": utcnow_iso()}
        expression = ["#updated_at = :updated_at"]
        for key, value in changes.items():
            names[f"#{key}"] = key
            values[f":{key}"] = value
            expression.append(f"#{key} = :{key}")
        condition = "attribute_exists(run_id)"
        if allowed_statuses is not None:
            names["#status"] = "status"
            placeholders = []
            for index, status in enumerate(sorted(allowed_statuses)):
                values[f":allowed{index}"] = status
                placeholders.append(f":allowed{index}")
            condition += f" AND #status IN ({', '.join(placeholders)})"
        try:
            response = self.table.update_item(
                Key={"run_id": run_id},
                UpdateExpression="SET " + ", ".join(expression),
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if exc.response["Error"]["Code"] != "ConditionalCheckFailedException":
                raise PersistenceError(str(exc)) from exc
            current = self.get(run_id)
            raise StaleUpdateError(current) from exc
        except BotoCoreError as exc:
            raise PersistenceError(str(exc)) from exc
        return AnalysisRunRecord.from_item(response["Attributes"])

    def get(self, run_id: str) -> AnalysisRunRecord:
        try:
            response = self.table.get_item(Key={"run_id": run_id})
        except (BotoCoreError, ClientError) as exc:
            raise PersistenceError(str(exc)) from exc
        item = response.get("Item")
        if not item:
            raise NotFoundError(run_id)
        return AnalysisRunRecord.from_item(item)

    def list_recent(self, limit: int = 20) -> List[AnalysisRunRecord]:
        try:
            response = self.table.query(
                IndexName=CREATED_AT_INDEX,
                KeyConditionExpression="record_type = :record_type",
                ExpressionAttributeValues={":record_type": RECORD_TYPE},
                ScanIndexForward=False,
                Limit=limit,
            )
        except (BotoCoreError, ClientError) as exc:
            raise PersistenceError(str(exc)) from exc
        return [AnalysisRunRecord.from_item(item) for item in response.get("Items", [])]
