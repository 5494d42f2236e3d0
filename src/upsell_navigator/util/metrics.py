from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from upsell_navigator.util.logging import get_logger


@dataclass(frozen=True)
class MetricDimension:
    name: str
    value: str


class CloudWatchMetrics:
    def __init__(self, *, namespace: str, enabled: bool) -> None:
        self.namespace = namespace
        self.enabled = enabled
        self.client = boto3.client("cloudwatch") if enabled else None
        self.logger = get_logger(self.__class__.__name__)

    @classmethod
    def from_env(cls) -> "CloudWatchMetrics":
        enabled = os.getenv("CLOUDWATCH_METRICS_ENABLED", "false").lower() == "true"
        namespace = os.getenv("CLOUDWATCH_METRICS_NAMESPACE", "UpsellNavigator")
        return cls(namespace=namespace, enabled=enabled)

    def _put_metric(
        self,
        *,
        name: str,
        value: float,
        unit: str = "Count",
        dimensions: Optional[Iterable[MetricDimension]] = None,
    ) -> None:
        if not self.enabled or not self.client:
            return
        payload = {
            "MetricName": name,
            "Value": value,
            "Unit": unit,
        }
        if dimensions:
            payload["Dimensions"] = [
                {"Name": dimension.name, "Value": dimension.value} for dimension in dimensions
            ]
        try:
            self.client.put_metric_data(
                Namespace=self.namespace,
                MetricData=[payload],
            )
        except (BotoCoreError, ClientError) as exc:
            self.logger.warning("cloudwatch_metric_failed", extra={"error": str(exc), "metric": name})

    def record_submission(self, *, accepted: bool) -> None:
        self._put_metric(
            name="AnalysisSubmitted",
            value=1.0,
            dimensions=[MetricDimension(name="outcome", value="accepted" if accepted else "rejected")],
        )

    def record_run_outcome(self, *, status: str) -> None:
        # written as 1 for failure and 0 for success so alarms can use Maximum
        self._put_metric(name="RunFailed", value=1.0 if status == "failed" else 0.0)

    def record_stale_webhook(self) -> None:
        self._put_metric(name="StaleWebhookDropped", value=1.0)

    def record_remote_error(self, *, operation: str) -> None:
        self._put_metric(
            name="RemoteError",
            value=1.0,
            dimensions=[MetricDimension(name="operation", value=operation)],
        )
