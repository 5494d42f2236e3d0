from __future__ import annotations

import argparse
from typing import Optional

import boto3


def _alarm_name(prefix: str, name: str) -> str:
    return f"{prefix}-{name}"


def _alarm_actions(topic_arn: Optional[str]) -> list[str]:
    if not topic_arn:
        return []
    return [topic_arn]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create CloudWatch alarms for Upsell Navigator")
    parser.add_argument("--alarm-prefix", default="upsell-navigator", help="Alarm name prefix")
    parser.add_argument(
        "--namespace",
        default="UpsellNavigator",
        help="CloudWatch namespace for custom metrics",
    )
    parser.add_argument("--sns-topic-arn", help="SNS topic ARN for alarm actions")
    parser.add_argument(
        "--consecutive-failure-threshold",
        type=int,
        default=3,
        help="Datapoints/evaluation periods for consecutive failed runs",
    )
    parser.add_argument(
        "--consecutive-failure-period",
        type=int,
        default=300,
        help="Period in seconds for consecutive failure alarm",
    )
    parser.add_argument(
        "--remote-error-threshold",
        type=int,
        default=5,
        help="Analysis service error count threshold",
    )
    parser.add_argument(
        "--remote-error-period",
        type=int,
        default=300,
        help="Period in seconds for analysis service error alarm",
    )
    parser.add_argument(
        "--stale-webhook-threshold",
        type=int,
        default=20,
        help="Dropped out-of-order webhook count threshold",
    )
    parser.add_argument(
        "--stale-webhook-period",
        type=int,
        default=3600,
        help="Period in seconds for dropped webhook alarm",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    cloudwatch = boto3.client("cloudwatch")
    alarm_actions = _alarm_actions(args.sns_topic_arn)

    cloudwatch.put_metric_alarm(
        AlarmName=_alarm_name(args.alarm_prefix, "consecutive-failed-runs"),
        AlarmDescription=(
            "Triggers on consecutive failed analysis runs. "
            "Metric is written as 1 for failure and 0 for completion."
        ),
        Namespace=args.namespace,
        MetricName="RunFailed",
        Dimensions=[],
        Statistic="Maximum",
        Period=args.consecutive_failure_period,
        EvaluationPeriods=args.consecutive_failure_threshold,
        DatapointsToAlarm=args.consecutive_failure_threshold,
        Threshold=1,
        ComparisonOperator="GreaterThanOrEqualToThreshold",
        TreatMissingData="notBreaching",
        AlarmActions=alarm_actions,
        OKActions=alarm_actions,
    )

    for operation in ("kickoff", "status", "transport"):
        cloudwatch.put_metric_alarm(
            AlarmName=_alarm_name(args.alarm_prefix, f"remote-errors-{operation}"),
            AlarmDescription=f"Triggers on elevated analysis service errors ({operation}).",
            Namespace=args.namespace,
            MetricName="RemoteError",
            Dimensions=[{"Name": "operation", "Value": operation}],
            Statistic="Sum",
            Period=args.remote_error_period,
            EvaluationPeriods=1,
            DatapointsToAlarm=1,
            Threshold=args.remote_error_threshold,
            ComparisonOperator="GreaterThanOrEqualToThreshold",
            TreatMissingData="notBreaching",
            AlarmActions=alarm_actions,
            OKActions=alarm_actions,
        )

    cloudwatch.put_metric_alarm(
        AlarmName=_alarm_name(args.alarm_prefix, "stale-webhooks"),
        AlarmDescription="Triggers when many webhook deliveries arrive after a terminal status.",
        Namespace=args.namespace,
        MetricName="StaleWebhookDropped",
        Dimensions=[],
        Statistic="Sum",
        Period=args.stale_webhook_period,
        EvaluationPeriods=1,
        DatapointsToAlarm=1,
        Threshold=args.stale_webhook_threshold,
        ComparisonOperator="GreaterThanOrEqualToThreshold",
        TreatMissingData="notBreaching",
        AlarmActions=alarm_actions,
        OKActions=alarm_actions,
    )


if __name__ == "__main__":
    main()
