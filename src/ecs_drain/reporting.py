"""
ECS Drain - Drain reporting
Optional CloudWatch metrics and SNS notifications for each drain outcome.
"""

import os
import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .models import DispatchOutcome

logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))


class DrainReporter:
    """Publishes drain outcomes; both channels are off unless configured"""

    def __init__(
        self,
        session: Optional[boto3.Session],
        metrics_namespace: Optional[str] = None,
        sns_topic_arn: Optional[str] = None,
    ):
        self.session = session
        self.metrics_namespace = metrics_namespace
        self.sns_topic_arn = sns_topic_arn
        self.logger = logger

    def build_metrics(self, outcome: DispatchOutcome) -> List[Dict[str, Any]]:
        timestamp = datetime.now(timezone.utc)
        dimensions = [{'Name': 'EventKind', 'Value': outcome.event_kind}]
        if outcome.cluster:
            dimensions.append({'Name': 'ClusterName', 'Value': outcome.cluster})

        metrics = [
            {
                'MetricName': 'DrainSuccess',
                'Dimensions': dimensions,
                'Value': 1 if outcome.action == "drained" else 0,
                'Unit': 'None',
                'Timestamp': timestamp
            }
        ]

        drain_result = outcome.drain_result
        if drain_result is not None:
            metrics.extend([
                {
                    'MetricName': 'DrainDuration',
                    'Dimensions': dimensions,
                    'Value': drain_result.duration_seconds,
                    'Unit': 'Seconds',
                    'Timestamp': timestamp
                },
                {
                    'MetricName': 'TasksDrained',
                    'Dimensions': dimensions,
                    'Value': drain_result.tasks_in_drain_set,
                    'Unit': 'Count',
                    'Timestamp': timestamp
                }
            ])

        return metrics

    def publish_metrics(self, outcome: DispatchOutcome) -> None:
        if not self.metrics_namespace or self.session is None:
            return
        try:
            cloudwatch = self.session.client('cloudwatch')
            cloudwatch.put_metric_data(
                Namespace=self.metrics_namespace,
                MetricData=self.build_metrics(outcome)
            )
            self.logger.info(f"Published drain metrics to {self.metrics_namespace}")

        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"Failed to publish drain metrics: {str(e)}")

    def send_notification(self, outcome: DispatchOutcome) -> None:
        if not self.sns_topic_arn or self.session is None:
            return
        try:
            subject = f"ECS instance {outcome.instance_id}: {outcome.action}"
            sns = self.session.client('sns')
            sns.publish(
                TopicArn=self.sns_topic_arn,
                Subject=subject[:100],
                Message=json.dumps(asdict(outcome), indent=2, default=str)
            )
            self.logger.info("Sent drain notification")

        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"Failed to send drain notification: {str(e)}")

    def publish(self, outcome: DispatchOutcome) -> None:
        self.publish_metrics(outcome)
        self.send_notification(outcome)
