"""
ECS Drain - Event Dispatcher Lambda Function
Drains the ECS container instance behind an Auto Scaling terminate lifecycle
action or an EC2 Spot interruption warning, then lets termination proceed.
"""

import os
import json
import time
import logging
import traceback
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional

import boto3

from .clients import AwsClients
from .cluster_resolver import ClusterResolver
from .config import Settings
from .drain import ContainerInstanceDrainer, log_json
from .errors import ClusterNotResolvedError, EventValidationError
from .events import parse_event
from .models import DispatchOutcome, DrainRequest, LifecycleActionEvent, LifecycleEvent
from .reporting import DrainReporter

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

EVENT_KIND_LIFECYCLE_ACTION = "lifecycle-action"
EVENT_KIND_SPOT_INTERRUPTION = "spot-interruption"


class EventDispatcher:
    """Routes one infrastructure event through resolve, drain and completion"""

    def __init__(
        self,
        clients: AwsClients,
        settings: Optional[Settings] = None,
        remaining_time_ms: Optional[Callable[[], int]] = None,
        reporter: Optional[DrainReporter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = settings or Settings()
        self.clients = clients
        self.resolver = ClusterResolver(clients.ec2)
        self.drainer = ContainerInstanceDrainer(
            clients.ecs,
            poll_interval_seconds=settings.poll_interval_seconds,
            deadline_safety_margin_seconds=settings.deadline_safety_margin_seconds,
            remaining_time_ms=remaining_time_ms,
            sleep=sleep,
        )
        self.reporter = reporter
        self.logger = logger

    def complete_lifecycle(self, event: LifecycleActionEvent) -> None:
        """Let the Auto Scaling group carry on with the termination"""
        # If the drain fails the hook times out with its default result,
        # which for a terminating instance still terminates it
        self.clients.autoscaling.complete_lifecycle_action(
            auto_scaling_group_name=event.auto_scaling_group_name,
            lifecycle_hook_name=event.lifecycle_hook_name,
            lifecycle_action_token=event.lifecycle_action_token,
            instance_id=event.instance_id,
            result="CONTINUE",
        )
        self.logger.info(
            f"Lifecycle hook action {event.lifecycle_hook_name!r} ({event.lifecycle_action_token}) "
            f"completed for ASG {event.auto_scaling_group_name!r} and InstanceID {event.instance_id!r}"
        )

    def complete(self, event: LifecycleEvent) -> None:
        """Run the completion action of the event kind"""
        if isinstance(event, LifecycleActionEvent):
            self.complete_lifecycle(event)
        # Spot instances are reclaimed on the platform's own schedule,
        # there is nothing to acknowledge

    def handle(self, raw_event: Dict[str, Any]) -> DispatchOutcome:
        log_json("CloudWatch Event", raw_event)

        event = parse_event(raw_event)
        if event is None:
            return DispatchOutcome(event_kind="unsupported", instance_id=None, action="ignored")

        outcome = DispatchOutcome(
            event_kind=(
                EVENT_KIND_LIFECYCLE_ACTION if isinstance(event, LifecycleActionEvent)
                else EVENT_KIND_SPOT_INTERRUPTION
            ),
            instance_id=event.instance_id,
            action="pending",
        )

        try:
            try:
                outcome.cluster = self.resolver.resolve(event.instance_id)
            except ClusterNotResolvedError as e:
                self.logger.info(f"Skipping drain of {event.instance_id}: {str(e)}")
                outcome.action = "skipped"
                outcome.skip_reason = type(e).__name__
                self.complete(event)
                outcome.completed = True
                return outcome

            request = DrainRequest(cluster=outcome.cluster, instance_id=event.instance_id)
            log_json("Drain request", asdict(request))

            outcome.drain_result = self.drainer.drain(request.cluster, request.instance_id)
            outcome.action = "drained"

            self.complete(event)
            outcome.completed = True
            return outcome

        except Exception:
            outcome.action = "failed"
            raise

        finally:
            if self.reporter is not None:
                self.reporter.publish(outcome)


def lambda_handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """
    Lambda handler for ECS container instance draining

    Expected EventBridge events:
    {
        "detail-type": "EC2 Instance-terminate Lifecycle Action",
        "detail": {
            "LifecycleActionToken": "...",
            "AutoScalingGroupName": "my-asg",
            "LifecycleHookName": "drain-hook",
            "EC2InstanceId": "i-0123456789abcdef0",
            "LifecycleTransition": "autoscaling:EC2_INSTANCE_TERMINATING"
        }
    }
    {
        "detail-type": "EC2 Spot Instance Interruption Warning",
        "detail": {"instance-id": "i-0123456789abcdef0", "instance-action": "terminate"}
    }

    Failures are raised so the invocation is reported as failed.
    """

    request_id = getattr(context, "aws_request_id", None) or "local-test"
    logger.info(f"Starting drain operation - Request ID: {request_id}")

    try:
        settings = Settings.from_env()
        logger.setLevel(settings.log_level)

        session = boto3.Session()
        clients = AwsClients.from_session(session, settings)

        dispatcher = EventDispatcher(
            clients,
            settings,
            remaining_time_ms=getattr(context, "get_remaining_time_in_millis", None),
            reporter=DrainReporter(session, settings.metrics_namespace, settings.sns_topic_arn),
        )
        outcome = dispatcher.handle(event)

        response = {
            "ok": True,
            "request_id": request_id,
            "outcome": asdict(outcome),
        }
        log_json("Drain outcome", response)
        return response

    except EventValidationError as e:
        logger.error(f"Invalid event: {str(e)}")
        raise

    except Exception as e:
        logger.error(f"Drain operation failed: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


# For local testing
if __name__ == "__main__":
    test_event = {
        "detail-type": "EC2 Spot Instance Interruption Warning",
        "detail": {
            "instance-id": "i-0123456789abcdef0",
            "instance-action": "terminate"
        }
    }

    class MockContext:
        aws_request_id = "test-request-123"
        def get_remaining_time_in_millis(self):
            return 300000  # 5 minutes

    result = lambda_handler(test_event, MockContext())
    print(json.dumps(result, indent=2, default=str))
