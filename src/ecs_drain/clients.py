"""
ECS Drain - AWS API adapters
Thin wrappers over the ECS, EC2 and Auto Scaling clients. Every call goes
through a single choke point that applies the retry policy and turns botocore
failures into UpstreamAPIError.
"""

import os
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .config import Settings
from .errors import UpstreamAPIError
from .models import ContainerInstance, Task

logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

# describe_container_instances and describe_tasks accept at most 100 arns
DESCRIBE_BATCH_SIZE = 100

TRANSIENT_ERROR_CODES = {
    "ThrottlingException",
    "Throttling",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "ServerException",
    "InternalError",
    "InternalFailure",
}


@dataclass(frozen=True)
class RetryPolicy:
    """How many times an API call is attempted before it is surfaced.

    The default single attempt keeps failures visible immediately. Retries
    only ever apply to transient errors and back off linearly.
    """
    max_attempts: int = 1
    backoff_seconds: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.api_max_attempts,
            backoff_seconds=settings.api_retry_backoff_seconds,
        )


def is_transient(err: Exception) -> bool:
    """Classify errors worth retrying"""
    if isinstance(err, (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)):
        return True
    if isinstance(err, ClientError):
        code = err.response.get("Error", {}).get("Code", "")
        return code in TRANSIENT_ERROR_CODES
    return False


def _chunks(items: List[str], size: int = DESCRIBE_BATCH_SIZE):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class _ApiAdapter:
    """Shared call/retry plumbing for the service adapters"""

    def __init__(
        self,
        client: Any,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep
        self.logger = logger

    def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        method = getattr(self.client, operation)
        attempts = 0

        while True:
            attempts += 1
            try:
                return method(**kwargs)

            except (ClientError, BotoCoreError) as e:
                if attempts < self.retry_policy.max_attempts and is_transient(e):
                    delay = self.retry_policy.backoff_seconds * attempts
                    self.logger.warning(
                        f"{operation} attempt {attempts} failed with a transient error, "
                        f"retrying in {delay:.1f}s: {str(e)}"
                    )
                    self.sleep(delay)
                    continue

                self.logger.error(f"{operation} failed after {attempts} attempt(s): {str(e)}")
                raise UpstreamAPIError(operation, e) from e


class EcsApi(_ApiAdapter):
    """Container instance and task queries/mutations"""

    def list_container_instance_arns(self, cluster: str) -> List[str]:
        arns: List[str] = []
        next_token: Optional[str] = None

        while True:
            request_kwargs: Dict[str, Any] = {"cluster": cluster}
            if next_token is not None:
                request_kwargs["nextToken"] = next_token

            response = self._call("list_container_instances", **request_kwargs)
            arns.extend(response.get("containerInstanceArns", []))

            next_token = response.get("nextToken")
            if not next_token:
                return arns

    def describe_container_instances(self, cluster: str, arns: List[str]) -> List[ContainerInstance]:
        instances: List[ContainerInstance] = []
        for batch in _chunks(arns):
            response = self._call(
                "describe_container_instances", cluster=cluster, containerInstances=batch
            )
            instances.extend(
                ContainerInstance.from_api(item) for item in response.get("containerInstances", [])
            )
        return instances

    def set_draining(self, cluster: str, container_instance_arn: str) -> None:
        response = self._call(
            "update_container_instances_state",
            cluster=cluster,
            containerInstances=[container_instance_arn],
            status="DRAINING",
        )
        failures = response.get("failures") or []
        if failures:
            self.logger.warning(f"update_container_instances_state reported failures: {failures}")

    def list_task_arns(self, cluster: str, container_instance_arn: str) -> List[str]:
        arns: List[str] = []
        next_token: Optional[str] = None

        while True:
            request_kwargs: Dict[str, Any] = {
                "cluster": cluster,
                "containerInstance": container_instance_arn,
            }
            if next_token is not None:
                request_kwargs["nextToken"] = next_token

            response = self._call("list_tasks", **request_kwargs)
            arns.extend(response.get("taskArns", []))

            next_token = response.get("nextToken")
            if not next_token:
                return arns

    def describe_tasks(self, cluster: str, arns: List[str]) -> Tuple[List[Task], List[Dict[str, Any]]]:
        """Return described tasks plus the per-arn failures ECS reported"""
        tasks: List[Task] = []
        failures: List[Dict[str, Any]] = []
        for batch in _chunks(arns):
            response = self._call("describe_tasks", cluster=cluster, tasks=batch)
            tasks.extend(Task.from_api(item) for item in response.get("tasks", []))
            failures.extend(response.get("failures", []))
        return tasks, failures


class Ec2Api(_ApiAdapter):
    """Instance state and user data lookups"""

    def get_instance_state(self, instance_id: str) -> Optional[str]:
        response = self._call("describe_instances", InstanceIds=[instance_id])
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return instance.get("State", {}).get("Name")
        return None

    def get_user_data(self, instance_id: str) -> Optional[str]:
        """Base64 encoded user data, or None when the instance has none"""
        response = self._call(
            "describe_instance_attribute", InstanceId=instance_id, Attribute="userData"
        )
        return (response.get("UserData") or {}).get("Value") or None


class AutoScalingApi(_ApiAdapter):
    """Lifecycle hook acknowledgement"""

    def complete_lifecycle_action(
        self,
        auto_scaling_group_name: str,
        lifecycle_hook_name: str,
        lifecycle_action_token: str,
        instance_id: str,
        result: str = "CONTINUE",
    ) -> None:
        self._call(
            "complete_lifecycle_action",
            AutoScalingGroupName=auto_scaling_group_name,
            LifecycleHookName=lifecycle_hook_name,
            LifecycleActionToken=lifecycle_action_token,
            InstanceId=instance_id,
            LifecycleActionResult=result,
        )


@dataclass
class AwsClients:
    """The API handles one invocation works with"""
    ecs: EcsApi
    ec2: Ec2Api
    autoscaling: AutoScalingApi
    session: Optional[boto3.Session] = None

    @classmethod
    def from_session(cls, session: boto3.Session, settings: Settings) -> "AwsClients":
        config = settings.boto_config()
        retry_policy = RetryPolicy.from_settings(settings)
        return cls(
            ecs=EcsApi(session.client("ecs", config=config), retry_policy),
            ec2=Ec2Api(session.client("ec2", config=config), retry_policy),
            autoscaling=AutoScalingApi(session.client("autoscaling", config=config), retry_policy),
            session=session,
        )
