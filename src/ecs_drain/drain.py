"""
ECS Drain - Container Instance Drain Engine
Sets an ECS container instance to DRAINING and waits until every task that
was running on it has reached STOPPED.
"""

import os
import json
import time
import logging
from collections import Counter
from dataclasses import asdict
from typing import Callable, Dict, List, Optional

from .clients import EcsApi
from .config import DEFAULT_DEADLINE_SAFETY_MARGIN_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS
from .errors import ContainerInstanceNotFoundError, DrainDeadlineExceededError
from .models import (
    TASK_STATUS_MISSING,
    TASK_STATUS_STOPPED,
    TASK_STATUS_UNKNOWN,
    ContainerInstance,
    DrainResult,
)

logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))


def log_json(label: str, data) -> None:
    """Emit one log line with a JSON payload, CloudWatch Logs renders these nicely"""
    logger.info(f"{label} {json.dumps(data, default=str, sort_keys=True)}")


class ContainerInstanceDrainer:
    """Drains one container instance per call to drain()"""

    def __init__(
        self,
        ecs: EcsApi,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        deadline_safety_margin_seconds: float = DEFAULT_DEADLINE_SAFETY_MARGIN_SECONDS,
        remaining_time_ms: Optional[Callable[[], int]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ecs = ecs
        self.poll_interval_seconds = poll_interval_seconds
        self.deadline_safety_margin_seconds = deadline_safety_margin_seconds
        self.remaining_time_ms = remaining_time_ms
        self.sleep = sleep
        self.logger = logger

    def get_container_instance(self, cluster: str, instance_id: str) -> ContainerInstance:
        """Find the container instance backed by an EC2 instance id"""
        arns = self.ecs.list_container_instance_arns(cluster)
        if arns:
            for instance in self.ecs.describe_container_instances(cluster, arns):
                if instance.ec2_instance_id == instance_id:
                    return instance

        raise ContainerInstanceNotFoundError(cluster, instance_id)

    def count_pending_tasks(self, cluster: str, task_arns: List[str]) -> Dict[str, int]:
        """Tally tasks of the drain set by last known status"""
        tasks, failures = self.ecs.describe_tasks(cluster, task_arns)

        if not tasks:
            self.logger.info("No tasks found")

        task_states: Counter = Counter()
        for task in tasks:
            # A task may linger in DEACTIVATING/DEPROVISIONING after leaving
            # the instance counters, only STOPPED means it is gone
            if task.last_status is None:
                continue
            task_states[task.last_status] += 1

        for failure in failures:
            reason = failure.get("reason") or TASK_STATUS_UNKNOWN
            if reason != TASK_STATUS_MISSING:
                # State not observed, the task is still pending until a poll says otherwise
                self.logger.warning(f"describe_tasks failure for {failure.get('arn')}: {reason}")
            task_states[reason] += 1

        return dict(task_states)

    def _check_deadline(self, instance_id: str, pending_tasks: int) -> None:
        if self.remaining_time_ms is None:
            return

        remaining_seconds = self.remaining_time_ms() / 1000.0
        needed = self.poll_interval_seconds + self.deadline_safety_margin_seconds
        if remaining_seconds < needed:
            raise DrainDeadlineExceededError(instance_id, remaining_seconds, pending_tasks)

    def _wait(self, instance_id: str, pending_tasks: int) -> None:
        self._check_deadline(instance_id, pending_tasks)
        self.sleep(self.poll_interval_seconds)

    def drain(self, cluster: str, instance_id: str) -> DrainResult:
        """Drain the container instance behind instance_id in cluster.

        Returns once no task of the instance is left running. ECS errors
        propagate as UpstreamAPIError and abort the drain.
        """
        start_time = time.time()

        instance = self.get_container_instance(cluster, instance_id)
        log_json("Container instance", asdict(instance))

        result = DrainResult(
            cluster=cluster,
            instance_id=instance_id,
            container_instance_arn=instance.arn,
            drained=False,
        )

        tasks_to_shutdown = instance.running_tasks_count
        task_arns: Optional[List[str]] = None

        while tasks_to_shutdown > 0:
            if not result.draining_requested and not instance.is_draining:
                self.logger.info(
                    f"Starting draining of {instance.arn} and waiting for all tasks to shutdown"
                )
                self.ecs.set_draining(cluster, instance.arn)
                result.draining_requested = True

            if task_arns is None:
                task_arns = self.ecs.list_task_arns(cluster, instance.arn)
                result.tasks_in_drain_set = len(task_arns)

            if not task_arns:
                # An empty listing only counts once the instance agrees
                instance = self.get_container_instance(cluster, instance_id)
                if instance.running_tasks_count == 0:
                    self.logger.info("No running tasks found")
                    break

                self.logger.info(
                    f"Task listing was empty but instance still reports "
                    f"{instance.running_tasks_count} running task(s), listing again"
                )
                task_arns = None
                self._wait(instance_id, instance.running_tasks_count)
                continue

            result.polls += 1
            task_states = self.count_pending_tasks(cluster, task_arns)
            result.task_states = task_states
            log_json("Instance task states", task_states)

            tasks_to_shutdown = sum(
                count for status, count in task_states.items()
                if status not in (TASK_STATUS_STOPPED, TASK_STATUS_MISSING)
            )

            if tasks_to_shutdown > 0:
                self._wait(instance_id, tasks_to_shutdown)

        result.drained = True
        result.duration_seconds = time.time() - start_time
        self.logger.info(
            f"Drain finished for {instance_id} in cluster {cluster} after {result.polls} poll(s)"
        )
        return result
