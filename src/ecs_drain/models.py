"""
ECS Drain - Data model
Snapshots of ECS state and the typed events that trigger a drain.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

STATUS_ACTIVE = "ACTIVE"
STATUS_DRAINING = "DRAINING"
TASK_STATUS_STOPPED = "STOPPED"
TASK_STATUS_MISSING = "MISSING"
TASK_STATUS_UNKNOWN = "UNKNOWN"


@dataclass
class ContainerInstance:
    """Data class for an ECS container instance snapshot"""
    arn: str
    ec2_instance_id: str
    status: str
    running_tasks_count: int
    pending_tasks_count: int = 0

    @property
    def is_draining(self) -> bool:
        return self.status == STATUS_DRAINING

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ContainerInstance":
        return cls(
            arn=data["containerInstanceArn"],
            ec2_instance_id=data.get("ec2InstanceId", ""),
            status=data.get("status", ""),
            running_tasks_count=int(data.get("runningTasksCount") or 0),
            pending_tasks_count=int(data.get("pendingTasksCount") or 0),
        )


@dataclass
class Task:
    """Data class for an ECS task snapshot"""
    arn: str
    last_status: Optional[str] = None
    desired_status: Optional[str] = None

    @property
    def is_stopped(self) -> bool:
        return self.last_status == TASK_STATUS_STOPPED

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            arn=data["taskArn"],
            last_status=data.get("lastStatus"),
            desired_status=data.get("desiredStatus"),
        )


@dataclass(frozen=True)
class DrainRequest:
    """Data class for the instance a drain is requested for"""
    cluster: str
    instance_id: str


@dataclass
class DrainResult:
    """Data class for drain outcomes"""
    cluster: str
    instance_id: str
    container_instance_arn: str
    drained: bool
    draining_requested: bool = False
    polls: int = 0
    tasks_in_drain_set: int = 0
    task_states: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0


@dataclass(frozen=True)
class LifecycleActionEvent:
    """Auto Scaling 'EC2 Instance-terminate Lifecycle Action' detail"""
    instance_id: str
    lifecycle_action_token: str
    auto_scaling_group_name: str
    lifecycle_hook_name: str
    lifecycle_transition: Optional[str] = None


@dataclass(frozen=True)
class SpotInterruptionEvent:
    """'EC2 Spot Instance Interruption Warning' detail"""
    instance_id: str
    instance_action: Optional[str] = None


LifecycleEvent = Union[LifecycleActionEvent, SpotInterruptionEvent]


@dataclass
class DispatchOutcome:
    """Data class for what the dispatcher did with one event"""
    event_kind: str
    instance_id: Optional[str]
    action: str
    cluster: Optional[str] = None
    drain_result: Optional[DrainResult] = None
    skip_reason: Optional[str] = None
    completed: bool = False
