"""
ECS Drain - Error taxonomy
Exceptions raised while resolving, draining and acknowledging an instance.
"""

from typing import Optional


class EcsDrainError(Exception):
    """Base class for all drain errors"""
    pass


class EventValidationError(EcsDrainError):
    """Raised when an inbound event is missing required fields"""
    pass


class ClusterNotResolvedError(EcsDrainError):
    """The instance cannot be tied to an ECS cluster; draining is skipped"""
    pass


class MissingUserDataError(ClusterNotResolvedError):
    """Instance has no user data at all"""

    def __init__(self, instance_id: str):
        super().__init__(f"Instance {instance_id} has no user data")
        self.instance_id = instance_id


class MissingClusterKeyError(ClusterNotResolvedError):
    """User data is present but carries no ECS_CLUSTER definition"""

    def __init__(self, instance_id: Optional[str] = None):
        target = f"Instance {instance_id}" if instance_id else "User data"
        super().__init__(f"{target} has no ECS_CLUSTER definition")
        self.instance_id = instance_id


class InstanceTerminatedError(ClusterNotResolvedError):
    """Instance is already shutting down or terminated"""

    def __init__(self, instance_id: str, state: str):
        super().__init__(f"Instance {instance_id} is already {state}")
        self.instance_id = instance_id
        self.state = state


class ContainerInstanceNotFoundError(EcsDrainError):
    """No container instance in the cluster is backed by the EC2 instance"""

    def __init__(self, cluster: str, instance_id: str):
        super().__init__(f"{instance_id!r} not found in the cluster {cluster!r}")
        self.cluster = cluster
        self.instance_id = instance_id


class UpstreamAPIError(EcsDrainError):
    """An AWS API call failed. The botocore error is kept as __cause__."""

    def __init__(self, operation: str, error: Exception):
        self.operation = operation
        self.error_code = _error_code(error)
        super().__init__(f"{operation} failed: {error}")


class DrainDeadlineExceededError(EcsDrainError):
    """Not enough invocation time left to wait for another poll"""

    def __init__(self, instance_id: str, remaining_seconds: float, pending_tasks: int):
        super().__init__(
            f"Only {remaining_seconds:.1f}s left while draining {instance_id}; "
            f"{pending_tasks} task(s) still not stopped"
        )
        self.instance_id = instance_id
        self.remaining_seconds = remaining_seconds
        self.pending_tasks = pending_tasks


def _error_code(error: Exception) -> str:
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        return response.get("Error", {}).get("Code", "Unknown")
    return type(error).__name__
