"""
ECS Drain - EventBridge event parsing
Validates the inbound notification and turns it into a typed event.
"""

import os
import re
import logging
from typing import Any, Dict, List, Optional

from .errors import EventValidationError
from .models import LifecycleActionEvent, LifecycleEvent, SpotInterruptionEvent

logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

EVENT_ASG_TERMINATE_DETAIL_TYPE = "EC2 Instance-terminate Lifecycle Action"
EVENT_SPOT_INTERRUPTION_DETAIL_TYPE = "EC2 Spot Instance Interruption Warning"

SUPPORTED_DETAIL_TYPES = (EVENT_ASG_TERMINATE_DETAIL_TYPE, EVENT_SPOT_INTERRUPTION_DETAIL_TYPE)

EC2_INSTANCE_ID_PATTERN = r'^i-[0-9a-f]{8,17}$'


def _require(detail: Dict[str, Any], required_fields: List[str]) -> None:
    missing_fields = []

    for field in required_fields:
        value = detail.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing_fields.append(field)

    if missing_fields:
        raise EventValidationError(f"Missing required fields: {', '.join(missing_fields)}")


def _validate_instance_id(instance_id: str) -> str:
    if not isinstance(instance_id, str) or not re.match(EC2_INSTANCE_ID_PATTERN, instance_id.strip()):
        raise EventValidationError(f"Invalid EC2 instance id: {instance_id!r}")
    return instance_id.strip()


def parse_lifecycle_action(detail: Dict[str, Any]) -> LifecycleActionEvent:
    _require(detail, ["LifecycleActionToken", "AutoScalingGroupName", "LifecycleHookName", "EC2InstanceId"])

    return LifecycleActionEvent(
        instance_id=_validate_instance_id(detail["EC2InstanceId"]),
        lifecycle_action_token=detail["LifecycleActionToken"],
        auto_scaling_group_name=detail["AutoScalingGroupName"],
        lifecycle_hook_name=detail["LifecycleHookName"],
        lifecycle_transition=detail.get("LifecycleTransition"),
    )


def parse_spot_interruption(detail: Dict[str, Any]) -> SpotInterruptionEvent:
    _require(detail, ["instance-id"])

    return SpotInterruptionEvent(
        instance_id=_validate_instance_id(detail["instance-id"]),
        instance_action=detail.get("instance-action"),
    )


def parse_event(event: Dict[str, Any]) -> Optional[LifecycleEvent]:
    """Return the typed event, or None for detail types we do not act on"""
    if not isinstance(event, dict):
        raise EventValidationError("Event must be a JSON object")

    detail_type = event.get("detail-type")
    detail = event.get("detail")

    if detail_type not in SUPPORTED_DETAIL_TYPES:
        logger.info(f"Ignoring event with detail-type {detail_type!r}")
        return None

    if not isinstance(detail, dict):
        raise EventValidationError(f"Event detail for {detail_type!r} must be a JSON object")

    if detail_type == EVENT_ASG_TERMINATE_DETAIL_TYPE:
        return parse_lifecycle_action(detail)

    return parse_spot_interruption(detail)
