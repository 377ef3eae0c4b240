"""
ECS Drain - Cluster Resolver
Recovers the ECS cluster name an instance joined from its user data.

Instances launched for ECS write the cluster name into the agent config at
boot, for example:

    #!/bin/bash -xe
    echo ECS_CLUSTER=my-cluster >> /etc/ecs/ecs.config
"""

import os
import re
import gzip
import base64
import binascii
import logging
import zlib

from .clients import Ec2Api
from .errors import (
    InstanceTerminatedError,
    MissingClusterKeyError,
    MissingUserDataError,
    UpstreamAPIError,
)

logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

ECS_CLUSTER_PATTERN = re.compile(r"ECS_CLUSTER=([^\s'\"]+)")
TERMINATED_STATES = {"shutting-down", "terminated"}
GZIP_MAGIC = b"\x1f\x8b"


def parse_cluster_name(user_data: str) -> str:
    """Return the first ECS_CLUSTER value found in user data text"""
    match = ECS_CLUSTER_PATTERN.search(user_data or "")
    if match is None:
        raise MissingClusterKeyError()
    return match.group(1)


def decode_user_data(encoded: str) -> str:
    """Base64 decode user data, inflating it when it was gzipped.

    Raises MissingClusterKeyError when a gzip payload cannot be inflated.
    """
    try:
        raw = base64.b64decode(encoded)
    except (binascii.Error, ValueError):
        # The EC2 API always base64 encodes; anything else is already text
        return encoded

    if raw.startswith(GZIP_MAGIC):
        try:
            raw = gzip.decompress(raw)
        except (OSError, EOFError, zlib.error):
            # Unreadable archive, there is no cluster to find in it
            raise MissingClusterKeyError()

    return raw.decode("utf-8", errors="replace")


class ClusterResolver:
    """Looks up the ECS cluster of an EC2 instance"""

    def __init__(self, ec2: Ec2Api):
        self.ec2 = ec2
        self.logger = logger

    def check_not_terminated(self, instance_id: str) -> None:
        try:
            state = self.ec2.get_instance_state(instance_id)
        except UpstreamAPIError as e:
            # Terminated instances drop out of the API after a while
            if e.error_code == "InvalidInstanceID.NotFound":
                raise InstanceTerminatedError(instance_id, "terminated") from e
            raise

        if state in TERMINATED_STATES:
            raise InstanceTerminatedError(instance_id, state)

    def resolve(self, instance_id: str) -> str:
        """Return the cluster name for instance_id.

        Raises InstanceTerminatedError, MissingUserDataError or
        MissingClusterKeyError when the instance cannot be tied to a cluster,
        and UpstreamAPIError when EC2 cannot be queried.
        """
        self.check_not_terminated(instance_id)

        encoded = self.ec2.get_user_data(instance_id)
        if not encoded:
            raise MissingUserDataError(instance_id)

        try:
            user_data = decode_user_data(encoded)
        except MissingClusterKeyError:
            self.logger.warning(f"User data of {instance_id} is not a readable gzip archive")
            raise MissingClusterKeyError(instance_id)

        try:
            cluster = parse_cluster_name(user_data)
        except MissingClusterKeyError:
            self.logger.debug(f"User data of {instance_id}:\n{user_data}")
            raise MissingClusterKeyError(instance_id)

        self.logger.info(f"Instance {instance_id} belongs to ECS cluster {cluster}")
        return cluster
