"""letscloudvm - provision LetsCloud instances and SSH keys."""

from .errors import (
    Cancelled,
    DuplicateLabel,
    GatewayError,
    LetsCloudError,
    NotFound,
    PermanentError,
    Suspended,
    TimedOut,
    TransientError,
    UnsupportedOperation,
    ValidationError,
    classify_error,
)
from .gateway import FakeGateway, Gateway, LetsCloudGateway, get_gateway
from .instances import InstanceController
from .poller import (
    LONG_POLL,
    SHORT_POLL,
    MatchById,
    MatchByLabel,
    PollProfile,
    wait_for_instance_ready,
)
from .retry import RetryPolicy, create_with_retry
from .sshkeys import SSHKeyController, normalize_public_key
from .state import instance_ipv4, instance_ipv6, instance_state
from .types import Instance, InstanceData, Plan, SSHKey, SSHKeyData
from .utils import OperationContext, setup_logging

__all__ = [
    "Cancelled",
    "DuplicateLabel",
    "GatewayError",
    "LetsCloudError",
    "NotFound",
    "PermanentError",
    "Suspended",
    "TimedOut",
    "TransientError",
    "UnsupportedOperation",
    "ValidationError",
    "classify_error",
    "FakeGateway",
    "Gateway",
    "LetsCloudGateway",
    "get_gateway",
    "InstanceController",
    "SSHKeyController",
    "normalize_public_key",
    "LONG_POLL",
    "SHORT_POLL",
    "MatchById",
    "MatchByLabel",
    "PollProfile",
    "wait_for_instance_ready",
    "RetryPolicy",
    "create_with_retry",
    "instance_ipv4",
    "instance_ipv6",
    "instance_state",
    "Instance",
    "InstanceData",
    "Plan",
    "SSHKey",
    "SSHKeyData",
    "OperationContext",
    "setup_logging",
]
