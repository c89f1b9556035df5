"""Bounded retries for create calls.

Only the create acknowledgement is retried here; waiting for the resource
to become usable is the poller's job.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from .errors import GatewayError, TransientError
from .utils import BACKGROUND, OperationContext, log, warn

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for a create call.

    :param max_attempts: Total create attempts, including the first
    :param delay: Seconds between attempts
    :param retry_permanent: Also retry errors classified as permanent, which
        reproduces the historical retry-on-anything behaviour
    """

    max_attempts: int = 3
    delay: float = 5.0
    retry_permanent: bool = False

    def should_retry(self, exc: GatewayError) -> bool:
        return self.retry_permanent or isinstance(exc, TransientError)


DEFAULT_RETRY = RetryPolicy()


def create_with_retry(
    create: Callable[[], T],
    *,
    description: str,
    policy: RetryPolicy = DEFAULT_RETRY,
    ctx: OperationContext = BACKGROUND,
) -> T:
    """Call ``create`` until it succeeds or the budget is spent.

    :param create: Zero-argument callable issuing the create request
    :param description: What is being created, for log lines
    :param policy: Attempt count, delay and which errors to retry
    :param ctx: Cancellation context observed before each attempt and
        during each delay
    :return: Whatever ``create`` returned on success
    :raises GatewayError: The last error once attempts are exhausted, or
        the first non-retryable one
    :raises Cancelled: If the context is cancelled while waiting
    """
    if policy.max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {policy.max_attempts}")

    for attempt in range(1, policy.max_attempts + 1):
        ctx.check()
        log(f"Attempting to create {description} ({attempt}/{policy.max_attempts})")
        try:
            result = create()
        except GatewayError as e:
            if not policy.should_retry(e):
                warn(f"Create {description} failed with non-retryable error: {e}")
                raise
            if attempt == policy.max_attempts:
                warn(
                    f"Failed to create {description} after {policy.max_attempts} "
                    f"attempts: {e}"
                )
                raise
            warn(
                f"Failed to create {description}, retrying in {policy.delay:g}s "
                f"({attempt}/{policy.max_attempts}): {e}"
            )
            ctx.pause(policy.delay)
            continue
        log(f"Create request for {description} sent successfully")
        return result

    raise AssertionError("unreachable")  # loop always returns or raises
