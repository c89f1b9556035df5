"""Readiness poller: wait for an instance to become usable.

One loop serves both historical call sites. Right after a create the
identifier is usually unknown, so the instance is found by label and
hostname on a long, fast profile. When the identifier is known it is fetched
directly on a short, slow profile.
"""

import enum
from dataclasses import dataclass

from .errors import NotFound, Suspended, TimedOut, TransientError
from .gateway import Gateway
from .state import describe_ips, instance_ipv4, instance_ipv6, instance_state, is_ready
from .types import Instance
from .utils import BACKGROUND, OperationContext, debug, log, warn


class PollState(enum.Enum):
    SEARCHING = "searching"
    OBSERVED = "observed"
    READY = "ready"
    SUSPENDED = "suspended"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollProfile:
    max_attempts: int
    interval: float

    @property
    def budget(self) -> float:
        return self.max_attempts * self.interval


# ~20 minutes, used while only label+hostname are known
LONG_POLL = PollProfile(max_attempts=400, interval=3.0)
# ~10 minutes, used when the identifier is already known
SHORT_POLL = PollProfile(max_attempts=10, interval=60.0)


@dataclass(frozen=True)
class MatchById:
    identifier: str

    @property
    def label(self) -> str | None:
        return None

    @property
    def hostname(self) -> str | None:
        return None

    def describe(self) -> str:
        return f"id '{self.identifier}'"

    def find(self, gateway: Gateway) -> Instance | None:
        try:
            return gateway.get_instance(self.identifier)
        except NotFound:
            return None


@dataclass(frozen=True)
class MatchByLabel:
    label: str
    hostname: str

    def describe(self) -> str:
        return f"label '{self.label}' and hostname '{self.hostname}'"

    def find(self, gateway: Gateway) -> Instance | None:
        return next(
            (
                inst
                for inst in gateway.list_instances()
                if inst.get("label") == self.label
                and inst.get("hostname") == self.hostname
            ),
            None,
        )


Match = MatchById | MatchByLabel


def wait_for_instance_ready(
    gateway: Gateway,
    match: Match,
    *,
    profile: PollProfile = LONG_POLL,
    ctx: OperationContext = BACKGROUND,
) -> Instance:
    """Poll until the instance is built, booted and addressed.

    Each attempt fetches the instance (by identifier once one is known),
    then stops on suspension or readiness. Not-found and transient errors
    count as an attempt and are retried; permanent errors propagate.

    :param gateway: Gateway to query
    :param match: How to find the instance: MatchById or MatchByLabel
    :param profile: Attempt count and interval
    :param ctx: Cancellation context checked at every sleep boundary
    :return: The ready instance record
    :raises Suspended: As soon as the instance reports suspended
    :raises TimedOut: After exactly ``profile.max_attempts`` attempts
    :raises Cancelled: If the context is cancelled or its deadline passes
    """
    state = PollState.SEARCHING
    identifier = match.identifier if isinstance(match, MatchById) else None
    current: Match = match
    last_error = ""
    last_state = ""
    last_ips = ""
    last_response = ""

    for attempt in range(1, profile.max_attempts + 1):
        ctx.check()
        elapsed = (attempt - 1) * profile.interval
        debug(
            f"Checking instance {current.describe()} "
            f"({attempt}/{profile.max_attempts}, {elapsed:g}s elapsed, state {state.value})"
        )

        try:
            instance = current.find(gateway)
        except (TransientError, NotFound) as e:
            last_error = str(e)
            warn(
                f"Error looking up instance {current.describe()} "
                f"({attempt}/{profile.max_attempts}): {e}"
            )
            instance = None

        if instance is None:
            if state is PollState.SEARCHING:
                log(
                    f"Instance {current.describe()} not found yet, waiting... "
                    f"({attempt}/{profile.max_attempts})"
                )
        else:
            if state is PollState.SEARCHING:
                state = PollState.OBSERVED
                identifier = instance.get("identifier") or identifier
                if identifier and isinstance(current, MatchByLabel):
                    current = MatchById(identifier)

            last_state = instance_state(instance)
            last_ips = describe_ips(instance)
            last_response = repr(instance)
            log(
                f"Instance '{identifier}' is {last_state} "
                f"(built={bool(instance.get('built'))}, "
                f"booted={bool(instance.get('booted'))}, {last_ips}) "
                f"({attempt}/{profile.max_attempts})"
            )

            if instance.get("suspended"):
                warn(f"Instance '{identifier}' is {PollState.SUSPENDED.value}, giving up")
                raise Suspended(
                    identifier or "unknown",
                    instance.get("label"),
                    attempt=attempt,
                    max_attempts=profile.max_attempts,
                    built=bool(instance.get("built")),
                    booted=bool(instance.get("booted")),
                )

            if is_ready(instance):
                log(
                    f"Instance '{identifier}' is {PollState.READY.value} "
                    f"(ipv4 '{instance_ipv4(instance)}', ipv6 '{instance_ipv6(instance)}')"
                )
                return instance

        if attempt < profile.max_attempts:
            ctx.pause(profile.interval)

    warn(
        f"Instance {match.describe()} {PollState.TIMED_OUT.value} after "
        f"{profile.max_attempts} attempts (last state '{last_state}')"
    )
    raise TimedOut(
        label=match.label,
        hostname=match.hostname,
        identifier=identifier,
        attempts=profile.max_attempts,
        interval=profile.interval,
        last_state=last_state,
        last_ips=last_ips,
        last_error=last_error,
        last_response=last_response,
    )
