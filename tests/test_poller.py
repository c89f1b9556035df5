import threading
import time

import pytest

from letscloudvm.errors import (
    Cancelled,
    NotFound,
    PermanentError,
    Suspended,
    TimedOut,
    TransientError,
)
from letscloudvm.gateway import FakeGateway
from letscloudvm.poller import (
    LONG_POLL,
    SHORT_POLL,
    MatchById,
    MatchByLabel,
    PollProfile,
    wait_for_instance_ready,
)
from letscloudvm.utils import OperationContext

FAST = PollProfile(max_attempts=7, interval=0)


def _instance(**flags):
    inst = {
        "identifier": "abc",
        "label": "t1",
        "hostname": "t1.example.com",
        "built": False,
        "booted": False,
        "suspended": False,
        "ip_addresses": [{"address": "192.168.1.1"}],
    }
    inst.update(flags)
    return inst


class ScriptedGateway:
    """Replays one observation per poll; the last one repeats.

    An observation is an instance dict, None (nothing there yet) or an
    exception to raise.
    """

    def __init__(self, *observations):
        self.observations = list(observations)
        self.polls = 0

    def _next(self):
        self.polls += 1
        if len(self.observations) > 1:
            obs = self.observations.pop(0)
        else:
            obs = self.observations[0]
        if isinstance(obs, Exception):
            raise obs
        return obs

    def list_instances(self):
        obs = self._next()
        return [] if obs is None else [obs]

    def get_instance(self, instance_id):
        obs = self._next()
        if obs is None:
            raise NotFound(f"Instance not found: {instance_id}")
        return obs


def _create(fake, **overrides):
    request = {"label": "t1", "hostname": "t1.example.com", "location_slug": "us-east-1"}
    request.update(overrides)
    fake.create_instance(request)
    fake.calls.clear()


def test_profiles_match_historical_budgets():
    assert (LONG_POLL.max_attempts, LONG_POLL.interval) == (400, 3.0)
    assert LONG_POLL.budget == 1200
    assert (SHORT_POLL.max_attempts, SHORT_POLL.interval) == (10, 60.0)
    assert SHORT_POLL.budget == 600


def test_ready_on_first_poll(fake_gateway, sleeps):
    _create(fake_gateway)
    instance = wait_for_instance_ready(
        fake_gateway, MatchByLabel("t1", "t1.example.com"), profile=FAST
    )
    assert instance["identifier"] == "mock-instance-1"
    assert fake_gateway.calls == ["list_instances"]
    assert sleeps == []


def test_label_match_requires_hostname_too(sleeps):
    gw = ScriptedGateway(_instance(built=True, booted=True, hostname="other"))
    with pytest.raises(TimedOut) as info:
        wait_for_instance_ready(gw, MatchByLabel("t1", "t1.example.com"), profile=FAST)
    assert info.value.identifier is None
    assert info.value.last_state == ""


def test_switches_to_identifier_once_found(sleeps):
    fake = FakeGateway(boot_after=3)
    _create(fake)
    profile = PollProfile(max_attempts=10, interval=3)
    wait_for_instance_ready(fake, MatchByLabel("t1", "t1.example.com"), profile=profile)
    assert fake.calls == ["list_instances"] + ["get_instance"] * 3
    assert sleeps == [3, 3, 3]


def test_searches_until_instance_appears(sleeps):
    gw = ScriptedGateway(None, None, _instance(built=True, booted=True))
    instance = wait_for_instance_ready(
        gw, MatchByLabel("t1", "t1.example.com"), profile=FAST
    )
    assert instance["identifier"] == "abc"
    assert gw.polls == 3


def test_times_out_after_exactly_max_attempts(sleeps):
    fake = FakeGateway(boot_after=1000)
    _create(fake)
    profile = PollProfile(max_attempts=7, interval=3)
    with pytest.raises(TimedOut) as info:
        wait_for_instance_ready(fake, MatchByLabel("t1", "t1.example.com"), profile=profile)
    assert len(fake.calls) == 7
    assert len(sleeps) == 6
    err = info.value
    assert err.attempts == 7
    assert err.identifier == "mock-instance-1"
    assert err.last_state == "building"
    assert "192.168.1.1" in err.last_ips
    assert "t1.example.com" in str(err)


def test_timeout_by_identifier(sleeps):
    gw = ScriptedGateway(_instance(built=True, booted=False))
    with pytest.raises(TimedOut) as info:
        wait_for_instance_ready(gw, MatchById("abc"), profile=FAST)
    assert gw.polls == FAST.max_attempts
    assert info.value.last_state == "stopped"


def test_suspended_fails_on_first_observation(fake_gateway, sleeps):
    _create(fake_gateway)
    fake_gateway.set_instance_flags("mock-instance-1", suspended=True)
    with pytest.raises(Suspended) as info:
        wait_for_instance_ready(
            fake_gateway, MatchByLabel("t1", "t1.example.com"), profile=FAST
        )
    assert info.value.identifier == "mock-instance-1"
    assert fake_gateway.calls == ["list_instances"]


def test_suspended_midway_stops_without_waiting_out_budget(sleeps):
    gw = ScriptedGateway(
        _instance(), _instance(), _instance(built=True, suspended=True)
    )
    with pytest.raises(Suspended) as info:
        wait_for_instance_ready(gw, MatchById("abc"), profile=FAST)
    assert gw.polls == 3
    assert info.value.attempt == 3
    assert info.value.max_attempts == FAST.max_attempts
    assert info.value.built is True
    assert info.value.booted is False
    assert "attempt 3/7" in str(info.value)


def test_needs_an_address_to_be_ready(sleeps):
    gw = ScriptedGateway(
        _instance(built=True, booted=True, ip_addresses=[]),
        _instance(built=True, booted=True, ip_addresses=[{"address": "2001:db8::1"}]),
    )
    instance = wait_for_instance_ready(gw, MatchById("abc"), profile=FAST)
    assert gw.polls == 2
    assert instance["ip_addresses"] == [{"address": "2001:db8::1"}]


def test_transient_and_not_found_errors_are_tolerated(sleeps):
    gw = ScriptedGateway(
        TransientError("502 bad gateway"),
        NotFound("Instance not found"),
        _instance(built=True, booted=True),
    )
    assert wait_for_instance_ready(gw, MatchById("abc"), profile=FAST)["identifier"] == "abc"
    assert gw.polls == 3


def test_last_error_reported_on_timeout(sleeps):
    gw = ScriptedGateway(TransientError("502 bad gateway"))
    with pytest.raises(TimedOut) as info:
        wait_for_instance_ready(gw, MatchByLabel("t1", "t1.example.com"), profile=FAST)
    assert info.value.last_error == "502 bad gateway"


def test_permanent_error_propagates(sleeps):
    gw = ScriptedGateway(PermanentError("Unauthenticated", status=401))
    with pytest.raises(PermanentError):
        wait_for_instance_ready(gw, MatchById("abc"), profile=FAST)
    assert gw.polls == 1


def test_cancel_aborts_wait_immediately():
    cancel = threading.Event()

    class CancellingGateway(ScriptedGateway):
        def get_instance(self, instance_id):
            cancel.set()
            return super().get_instance(instance_id)

    gw = CancellingGateway(_instance())
    started = time.monotonic()
    with pytest.raises(Cancelled):
        wait_for_instance_ready(
            gw,
            MatchById("abc"),
            profile=PollProfile(max_attempts=5, interval=60),
            ctx=OperationContext(cancel=cancel),
        )
    assert gw.polls == 1
    assert time.monotonic() - started < 5


def test_deadline_bounds_total_wait():
    gw = ScriptedGateway(_instance())
    ctx = OperationContext.with_timeout(0.05)
    with pytest.raises(Cancelled):
        wait_for_instance_ready(
            gw,
            MatchById("abc"),
            profile=PollProfile(max_attempts=100, interval=0.02),
            ctx=ctx,
        )
    assert gw.polls < 100
