"""Shared fixtures: in-memory gateway, fast controllers, optional live account."""

import pytest

from letscloudvm.gateway import FakeGateway, get_gateway
from letscloudvm.instances import InstanceController
from letscloudvm.poller import PollProfile
from letscloudvm.retry import RetryPolicy
from letscloudvm.sshkeys import SSHKeyController

FAST_POLL = PollProfile(max_attempts=5, interval=0)
NO_DELAY_RETRY = RetryPolicy(max_attempts=3, delay=0)


def pytest_addoption(parser):
    parser.addoption(
        "--api-token",
        default=None,
        help="LetsCloud API token for integration tests (default: skip them)",
    )


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def instances(fake_gateway):
    return InstanceController(
        fake_gateway,
        search_profile=FAST_POLL,
        known_id_profile=FAST_POLL,
        retry=NO_DELAY_RETRY,
    )


@pytest.fixture
def sshkeys(fake_gateway):
    return SSHKeyController(fake_gateway)


@pytest.fixture
def sleeps(monkeypatch):
    """Record every time.sleep call made while waiting, without sleeping."""
    recorded = []
    monkeypatch.setattr("letscloudvm.utils.time.sleep", recorded.append)
    return recorded


@pytest.fixture
def desired_instance():
    return {
        "label": "t1",
        "hostname": "t1.example.com",
        "location_slug": "us-east-1",
        "plan_slug": "plan-1",
        "image_slug": "ubuntu-20-04",
    }


@pytest.fixture(scope="session")
def live_gateway(request):
    token = request.config.getoption("--api-token")
    if not token:
        pytest.skip("needs --api-token")
    gateway = get_gateway(token)
    yield gateway
    gateway.close()
