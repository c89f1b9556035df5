import json

import httpx
import pytest

from letscloudvm.errors import (
    NotFound,
    PermanentError,
    TransientError,
    UnsupportedOperation,
    ValidationError,
)
from letscloudvm.gateway import FakeGateway, LetsCloudGateway, get_gateway

TOKEN = "abcdefghijklmnop"


def _gateway(handler):
    return LetsCloudGateway(
        TOKEN, base_url="https://api.test", transport=httpx.MockTransport(handler)
    )


def test_get_instance_unwraps_envelope_and_sends_token():
    seen = {}

    def handler(request):
        seen["token"] = request.headers["api-token"]
        seen["path"] = request.url.path
        return httpx.Response(
            200, json={"success": True, "data": {"identifier": "abc", "label": "t1"}}
        )

    with _gateway(handler) as gw:
        assert gw.get_instance("abc") == {"identifier": "abc", "label": "t1"}
    assert seen == {"token": TOKEN, "path": "/instances/abc"}


def test_create_instance_posts_request_and_returns_identifier_when_given():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"success": True, "data": {"identifier": "new"}})

    request = {
        "location_slug": "us-east-1",
        "plan_slug": "plan-1",
        "image_slug": "ubuntu-20-04",
        "ssh_slug": "",
        "password": "",
        "label": "t1",
        "hostname": "t1.example.com",
    }
    with _gateway(handler) as gw:
        assert gw.create_instance(request) == "new"
    assert bodies == [request]


def test_create_instance_without_identifier_returns_none():
    with _gateway(lambda r: httpx.Response(200, json={"success": True})) as gw:
        assert gw.create_instance({"label": "t1"}) is None


@pytest.mark.parametrize(
    "status,expected",
    [(404, NotFound), (503, TransientError), (422, PermanentError)],
)
def test_http_errors_are_classified(status, expected):
    def handler(request):
        return httpx.Response(status, json={"success": False, "message": "nope"})

    with _gateway(handler) as gw:
        with pytest.raises(expected) as info:
            gw.list_instances()
    assert info.value.status == status
    assert info.value.operation == "list_instances"


def test_unsuccessful_envelope_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "Instance not found"})

    with _gateway(handler) as gw:
        with pytest.raises(NotFound):
            gw.get_instance("missing")


def test_transport_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with _gateway(handler) as gw:
        with pytest.raises(TransientError):
            gw.list_ssh_keys()


def test_validate_auth_accepts_not_found():
    with _gateway(lambda r: httpx.Response(404, json={"message": "not found"})) as gw:
        gw.validate_auth()


def test_validate_auth_rejects_bad_token():
    with _gateway(lambda r: httpx.Response(401, json={"message": "Unauthenticated"})) as gw:
        with pytest.raises(PermanentError):
            gw.validate_auth()


def test_rename_is_unsupported():
    with _gateway(lambda r: httpx.Response(500)) as gw:
        with pytest.raises(UnsupportedOperation):
            gw.update_instance("abc", "t2", "t2.example.com")


def test_reset_password_uses_put():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"success": True})

    with _gateway(handler) as gw:
        gw.reset_instance_password("abc", "s3cret!")
    assert seen == [("PUT", "/instances/abc/reset-password", {"password": "s3cret!"})]


def test_get_gateway_routes_sentinel_to_fake():
    assert isinstance(get_gateway("mock-token-for-testing"), FakeGateway)
    fake = FakeGateway(boot_after=3)
    assert get_gateway("mock-token-for-testing", fake=fake) is fake


def test_get_gateway_rejects_short_token():
    with pytest.raises(ValidationError) as info:
        get_gateway("short")
    assert info.value.field == "api_token"


def test_get_gateway_requires_token(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("LETSCLOUD_API_TOKEN", raising=False)
    with pytest.raises(ValidationError):
        get_gateway()


def test_get_gateway_reads_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LETSCLOUD_API_TOKEN", "mock-token-for-testing")
    assert isinstance(get_gateway(), FakeGateway)


def test_fake_gateway_boots_after_configured_reads():
    fake = FakeGateway(boot_after=2)
    fake.create_instance({"label": "t1", "hostname": "h", "location_slug": "x"})
    states = [fake.get_instance("mock-instance-1")["booted"] for _ in range(3)]
    assert states == [False, False, True]


def test_fake_gateway_injected_failures():
    fake = FakeGateway()
    fake.fail_next("list_ssh_keys", TransientError("flaky"), times=2)
    for _ in range(2):
        with pytest.raises(TransientError):
            fake.list_ssh_keys()
    assert fake.list_ssh_keys() == []
    assert fake.calls == ["list_ssh_keys"] * 3
