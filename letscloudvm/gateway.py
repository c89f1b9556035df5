"""Remote resource gateway for the LetsCloud API.

A 1:1 mapping onto the remote endpoints: no retries, no polling, no business
validation. Failures surface as NotFound, TransientError or PermanentError.
"""

import copy
import itertools
import os
from typing import Any, Protocol

import httpx
from dotenv import load_dotenv

from .errors import (
    GatewayError,
    NotFound,
    PermanentError,
    UnsupportedOperation,
    ValidationError,
    classify_error,
)
from .types import CreateInstanceRequest, Instance, Plan, SSHKey
from .utils import debug, log

LETSCLOUD_API_URL = "https://core.letscloud.io/api"
MOCK_TOKEN = "mock-token-for-testing"
MIN_TOKEN_LENGTH = 10


class Gateway(Protocol):
    # Whether update_instance can change label and hostname
    supports_rename: bool

    def validate_auth(self) -> None: ...

    def create_instance(self, request: CreateInstanceRequest) -> str | None: ...

    def get_instance(self, instance_id: str) -> Instance: ...

    def list_instances(self) -> list[Instance]: ...

    def update_instance(self, instance_id: str, label: str, hostname: str) -> None: ...

    def delete_instance(self, instance_id: str) -> None: ...

    def reset_instance_password(self, instance_id: str, password: str) -> None: ...

    def get_location_plans(self, location: str) -> list[Plan]: ...

    def get_ssh_key(self, key_id: str) -> SSHKey: ...

    def list_ssh_keys(self) -> list[SSHKey]: ...

    def create_ssh_key(self, title: str, public_key: str) -> SSHKey: ...

    def delete_ssh_key(self, key_id: str) -> None: ...

    def close(self) -> None: ...


class LetsCloudGateway:
    """HTTP client for the LetsCloud REST API."""

    supports_rename = False

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str | None = None,
        timeout: float = 60,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url or os.getenv("LETSCLOUD_API_URL", LETSCLOUD_API_URL)
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "api-token": api_token,
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    def __enter__(self) -> "LetsCloudGateway":
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Execute HTTP request and return the 'data' member of the envelope.

        :raises GatewayError: Classified from status code or message text
        """
        debug(f"{method} {path} ({operation})")
        try:
            resp = self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise classify_error(f"request timed out: {e}", operation=operation) from e
        except httpx.RequestError as e:
            raise classify_error(f"connection failed: {e}", operation=operation) from e

        body = _decode(resp)
        if resp.is_error:
            message = _error_message(body, resp)
            raise classify_error(message, status=resp.status_code, operation=operation)
        if isinstance(body, dict):
            if body.get("success") is False:
                raise classify_error(_error_message(body, resp), operation=operation)
            if "data" in body:
                return body["data"]
        return body

    def validate_auth(self) -> None:
        """Probe the API with a read of a nonexistent instance.

        :raises GatewayError: If the probe fails with anything but NotFound
        """
        try:
            self.get_instance("test")
        except NotFound:
            pass

    def create_instance(self, request: CreateInstanceRequest) -> str | None:
        data = self._request("create_instance", "POST", "/instances", json=dict(request))
        if isinstance(data, dict):
            return data.get("identifier")
        return None

    def get_instance(self, instance_id: str) -> Instance:
        return self._request("get_instance", "GET", f"/instances/{instance_id}")

    def list_instances(self) -> list[Instance]:
        return self._request("list_instances", "GET", "/instances") or []

    def update_instance(self, instance_id: str, label: str, hostname: str) -> None:
        raise UnsupportedOperation(
            f"Changing label or hostname of instance '{instance_id}' is not supported "
            "by the LetsCloud API. Please delete and recreate the instance instead."
        )

    def delete_instance(self, instance_id: str) -> None:
        self._request("delete_instance", "DELETE", f"/instances/{instance_id}")

    def reset_instance_password(self, instance_id: str, password: str) -> None:
        self._request(
            "reset_instance_password",
            "PUT",
            f"/instances/{instance_id}/reset-password",
            json={"password": password},
        )

    def get_location_plans(self, location: str) -> list[Plan]:
        return (
            self._request("get_location_plans", "GET", f"/locations/{location}/plans")
            or []
        )

    def get_ssh_key(self, key_id: str) -> SSHKey:
        return self._request("get_ssh_key", "GET", f"/sshkeys/{key_id}")

    def list_ssh_keys(self) -> list[SSHKey]:
        return self._request("list_ssh_keys", "GET", "/sshkeys") or []

    def create_ssh_key(self, title: str, public_key: str) -> SSHKey:
        data = self._request(
            "create_ssh_key", "POST", "/sshkeys", json={"title": title, "key": public_key}
        )
        if not isinstance(data, dict) or not data.get("slug"):
            raise PermanentError(
                "empty response creating SSH key", operation="create_ssh_key"
            )
        return data

    def delete_ssh_key(self, key_id: str) -> None:
        self._request("delete_ssh_key", "DELETE", f"/sshkeys/{key_id}")


def _decode(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _error_message(body: Any, resp: httpx.Response) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    if isinstance(body, str) and body.strip():
        return body.strip()
    return resp.reason_phrase or f"HTTP {resp.status_code}"


class FakeGateway:
    """In-memory gateway implementing the same interface as LetsCloudGateway.

    New instances start unbuilt and become built and booted once they have
    been read ``boot_after`` times (0 means on the first read).

    :param boot_after: Reads before a new instance reports built+booted
    :param return_identifier: Whether create_instance returns the new id
    :param ip_addresses: Addresses assigned to every new instance
    """

    supports_rename = True
    DEFAULT_IPS = ("192.168.1.1", "2001:db8::1")

    def __init__(
        self,
        *,
        boot_after: int = 0,
        return_identifier: bool = False,
        ip_addresses: tuple[str, ...] | list[str] = DEFAULT_IPS,
    ):
        self.boot_after = boot_after
        self.return_identifier = return_identifier
        self.ip_addresses = list(ip_addresses)
        self.instances: dict[str, Instance] = {}
        self.ssh_keys: dict[str, SSHKey] = {}
        self.passwords: dict[str, str] = {}
        self.calls: list[str] = []
        self._pending: dict[str, int] = {}
        self._failures: dict[str, list[GatewayError]] = {}
        self._instance_ids = itertools.count(1)
        self._key_ids = itertools.count(1)

    def fail_next(self, operation: str, exc: GatewayError, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``exc``."""
        self._failures.setdefault(operation, []).extend([exc] * times)

    def set_instance_flags(
        self,
        instance_id: str,
        *,
        built: bool | None = None,
        booted: bool | None = None,
        suspended: bool | None = None,
    ) -> None:
        inst = self._instance(instance_id)
        self._pending[instance_id] = -1
        for key, value in (("built", built), ("booted", booted), ("suspended", suspended)):
            if value is not None:
                inst[key] = value

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)

    def _instance(self, instance_id: str) -> Instance:
        inst = self.instances.get(instance_id)
        if inst is None:
            raise NotFound(f"Instance not found: {instance_id}", status=404)
        return inst

    def _advance(self, instance_id: str) -> Instance:
        inst = self.instances[instance_id]
        pending = self._pending.get(instance_id, -1)
        if pending > 0:
            self._pending[instance_id] = pending - 1
        elif pending == 0:
            inst["built"] = True
            inst["booted"] = True
            self._pending[instance_id] = -1
        return copy.deepcopy(inst)

    def validate_auth(self) -> None:
        self._record("validate_auth")

    def create_instance(self, request: CreateInstanceRequest) -> str | None:
        self._record("create_instance")
        instance_id = f"mock-instance-{next(self._instance_ids)}"
        self.instances[instance_id] = {
            "identifier": instance_id,
            "label": request["label"],
            "hostname": request["hostname"],
            "built": False,
            "booted": False,
            "suspended": False,
            "location": {"slug": request["location_slug"]},
            "ip_addresses": [{"address": ip} for ip in self.ip_addresses],
        }
        self._pending[instance_id] = self.boot_after
        if request.get("password"):
            self.passwords[instance_id] = request["password"]
        log(f"[fake] Created instance '{instance_id}' ('{request['label']}')")
        return instance_id if self.return_identifier else None

    def get_instance(self, instance_id: str) -> Instance:
        self._record("get_instance")
        self._instance(instance_id)
        return self._advance(instance_id)

    def list_instances(self) -> list[Instance]:
        self._record("list_instances")
        return [self._advance(instance_id) for instance_id in list(self.instances)]

    def update_instance(self, instance_id: str, label: str, hostname: str) -> None:
        self._record("update_instance")
        inst = self._instance(instance_id)
        inst["label"] = label
        inst["hostname"] = hostname

    def delete_instance(self, instance_id: str) -> None:
        self._record("delete_instance")
        self._instance(instance_id)
        del self.instances[instance_id]
        self._pending.pop(instance_id, None)
        self.passwords.pop(instance_id, None)

    def reset_instance_password(self, instance_id: str, password: str) -> None:
        self._record("reset_instance_password")
        self._instance(instance_id)
        self.passwords[instance_id] = password

    def get_location_plans(self, location: str) -> list[Plan]:
        self._record("get_location_plans")
        return [
            {
                "slug": "plan-1",
                "shortcode": "Basic Plan",
                "core": 1,
                "memory": 1024,
                "disk": 10,
                "bandwidth": 1000,
                "monthly_value": "10.00",
                "currency_code": "USD",
            }
        ]

    def get_ssh_key(self, key_id: str) -> SSHKey:
        self._record("get_ssh_key")
        key = self.ssh_keys.get(key_id)
        if key is None:
            raise NotFound(f"SSH key not found: {key_id}", status=404)
        return dict(key)

    def list_ssh_keys(self) -> list[SSHKey]:
        self._record("list_ssh_keys")
        return [dict(key) for key in self.ssh_keys.values()]

    def create_ssh_key(self, title: str, public_key: str) -> SSHKey:
        self._record("create_ssh_key")
        if any(key["title"] == title for key in self.ssh_keys.values()):
            raise PermanentError(
                f"SSH key with label '{title}' already exists", status=422
            )
        key_id = f"mock-ssh-key-{next(self._key_ids)}"
        key: SSHKey = {"slug": key_id, "title": title, "public_key": public_key}
        self.ssh_keys[key_id] = key
        return dict(key)

    def delete_ssh_key(self, key_id: str) -> None:
        self._record("delete_ssh_key")
        if key_id not in self.ssh_keys:
            raise NotFound(f"SSH key not found: {key_id}", status=404)
        del self.ssh_keys[key_id]

    def close(self) -> None:
        pass


def get_gateway(
    api_token: str | None = None,
    *,
    base_url: str | None = None,
    timeout: float = 60,
    validate: bool = True,
    fake: Gateway | None = None,
) -> Gateway:
    """Build the gateway for an API token.

    Falls back to LETSCLOUD_API_TOKEN (via .env) when no token is given.
    The sentinel token 'mock-token-for-testing' returns ``fake`` (or a new
    FakeGateway) instead of a network client.

    :param api_token: LetsCloud API token
    :param base_url: Override for the API base URL
    :param timeout: HTTP timeout in seconds
    :param validate: Probe the API once before returning the client
    :param fake: Gateway to hand out for the sentinel token
    :return: Gateway ready for the lifecycle controllers
    :raises ValidationError: If the token is missing or too short
    """
    if api_token is None:
        load_dotenv()
        api_token = os.getenv("LETSCLOUD_API_TOKEN", "")

    if not api_token:
        raise ValidationError(
            "api_token",
            "Missing LetsCloud API token. Set api_token or the "
            "LETSCLOUD_API_TOKEN environment variable.",
        )

    if api_token == MOCK_TOKEN:
        log("Using in-memory fake gateway")
        return fake if fake is not None else FakeGateway()

    if len(api_token) < MIN_TOKEN_LENGTH:
        raise ValidationError(
            "api_token",
            f"The provided API token appears to be invalid (length {len(api_token)}). "
            "Please check your API token and try again.",
        )

    gateway = LetsCloudGateway(api_token, base_url=base_url, timeout=timeout)
    if validate:
        try:
            gateway.validate_auth()
        except GatewayError:
            gateway.close()
            raise
    return gateway
