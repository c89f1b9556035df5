"""Type definitions for letscloudvm."""

from typing import Literal, TypedDict

InstanceState = Literal["suspended", "building", "running", "stopped"]
ResourceKind = Literal["instance", "ssh key"]


class IPAddress(TypedDict):
    address: str


class Location(TypedDict, total=False):
    slug: str
    country: str
    city: str


class Instance(TypedDict, total=False):
    """Instance record as returned by the LetsCloud API."""

    identifier: str
    label: str
    hostname: str
    built: bool
    booted: bool
    suspended: bool
    location: Location
    ip_addresses: list[IPAddress]


class SSHKey(TypedDict, total=False):
    """SSH key record as returned by the LetsCloud API."""

    slug: str
    title: str
    public_key: str


class Plan(TypedDict, total=False):
    slug: str
    shortcode: str
    core: int
    memory: int
    disk: int
    bandwidth: int
    monthly_value: str
    currency_code: str


class CreateInstanceRequest(TypedDict):
    """Body of an instance create call."""

    location_slug: str
    plan_slug: str
    image_slug: str
    ssh_slug: str
    password: str
    label: str
    hostname: str


class InstanceData(TypedDict, total=False):
    """Instance document exchanged with the front end.

    plan_slug and image_slug are never returned by the API, so they only
    ever come from the caller's previous document.
    """

    id: str
    label: str
    hostname: str
    location_slug: str
    plan_slug: str
    image_slug: str
    ssh_keys: list[str]
    password: str  # write-only, never read back
    state: InstanceState
    ipv4: str
    ipv6: str


class SSHKeyData(TypedDict, total=False):
    """SSH key document exchanged with the front end."""

    id: str
    label: str
    key: str  # write-only, never read back
