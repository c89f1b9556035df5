"""Derived instance attributes, recomputed from every observation."""

from .types import Instance, InstanceState


def instance_state(instance: Instance) -> InstanceState:
    """Map (suspended, built, booted) onto a single state.

    Precedence is suspended, then not built, then booted.
    """
    if instance.get("suspended"):
        return "suspended"
    if not instance.get("built"):
        return "building"
    if instance.get("booted"):
        return "running"
    return "stopped"


def _addresses(instance: Instance | None) -> list[str]:
    if not instance:
        return []
    return [ip.get("address", "") for ip in instance.get("ip_addresses") or []]


def instance_ipv4(instance: Instance | None) -> str:
    """First address without a colon, or ''."""
    return next((a for a in _addresses(instance) if a and ":" not in a), "")


def instance_ipv6(instance: Instance | None) -> str:
    """First address containing a colon, or ''."""
    return next((a for a in _addresses(instance) if ":" in a), "")


def describe_ips(instance: Instance | None) -> str:
    return f"IPv4: {instance_ipv4(instance)}, IPv6: {instance_ipv6(instance)}"


def is_ready(instance: Instance) -> bool:
    """Built, booted and holding at least one address."""
    has_ip = bool(instance_ipv4(instance) or instance_ipv6(instance))
    return bool(instance.get("built") and instance.get("booted") and has_ip)
