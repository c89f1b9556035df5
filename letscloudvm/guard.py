"""Pre-create uniqueness check by label.

The API has no create-if-absent call, so this is list-then-create: two
concurrent creators can both pass the check. Detection is best effort.
"""

from collections.abc import Callable, Iterable

from .errors import DuplicateLabel, GatewayError
from .gateway import Gateway
from .types import ResourceKind
from .utils import log, logger


def find_by_label(items: Iterable[dict], label: str, *, label_key: str) -> dict | None:
    return next((item for item in items if item.get(label_key) == label), None)


def ensure_label_available(
    list_existing: Callable[[], list[dict]],
    label: str,
    *,
    kind: ResourceKind,
    label_key: str,
    id_key: str,
) -> None:
    """Fail if a live resource of this kind already uses ``label``.

    :param list_existing: Gateway list call for the resource kind
    :param label: Requested label or title
    :param kind: Resource kind, for messages
    :param label_key: Record field holding the label ('label' or 'title')
    :param id_key: Record field holding the identifier
    :raises DuplicateLabel: If an exact match exists
    :raises GatewayError: If listing fails
    """
    try:
        existing = list_existing()
    except GatewayError as e:
        logger.error(f"Error checking for existing {kind}s: {e}")
        raise

    match = find_by_label(existing, label, label_key=label_key)
    if match is not None:
        logger.error(f"Label '{label}' already exists ({kind} '{match.get(id_key)}')")
        raise DuplicateLabel(kind, label, match.get(id_key))
    log(f"Label '{label}' is free among {len(existing)} existing {kind}s")


def ensure_instance_label_available(gateway: Gateway, label: str) -> None:
    ensure_label_available(
        gateway.list_instances,
        label,
        kind="instance",
        label_key="label",
        id_key="identifier",
    )


def ensure_ssh_key_label_available(gateway: Gateway, title: str) -> None:
    ensure_label_available(
        gateway.list_ssh_keys,
        title,
        kind="ssh key",
        label_key="title",
        id_key="slug",
    )
