"""SSH key lifecycle and lookups.

Keys are create/read/delete only: the API has no update endpoint, and the
public key material is never read back.
"""

from .errors import (
    GatewayError,
    NotFound,
    UnsupportedOperation,
    ValidationError,
    with_context,
)
from .gateway import Gateway
from .guard import ensure_ssh_key_label_available, find_by_label
from .types import SSHKey, SSHKeyData
from .utils import log, warn

KEY_PREFIXES = ("ssh-rsa ", "ssh-ed25519 ")


def normalize_public_key(key: str) -> str:
    """Check the key type and drop any trailing comment.

    :param key: Public key line, e.g. 'ssh-ed25519 AAAA... user@host'
    :return: 'type payload'
    :raises ValidationError: If the type prefix is unknown or the payload
        is missing
    """
    if not key.startswith(KEY_PREFIXES):
        raise ValidationError(
            "key",
            "Invalid SSH key format: key must start with "
            + " or ".join(f"'{p}'" for p in KEY_PREFIXES),
        )
    parts = key.split()
    if len(parts) < 2:
        raise ValidationError("key", "Invalid SSH key format: missing key payload")
    return " ".join(parts[:2])


def to_data(key: SSHKey) -> SSHKeyData:
    return {"id": key.get("slug", ""), "label": key.get("title", "")}


class SSHKeyController:
    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    def create(self, desired: SSHKeyData) -> SSHKeyData:
        """Register a public key under a unique label.

        :raises ValidationError: Before any gateway call, if the key or
            label is invalid
        :raises DuplicateLabel: If the label is taken
        :raises GatewayError: If the create call fails
        """
        key = normalize_public_key(desired.get("key") or "")
        title = desired.get("label") or ""
        if not title:
            raise ValidationError("label", "Label is required")

        ensure_ssh_key_label_available(self.gateway, title)

        try:
            created = self.gateway.create_ssh_key(title, key)
        except GatewayError as e:
            raise with_context(e, f"Unable to create SSH key '{title}'") from e

        result: SSHKeyData = dict(desired)
        result["id"] = created["slug"]
        log(f"SSH key created: '{created.get('title', title)}' ('{result['id']}')")
        return result

    def read(self, current: SSHKeyData) -> SSHKeyData:
        key_id = current["id"]
        try:
            key = self.gateway.get_ssh_key(key_id)
        except GatewayError as e:
            raise with_context(e, f"Unable to read SSH key '{key_id}'") from e

        result: SSHKeyData = dict(current)
        result["label"] = key.get("title", "")
        return result

    def update(self, desired: SSHKeyData, current: SSHKeyData) -> SSHKeyData:
        raise UnsupportedOperation(
            "Updates to SSH keys are not supported by the LetsCloud API. "
            "Please delete and recreate the SSH key instead."
        )

    def delete(self, current: SSHKeyData) -> None:
        key_id = current["id"]
        try:
            self.gateway.delete_ssh_key(key_id)
        except NotFound:
            log(f"SSH key '{key_id}' already gone")
            return
        except GatewayError as e:
            raise with_context(e, f"Unable to delete SSH key '{key_id}'") from e
        log(f"SSH key '{key_id}' deleted")

    def import_state(self, identifier: str) -> SSHKeyData:
        """Import by id. The key material stays unknown."""
        if not identifier:
            raise ValidationError("id", "SSH key identifier is required for import")
        return self.read({"id": identifier})

    def lookup(
        self, *, key_id: str | None = None, label: str | None = None
    ) -> SSHKeyData:
        """Find one key by id or by label; the id wins when both are given.

        :raises ValidationError: If neither is given
        :raises NotFound: If no key has the label
        """
        if not key_id and not label:
            raise ValidationError(
                "id",
                "Either 'id' or 'label' must be specified to identify the SSH key.",
            )
        if key_id and label:
            warn("Both 'id' and 'label' provided, using 'id' to identify SSH key")

        if key_id:
            try:
                return to_data(self.gateway.get_ssh_key(key_id))
            except GatewayError as e:
                raise with_context(e, f"Unable to read SSH key by ID '{key_id}'") from e

        match = find_by_label(self._list_raw(), label, label_key="title")
        if match is None:
            raise NotFound(f"No SSH key found with label '{label}'", operation="lookup")
        return to_data(match)

    def _list_raw(self) -> list[SSHKey]:
        try:
            return self.gateway.list_ssh_keys()
        except GatewayError as e:
            raise with_context(e, "Unable to list SSH keys") from e

    def list_keys(self) -> list[SSHKeyData]:
        keys = [to_data(key) for key in self._list_raw()]
        log(f"Found {len(keys)} SSH keys")
        return keys
