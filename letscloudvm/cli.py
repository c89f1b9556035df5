#!/usr/bin/env python3
"""Manage LetsCloud instances and SSH keys.

Each resource is tracked in a local JSON document named after its label
('<label>.instance.json', '<label>.sshkey.json').

Usage: uv run letscloudvm <noun> <verb> [options]

Examples:
    uv run letscloudvm instance create web1 --hostname web1.example.com \\
        --location us-east-1 --plan plan-1 --image ubuntu-20-04
    uv run letscloudvm instance read web1
    uv run letscloudvm sshkey create laptop ~/.ssh/id_ed25519.pub
"""

import json
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import cyclopts
from rich import print

from .errors import LetsCloudError
from .gateway import get_gateway
from .instances import InstanceController
from .sshkeys import SSHKeyController
from .types import InstanceData, SSHKeyData
from .utils import OperationContext, error, log, setup_logging, warn

app = cyclopts.App(
    name="letscloudvm", help="Manage LetsCloud instances and SSH keys", sort_key=None
)

instance_app = cyclopts.App(name="instance", help="Manage instances", sort_key=1)
sshkey_app = cyclopts.App(name="sshkey", help="Manage SSH keys", sort_key=2)

app.command(instance_app)
app.command(sshkey_app)


@app.meta.default
def launcher(
    *tokens: Annotated[str, cyclopts.Parameter(show=False, allow_leading_hyphen=True)],
    verbose: bool = False,
):
    """:param verbose: Log at DEBUG level"""
    setup_logging("DEBUG" if verbose else "INFO")
    app(tokens)


def main():
    app.meta()


@contextmanager
def _fail_on_error():
    try:
        yield
    except LetsCloudError as e:
        error(f"{type(e).__name__}: {e}")


@contextmanager
def _cancel_on_interrupt(cancel: threading.Event):
    """Set ``cancel`` on Ctrl-C so waits stop at their next check."""

    def handler(signum, frame):
        warn("Interrupted, cancelling...")
        cancel.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _document_path(label: str, kind: str) -> Path:
    return Path(f"{label}.{kind}.json")


def load_document(label: str, kind: str) -> dict:
    """Load a resource document from '<label>.<kind>.json'.

    :raises SystemExit: If the file does not exist
    """
    path = _document_path(label, kind)
    if not path.exists():
        error(f"Document not found: '{path}'")
    return json.loads(path.read_text())


def save_document(label: str, kind: str, data: dict) -> None:
    _document_path(label, kind).write_text(json.dumps(data, indent=2))


def _instances(api_token: str | None) -> InstanceController:
    return InstanceController(get_gateway(api_token))


def _sshkeys(api_token: str | None) -> SSHKeyController:
    return SSHKeyController(get_gateway(api_token))


def _print_instance(data: InstanceData) -> None:
    print(f"  ID: {data.get('id', '')}")
    print(f"  Label: {data.get('label', '')}")
    print(f"  Hostname: {data.get('hostname', '')}")
    print(f"  State: {data.get('state', '')}")
    print(f"  IPv4: {data.get('ipv4', '')}")
    print(f"  IPv6: {data.get('ipv6', '')}")


@instance_app.command(name="create")
def create_instance(
    label: str,
    *,
    hostname: str,
    location: str,
    plan: str,
    image: str,
    ssh_key: list[str] | None = None,
    password: str | None = None,
    timeout: float | None = None,
    api_token: str | None = None,
):
    """Create an instance and wait until it is running.

    :param label: Unique instance label
    :param hostname: Instance hostname
    :param location: Location slug
    :param plan: Plan slug
    :param image: Image slug
    :param ssh_key: SSH key slug (only the first is used)
    :param password: Root password
    :param timeout: Overall limit in seconds for the create and readiness wait
    :param api_token: LetsCloud API token (default: LETSCLOUD_API_TOKEN)
    """
    desired: InstanceData = {
        "label": label,
        "hostname": hostname,
        "location_slug": location,
        "plan_slug": plan,
        "image_slug": image,
    }
    if ssh_key:
        desired["ssh_keys"] = ssh_key
    if password:
        desired["password"] = password

    cancel = threading.Event()
    ctx = (
        OperationContext.with_timeout(timeout, cancel)
        if timeout
        else OperationContext(cancel=cancel)
    )
    with _fail_on_error(), _cancel_on_interrupt(cancel):
        result = _instances(api_token).create(desired, ctx)
    save_document(label, "instance", result)
    log("Instance ready!")
    _print_instance(result)


@instance_app.command(name="read")
def read_instance(label: str, *, api_token: str | None = None):
    """Refresh the local document from the API.

    :param label: Instance label
    """
    current = load_document(label, "instance")
    with _fail_on_error():
        result = _instances(api_token).read(current)
    save_document(label, "instance", result)
    _print_instance(result)


@instance_app.command(name="update")
def update_instance(
    label: str,
    *,
    password: str | None = None,
    new_label: str | None = None,
    new_hostname: str | None = None,
    api_token: str | None = None,
):
    """Reset the password, or rename where the API allows it.

    :param label: Instance label
    :param password: New root password
    :param new_label: New label
    :param new_hostname: New hostname
    """
    current = load_document(label, "instance")
    desired: InstanceData = dict(current)
    if password is not None:
        desired["password"] = password
    if new_label:
        desired["label"] = new_label
    if new_hostname:
        desired["hostname"] = new_hostname

    with _fail_on_error():
        result = _instances(api_token).update(desired, current)
    if result["label"] != label:
        _document_path(label, "instance").unlink(missing_ok=True)
    save_document(result["label"], "instance", result)
    _print_instance(result)


@instance_app.command(name="delete")
def delete_instance(label: str, *, force: bool = False, api_token: str | None = None):
    """Delete an instance and its local document.

    :param label: Instance label
    :param force: Skip confirmation prompt
    """
    current = load_document(label, "instance")
    print("[yellow]Instance to delete:[/yellow]")
    _print_instance(current)

    if not force:
        confirm = input("Delete this instance? (yes/no): ")
        if confirm != "yes":
            log("Cancelled")
            return

    with _fail_on_error():
        _instances(api_token).delete(current)
    _document_path(label, "instance").unlink(missing_ok=True)


@instance_app.command(name="import")
def import_instance(identifier: str, *, api_token: str | None = None):
    """Import an existing instance by id.

    Plan and image slugs are unknown to the API and get placeholder values.

    :param identifier: Instance id
    """
    with _fail_on_error():
        result = _instances(api_token).import_state(identifier, refresh=True)
    save_document(result["label"], "instance", result)
    log(
        f"Imported '{identifier}' as '{result['label']}'; "
        "set plan_slug and image_slug in the document if they differ"
    )
    _print_instance(result)


@instance_app.command(name="plans")
def list_plans(location: str, *, api_token: str | None = None):
    """List plans available in a location.

    :param location: Location slug
    """
    with _fail_on_error():
        plans = _instances(api_token).location_plans(location)
    if not plans:
        log(f"No plans found in '{location}'")
        return
    for p in plans:
        print(
            f"  {p.get('slug', '')}: {p.get('core', '?')} vCPU, "
            f"{p.get('memory', '?')} MB, {p.get('disk', '?')} GB, "
            f"{p.get('monthly_value', '?')} {p.get('currency_code', '')}/mo"
        )


@sshkey_app.command(name="create")
def create_sshkey(label: str, key: str, *, api_token: str | None = None):
    """Register a public SSH key.

    :param label: Unique key label
    :param key: Public key string, or path to a .pub file
    """
    key_path = Path(key).expanduser()
    if key_path.is_file():
        key = key_path.read_text().strip()

    desired: SSHKeyData = {"label": label, "key": key}
    with _fail_on_error():
        result = _sshkeys(api_token).create(desired)
    result.pop("key", None)
    save_document(label, "sshkey", result)
    print(f"  ID: {result['id']}")


@sshkey_app.command(name="read")
def read_sshkey(label: str, *, api_token: str | None = None):
    current = load_document(label, "sshkey")
    with _fail_on_error():
        result = _sshkeys(api_token).read(current)
    save_document(label, "sshkey", result)
    print(f"  {result['id']}: {result['label']}")


@sshkey_app.command(name="delete")
def delete_sshkey(label: str, *, api_token: str | None = None):
    current = load_document(label, "sshkey")
    with _fail_on_error():
        _sshkeys(api_token).delete(current)
    _document_path(label, "sshkey").unlink(missing_ok=True)


@sshkey_app.command(name="list")
def list_sshkeys(*, api_token: str | None = None):
    """List all SSH keys in the account."""
    with _fail_on_error():
        keys = _sshkeys(api_token).list_keys()
    if not keys:
        log("No SSH keys found")
        return
    width = max(len(k["id"]) for k in keys)
    print(f"  {'ID'.ljust(width)}  LABEL")
    for k in keys:
        print(f"  {k['id'].ljust(width)}  {k['label']}")


@sshkey_app.command(name="lookup")
def lookup_sshkey(
    *, id: str | None = None, label: str | None = None, api_token: str | None = None
):
    """Find an SSH key by id or label.

    :param id: SSH key id (takes precedence)
    :param label: SSH key label
    """
    with _fail_on_error():
        key = _sshkeys(api_token).lookup(key_id=id, label=label)
    print(f"  {key['id']}: {key['label']}")


if __name__ == "__main__":
    main()
