"""Instance lifecycle: create, read, update, delete and import."""

from .errors import (
    GatewayError,
    LetsCloudError,
    NotFound,
    UnsupportedOperation,
    ValidationError,
    with_context,
)
from .gateway import Gateway
from .guard import ensure_instance_label_available
from .poller import (
    LONG_POLL,
    SHORT_POLL,
    MatchById,
    MatchByLabel,
    PollProfile,
    wait_for_instance_ready,
)
from .retry import DEFAULT_RETRY, RetryPolicy, create_with_retry
from .state import instance_ipv4, instance_ipv6, instance_state
from .types import CreateInstanceRequest, Instance, InstanceData, Plan
from .utils import BACKGROUND, OperationContext, debug, log

REQUIRED_FIELDS = [
    ("label", "Label"),
    ("location_slug", "Location slug"),
    ("plan_slug", "Plan slug"),
    ("image_slug", "Image slug"),
    ("hostname", "Hostname"),
]

# The API never returns plan or image; imports start from these placeholders
IMPORT_PLAN_SLUG = "plan-1"
IMPORT_IMAGE_SLUG = "ubuntu-20-04"


def build_create_request(desired: InstanceData) -> CreateInstanceRequest:
    """Validate a desired document and turn it into a create request.

    Only the first SSH key reference is sent; the API takes a single one.

    :raises ValidationError: Naming the first missing required field
    """
    for field, name in REQUIRED_FIELDS:
        if not desired.get(field):
            raise ValidationError(field, f"{name} is required")

    ssh_keys = desired.get("ssh_keys") or []
    return {
        "location_slug": desired["location_slug"],
        "plan_slug": desired["plan_slug"],
        "image_slug": desired["image_slug"],
        "ssh_slug": ssh_keys[0] if ssh_keys else "",
        "password": desired.get("password") or "",
        "label": desired["label"],
        "hostname": desired["hostname"],
    }


def apply_observation(data: InstanceData, instance: Instance) -> InstanceData:
    data["state"] = instance_state(instance)
    data["ipv4"] = instance_ipv4(instance)
    data["ipv6"] = instance_ipv6(instance)
    return data


class InstanceController:
    """Drives one instance through its lifecycle against a gateway.

    Documents passed in are never mutated; every verb returns a new one.

    :param gateway: Remote gateway
    :param search_profile: Poll budget when the new instance's id is unknown
    :param known_id_profile: Poll budget when create returned the id
    :param retry: Retry budget for the create call
    """

    def __init__(
        self,
        gateway: Gateway,
        *,
        search_profile: PollProfile = LONG_POLL,
        known_id_profile: PollProfile = SHORT_POLL,
        retry: RetryPolicy = DEFAULT_RETRY,
    ):
        self.gateway = gateway
        self.search_profile = search_profile
        self.known_id_profile = known_id_profile
        self.retry = retry

    def create(
        self, desired: InstanceData, ctx: OperationContext = BACKGROUND
    ) -> InstanceData:
        """Create an instance and block until it is ready.

        :param desired: Declared attributes
        :param ctx: Cancellation context for the retry and poll waits
        :return: New document with id, state, ipv4 and ipv6 filled in
        :raises ValidationError: If a required field is missing
        :raises DuplicateLabel: If the label is taken, before any create call
        :raises GatewayError: If the create call keeps failing
        :raises Suspended | TimedOut | Cancelled: From the readiness wait
        """
        request = build_create_request(desired)
        label, hostname = request["label"], request["hostname"]
        log(
            f"Creating instance '{label}' ('{hostname}') in '{request['location_slug']}' "
            f"(plan '{request['plan_slug']}', image '{request['image_slug']}', "
            f"has_ssh_key={bool(request['ssh_slug'])}, "
            f"has_password={bool(request['password'])})"
        )

        ensure_instance_label_available(self.gateway, label)

        try:
            identifier = create_with_retry(
                lambda: self.gateway.create_instance(request),
                description=f"instance '{label}'",
                policy=self.retry,
                ctx=ctx,
            )
        except GatewayError as e:
            raise with_context(e, f"Unable to create instance '{label}'") from e

        if identifier:
            match, profile = MatchById(identifier), self.known_id_profile
        else:
            match, profile = MatchByLabel(label, hostname), self.search_profile
        log(
            f"Waiting for instance {match.describe()} to be ready "
            f"(up to {profile.max_attempts} x {profile.interval:g}s)"
        )
        instance = wait_for_instance_ready(self.gateway, match, profile=profile, ctx=ctx)
        if not instance:
            raise LetsCloudError(
                f"Instance '{label}' is empty after waiting for ready state"
            )

        instance_id = instance.get("identifier") or identifier
        if not instance_id:
            raise LetsCloudError(
                f"Instance '{label}' is ready but its identifier is unknown"
            )

        result: InstanceData = dict(desired)
        result["id"] = instance_id
        apply_observation(result, instance)
        log(
            f"Instance '{label}' created: id '{result['id']}', state '{result['state']}', "
            f"ipv4 '{result['ipv4']}', ipv6 '{result['ipv6']}'"
        )
        return result

    def read(self, current: InstanceData) -> InstanceData:
        """Refresh a document from the API.

        plan_slug and image_slug are kept from ``current``; the API does not
        return them.
        """
        instance_id = current["id"]
        try:
            instance = self.gateway.get_instance(instance_id)
        except GatewayError as e:
            raise with_context(e, f"Unable to read instance '{instance_id}'") from e

        result: InstanceData = dict(current)
        result["label"] = instance.get("label", "")
        result["hostname"] = instance.get("hostname", "")
        result["location_slug"] = (instance.get("location") or {}).get("slug", "")
        apply_observation(result, instance)
        debug(f"Read instance '{instance_id}': state '{result['state']}'")
        return result

    def update(self, desired: InstanceData, current: InstanceData) -> InstanceData:
        """Apply the mutable subset of ``desired`` to an existing instance.

        Label and hostname changes go through the gateway and are applied
        before the password reset, so a refused rename leaves the instance
        untouched. plan_slug and image_slug always come from ``current``.

        :raises UnsupportedOperation: If a rename is requested and the
            gateway cannot rename, before any remote call
        :raises GatewayError: If a remote call fails
        """
        instance_id = current["id"]
        label = desired.get("label", current.get("label", ""))
        hostname = desired.get("hostname", current.get("hostname", ""))
        rename = label != current.get("label") or hostname != current.get("hostname")
        reset_password = desired.get("password", "") != current.get("password", "")

        if rename and not self.gateway.supports_rename:
            raise UnsupportedOperation(
                f"Changing label or hostname of instance '{instance_id}' is not "
                "supported by the LetsCloud API. Please delete and recreate the "
                "instance instead."
            )

        if rename:
            log(f"Renaming instance '{instance_id}' to '{label}' ('{hostname}')")
            try:
                self.gateway.update_instance(instance_id, label, hostname)
            except GatewayError as e:
                raise with_context(e, f"Unable to rename instance '{instance_id}'") from e

        if reset_password:
            log(f"Resetting password of instance '{instance_id}'")
            try:
                self.gateway.reset_instance_password(
                    instance_id, desired.get("password", "")
                )
            except GatewayError as e:
                raise with_context(
                    e, f"Unable to update password of instance '{instance_id}'"
                ) from e

        try:
            instance = self.gateway.get_instance(instance_id)
        except GatewayError as e:
            raise with_context(
                e, f"Unable to read updated instance '{instance_id}'"
            ) from e

        result: InstanceData = dict(desired)
        result["id"] = instance_id
        apply_observation(result, instance)
        for field in ("plan_slug", "image_slug"):
            if field in current:
                result[field] = current[field]
            else:
                result.pop(field, None)
        return result

    def delete(self, current: InstanceData) -> None:
        """Delete the instance; an already missing one counts as deleted."""
        instance_id = current["id"]
        try:
            self.gateway.delete_instance(instance_id)
        except NotFound:
            log(f"Instance '{instance_id}' already gone")
            return
        except GatewayError as e:
            raise with_context(e, f"Unable to delete instance '{instance_id}'") from e
        log(f"Instance '{instance_id}' deleted")

    def import_state(self, identifier: str, *, refresh: bool = False) -> InstanceData:
        """Start a document from a bare identifier.

        plan_slug and image_slug are placeholders the caller must backfill.

        :param identifier: Instance id
        :param refresh: Also read the remaining attributes from the API
        """
        if not identifier:
            raise ValidationError("id", "Instance identifier is required for import")
        data: InstanceData = {
            "id": identifier,
            "plan_slug": IMPORT_PLAN_SLUG,
            "image_slug": IMPORT_IMAGE_SLUG,
        }
        return self.read(data) if refresh else data

    def location_plans(self, location: str) -> list[Plan]:
        try:
            return self.gateway.get_location_plans(location)
        except GatewayError as e:
            raise with_context(e, f"Unable to list plans for '{location}'") from e
