"""Error taxonomy shared by the gateway, poller, retry wrapper and controllers."""

NOT_FOUND_SIGNALS = ("not found", "does not exist", "no such")
TRANSIENT_SIGNALS = (
    "timeout",
    "timed out",
    "temporarily",
    "temporary",
    "unavailable",
    "connection",
    "reset by peer",
    "too many requests",
    "try again",
    "bad gateway",
    "internal server error",
)


class LetsCloudError(Exception):
    """Base class for every error raised by letscloudvm."""


class GatewayError(LetsCloudError):
    """A remote API call failed.

    :param message: Error text as reported by the API or transport
    :param status: HTTP status code when the transport carried one
    :param operation: Gateway operation name, e.g. 'get_instance'
    """

    def __init__(
        self, message: str, *, status: int | None = None, operation: str | None = None
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.operation = operation

    def __str__(self) -> str:
        parts = []
        if self.operation:
            parts.append(f"{self.operation}:")
        if self.status is not None:
            parts.append(f"[{self.status}]")
        parts.append(self.message)
        return " ".join(parts)


class NotFound(GatewayError):
    """The requested resource does not exist (or does not exist yet)."""


class TransientError(GatewayError):
    """Network or availability failure, worth retrying."""


class PermanentError(GatewayError):
    """Validation or authorization failure, retrying will not help."""


class ValidationError(LetsCloudError):
    """Missing or malformed input, raised before any remote mutation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class DuplicateLabel(LetsCloudError):
    def __init__(self, kind: str, label: str, identifier: str | None = None):
        super().__init__(
            f"Label '{label}' already exists ({kind} '{identifier}'). "
            "Please choose a different label."
        )
        self.kind = kind
        self.label = label
        self.identifier = identifier


class Suspended(LetsCloudError):
    """The instance reported suspended while waiting; carries the observation."""

    def __init__(
        self,
        identifier: str,
        label: str | None = None,
        *,
        attempt: int = 0,
        max_attempts: int = 0,
        built: bool = False,
        booted: bool = False,
    ):
        super().__init__(
            f"instance '{identifier}' (label '{label}') is suspended "
            f"(attempt {attempt}/{max_attempts}, built={built}, booted={booted})"
        )
        self.identifier = identifier
        self.label = label
        self.attempt = attempt
        self.max_attempts = max_attempts
        self.built = built
        self.booted = booted


class TimedOut(LetsCloudError):
    """The readiness budget ran out; carries the last observation."""

    def __init__(
        self,
        *,
        label: str | None,
        hostname: str | None,
        identifier: str | None,
        attempts: int,
        interval: float,
        last_state: str = "",
        last_ips: str = "",
        last_error: str = "",
        last_response: str = "",
    ):
        super().__init__(
            f"timeout waiting for instance with label '{label}', hostname "
            f"'{hostname}' (id '{identifier or 'unknown'}') to be ready after "
            f"{attempts} attempts ({attempts * interval:g} seconds). "
            f"Last known state: '{last_state}', Last error: '{last_error}', "
            f"Last IPs: '{last_ips}', Last response: '{last_response}'"
        )
        self.label = label
        self.hostname = hostname
        self.identifier = identifier
        self.attempts = attempts
        self.interval = interval
        self.last_state = last_state
        self.last_ips = last_ips
        self.last_error = last_error
        self.last_response = last_response


class UnsupportedOperation(LetsCloudError):
    """The remote API has no endpoint for the requested change."""


class Cancelled(LetsCloudError):
    """The caller cancelled the operation or its deadline passed."""


def classify_error(
    message: str, status: int | None = None, operation: str | None = None
) -> GatewayError:
    """Build the right GatewayError subclass for a failed call.

    The status code wins when present; otherwise the error text is matched
    against known signals. Unrecognised text is treated as permanent.

    :param message: Error text from the API or transport
    :param status: HTTP status code, if any
    :param operation: Gateway operation name for context
    :return: NotFound, TransientError or PermanentError instance
    """
    kwargs = {"status": status, "operation": operation}
    if status is not None:
        if status == 404:
            return NotFound(message, **kwargs)
        if status in (408, 425, 429) or status >= 500:
            return TransientError(message, **kwargs)
        if 400 <= status < 500:
            return PermanentError(message, **kwargs)

    text = message.lower()
    if any(s in text for s in NOT_FOUND_SIGNALS):
        return NotFound(message, **kwargs)
    if any(s in text for s in TRANSIENT_SIGNALS):
        return TransientError(message, **kwargs)
    return PermanentError(message, **kwargs)


def with_context(exc: GatewayError, context: str) -> GatewayError:
    """Copy a gateway error, keeping its class, with ``context`` prefixed.

    Use as ``raise with_context(e, "...") from e``.
    """
    return type(exc)(
        f"{context}, got error: {exc.message}",
        status=exc.status,
        operation=exc.operation,
    )
