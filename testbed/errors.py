from __future__ import annotations


class ProvisionError(Exception):
    """Base class for everything the provisioning path raises."""


class NotFound(ProvisionError):
    """The requested object does not exist. Ensure turns this into a create."""


class AlreadyExists(ProvisionError):
    """Create lost a race with another writer for the same (namespace, name)."""


class AdapterError(ProvisionError):
    """Any other failure talking to the cluster API."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class InvariantViolation(ProvisionError):
    """The store returned no object and no error."""


class ReadinessTimeout(ProvisionError):
    def __init__(self, desired: int, last_ready: int, timeout_s: float):
        super().__init__(
            f"timed out after {timeout_s:g}s waiting for {desired} ready instance(s); last poll saw {last_ready}"
        )
        self.desired = desired
        self.last_ready = last_ready
        self.timeout_s = timeout_s


class WaitCancelled(ProvisionError):
    """The readiness wait was abandoned by its caller."""


class StepFailed(ProvisionError):
    """A provisioning step failed; `cause` is the underlying error."""

    def __init__(self, step: str, message: str, cause: BaseException):
        super().__init__(f"{message}: {cause}")
        self.step = step
        self.cause = cause
