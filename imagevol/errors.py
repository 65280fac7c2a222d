"""Error taxonomy for volume provisioning.

Every error raised out of ``VolumeDriver.create()`` is a ``ProvisioningError``
tagged with the phase that failed. None of them are retried by the workflow;
callers decide whether to run the whole thing again.
"""


class ComputeAPIError(Exception):
    """A call to the compute API failed (transport error or non-2xx response)."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class ProvisioningError(Exception):
    """Base class for workflow failures.

    Args:
        message: what went wrong.
        phase: intent string of the workflow phase that failed, e.g.
            "creating import volume task". Set by the workflow when the error
            is raised from a lower layer.
    """

    def __init__(self, message, phase=None):
        super().__init__(message)
        self.message = message
        self.phase = phase

    def __str__(self):
        if self.phase:
            return f"{self.phase}: {self.message}"
        return self.message


class DiscoveryError(ProvisioningError):
    """No placement zone is available."""


class ManifestError(ProvisioningError):
    """The image manifest is unreachable or malformed."""


class SubmissionError(ProvisioningError):
    """The compute API rejected the import task."""


class InvariantError(ProvisioningError):
    """A remote response omitted an identifier it must carry."""


class WaitError(ProvisioningError):
    """Base class for waiter outcomes other than success."""


class WaitFailureError(WaitError):
    """A polled resource reached an explicit failure state."""

    def __init__(self, operation, state, resource_id=None, condition=None, phase=None):
        target = f" for {resource_id}" if resource_id else ""
        matched = f" (matched {condition})" if condition else ""
        super().__init__(f"{operation}{target} entered failure state '{state}'{matched}", phase)
        self.operation = operation
        self.state = state
        self.condition = condition
        self.resource_id = resource_id


class WaitTimeoutError(WaitError):
    """Polling exhausted its attempt budget without a terminal match."""

    def __init__(self, operation, attempts, elapsed, resource_id=None, phase=None):
        target = f" for {resource_id}" if resource_id else ""
        super().__init__(
            f"{operation}{target} did not reach a terminal state after {attempts} attempts ({elapsed:.1f}s elapsed)",
            phase,
        )
        self.operation = operation
        self.attempts = attempts
        self.elapsed = elapsed
        self.resource_id = resource_id


class WaitCancelledError(WaitError):
    """The wait was cancelled between attempts."""

    def __init__(self, operation, attempts, resource_id=None, phase=None):
        target = f" for {resource_id}" if resource_id else ""
        super().__init__(f"{operation}{target} cancelled after {attempts} attempts", phase)
        self.operation = operation
        self.attempts = attempts
        self.resource_id = resource_id
