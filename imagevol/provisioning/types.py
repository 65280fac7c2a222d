"""Shared data types for volume provisioning."""

from dataclasses import dataclass

from imagevol.errors import ComputeAPIError

# Acceptor outcomes
SUCCESS = "success"
FAILURE = "failure"

# Acceptor matchers
PATH_ALL = "pathAll"
PATH_ANY = "pathAny"


class TaskState:
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"


class VolumeState:
    CREATING = "creating"
    AVAILABLE = "available"
    IN_USE = "in-use"
    DELETING = "deleting"
    DELETED = "deleted"
    ERROR = "error"


@dataclass(frozen=True)
class ImageManifest:
    """Decoded import-volume manifest.

    ``volume_size_gb`` is sent unchanged as both the image size and the
    volume size when the import task is submitted.
    """

    file_format: str
    volume_size_gb: int


@dataclass
class ConversionTask:
    """A remote import task, as last observed."""

    id: str | None
    state: str | None = None
    volume_id: str | None = None
    status_message: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "ConversionTask":
        """Build from a ``conversion_task`` object of an API response."""
        volume = (data.get("import_volume") or {}).get("volume") or {}
        return cls(
            id=data.get("conversion_task_id"),
            state=data.get("state"),
            volume_id=volume.get("id"),
            status_message=data.get("status_message", ""),
        )


@dataclass
class Volume:
    """A block-storage volume, as last observed."""

    id: str
    state: str | None = None
    size_gb: int | None = None

    @classmethod
    def from_api(cls, data: dict) -> "Volume":
        return cls(id=data.get("volume_id", ""), state=data.get("state"), size_gb=data.get("size"))


@dataclass(frozen=True)
class Acceptor:
    """One waiter rule: when the values at ``path`` match ``expected`` under
    ``matcher``, the wait ends with ``outcome``."""

    outcome: str
    matcher: str
    path: str
    expected: str

    def __post_init__(self):
        if self.outcome not in (SUCCESS, FAILURE):
            raise ValueError(f"Unknown acceptor outcome '{self.outcome}'")
        if self.matcher not in (PATH_ALL, PATH_ANY):
            raise ValueError(f"Unknown acceptor matcher '{self.matcher}'")


@dataclass(frozen=True)
class WaiterConfig:
    """Declarative waiter settings. Built fresh for every wait call.

    Args:
        operation: name of the status query, used in logs and errors.
        delay: seconds to sleep between attempts (never before the first).
        max_attempts: total number of queries before giving up.
        acceptors: ordered rules; the first match decides the outcome.
        transient_errors: exception types raised by the query that count as
            a failed attempt rather than aborting the wait.
    """

    operation: str
    delay: float
    max_attempts: int
    acceptors: tuple[Acceptor, ...] = ()
    transient_errors: tuple[type[BaseException], ...] = (ComputeAPIError,)

    def __post_init__(self):
        object.__setattr__(self, "acceptors", tuple(self.acceptors))
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 (got {self.max_attempts})")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0 (got {self.delay})")
        if not self.acceptors:
            raise ValueError(f"Waiter '{self.operation}' needs at least one acceptor")
