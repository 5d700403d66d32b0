"""Exception hierarchy for the chunked copy engine."""

from enum import Enum

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from s3copy_api.types import ObjectLocator

_RETRYABLE_CODES = {
    "InternalError",
    "ServiceUnavailable",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "Throttling",
    "ThrottlingException",
    "500",
    "503",
}


class TransferPhase(Enum):
    READ = "read"
    WRITE = "write"
    SERVER_COPY = "server-copy"


class CopyError(Exception):
    """Base class. abort_error holds a failed session abort, if any."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.abort_error: Exception | None = None

    def attach_abort_error(self, err: Exception) -> None:
        self.abort_error = err

    def __str__(self) -> str:
        msg = super().__str__()
        if self.abort_error is not None:
            msg += f" (abort also failed: {self.abort_error})"
        return msg


class ObjectNotFoundError(CopyError):
    def __init__(self, locator: ObjectLocator) -> None:
        super().__init__(f"Object not found: {locator.s3_url()} in {locator.domain}")
        self.locator = locator


class PlanningError(CopyError):
    pass


class SameObjectError(CopyError):
    def __init__(self, locator: ObjectLocator) -> None:
        super().__init__(
            f"Source and destination are the same object: {locator.s3_url()}"
        )
        self.locator = locator


class SessionOpenError(CopyError):
    def __init__(self, destination: ObjectLocator, cause: Exception) -> None:
        super().__init__(
            f"Could not create upload session for {destination.s3_url()}: {cause}"
        )
        self.destination = destination
        self.cause = cause


class PartTransferError(CopyError):
    def __init__(
        self,
        part_number: int,
        phase: TransferPhase,
        retryable: bool,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            f"Part {part_number} failed during {phase.value} (retryable={retryable}): {cause}"
        )
        self.part_number = part_number
        self.phase = phase
        self.retryable = retryable
        self.cause = cause


class SessionFinalizeError(CopyError):
    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class InvalidSessionStateError(CopyError):
    pass


class CopyCancelledError(CopyError):
    pass


class CopyVerificationError(CopyError):
    pass


class ObjectDeleteError(CopyError):
    """Delete of the source failed after a successful copy, both objects exist."""

    def __init__(self, locator: ObjectLocator, cause: Exception) -> None:
        super().__init__(f"Failed to delete {locator.s3_url()}: {cause}")
        self.locator = locator
        self.cause = cause


def is_retryable(err: Exception) -> bool:
    """True for transient transport errors and throttling / 5xx responses."""
    if isinstance(err, PartTransferError):
        return err.retryable
    if isinstance(
        err,
        (
            EndpointConnectionError,
            ConnectionClosedError,
            ConnectTimeoutError,
            ReadTimeoutError,
        ),
    ):
        return True
    if isinstance(err, ClientError):
        error = err.response.get("Error", {})
        code = str(error.get("Code", ""))
        if code in _RETRYABLE_CODES:
            return True
        status = err.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return isinstance(status, int) and status >= 500
    return isinstance(err, (ConnectionError, TimeoutError))
