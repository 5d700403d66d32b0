"""
Multipart upload session lifecycle.

  UNOPENED -> OPEN -> FINALIZING -> COMPLETED
  UNOPENED | OPEN | FINALIZING -> ABORTED

https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/client/create_multipart_upload.html
"""

import logging
import warnings
from enum import Enum
from threading import Lock
from typing import Callable

from s3copy_api.backend import StorageBackend
from s3copy_api.errors import (
    CopyError,
    InvalidSessionStateError,
    PartTransferError,
    SessionFinalizeError,
    SessionOpenError,
    TransferPhase,
    is_retryable,
)
from s3copy_api.types import ByteRange, CommittedPart, ObjectLocator

logger = logging.getLogger(__name__)


class SessionState(Enum):
    UNOPENED = "unopened"
    OPEN = "open"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABORTED = "aborted"

    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED)


def _check_sequence(parts: list[CommittedPart], expected_count: int) -> None:
    numbers = [p.part_number for p in parts]
    if len(set(numbers)) != len(numbers):
        raise SessionFinalizeError(f"Duplicate part numbers in {numbers}")
    if numbers != sorted(numbers):
        raise SessionFinalizeError(f"Parts are not in ascending order: {numbers}")
    if numbers != list(range(1, len(numbers) + 1)):
        raise SessionFinalizeError(f"Gap in part numbers: {numbers}")
    if len(numbers) != expected_count:
        raise SessionFinalizeError(
            f"Expected {expected_count} parts but {len(numbers)} were committed"
        )


class TransferSession:
    """
    One multipart upload to one destination, owned by a single copy.

    Parts may be submitted from several threads at once, the committed
    parts are kept in an array indexed by part number behind a lock.
    """

    def __init__(
        self,
        backend: StorageBackend,
        destination: ObjectLocator,
        part_count: int,
    ) -> None:
        assert part_count >= 1, f"A session needs at least one part, got {part_count}"
        self.backend = backend
        self.destination = destination
        self.part_count = part_count
        self.upload_id: str | None = None
        self._state = SessionState.UNOPENED
        self._lock = Lock()
        self._committed: list[CommittedPart | None] = [None] * part_count

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    def __repr__(self) -> str:
        return f"TransferSession({self.destination.s3_url()}, upload_id={self.upload_id}, state={self.state.value})"

    def _require_state(self, expected: SessionState, action: str) -> None:
        if self._state != expected:
            raise InvalidSessionStateError(
                f"Cannot {action} session for {self.destination.s3_url()} in state {self._state.value}"
            )

    def open(self) -> str:
        with self._lock:
            self._require_state(SessionState.UNOPENED, "open")
        try:
            upload_id = self.backend.open_upload_session(self.destination)
        except Exception as e:
            raise SessionOpenError(self.destination, e) from e
        with self._lock:
            self.upload_id = upload_id
            self._state = SessionState.OPEN
        logger.info(
            f"Opened upload session {upload_id} for {self.destination.s3_url()} with {self.part_count} parts"
        )
        return upload_id

    def _commit(
        self,
        part_number: int,
        phase: TransferPhase,
        submit: Callable[[str], CommittedPart],
    ) -> CommittedPart:
        with self._lock:
            self._require_state(SessionState.OPEN, f"submit part {part_number} to")
            upload_id = self.upload_id
        if not 1 <= part_number <= self.part_count:
            raise InvalidSessionStateError(
                f"Part number {part_number} is outside 1..{self.part_count}"
            )
        assert upload_id is not None
        try:
            part = submit(upload_id)
        except Exception as e:
            raise PartTransferError(
                part_number=part_number,
                phase=phase,
                retryable=is_retryable(e),
                cause=e,
            ) from e
        with self._lock:
            # The session may have been torn down while the request was in flight.
            self._require_state(SessionState.OPEN, f"commit part {part_number} to")
            self._committed[part_number - 1] = part
        return part

    def copy_part(
        self, part_number: int, source: ObjectLocator, byte_range: ByteRange
    ) -> CommittedPart:
        return self._commit(
            part_number,
            TransferPhase.SERVER_COPY,
            lambda upload_id: self.backend.copy_part_range(
                self.destination, upload_id, part_number, source, byte_range
            ),
        )

    def upload_part(self, part_number: int, data: bytes) -> CommittedPart:
        return self._commit(
            part_number,
            TransferPhase.WRITE,
            lambda upload_id: self.backend.upload_part(
                self.destination, upload_id, part_number, data
            ),
        )

    def committed_parts(self) -> list[CommittedPart]:
        with self._lock:
            return [p for p in self._committed if p is not None]

    def finalize(self, parts: list[CommittedPart] | None = None) -> None:
        """
        Complete the upload. Any failure aborts the session before
        SessionFinalizeError is raised.
        """
        with self._lock:
            self._require_state(SessionState.OPEN, "finalize")
            self._state = SessionState.FINALIZING
            if parts is None:
                parts = [p for p in self._committed if p is not None]
            parts = list(parts)
            upload_id = self.upload_id
        assert upload_id is not None
        try:
            _check_sequence(parts, self.part_count)
            self.backend.complete_session(self.destination, upload_id, parts)
        except Exception as e:
            err = (
                e
                if isinstance(e, SessionFinalizeError)
                else SessionFinalizeError(
                    f"Error completing multipart upload {upload_id} for {self.destination.s3_url()}: {e}",
                    cause=e,
                )
            )
            abort_err = self.abort()
            if abort_err is not None:
                err.attach_abort_error(abort_err)
            raise err from e
        with self._lock:
            self._state = SessionState.COMPLETED
        logger.info(
            f"Completed upload session {upload_id} for {self.destination.s3_url()}"
        )

    def abort(self) -> Exception | None:
        """Release the upload's parts. Safe to call repeatedly, never raises."""
        with self._lock:
            if self._state.is_terminal():
                return None
            previous = self._state
            self._state = SessionState.ABORTED
            upload_id = self.upload_id
        if previous == SessionState.UNOPENED or upload_id is None:
            return None
        try:
            self.backend.abort_session(self.destination, upload_id)
        except Exception as e:
            warnings.warn(
                f"Error aborting upload session {upload_id} for {self.destination.s3_url()}: {e}"
            )
            return e
        logger.info(
            f"Aborted upload session {upload_id} for {self.destination.s3_url()}"
        )
        return None

    def __enter__(self) -> "TransferSession":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self.state.is_terminal():
            return
        if exc_value is None:
            logger.warning(
                f"Upload session for {self.destination.s3_url()} left without finalize, aborting"
            )
        abort_err = self.abort()
        if abort_err is not None and isinstance(exc_value, CopyError):
            exc_value.attach_abort_error(abort_err)
