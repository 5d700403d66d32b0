"""
Part transfer strategies.

ServerSideCopyStrategy copies byte ranges inside the service with
upload_part_copy, no bytes cross the client:
https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/client/upload_part_copy.html

RelayCopyStrategy reads each range into memory and uploads it with
upload_part, used when source and destination live in different regions.
"""

import abc
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Event, Semaphore
from typing import Callable

from s3copy_api.backend import StorageBackend
from s3copy_api.errors import (
    CopyCancelledError,
    PartTransferError,
    TransferPhase,
)
from s3copy_api.session import TransferSession
from s3copy_api.types import (
    ByteRange,
    CommittedPart,
    CopyPlan,
    CopyStrategyKind,
    SizeSuffix,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 1.0  # seconds, doubled on every attempt
_MAX_BACKOFF = 60.0


class CopyStrategy(abc.ABC):
    """Drives every range of a plan through an open session on a bounded pool."""

    kind: CopyStrategyKind

    def __init__(
        self,
        backend: StorageBackend,
        concurrency: int = 1,
        retries: int = DEFAULT_RETRIES,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        cancel_event: Event | None = None,
        on_part_committed: Callable[[CommittedPart], None] | None = None,
    ) -> None:
        assert concurrency >= 1, f"Concurrency must be at least 1, got {concurrency}"
        assert retries >= 0, f"Retries must not be negative, got {retries}"
        self.backend = backend
        self.concurrency = concurrency
        self.retries = retries
        self.retry_backoff = retry_backoff
        self.cancel_event = cancel_event or Event()
        self.on_part_committed = on_part_committed

    @abc.abstractmethod
    def transfer_part(
        self,
        session: TransferSession,
        plan: CopyPlan,
        part_number: int,
        byte_range: ByteRange,
    ) -> CommittedPart:
        """Move one range into the session, raises PartTransferError."""

    def _transfer_with_retries(
        self,
        session: TransferSession,
        plan: CopyPlan,
        part_number: int,
        byte_range: ByteRange,
    ) -> CommittedPart | Exception:
        attempts = self.retries + 1  # Add one for the initial attempt
        for attempt in range(attempts):
            try:
                if attempt > 0:
                    logger.info(
                        f"Retrying part {part_number} for {plan.destination.s3_url()} (attempt {attempt + 1} of {attempts})"
                    )
                part = self.transfer_part(session, plan, part_number, byte_range)
                if self.on_part_committed is not None:
                    self.on_part_committed(part)
                return part
            except PartTransferError as e:
                if not e.retryable or attempt == attempts - 1:
                    logger.error(f"Giving up on part {part_number}: {e}")
                    return e
                sleep_time = min(self.retry_backoff * 2**attempt, _MAX_BACKOFF)
                logger.warning(f"{e}, retrying in {sleep_time} seconds")
                if self.cancel_event.wait(sleep_time):
                    return CopyCancelledError(
                        f"Copy cancelled while retrying part {part_number}"
                    )
            except Exception as e:
                logger.error(f"Unexpected error on part {part_number}: {e}")
                return e
        return Exception("Should not reach here")

    def run(self, session: TransferSession, plan: CopyPlan) -> list[CommittedPart]:
        """
        Transfer all parts of the plan. Returns once every dispatched part
        has finished, raising the failure of the lowest numbered failed part.
        """
        futures: list[Future[CommittedPart | Exception]] = []
        failed = Event()
        logger.info(
            f"Starting {self.kind.value} copy of {plan.part_count} parts ({SizeSuffix(plan.size)}) to {plan.destination.s3_url()} with {self.concurrency} workers"
        )

        def task(part_number: int, byte_range: ByteRange) -> CommittedPart | Exception:
            out = self._transfer_with_retries(session, plan, part_number, byte_range)
            if isinstance(out, Exception):
                failed.set()
            return out

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            semaphore = Semaphore(self.concurrency)
            for part_number, byte_range in enumerate(plan.ranges, start=1):
                semaphore.acquire()
                if failed.is_set() or self.cancel_event.is_set():
                    semaphore.release()
                    break
                fut = executor.submit(task, part_number, byte_range)
                fut.add_done_callback(lambda _: semaphore.release())
                futures.append(fut)
        # Leaving the executor context waits for every dispatched part.

        errors: list[Exception] = []
        for fut in futures:
            result = fut.result()
            if isinstance(result, Exception):
                errors.append(result)
        if errors:
            errors.sort(key=lambda e: getattr(e, "part_number", 0))
            raise errors[0]
        if len(futures) != plan.part_count:
            raise CopyCancelledError(
                f"Copy to {plan.destination.s3_url()} cancelled after {len(futures)} of {plan.part_count} parts"
            )
        return session.committed_parts()


class ServerSideCopyStrategy(CopyStrategy):
    kind = CopyStrategyKind.SERVER_SIDE

    def transfer_part(
        self,
        session: TransferSession,
        plan: CopyPlan,
        part_number: int,
        byte_range: ByteRange,
    ) -> CommittedPart:
        logger.info(
            f"Copying part {part_number} of {plan.part_count} for {plan.destination.s3_url()}: {byte_range.to_header()}"
        )
        return session.copy_part(part_number, plan.source, byte_range)


class RelayCopyStrategy(CopyStrategy):
    kind = CopyStrategyKind.RELAY

    def transfer_part(
        self,
        session: TransferSession,
        plan: CopyPlan,
        part_number: int,
        byte_range: ByteRange,
    ) -> CommittedPart:
        logger.info(
            f"Relaying part {part_number} of {plan.part_count} for {plan.destination.s3_url()}: {byte_range.to_header()}"
        )
        try:
            data = self.backend.read_range(plan.source, byte_range)
        except Exception as e:
            raise PartTransferError(
                part_number=part_number,
                phase=TransferPhase.READ,
                retryable=True,
                cause=e,
            ) from e
        if len(data) != byte_range.length:
            raise PartTransferError(
                part_number=part_number,
                phase=TransferPhase.READ,
                retryable=True,
                cause=ValueError(
                    f"Short read: expected {byte_range.length} bytes, got {len(data)}"
                ),
            )
        return session.upload_part(part_number, data)
