import logging
import os
from dataclasses import dataclass, field
from threading import Event
from typing import Callable

from s3copy_api.backend import StorageBackend
from s3copy_api.errors import (
    CopyError,
    CopyVerificationError,
    ObjectDeleteError,
    ObjectNotFoundError,
    PlanningError,
    SameObjectError,
)
from s3copy_api.planner import (
    DEFAULT_RELAY_PART_SIZE,
    DEFAULT_SERVER_SIDE_PART_SIZE,
    make_copy_plan,
    plan,
    resolve_part_size,
)
from s3copy_api.session import TransferSession
from s3copy_api.strategy import (
    DEFAULT_RETRIES,
    DEFAULT_RETRY_BACKOFF,
    CopyStrategy,
    RelayCopyStrategy,
    ServerSideCopyStrategy,
)
from s3copy_api.types import (
    ByteRange,
    CommittedPart,
    CopyPlan,
    CopyResult,
    CopyStrategyKind,
    ObjectHead,
    ObjectLocator,
    SizeSuffix,
)

logger = logging.getLogger(__name__)


@dataclass
class CopyOptions:
    """Per copy knobs. None means pick the default for the chosen strategy."""

    part_size: int | None = None
    concurrency: int | None = None
    force_relay: bool = False
    retries: int = DEFAULT_RETRIES
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    # Same region objects up to this size use one CopyObject call, defaults to one part.
    direct_copy_threshold: int | None = None
    verify: bool = True
    cancel_event: Event | None = None
    on_part_committed: Callable[[CommittedPart], None] | None = field(
        default=None, repr=False
    )

    @staticmethod
    def from_env() -> "CopyOptions":
        part_size = os.getenv("S3COPY_PART_SIZE")
        concurrency = os.getenv("S3COPY_CONCURRENCY")
        retries = os.getenv("S3COPY_RETRIES")
        return CopyOptions(
            part_size=SizeSuffix(part_size).as_int() if part_size else None,
            concurrency=int(concurrency) if concurrency else None,
            retries=int(retries) if retries else DEFAULT_RETRIES,
        )


class CopyOrchestrator:
    """Entry point: copy and rename objects through a StorageBackend."""

    def __init__(self, backend: StorageBackend) -> None:
        self.backend = backend
        self.last_result: CopyResult | None = None

    def plan(self, size: int, part_size: int | None = None) -> list[ByteRange]:
        if part_size is None:
            part_size = DEFAULT_RELAY_PART_SIZE
        return plan(size, part_size)

    def _check_options(self, options: CopyOptions) -> None:
        if options.part_size is not None and options.part_size <= 0:
            raise PlanningError(f"Part size must be positive, got {options.part_size}")
        if options.concurrency is not None and options.concurrency < 1:
            raise PlanningError(
                f"Concurrency must be at least 1, got {options.concurrency}"
            )
        if options.retries < 0:
            raise PlanningError(f"Retries must not be negative, got {options.retries}")
        if options.direct_copy_threshold is not None and options.direct_copy_threshold < 0:
            raise PlanningError(
                f"Direct copy threshold must not be negative, got {options.direct_copy_threshold}"
            )

    def _select_strategy(
        self,
        source: ObjectLocator,
        destination: ObjectLocator,
        options: CopyOptions,
    ) -> CopyStrategyKind:
        if options.force_relay or not source.same_domain(destination):
            return CopyStrategyKind.RELAY
        return CopyStrategyKind.SERVER_SIDE

    def _make_strategy(
        self, kind: CopyStrategyKind, options: CopyOptions
    ) -> CopyStrategy:
        cls: type[CopyStrategy]
        if kind == CopyStrategyKind.SERVER_SIDE:
            cls = ServerSideCopyStrategy
        else:
            cls = RelayCopyStrategy
        return cls(
            backend=self.backend,
            concurrency=options.concurrency if options.concurrency is not None else 1,
            retries=options.retries,
            retry_backoff=options.retry_backoff,
            cancel_event=options.cancel_event,
            on_part_committed=options.on_part_committed,
        )

    def _verify(self, destination: ObjectLocator, size: int) -> None:
        head = self.backend.head_object(destination)
        if not head.exists:
            raise CopyVerificationError(
                f"Destination not found after copy: {destination.s3_url()}"
            )
        if head.size != size:
            raise CopyVerificationError(
                f"Size mismatch for {destination.s3_url()}: {head.size} != {size}"
            )

    def _decide(
        self,
        source: ObjectLocator,
        destination: ObjectLocator,
        options: CopyOptions,
    ) -> tuple[CopyStrategyKind, ObjectHead, CopyPlan | None]:
        self._check_options(options)
        if source == destination:
            raise SameObjectError(source)
        head: ObjectHead = self.backend.head_object(source)
        if not head.exists:
            raise ObjectNotFoundError(source)

        kind = self._select_strategy(source, destination, options)
        if options.part_size is not None:
            target_part_size = options.part_size
        elif kind == CopyStrategyKind.SERVER_SIDE:
            target_part_size = DEFAULT_SERVER_SIDE_PART_SIZE
        else:
            target_part_size = DEFAULT_RELAY_PART_SIZE
        part_size = resolve_part_size(head.size, target_part_size)
        threshold = (
            options.direct_copy_threshold
            if options.direct_copy_threshold is not None
            else part_size
        )
        if head.size == 0 or (
            kind == CopyStrategyKind.SERVER_SIDE and head.size <= threshold
        ):
            return CopyStrategyKind.DIRECT, head, None
        copy_plan = make_copy_plan(source, destination, head.size, part_size)
        return kind, head, copy_plan

    def make_plan(
        self,
        source: ObjectLocator,
        destination: ObjectLocator,
        options: CopyOptions | None = None,
    ) -> tuple[CopyStrategyKind, CopyPlan | None]:
        """
        Decide how copy() would move source, without transferring anything.

        Returns the strategy and its part plan, the plan is None for a
        direct copy. Raises CopyError subclasses like copy() reports them.
        """
        kind, _, copy_plan = self._decide(source, destination, options or CopyOptions())
        return kind, copy_plan

    def _copy(
        self,
        source: ObjectLocator,
        destination: ObjectLocator,
        options: CopyOptions,
    ) -> CopyResult:
        kind, head, copy_plan = self._decide(source, destination, options)
        if copy_plan is None:
            logger.info(
                f"Direct copy of {source.s3_url()} ({SizeSuffix(head.size)}) to {destination.s3_url()}"
            )
            self.backend.direct_copy(source, destination)
            if options.verify:
                self._verify(destination, head.size)
            return CopyResult(strategy=CopyStrategyKind.DIRECT, plan=None)

        strategy = self._make_strategy(kind, options)
        logger.info("==Starting Multipart Copy==")
        logger.info(f"Source File Size: {SizeSuffix(head.size)}")
        logger.info(f"Part Size: {SizeSuffix(copy_plan.part_size)}")
        with TransferSession(
            self.backend, destination, copy_plan.part_count
        ) as session:
            session.open()
            parts = strategy.run(session, copy_plan)
            session.finalize(parts)
        logger.info("==Multipart Copy Complete==")
        if options.verify:
            self._verify(destination, head.size)
        return CopyResult(strategy=kind, plan=copy_plan, parts=parts)

    def copy(
        self,
        source: ObjectLocator,
        destination: ObjectLocator,
        options: CopyOptions | None = None,
    ) -> Exception | None:
        """Copy source to destination, returns the error instead of raising."""
        options = options or CopyOptions()
        try:
            self.last_result = self._copy(source, destination, options)
            return None
        except CopyError as e:
            logger.error(f"Copy {source.s3_url()} -> {destination.s3_url()} failed: {e}")
            return e
        except Exception as e:
            logger.error(
                f"Copy {source.s3_url()} -> {destination.s3_url()} failed: {e}",
                exc_info=True,
            )
            return e

    def delete(self, locator: ObjectLocator) -> Exception | None:
        try:
            self.backend.delete_object(locator)
            return None
        except Exception as e:
            return ObjectDeleteError(locator, e)

    def rename(
        self,
        source: ObjectLocator,
        new_key: str,
        options: CopyOptions | None = None,
    ) -> Exception | None:
        """
        Copy to new_key in the same bucket, then delete the source.

        Not atomic: when the delete fails both objects exist and the
        ObjectDeleteError is returned so the caller can retry delete().
        """
        destination = source.with_key(new_key)
        err = self.copy(source, destination, options)
        if err is not None:
            return err
        err = self.delete(source)
        if err is not None:
            logger.warning(
                f"Renamed {source.s3_url()} to {destination.s3_url()} but the source was not deleted: {err}"
            )
        return err
