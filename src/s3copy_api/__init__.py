from .backend import StorageBackend
from .errors import (
    CopyCancelledError,
    CopyError,
    CopyVerificationError,
    InvalidSessionStateError,
    ObjectDeleteError,
    ObjectNotFoundError,
    PartTransferError,
    PlanningError,
    SameObjectError,
    SessionFinalizeError,
    SessionOpenError,
    TransferPhase,
)
from .orchestrator import CopyOptions, CopyOrchestrator
from .planner import make_copy_plan, plan
from .session import SessionState, TransferSession
from .strategy import CopyStrategy, RelayCopyStrategy, ServerSideCopyStrategy
from .types import (
    ByteRange,
    CommittedPart,
    CopyPlan,
    CopyResult,
    CopyStrategyKind,
    ObjectHead,
    ObjectLocator,
    SizeSuffix,
)

__all__ = [
    "CopyOrchestrator",
    "CopyOptions",
    "StorageBackend",
    "TransferSession",
    "SessionState",
    "CopyStrategy",
    "ServerSideCopyStrategy",
    "RelayCopyStrategy",
    "plan",
    "make_copy_plan",
    "ObjectLocator",
    "ObjectHead",
    "ByteRange",
    "CommittedPart",
    "CopyPlan",
    "CopyResult",
    "CopyStrategyKind",
    "SizeSuffix",
    "CopyError",
    "ObjectNotFoundError",
    "SessionOpenError",
    "PartTransferError",
    "TransferPhase",
    "SessionFinalizeError",
    "InvalidSessionStateError",
    "PlanningError",
    "CopyCancelledError",
    "CopyVerificationError",
    "ObjectDeleteError",
    "SameObjectError",
]
