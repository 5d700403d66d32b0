import warnings

from s3copy_api.errors import PlanningError
from s3copy_api.types import ByteRange, CopyPlan, ObjectLocator, SizeSuffix

DEFAULT_RELAY_PART_SIZE = 100 * 1024 * 1024  # buffered in memory per part
DEFAULT_SERVER_SIDE_PART_SIZE = 512 * 1024 * 1024  # nothing is buffered locally
MAX_PART_SIZE = 5 * 1024 * 1024 * 1024
MAX_PART_COUNT = 10000


def plan(total_size: int, part_size: int) -> list[ByteRange]:
    """
    Split [0, total_size) into contiguous inclusive byte ranges.

    Every range is part_size long except the last one, which holds the
    remainder. A zero byte object yields no ranges.
    """
    if part_size <= 0:
        raise PlanningError(f"Part size must be positive, got {part_size}")
    if total_size < 0:
        raise PlanningError(f"Object size must not be negative, got {total_size}")
    out: list[ByteRange] = []
    for offset in range(0, total_size, part_size):
        last_byte = min(offset + part_size, total_size) - 1
        out.append(ByteRange(start=offset, end=last_byte))
    return out


def resolve_part_size(total_size: int, target_part_size: int) -> int:
    """Grow the target part size when the object would need more than MAX_PART_COUNT parts."""
    if target_part_size <= 0:
        raise PlanningError(f"Part size must be positive, got {target_part_size}")
    if target_part_size > MAX_PART_SIZE:
        raise PlanningError(
            f"Part size {SizeSuffix(target_part_size)} exceeds the maximum of {SizeSuffix(MAX_PART_SIZE)}"
        )
    min_part_size = -(-total_size // MAX_PART_COUNT)
    if min_part_size <= target_part_size:
        return target_part_size
    if min_part_size > MAX_PART_SIZE:
        raise PlanningError(
            f"Object of size {SizeSuffix(total_size)} cannot be copied in {MAX_PART_COUNT} parts"
        )
    warnings.warn(
        f"min part size {SizeSuffix(min_part_size)} is greater than target part size {SizeSuffix(target_part_size)}, adjusting part size to {SizeSuffix(min_part_size)}"
    )
    return min_part_size


def make_copy_plan(
    source: ObjectLocator,
    destination: ObjectLocator,
    size: int,
    part_size: int,
) -> CopyPlan:
    ranges = plan(size, part_size)
    return CopyPlan(
        source=source,
        destination=destination,
        size=size,
        part_size=part_size,
        ranges=tuple(ranges),
    )
