import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CopyStrategyKind(Enum):
    DIRECT = "direct"
    SERVER_SIDE = "server-side"
    RELAY = "relay"


def _to_size_suffix(size: int) -> str:
    def _convert(size: int) -> tuple[float, str]:
        val: float
        unit: str
        if size < 1024:
            val = size
            unit = "B"
        elif size < 1024**2:
            val = size / 1024
            unit = "K"
        elif size < 1024**3:
            val = size / (1024**2)
            unit = "M"
        elif size < 1024**4:
            val = size / (1024**3)
            unit = "G"
        elif size < 1024**5:
            val = size / (1024**4)
            unit = "T"
        elif size < 1024**6:
            val = size / (1024**5)
            unit = "P"
        else:
            raise ValueError(f"Invalid size: {size}")

        return val, unit

    def _fmt(_val: float | int, _unit: str) -> str:
        # If the float is an integer, drop the decimal, otherwise format with one decimal.
        val_str: str = str(_val)
        if not val_str.endswith(".0"):
            first_str: str = f"{_val:.1f}"
        else:
            first_str = str(int(_val))
        return first_str + _unit

    val, unit = _convert(size)
    out = _fmt(val, unit)
    # Round trip the value to fix floating point issues via rounding.
    int_val = _from_size_suffix(out)
    val, unit = _convert(int_val)
    out = _fmt(val, unit)
    return out


_PATTERN_SIZE_SUFFIX = re.compile(r"^(\d+(?:\.\d+)?)([A-Za-z]*)$")


def _from_size_suffix(size: str) -> int:
    match = _PATTERN_SIZE_SUFFIX.match(size.strip())
    if match is None:
        raise ValueError(f"Invalid size suffix: {size}")
    num_str, suffix = match.group(1), match.group(2)
    n = float(num_str)
    if not suffix:
        return int(n)
    # Unit is the first letter, "M" from "MB" or "MiB"
    unit = suffix[0].upper()
    if unit == "B":
        return int(n)
    if unit == "K":
        return int(n * 1024)
    if unit == "M":
        return int(n * 1024**2)
    if unit == "G":
        return int(n * 1024**3)
    if unit == "T":
        return int(n * 1024**4)
    if unit == "P":
        return int(n * 1024**5)
    raise ValueError(f"Invalid size suffix: {suffix}")


class SizeSuffix:
    """Byte count that parses and prints rclone style suffixes ("100M", "1.5G")."""

    def __init__(self, size: "int | str | SizeSuffix"):
        self._size: int
        if isinstance(size, SizeSuffix):
            self._size = size._size
        elif isinstance(size, int):
            self._size = size
        elif isinstance(size, str):
            self._size = _from_size_suffix(size)
        elif isinstance(size, float):
            self._size = int(size)
        else:
            raise ValueError(f"Invalid type for size: {type(size)}")

    def as_int(self) -> int:
        return self._size

    def as_str(self) -> str:
        return _to_size_suffix(self._size)

    def __repr__(self) -> str:
        return self.as_str()

    def __str__(self) -> str:
        return self.as_str()

    def __int__(self) -> int:
        return self._size

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, (SizeSuffix, int)):
            return False
        return self._size == SizeSuffix(other)._size

    def __lt__(self, other: "int | SizeSuffix") -> bool:
        return self._size < SizeSuffix(other)._size

    def __le__(self, other: "int | SizeSuffix") -> bool:
        return self._size <= SizeSuffix(other)._size

    def __gt__(self, other: "int | SizeSuffix") -> bool:
        return self._size > SizeSuffix(other)._size

    def __ge__(self, other: "int | SizeSuffix") -> bool:
        return self._size >= SizeSuffix(other)._size

    def __hash__(self) -> int:
        return hash(self._size)

    def __mul__(self, other: "int | SizeSuffix") -> "SizeSuffix":
        return SizeSuffix(self._size * SizeSuffix(other)._size)

    def __rmul__(self, other: "int | SizeSuffix") -> "SizeSuffix":
        return self.__mul__(other)


@dataclass(frozen=True)
class ObjectLocator:
    """Identifies one object: region (domain), bucket and key."""

    domain: str
    bucket: str
    key: str

    @staticmethod
    def from_s3_url(url: str, domain: str) -> "ObjectLocator":
        """Parse s3://bucket/key, raises ValueError on a malformed url."""
        tokens = url.split("//", 1)
        if len(tokens) != 2 or tokens[0] != "s3:":
            raise ValueError(
                f"invalid S3 URL: invalid protocol '{tokens[0]}'. S3 URL must be in the form of s3://bucket_name/object_key"
            )
        bucket, _, key = tokens[1].partition("/")
        if not bucket or not key:
            raise ValueError(
                f"invalid S3 URL: missing object key or bucket in '{url}'. S3 URL must be in the form of s3://bucket_name/object_key"
            )
        return ObjectLocator(domain=domain, bucket=bucket, key=key)

    def s3_url(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    @property
    def filename(self) -> str:
        return self.key.split("/")[-1]

    def with_key(self, key: str) -> "ObjectLocator":
        return ObjectLocator(domain=self.domain, bucket=self.bucket, key=key)

    def same_domain(self, other: "ObjectLocator") -> bool:
        return self.domain == other.domain

    def to_json(self) -> dict:
        return {"region": self.domain, "bucket": self.bucket, "objectKey": self.key}

    def __str__(self) -> str:
        return json.dumps(self.to_json(), indent=4)


@dataclass
class ObjectHead:
    """Result of a head lookup. A missing object has exists=False and size 0."""

    size: int
    etag: str
    exists: bool = True
    storage_class: str | None = None
    last_modified: datetime | None = None

    @staticmethod
    def missing() -> "ObjectHead":
        return ObjectHead(size=0, etag="", exists=False)


@dataclass(frozen=True)
class ByteRange:
    start: int  # inclusive
    end: int  # inclusive, like the http Range header

    def __post_init__(self):
        assert self.start >= 0, f"Invalid range start {self.start}"
        assert self.end >= self.start, f"Invalid range {self.start}-{self.end}"

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def to_header(self) -> str:
        return f"bytes={self.start}-{self.end}"

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class CommittedPart:
    part_number: int
    etag: str

    def __post_init__(self):
        assert isinstance(self.part_number, int)
        assert isinstance(self.etag, str)
        assert self.part_number >= 1, f"Invalid part number {self.part_number}"

    def to_json(self) -> dict:
        # amazon s3 style dict
        return {"PartNumber": self.part_number, "ETag": self.etag}

    @staticmethod
    def to_json_array(parts: list["CommittedPart"]) -> list[dict]:
        ordered = sorted(parts, key=lambda p: p.part_number)
        return [p.to_json() for p in ordered]

    @staticmethod
    def from_json(json: dict) -> "CommittedPart":
        part_number = json.get("PartNumber") or json.get("part_number")
        etag = json.get("ETag") or json.get("etag")
        assert isinstance(part_number, int)
        assert isinstance(etag, str)
        return CommittedPart(part_number=part_number, etag=etag)


@dataclass(frozen=True)
class CopyPlan:
    source: ObjectLocator
    destination: ObjectLocator
    size: int
    part_size: int
    ranges: tuple[ByteRange, ...] = field(default_factory=tuple)

    @property
    def part_count(self) -> int:
        return len(self.ranges)

    @property
    def total_bytes(self) -> int:
        return sum(r.length for r in self.ranges)

    def describe(self) -> str:
        lines = [
            f"{self.source.s3_url()} ({self.source.domain}) -> {self.destination.s3_url()} ({self.destination.domain})",
            f"size: {SizeSuffix(self.size)}, part size: {SizeSuffix(self.part_size)}, parts: {self.part_count}",
        ]
        for i, r in enumerate(self.ranges, start=1):
            lines.append(f"  part {i:05d}: {r.to_header()} ({SizeSuffix(r.length)})")
        return "\n".join(lines)


@dataclass
class CopyResult:
    strategy: CopyStrategyKind
    plan: CopyPlan | None
    parts: list[CommittedPart] = field(default_factory=list)
