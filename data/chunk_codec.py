"""
Binary encoding of chunks.

One chunk is written as a single blob. All integers are little-endian and
there is no alignment padding:

    header   magic b"LMBP", u16 format version
    stats    u64 timestamp, 12 x f64 interval breakpoints,
             12 x f64 latency breakpoints, u32 sample count
    records  u64 entity count, then per entity:
                 u64 id length, utf-8 id bytes, u64 record count,
                 record count x (u16 interval, u64 end_of_interval,
                                 u16 latency, u8 rank)

Anything that does not decode cleanly (short read, trailing bytes, unknown
magic or version, invalid utf-8, out-of-range rank, duplicate id) raises
ChunkDecodeError so callers can skip the blob without crashing.
"""

import struct

from config.constants import PERCENTILE_LEVELS
from core.domain.entities import Chunk, Percentiles, Record, SystemStats

MAGIC = b"LMBP"
FORMAT_VERSION = 1

_HEADER = struct.Struct("<4sH")
_N = len(PERCENTILE_LEVELS)
_STATS = struct.Struct(f"<Q{_N}d{_N}dI")
_LENGTH = struct.Struct("<Q")
_RECORD = struct.Struct("<HQHB")


class ChunkDecodeError(Exception):
    """Raised when a stored blob is corrupt or uses an incompatible encoding."""


def encode_chunk(chunk: Chunk) -> bytes:
    """
    Serialize a chunk.

    Raises:
        ValueError: If a field does not fit its on-disk width
    """
    stats = chunk.stats
    parts: list[bytes] = [_HEADER.pack(MAGIC, FORMAT_VERSION)]
    try:
        parts.append(
            _STATS.pack(
                stats.timestamp,
                *stats.interval_stats.as_tuple(),
                *stats.latency_stats.as_tuple(),
                stats.sample_count,
            )
        )
        parts.append(_LENGTH.pack(len(chunk.records)))
        for entity_id, records in chunk.records.items():
            raw_id = entity_id.encode("utf-8")
            parts.append(_LENGTH.pack(len(raw_id)))
            parts.append(raw_id)
            parts.append(_LENGTH.pack(len(records)))
            for r in records:
                parts.append(_RECORD.pack(r.interval, r.end_of_interval, r.latency, r.rank))
    except struct.error as e:
        raise ValueError(f"Chunk {stats.timestamp} does not fit the binary format: {e}") from e
    return b"".join(parts)


class _Reader:
    """Bounds-checked cursor over a blob."""

    def __init__(self, data: bytes):
        self._view = memoryview(data)
        self.offset = 0

    def unpack(self, fmt: struct.Struct) -> tuple:
        end = self.offset + fmt.size
        if end > len(self._view):
            raise ChunkDecodeError(
                f"Truncated chunk: need {fmt.size} bytes at offset {self.offset}, "
                f"have {len(self._view) - self.offset}"
            )
        values = fmt.unpack_from(self._view, self.offset)
        self.offset = end
        return values

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self._view):
            raise ChunkDecodeError(f"Truncated chunk: string of {size} bytes at offset {self.offset}")
        raw = self._view[self.offset:end].tobytes()
        self.offset = end
        return raw

    def remaining(self) -> int:
        return len(self._view) - self.offset


def decode_chunk(data: bytes) -> Chunk:
    """
    Deserialize a chunk.

    Raises:
        ChunkDecodeError: If the blob is corrupt or incompatible
    """
    reader = _Reader(data)
    magic, version = reader.unpack(_HEADER)
    if magic != MAGIC:
        raise ChunkDecodeError(f"Bad magic {magic!r}")
    if version != FORMAT_VERSION:
        raise ChunkDecodeError(f"Unsupported chunk format version {version}")

    values = reader.unpack(_STATS)
    stats = SystemStats(
        timestamp=values[0],
        interval_stats=Percentiles.from_values(values[1:1 + _N]),
        latency_stats=Percentiles.from_values(values[1 + _N:1 + 2 * _N]),
        sample_count=values[-1],
    )

    (entity_count,) = reader.unpack(_LENGTH)
    records: dict[str, tuple[Record, ...]] = {}
    for _ in range(entity_count):
        (id_len,) = reader.unpack(_LENGTH)
        try:
            entity_id = reader.take(id_len).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ChunkDecodeError(f"Entity id is not valid utf-8: {e}") from e
        if entity_id in records:
            raise ChunkDecodeError(f"Duplicate entity id {entity_id!r}")

        (record_count,) = reader.unpack(_LENGTH)
        if record_count * _RECORD.size > reader.remaining():
            raise ChunkDecodeError(
                f"Truncated chunk: {record_count} records declared for {entity_id!r}"
            )
        entity_records = []
        for _ in range(record_count):
            interval, end_of_interval, latency, rank = reader.unpack(_RECORD)
            try:
                entity_records.append(Record(interval, end_of_interval, latency, rank))
            except ValueError as e:
                raise ChunkDecodeError(f"Invalid record for {entity_id!r}: {e}") from e
        records[entity_id] = tuple(entity_records)

    if reader.remaining():
        raise ChunkDecodeError(f"{reader.remaining()} trailing bytes after chunk")

    return Chunk(stats=stats, records=records)
