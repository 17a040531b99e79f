"""
Chunk Store - append-only file persistence of window chunks.

Each chunk lives in its own file named after its window-close timestamp:

    data/chunk_00000000001700000060.bin

The timestamp is zero-padded so that lexicographic and numeric ordering of
file names agree. Discovery works from file names alone; blobs are only read
by ``get``. Files written by older ingesters without padding
(``chunk_1700000060.bin``) are still discovered.

Usage:
    >>> store = FileChunkStore(Path("data"))
    >>> key = store.put(chunk)
    >>> for key in store.list_since(watermark):
    ...     chunk = store.get(key)
"""

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from config.constants import (
    CHUNK_FILE_PREFIX,
    CHUNK_FILE_SUFFIX,
    CHUNK_KEY_DIGITS,
    QUARANTINE_DIRNAME,
)
from config.logging_config import LogCategory
from core.domain.entities import Chunk
from data.chunk_codec import ChunkDecodeError, decode_chunk, encode_chunk

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(
    rf"^{re.escape(CHUNK_FILE_PREFIX)}(\d+){re.escape(CHUNK_FILE_SUFFIX)}$"
)


class ChunkExistsError(FileExistsError):
    """Raised when a chunk key is written twice. Keys are immutable once written."""


def chunk_key(timestamp: int) -> str:
    """File name (store key) for a window-close timestamp."""
    return f"{CHUNK_FILE_PREFIX}{int(timestamp):0{CHUNK_KEY_DIGITS}d}{CHUNK_FILE_SUFFIX}"


def key_timestamp(key: str) -> int | None:
    """Timestamp encoded in a key, or None if the name is not a chunk key."""
    match = _KEY_PATTERN.match(key)
    if match is None:
        return None
    return int(match.group(1))


class FileChunkStore:
    """
    Directory-backed chunk store.

    Written by the ingestion process, read and purged by both processes.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self.quarantine_dir = self.root / QUARANTINE_DIRNAME
        self._init_dir()

    def _init_dir(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.root / key

    def _scan(self, directory: Path | None = None) -> list[tuple[int, str]]:
        entries = []
        for entry in os.scandir(directory or self.root):
            if not entry.is_file():
                continue
            ts = key_timestamp(entry.name)
            if ts is not None:
                entries.append((ts, entry.name))
        entries.sort()
        return entries

    def put(self, chunk: Chunk) -> str:
        """
        Persist a chunk under its timestamp key.

        The blob is written to a temporary file and renamed into place, so
        readers never observe a partially written chunk.

        Returns:
            The key written

        Raises:
            ChunkExistsError: If a chunk with this timestamp already exists
            OSError: On any write failure
        """
        key = chunk_key(chunk.timestamp)
        target = self.path_for(key)
        legacy = self.path_for(f"{CHUNK_FILE_PREFIX}{chunk.timestamp}{CHUNK_FILE_SUFFIX}")
        if target.exists() or legacy.exists():
            raise ChunkExistsError(f"Chunk {chunk.timestamp} already stored")

        payload = encode_chunk(chunk)
        fd, tmp_name = tempfile.mkstemp(prefix=".tmp_", suffix=CHUNK_FILE_SUFFIX, dir=self.root)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

        logger.debug(f"{LogCategory.CHUNK} Wrote {key} ({len(payload)} bytes)")
        return key

    def list_since(self, watermark: int) -> list[str]:
        """Keys with timestamp strictly greater than ``watermark``, oldest first."""
        return [key for ts, key in self._scan() if ts > watermark]

    def get(self, key: str) -> Chunk:
        """
        Read and decode one chunk.

        Raises:
            ChunkDecodeError: If the blob is corrupt or incompatible
            OSError: If the file cannot be read (e.g. purged meanwhile)
        """
        data = self.path_for(key).read_bytes()
        chunk = decode_chunk(data)
        expected = key_timestamp(key)
        if expected is not None and chunk.timestamp != expected:
            raise ChunkDecodeError(
                f"{key} holds chunk {chunk.timestamp}, expected {expected}"
            )
        return chunk

    def purge_older_than(self, cutoff: int) -> int:
        """
        Delete chunks with timestamp below ``cutoff``.

        Quarantined chunks expire under the same cutoff. Best effort: a
        failure on one file is logged and the rest of the batch still runs.

        Returns:
            Number of files deleted
        """
        deleted = self._purge_dir(self.root, cutoff)
        if self.quarantine_dir.is_dir():
            deleted += self._purge_dir(self.quarantine_dir, cutoff)
        if deleted:
            logger.info(f"{LogCategory.CHUNK} Purged {deleted} chunks older than {cutoff}")
        return deleted

    def _purge_dir(self, directory: Path, cutoff: int) -> int:
        deleted = 0
        for ts, key in self._scan(directory):
            if ts >= cutoff:
                break
            try:
                (directory / key).unlink()
                deleted += 1
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"{LogCategory.CHUNK} Failed to delete {directory / key}: {e}")
        return deleted

    def quarantine(self, key: str) -> None:
        """Move a chunk out of discovery into the quarantine directory."""
        self.quarantine_dir.mkdir(parents=True, exist_ok=True)
        shutil.move(str(self.path_for(key)), str(self.quarantine_dir / key))
        logger.warning(f"{LogCategory.CHUNK} Quarantined {key} -> {self.quarantine_dir}")

    def quarantined(self) -> list[str]:
        if not self.quarantine_dir.exists():
            return []
        return sorted(p.name for p in self.quarantine_dir.iterdir() if p.is_file())
