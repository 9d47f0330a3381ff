"""
Entry Archive - Append-only JSONL record of a subscription's output.

Design principles:
- Never lose data (append-only, fsync on flush)
- Retractions are records too: a reorg appends a "changed" line,
  nothing is rewritten
- Always replayable (structured JSONL, see ArchiveReader)
- Minimal overhead (buffered writes)
"""

import json
import os
import threading

from pathlib import Path
from typing import Any, TextIO

from ..types import LogEntry, LogRef

KIND_ENTRY = "entry"
KIND_CHANGED = "changed"
DEFAULT_ARCHIVE_FILE = "entries.jsonl"


class EntryArchive:
    """
    Thread-safe, append-only JSONL archive of decoded entries.

    Usage:
        archive = EntryArchive("./archive")
        archive.record_entry(entry)
        archive.record_changed(ref)
    """

    def __init__(
        self,
        archive_directory: str,
        buffer_size: int = 10,
        filename: str = DEFAULT_ARCHIVE_FILE,
    ):
        """
        Initialize the archive.

        Args:
            archive_directory: Directory for the archive file
            buffer_size: Number of records to buffer before flush
            filename: Archive file name inside the directory
        """
        self.archive_directory = Path(archive_directory)
        self.archive_directory.mkdir(parents=True, exist_ok=True)

        self.buffer_size = buffer_size
        self.path = self.archive_directory / filename

        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._file_handle: TextIO | None = None

    def record_entry(self, entry: LogEntry) -> None:
        """
        Archive a delivered entry.

        Thread-safe. Buffers writes for efficiency.
        """
        self._append({"kind": KIND_ENTRY, **entry.to_dict()})

    def record_changed(self, ref: LogRef) -> None:
        """Archive a reorg retraction; flushed immediately."""
        self._append({"kind": KIND_CHANGED, **ref.to_dict()})
        self.flush()

    def _append(self, record: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(record)

            if len(self._buffer) >= self.buffer_size:
                self._flush()

    def flush(self) -> None:
        """Force flush the buffer to disk."""
        with self._lock:
            self._flush()

    def _flush(self) -> None:
        """Internal flush - must hold lock."""
        if not self._buffer:
            return

        if self._file_handle is None:
            self._file_handle = open(self.path, "a", encoding="utf-8")
        handle = self._file_handle

        for record in self._buffer:
            handle.write(json.dumps(record, separators=(",", ":")) + "\n")

        # Ensure durability
        handle.flush()
        os.fsync(handle.fileno())

        self._buffer.clear()

    def close(self) -> None:
        """Flush and close the archive."""
        with self._lock:
            self._flush()
            if self._file_handle:
                self._file_handle.close()
                self._file_handle = None

    def __enter__(self) -> "EntryArchive":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()
