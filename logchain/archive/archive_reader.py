"""
Archive Reader - Replays an entry archive with retractions applied.

Supports:
- Block-range filtering
- Entry type and sender filtering
- Memory-efficient streaming of raw records
"""

import json
import logging

from collections.abc import Generator
from pathlib import Path
from typing import Any

from ..types import LogEntry
from .entry_archive import DEFAULT_ARCHIVE_FILE, KIND_CHANGED, KIND_ENTRY

logger = logging.getLogger(__name__)


class ArchiveReader:
    """
    Reads entries back from an EntryArchive file.

    Usage:
        reader = ArchiveReader("./archive")
        entries = reader.read_entries(from_block=100, entry_type="ERROR")
    """

    def __init__(self, archive_directory: str, filename: str = DEFAULT_ARCHIVE_FILE):
        self.path = Path(archive_directory) / filename

    def stream_records(self) -> Generator[dict[str, Any], None, None]:
        """Yield every well-formed record in append order."""
        if not self.path.exists():
            return

        with open(self.path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"{self.path}:{line_number}: corrupt line skipped")
                    continue
                if not isinstance(record, dict):
                    logger.warning(f"{self.path}:{line_number}: non-object line skipped")
                    continue
                if record.get("kind") in (KIND_ENTRY, KIND_CHANGED):
                    yield record

    def read_entries(
        self,
        from_block: int | None = None,
        to_block: int | None = None,
        entry_type: str | None = None,
        sender: str | None = None,
    ) -> list[LogEntry]:
        """
        Entries still valid after retractions, in ledger order.

        Args:
            from_block: Inclusive lower block bound
            to_block: Inclusive upper block bound
            entry_type: Keep only this type tag
            sender: Keep only entries from this address

        Returns:
            List of LogEntry objects
        """
        live: dict[tuple[str, int], LogEntry] = {}

        for record in self.stream_records():
            try:
                key = (str(record.get("transaction_hash", "")).lower(), int(record.get("log_index", 0)))
                if record["kind"] == KIND_CHANGED:
                    live.pop(key, None)
                    continue
                live[key] = LogEntry.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Archive record {record.get('transaction_hash')} unreadable: {e}")

        entries = []
        for entry in live.values():
            if from_block is not None and entry.block_number < from_block:
                continue
            if to_block is not None and entry.block_number > to_block:
                continue
            if entry_type is not None and entry.entry_type != entry_type:
                continue
            if sender is not None and entry.sender.lower() != sender.lower():
                continue
            entries.append(entry)

        entries.sort(key=lambda e: (e.block_number, e.transaction_index, e.log_index))
        return entries

    def count_entries(self, **filters: Any) -> int:
        """Count valid entries matching the same filters as read_entries."""
        return len(self.read_entries(**filters))

    def get_latest_entry(self) -> LogEntry | None:
        """Get the most recent valid entry."""
        entries = self.read_entries()
        return entries[-1] if entries else None
