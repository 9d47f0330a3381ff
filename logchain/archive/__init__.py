"""
Archive subsystem for logchain.

Append-only JSONL archives of subscription output that are replayable
and auditable.
"""

from .archive_reader import ArchiveReader
from .entry_archive import EntryArchive

__all__ = ["ArchiveReader", "EntryArchive"]
