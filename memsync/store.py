"""Local note store.

The sync engine only needs ``get_all``, ``get``, ``save`` and ``delete``.
``JsonNoteStore`` keeps one ``<id>.json`` file per note in a directory.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .models import Note
from .utils import NOTE_FILE_SUFFIX, note_filename, note_id_from_filename

logger = logging.getLogger(__name__)


class NoteStore(ABC):
    """Authoritative on-device copy of every note, tombstones included."""

    @abstractmethod
    def get_all(self) -> list[Note]:
        """Return every stored note, newest first."""

    @abstractmethod
    def get(self, note_id: str) -> Optional[Note]:
        """Return one note, or None if it is not stored."""

    @abstractmethod
    def save(self, note: Note) -> None:
        """Insert or replace a note by id."""

    @abstractmethod
    def delete(self, note_id: str) -> None:
        """Purge a note entirely. Deleting a missing note is a no-op."""


class JsonNoteStore(NoteStore):
    """Note store backed by a directory of JSON files."""

    def __init__(self, directory: Path):
        """Initialize the store.

        Args:
            directory: Directory holding the note files (created if missing)
        """
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, note_id: str) -> Path:
        if not note_id or "/" in note_id or "\\" in note_id or note_id in (".", ".."):
            raise ValueError(f"Invalid note id: {note_id!r}")
        return self.directory / note_filename(note_id)

    def _load(self, path: Path) -> Optional[Note]:
        note_id = note_id_from_filename(path.name)
        if note_id is None:
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Note.from_dict(data)
        except (OSError, json.JSONDecodeError, ValueError) as e:
            # Surface unreadable records as errored notes so sync leaves
            # them alone instead of treating them as deleted
            logger.warning(f"Could not read note {note_id}: {e}")
            return Note(id=note_id, timestamp=0, processing_error=True)

    def get_all(self) -> list[Note]:
        notes = []
        for path in self.directory.glob(f"*{NOTE_FILE_SUFFIX}"):
            note = self._load(path)
            if note is not None:
                notes.append(note)
        return sorted(notes, key=lambda n: n.timestamp, reverse=True)

    def get(self, note_id: str) -> Optional[Note]:
        path = self._path(note_id)
        if not path.exists():
            return None
        return self._load(path)

    def save(self, note: Note) -> None:
        path = self._path(note.id)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.directory, prefix=".tmp-", suffix=NOTE_FILE_SUFFIX + ".part"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(note.to_dict(), f, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved note {note.id}")

    def delete(self, note_id: str) -> None:
        path = self._path(note_id)
        try:
            path.unlink()
            logger.debug(f"Deleted note {note_id}")
        except FileNotFoundError:
            pass
