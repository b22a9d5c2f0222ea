"""Data models for notes and remote files."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .utils import SAMPLE_ID_PREFIX, note_filename, note_id_from_filename

logger = logging.getLogger(__name__)

# Wire keys owned by the sync engine; everything else is opaque payload
_ID = "id"
_TIMESTAMP = "timestamp"
_IS_DELETED = "isDeleted"
_IS_SAMPLE = "isSample"
_IS_PENDING = "isPending"
_PROCESSING_ERROR = "processingError"

_FLAG_KEYS = {
    "is_deleted": _IS_DELETED,
    "is_sample": _IS_SAMPLE,
    "is_pending": _IS_PENDING,
    "processing_error": _PROCESSING_ERROR,
}


@dataclass
class Note:
    """A captured memory, the unit of replication.

    Only ``id``, ``timestamp`` and the flags are interpreted by the sync
    engine. Content, tags, attachments, location and AI enrichment travel in
    ``payload`` untouched.
    """

    id: str
    """Stable identifier, immutable for the note's lifetime"""

    timestamp: int
    """Modification time in epoch milliseconds; drives conflict decisions"""

    is_deleted: bool = False
    """Tombstone flag; the record is kept until the deletion has propagated"""

    is_sample: bool = False
    """Seed/demo content, never synced"""

    is_pending: bool = False
    """AI enrichment still in flight, not synced yet"""

    processing_error: bool = False
    """AI enrichment or decryption failed, not synced"""

    payload: dict[str, Any] = field(default_factory=dict)
    """Opaque application fields (content, tags, attachments, ...)"""

    @property
    def filename(self) -> str:
        """Remote file name for this note."""
        return note_filename(self.id)

    @property
    def is_excluded(self) -> bool:
        """Whether the sync engine must ignore this note in both directions."""
        return self.is_sample or self.is_pending or self.processing_error

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Note":
        """Create a Note from its JSON representation.

        Raises:
            ValueError: If the data is not an object or lacks an id
        """
        if not isinstance(data, dict):
            raise ValueError(f"Note data must be an object, got {type(data).__name__}")
        note_id = data.get(_ID)
        if not note_id or not isinstance(note_id, str):
            raise ValueError("Note data is missing a string 'id'")

        payload = {
            k: v
            for k, v in data.items()
            if k not in (_ID, _TIMESTAMP) and k not in _FLAG_KEYS.values()
        }
        try:
            timestamp = int(data.get(_TIMESTAMP) or 0)
        except (TypeError, ValueError):
            timestamp = 0

        return cls(
            id=note_id,
            timestamp=timestamp,
            is_deleted=bool(data.get(_IS_DELETED)),
            is_sample=bool(data.get(_IS_SAMPLE)),
            is_pending=bool(data.get(_IS_PENDING)),
            processing_error=bool(data.get(_PROCESSING_ERROR)),
            payload=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the note to its JSON representation.

        Flags are only emitted when set.
        """
        data: dict[str, Any] = {_ID: self.id, _TIMESTAMP: self.timestamp}
        data.update(self.payload)
        for attr, key in _FLAG_KEYS.items():
            if getattr(self, attr):
                data[key] = True
        return data


@dataclass
class RemoteFile:
    """A note file in the remote app-private folder."""

    remote_id: str
    """Provider-assigned file id"""

    name: str
    """File name, ``<note id>.json``"""

    modified_time: str
    """Provider-assigned modification time (RFC 3339), changes per revision"""

    @property
    def note_id(self) -> Optional[str]:
        """Note id encoded in the file name, or None for foreign files."""
        return note_id_from_filename(self.name)

    @property
    def is_sample(self) -> bool:
        note_id = self.note_id
        return bool(note_id and note_id.startswith(SAMPLE_ID_PREFIX))

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "RemoteFile":
        """Create a RemoteFile from a Drive ``files`` resource."""
        return cls(
            remote_id=str(data.get("id", "")),
            name=data.get("name", ""),
            modified_time=data.get("modifiedTime", ""),
        )


def index_remote_files(remote_files: list[RemoteFile]) -> dict[str, RemoteFile]:
    """Map note id to remote file, ignoring non-note files.

    If several files claim the same note id, the most recently modified one
    wins; ties keep the first listed.

    Args:
        remote_files: Remote listing

    Returns:
        Dict of note id -> RemoteFile
    """
    remote_map: dict[str, RemoteFile] = {}
    for remote in remote_files:
        note_id = remote.note_id
        if note_id is None:
            logger.debug(f"Ignoring non-note remote file {remote.name!r}")
            continue
        existing = remote_map.get(note_id)
        if existing is not None:
            logger.warning(
                f"Duplicate remote files for note {note_id}: "
                f"{existing.remote_id}, {remote.remote_id}"
            )
            if existing.modified_time >= remote.modified_time:
                continue
        remote_map[note_id] = remote
    return remote_map
