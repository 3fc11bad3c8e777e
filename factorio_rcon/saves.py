"""Read-only view of the save directory, plus atomic upload.

Saves are ``<name>.zip`` files in a single directory. Records are derived
from file metadata on every call; nothing is cached.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .errors import SaveNotFoundError

logger = logging.getLogger(__name__)

SAVE_SUFFIX = ".zip"

# Canonical name uploads are stored under.
UPLOAD_SAVE_NAME = "uploaded"


@dataclass(frozen=True, slots=True)
class SaveRecord:
    """Metadata for one save file.

    Attributes:
        name: Save name without the ``.zip`` suffix.
        size_bytes: File size.
        modified_at: Last modification time (UTC).
    """

    name: str
    size_bytes: int
    modified_at: datetime

    @classmethod
    def from_path(cls, path: Path) -> "SaveRecord":
        st = path.stat()
        return cls(
            name=path.name[: -len(SAVE_SUFFIX)],
            size_bytes=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "size_bytes": self.size_bytes,
            "modified_at": self.modified_at.isoformat(),
        }


def normalize_save_name(name: str) -> str:
    """Strip the ``.zip`` suffix and reject names that escape the directory.

    Raises:
        SaveNotFoundError: For empty names or names with path components.
    """
    stripped = name.strip()
    if stripped.endswith(SAVE_SUFFIX):
        stripped = stripped[: -len(SAVE_SUFFIX)]
    if not stripped or "/" in stripped or "\\" in stripped or stripped in (".", ".."):
        raise SaveNotFoundError(name)
    return stripped


class SaveStore:
    """A directory of named save blobs."""

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory)

    def path_for(self, name: str) -> Path:
        return self.directory / f"{normalize_save_name(name)}{SAVE_SUFFIX}"

    def list_saves(self) -> list[SaveRecord]:
        """Return all saves, newest-modified first.

        A missing directory lists as empty.
        """
        if not self.directory.is_dir():
            logger.debug("Save directory %s does not exist", self.directory)
            return []

        records = []
        for path in self.directory.glob(f"*{SAVE_SUFFIX}"):
            if not path.is_file():
                continue
            try:
                records.append(SaveRecord.from_path(path))
            except OSError as exc:
                # Deleted between glob and stat
                logger.debug("Skipping %s: %s", path, exc)

        records.sort(key=lambda r: r.modified_at, reverse=True)
        return records

    def exists(self, name: str) -> bool:
        try:
            return self.path_for(name).is_file()
        except SaveNotFoundError:
            return False

    def get(self, name: str) -> SaveRecord:
        """Return the record for ``name``.

        Raises:
            SaveNotFoundError: If no such save exists.
        """
        path = self.path_for(name)
        if not path.is_file():
            raise SaveNotFoundError(normalize_save_name(name))
        return SaveRecord.from_path(path)

    def store_upload(self, data: bytes, name: str = UPLOAD_SAVE_NAME) -> SaveRecord:
        """Write ``data`` as ``<name>.zip``, replacing any existing file atomically."""
        path = self.path_for(name)
        self.directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        logger.info("Stored uploaded save %s (%d bytes)", path.name, len(data))
        return SaveRecord.from_path(path)
