"""
Receipt artifact storage.

Generated receipts are written once under unique names and never updated.
The retention janitor lists artifacts by modification time and deletes the
stale ones.
"""

import os
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .logging_config import get_logger


logger = get_logger("payments.artifacts")

_NAME_PATTERN = re.compile(r"^proof_(?P<transaction_id>[A-Za-z0-9]+)_\d+_[A-Za-z0-9]+\.pdf$")


def transaction_id_from_name(file_name: str) -> Optional[str]:
    """Extract the transaction id from a proof artifact name"""
    match = _NAME_PATTERN.match(file_name)
    return match.group("transaction_id") if match else None


def _safe_name(file_name: str) -> str:
    if not file_name or os.path.basename(file_name) != file_name or file_name in (".", ".."):
        raise ValueError(f"Invalid artifact name: {file_name!r}")
    return file_name


@dataclass
class ArtifactInfo:
    """Metadata of a stored artifact"""
    file_name: str
    created_at: datetime  # Modification time
    size: int

    @property
    def transaction_id(self) -> Optional[str]:
        return transaction_id_from_name(self.file_name)


class ArtifactStore(ABC):
    """Write-once blob store for rendered receipts"""

    @abstractmethod
    def put(self, file_name: str, content: bytes) -> ArtifactInfo:
        """Store content under a new name. Raises FileExistsError if taken."""
        pass

    @abstractmethod
    def get(self, file_name: str) -> bytes:
        """Read content. Raises FileNotFoundError if absent."""
        pass

    @abstractmethod
    def delete(self, file_name: str) -> bool:
        pass

    @abstractmethod
    def list(self) -> List[ArtifactInfo]:
        pass


class LocalArtifactStore(ArtifactStore):
    """Artifacts as files in a local directory"""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, file_name: str) -> Path:
        return self.directory / _safe_name(file_name)

    def put(self, file_name: str, content: bytes) -> ArtifactInfo:
        path = self._path(file_name)
        # "x" mode: fails if the name is taken
        with open(path, "xb") as f:
            f.write(content)
        return self._info(path)

    def get(self, file_name: str) -> bytes:
        return self._path(file_name).read_bytes()

    def delete(self, file_name: str) -> bool:
        try:
            self._path(file_name).unlink()
            return True
        except FileNotFoundError:
            return False

    def list(self) -> List[ArtifactInfo]:
        infos = []
        for path in sorted(self.directory.iterdir()):
            try:
                if path.is_file():
                    infos.append(self._info(path))
            except FileNotFoundError:
                # Removed between listing and stat
                continue
            except OSError as e:
                logger.warning(f"Skipping unreadable artifact {path.name}: {e}")
        return infos

    def set_modified_time(self, file_name: str, moment: datetime) -> None:
        """Backdate an artifact (used by maintenance tooling and tests)"""
        timestamp = moment.timestamp()
        os.utime(self._path(file_name), (timestamp, timestamp))

    @staticmethod
    def _info(path: Path) -> ArtifactInfo:
        stat = path.stat()
        return ArtifactInfo(
            file_name=path.name,
            created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            size=stat.st_size
        )


class InMemoryArtifactStore(ArtifactStore):
    """Artifact store kept in a dict, for testing"""

    def __init__(self):
        self._items: Dict[str, Tuple[bytes, datetime]] = {}
        self._lock = threading.Lock()

    def put(self, file_name: str, content: bytes) -> ArtifactInfo:
        _safe_name(file_name)
        now = datetime.now(timezone.utc)
        with self._lock:
            if file_name in self._items:
                raise FileExistsError(file_name)
            self._items[file_name] = (bytes(content), now)
        return ArtifactInfo(file_name=file_name, created_at=now, size=len(content))

    def get(self, file_name: str) -> bytes:
        with self._lock:
            if file_name not in self._items:
                raise FileNotFoundError(file_name)
            return self._items[file_name][0]

    def delete(self, file_name: str) -> bool:
        with self._lock:
            return self._items.pop(file_name, None) is not None

    def list(self) -> List[ArtifactInfo]:
        with self._lock:
            return [
                ArtifactInfo(file_name=name, created_at=created_at, size=len(content))
                for name, (content, created_at) in sorted(self._items.items())
            ]

    def set_modified_time(self, file_name: str, moment: datetime) -> None:
        with self._lock:
            content, _ = self._items[file_name]
            self._items[file_name] = (content, moment)
