import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import List, Tuple

from modules.agreements.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

# Artifact kinds, each stored under its own root
UNSIGNED = "unsigned"
SIGNED = "signed"
SIGNATURES = "signatures"
ARTIFACT_KINDS = (UNSIGNED, SIGNED, SIGNATURES)


class ContentStore(ABC):
    """Path-addressable file storage for generated agreements and signature images.

    Paths are relative keys of the form ``<kind>/<filename>``.
    """

    @abstractmethod
    def write(self, path: str, data: bytes) -> None:
        pass

    @abstractmethod
    def read(self, path: str) -> bytes:
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def remove(self, path: str) -> None:
        pass

    @abstractmethod
    def list_files(self, kind: str) -> List[Tuple[str, datetime]]:
        """Returns ``(path, modified_at)`` for every file under a kind root."""
        pass


class LocalContentStore(ContentStore):
    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        for kind in ARTIFACT_KINDS:
            (self.base_path / kind).mkdir(parents=True, exist_ok=True)

    def _resolve_safe_path(self, path: str) -> Path:
        if not path or "\\" in path:
            raise StorageError(f"Invalid storage path: {path!r}")
        key_path = PurePosixPath(path)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise StorageError(f"Invalid storage path: {path!r}")
        if key_path.parts[0] not in ARTIFACT_KINDS:
            raise StorageError(f"Unknown artifact kind in path: {path!r}")
        base = self.base_path.resolve()
        resolved = (base / Path(path)).resolve()
        if base not in resolved.parents:
            raise StorageError(f"Invalid storage path: {path!r}")
        return resolved

    def resolve_path(self, path: str) -> Path:
        return self._resolve_safe_path(path)

    def write(self, path: str, data: bytes) -> None:
        target = self._resolve_safe_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file, then swap it in
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp_", suffix=target.suffix)
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.remove(tmp_name)
                raise
        except OSError as e:
            logger.exception("Failed to write %s", path)
            raise StorageError(f"Could not write {path}: {e}") from e

    def read(self, path: str) -> bytes:
        target = self._resolve_safe_path(path)
        if not target.is_file():
            raise NotFoundError(f"File not found: {path}")
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"Could not read {path}: {e}") from e

    def exists(self, path: str) -> bool:
        try:
            return self._resolve_safe_path(path).is_file()
        except StorageError:
            return False

    def remove(self, path: str) -> None:
        target = self._resolve_safe_path(path)
        try:
            if target.exists():
                target.unlink()
        except OSError as e:
            raise StorageError(f"Could not delete {path}: {e}") from e

    def list_files(self, kind: str) -> List[Tuple[str, datetime]]:
        if kind not in ARTIFACT_KINDS:
            raise StorageError(f"Unknown artifact kind: {kind!r}")
        root = self.base_path / kind
        files = []
        for entry in sorted(root.iterdir()):
            if not entry.is_file() or entry.name.startswith(".tmp_"):
                continue
            modified = datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc)
            files.append((f"{kind}/{entry.name}", modified))
        return files
