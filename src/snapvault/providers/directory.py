"""Capture provider backed by a directory tree on disk.

Every regular file below the source directory becomes one file-map entry,
keyed by its relative path with forward slashes.
"""

from pathlib import Path
from typing import Optional, Union

from snapvault.models.application import ActorRef
from snapvault.models.capture import CapturedState
from snapvault.observability.logging import get_logger
from snapvault.providers.interfaces import CaptureProvider
from snapvault.utils import compute_file_hash

logger = get_logger(__name__)


def _read_optional(path: Optional[Union[str, Path]]) -> Optional[str]:
    if path is None:
        return None
    return Path(path).read_text(encoding="utf-8").strip()


class DirectoryCaptureProvider(CaptureProvider):
    """Reports the contents of a directory as a captured state.

    Args:
        source_dir: Directory whose files form the file map.
        outfit_file: Optional text file holding the outfit payload.
        shape_file: Optional text file holding the shape payload.
        manipulation_file: Optional text file holding the metadata blob.
    """

    def __init__(
        self,
        source_dir: Union[str, Path],
        outfit_file: Optional[Union[str, Path]] = None,
        shape_file: Optional[Union[str, Path]] = None,
        manipulation_file: Optional[Union[str, Path]] = None,
    ):
        self.source_dir = Path(source_dir)
        self.outfit_file = outfit_file
        self.shape_file = shape_file
        self.manipulation_file = manipulation_file
        self._sources: dict[str, Path] = {}

    def scan(self) -> dict[str, str]:
        """Hashes every file below the source directory."""
        file_map: dict[str, str] = {}
        self._sources.clear()
        for path in sorted(self.source_dir.rglob("*")):
            if not path.is_file():
                continue
            content_hash = compute_file_hash(path)
            file_map[path.relative_to(self.source_dir).as_posix()] = content_hash
            self._sources.setdefault(content_hash, path)
        logger.debug(f"Scanned {len(file_map)} file(s) in {self.source_dir}.")
        return file_map

    def capture(self, actor: ActorRef) -> Optional[CapturedState]:
        if not self.source_dir.is_dir():
            logger.warning(f"Capture source {self.source_dir} is not a directory.")
            return None

        file_map = self.scan()
        return CapturedState(
            outfit=_read_optional(self.outfit_file),
            shape=_read_optional(self.shape_file),
            manipulation=_read_optional(self.manipulation_file),
            file_map=file_map,
            source_paths=dict(self._sources),
        )

    def read_source(self, content_hash: str) -> Optional[bytes]:
        path = self._sources.get(content_hash.upper())
        if path is None or not path.is_file():
            return None
        return path.read_bytes()
