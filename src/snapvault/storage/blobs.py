"""Content-addressed blob storage for snapshot files.

Blobs live in a single directory and are named ``<hash><ext>``. The
extension is taken from the game path that first produced the bytes, so
external tools can recognize the file type, but lookups never depend on
it: identical bytes referenced through paths with different extensions
resolve to whichever copy is on disk.
"""

from pathlib import Path
from typing import Optional, Union

from snapvault.observability.logging import get_logger
from snapvault.storage.json_io import write_bytes_atomic
from snapvault.utils import compute_hash, extension_from_game_path

logger = get_logger(__name__)


class BlobStore:
    """Stores file bytes once per content hash."""

    def __init__(self, directory: Union[str, Path]):
        """Initializes the store rooted at the given directory.

        Args:
            directory: Blob directory. Created lazily on first write.
        """
        self.directory = Path(directory)

    def preferred_path(self, content_hash: str, hint_game_path: str) -> Path:
        return self.directory / (content_hash.upper() + extension_from_game_path(hint_game_path))

    def find_any(self, content_hash: str) -> Optional[Path]:
        """Finds a stored blob for the hash regardless of its extension or case."""
        if not content_hash or not self.directory.is_dir():
            return None

        for spelling in dict.fromkeys((content_hash.upper(), content_hash.lower())):
            for candidate in sorted(self.directory.glob(f"{spelling}.*")):
                if candidate.is_file() and candidate.stem == spelling:
                    return candidate
        return None

    def contains(self, content_hash: str) -> bool:
        return self.find_any(content_hash) is not None

    def resolve_path(self, content_hash: str, hint_game_path: str) -> Optional[Path]:
        """Returns a usable path for the hash, or None if no blob exists.

        The extension implied by ``hint_game_path`` is tried first; if that
        exact file is missing, any file whose stem is the hash is used.

        Args:
            content_hash: The content hash to look up.
            hint_game_path: Game path whose extension is preferred.

        Returns:
            The blob path, or None when nothing is stored for the hash.
        """
        preferred = self.preferred_path(content_hash, hint_game_path)
        if preferred.is_file():
            return preferred
        return self.find_any(content_hash)

    def put(self, data: bytes, hint_game_path: str) -> str:
        """Stores bytes under their content hash.

        Args:
            data: The file content.
            hint_game_path: Game path used to pick the file extension.

        Returns:
            The content hash. Writing is skipped when a blob for the hash
            already exists under any extension.
        """
        content_hash = compute_hash(data)
        self.write(content_hash, data, hint_game_path)
        return content_hash

    def write(self, content_hash: str, data: bytes, hint_game_path: str) -> bool:
        """Writes bytes under an already computed hash.

        Returns:
            True if a new file was written, False if the hash was present.
        """
        content_hash = content_hash.upper()
        if self.contains(content_hash):
            return False

        target = self.preferred_path(content_hash, hint_game_path)
        write_bytes_atomic(target, data)
        logger.debug(f"Stored blob {target.name} ({len(data)} bytes).")
        return True

    def put_file(
        self,
        source: Union[str, Path],
        hint_game_path: str,
        expected_hash: Optional[str] = None,
    ) -> Optional[str]:
        """Stores the content of a local file.

        Args:
            source: File to read.
            hint_game_path: Game path used to pick the file extension.
            expected_hash: Hash the caller recorded for the file. When the
                content hashes differently, nothing is stored.

        Returns:
            The upper-case hash the blob is stored under, or None if the
            content did not match ``expected_hash``.
        """
        data = Path(source).read_bytes()
        content_hash = compute_hash(data)
        if expected_hash is None:
            self.write(content_hash, data, hint_game_path)
            return content_hash

        if content_hash != expected_hash.upper():
            logger.warning(
                f"Content of {source} hashes to {content_hash}, expected {expected_hash}. Not stored."
            )
            return None

        self.write(content_hash, data, hint_game_path)
        return content_hash

    def list_hashes(self) -> set[str]:
        if not self.directory.is_dir():
            return set()
        return {p.stem.upper() for p in self.directory.iterdir() if p.is_file() and not p.name.startswith(".")}
