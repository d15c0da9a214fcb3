"""Resolution and diffing of versioned file maps.

A snapshot's file set is stored as a chain of FileMapVersion records. A
root version holds a full mapping; every other version holds only the
changes relative to its base. Resolving a version walks the chain back to
its root and replays the changes forward.
"""

import uuid
from datetime import datetime
from typing import Mapping, Optional

from snapvault.errors import FileMapDepthError
from snapvault.models.base import FileMap
from snapvault.models.snapshot import FileMapVersion, SnapshotRecord, utc_now

DEFAULT_MAX_CHAIN_DEPTH = 64

REMOVED = ""


def _key_index(mapping: Mapping[str, str]) -> dict[str, str]:
    return {game_path.lower(): game_path for game_path in mapping}


def apply_changes(base: Mapping[str, str], changes: Mapping[str, str]) -> FileMap:
    """Applies a change set on top of a flat mapping.

    Game paths match case-insensitively; an existing entry keeps the
    spelling it was first recorded with.

    Args:
        base: The mapping to start from. Not modified.
        changes: Game path to hash; an empty hash removes the path.

    Returns:
        A new flat mapping with the changes applied.
    """
    result = dict(base)
    keys = _key_index(result)
    for game_path, content_hash in changes.items():
        folded = game_path.lower()
        existing = keys.get(folded)
        if content_hash == REMOVED:
            if existing is not None:
                del result[existing]
                del keys[folded]
        else:
            if existing is None:
                keys[folded] = existing = game_path
            result[existing] = content_hash
    return result


def diff(
    current: Mapping[str, str],
    incoming: Mapping[str, str],
    include_removals: bool,
) -> FileMap:
    """Computes the change set turning ``current`` into ``incoming``.

    Args:
        current: The currently resolved mapping.
        incoming: The newly captured mapping.
        include_removals: Whether paths missing from ``incoming`` count as
            deleted. Partial capture sources only report what they see, so
            omission is not deletion unless asked for.

    Returns:
        Entries of ``incoming`` that are new or whose hash changed, plus
        removal markers when ``include_removals`` is set. Paths and hashes
        compare case-insensitively; hashes are returned upper-case.
    """
    existing_hashes = {game_path.lower(): h for game_path, h in current.items()}
    changes: FileMap = {}
    for game_path, content_hash in incoming.items():
        existing = existing_hashes.get(game_path.lower())
        if existing is None or existing.upper() != content_hash.upper():
            changes[game_path] = content_hash.upper()

    if include_removals:
        incoming_paths = {game_path.lower() for game_path in incoming}
        for game_path in current:
            if game_path.lower() not in incoming_paths:
                changes[game_path] = REMOVED

    return changes


def new_version_id() -> str:
    return uuid.uuid4().hex


class FileMapResolver:
    """Resolves file-map versions of a snapshot record.

    Args:
        max_depth: Maximum number of base hops followed before the chain is
            considered corrupt.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_CHAIN_DEPTH):
        self.max_depth = max_depth

    def chain(self, record: SnapshotRecord, version_id: str) -> list[FileMapVersion]:
        """Lists the versions from ``version_id`` back to its root.

        A base id that names no existing version ends the chain, as if the
        last version found were a root.

        Raises:
            FileMapDepthError: If more than ``max_depth`` base hops are needed.
        """
        index = {version.id.lower(): version for version in record.file_maps}
        entry = index.get(version_id.lower())
        chain: list[FileMapVersion] = []
        depth = 0
        while entry is not None:
            if depth > self.max_depth:
                raise FileMapDepthError(version_id, self.max_depth)
            chain.append(entry)
            entry = index.get(entry.base_id.lower()) if entry.base_id else None
            depth += 1
        return chain

    def try_resolve(
        self, record: SnapshotRecord, version_id: Optional[str]
    ) -> Optional[FileMap]:
        """Resolves a version, or returns None when the id is unknown."""
        if not record.file_maps or not version_id:
            return None
        if record.find_version(version_id) is None:
            return None

        resolved: FileMap = {}
        for entry in reversed(self.chain(record, version_id)):
            resolved = apply_changes(resolved, entry.changes)
        return resolved

    def resolve(self, record: SnapshotRecord, version_id: Optional[str]) -> FileMap:
        """Resolves a version to a flat mapping.

        Args:
            record: The snapshot record holding the chain.
            version_id: The version to resolve.

        Returns:
            The flattened mapping. Unknown or absent ids yield a copy of the
            legacy flat mapping.

        Raises:
            FileMapDepthError: If the chain is deeper than allowed.
        """
        resolved = self.try_resolve(record, version_id)
        if resolved is None:
            return dict(record.file_replacements)
        return resolved

    def resolve_current(self, record: SnapshotRecord) -> FileMap:
        return self.resolve(record, record.current_file_map_id)

    def needs_rebase(self, record: SnapshotRecord) -> bool:
        """Whether a delta on the current version would reach the depth ceiling."""
        if not record.current_file_map_id:
            return False
        return len(self.chain(record, record.current_file_map_id)) >= self.max_depth

    @staticmethod
    def resolve_manipulation(record: SnapshotRecord, version_id: Optional[str]) -> str:
        version = record.find_version(version_id)
        if version is not None and version.manipulation is not None:
            return version.manipulation
        return record.manipulation or ""

    @staticmethod
    def create_root_if_missing(
        record: SnapshotRecord,
        base_map: Mapping[str, str],
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """Establishes a root version from a full mapping.

        Does nothing when the record already has a current version or the
        mapping is empty.

        Returns:
            The current version id afterwards, or None if there is none.
        """
        if record.current_file_map_id is not None or not base_map:
            return record.current_file_map_id

        root = FileMapVersion(
            id=new_version_id(),
            base_id=None,
            changes=dict(base_map),
            created_at=now or utc_now(),
            manipulation=record.manipulation,
        )
        record.file_maps = [*record.file_maps, root]
        record.current_file_map_id = root.id
        return root.id

    @staticmethod
    def append_version(
        record: SnapshotRecord,
        changes: Mapping[str, str],
        manipulation: Optional[str],
        now: Optional[datetime] = None,
    ) -> FileMapVersion:
        """Appends a version based on the current pointer and advances it."""
        version = FileMapVersion(
            id=new_version_id(),
            base_id=record.current_file_map_id,
            changes=dict(changes),
            created_at=now or utc_now(),
            manipulation=manipulation,
        )
        record.file_maps = [*record.file_maps, version]
        record.current_file_map_id = version.id
        return version

    @staticmethod
    def append_root(
        record: SnapshotRecord,
        full_map: Mapping[str, str],
        manipulation: Optional[str],
        now: Optional[datetime] = None,
    ) -> FileMapVersion:
        """Appends a root version holding a full mapping and advances the pointer.

        Older versions stay resolvable; only the chain of the new current
        version starts over.
        """
        version = FileMapVersion(
            id=new_version_id(),
            base_id=None,
            changes=dict(full_map),
            created_at=now or utc_now(),
            manipulation=manipulation,
        )
        record.file_maps = [*record.file_maps, version]
        record.current_file_map_id = version.id
        return version
