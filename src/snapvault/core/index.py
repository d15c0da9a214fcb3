"""Lookup of snapshot directories by source actor."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from snapvault.observability.logging import get_logger
from snapvault.storage.json_io import read_json
from snapvault.storage.paths import SnapshotPaths

logger = get_logger(__name__)


@dataclass(frozen=True)
class IndexEntry:
    path: Path
    world_id: Optional[int]
    world_name: Optional[str]
    source_actor: str


def split_actor_name(actor_name: str) -> tuple[str, Optional[str]]:
    """Splits ``name@world`` into its base name and world name."""
    at = actor_name.find("@")
    if at <= 0 or at == len(actor_name) - 1:
        return actor_name, None
    world_name = actor_name[at + 1 :]
    return actor_name[:at], world_name if world_name.strip() else None


class SnapshotIndex:
    """Maps actor base names to the snapshot directories captured from them.

    Base names are compared case-insensitively.
    """

    def __init__(self):
        self._entries: dict[str, list[IndexEntry]] = {}

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    def refresh(self, working_dir: Union[str, Path]) -> None:
        """Rebuilds the index from the root records under ``working_dir``.

        Records that cannot be read are skipped with a warning.
        """
        self._entries.clear()
        root = Path(working_dir)
        if not root.is_dir():
            logger.warning("Working directory not set or not found. Snapshot index will be empty.")
            return

        for directory in sorted(p for p in root.iterdir() if p.is_dir()):
            snapshot_file = SnapshotPaths.of(directory).snapshot_file
            if not snapshot_file.exists():
                continue
            try:
                data = read_json(snapshot_file)
            except (OSError, ValueError) as e:
                logger.warning(
                    f"Could not read snapshot record in '{directory.name}' during index refresh. Skipping. Error: {e}"
                )
                continue

            actor_name = data.get("source_actor")
            if not isinstance(actor_name, str) or not actor_name.strip():
                continue

            base_name, actor_world_name = split_actor_name(actor_name)
            world_name = data.get("source_world_name") or actor_world_name
            world_id = data.get("source_world_id")
            entry = IndexEntry(
                path=directory,
                world_id=world_id if isinstance(world_id, int) else None,
                world_name=world_name,
                source_actor=actor_name,
            )
            self._entries.setdefault(base_name.lower(), []).append(entry)

        logger.debug(
            f"Snapshot index refreshed. Found {len(self)} snapshots across {len(self._entries)} actor keys."
        )

    def find_for_actor(
        self,
        name: str,
        world_id: Optional[int] = None,
        world_name: Optional[str] = None,
    ) -> Optional[Path]:
        """Finds the snapshot directory for a live actor.

        Candidates sharing the actor's base name are narrowed by world id,
        then by world name. Without a world match, a single candidate is
        returned and several are treated as ambiguous.
        """
        base_name, name_world = split_actor_name(name)
        entries = self._entries.get(base_name.lower())
        if not entries:
            return None

        if world_id:
            for entry in entries:
                if entry.world_id == world_id:
                    return entry.path

        world_name = world_name or name_world
        if world_name:
            for entry in entries:
                if entry.world_name and entry.world_name.lower() == world_name.lower():
                    return entry.path

        return entries[0].path if len(entries) == 1 else None
