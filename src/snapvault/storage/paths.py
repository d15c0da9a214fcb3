"""File and directory names inside a snapshot directory."""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from snapvault.models.enums import HistoryKind

SNAPSHOT_FILE_NAME = "snapshot.json"
HISTORY_FILE_NAMES = {
    HistoryKind.OUTFIT: "outfit_history.json",
    HistoryKind.SHAPE: "shape_history.json",
}
FILES_SUBDIRECTORY = "_files"
MIGRATION_MARKER_FILE_NAME = ".migrated"
MIGRATION_FAILED_SUFFIX = "_migration_failed"
MIGRATION_STAGING_DIRECTORY = ".migration_staging"


@dataclass(frozen=True)
class SnapshotPaths:
    root: Path

    @classmethod
    def of(cls, snapshot_path: Union[str, Path]) -> "SnapshotPaths":
        return cls(Path(snapshot_path))

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def snapshot_file(self) -> Path:
        return self.root / SNAPSHOT_FILE_NAME

    @property
    def files_directory(self) -> Path:
        return self.root / FILES_SUBDIRECTORY

    @property
    def migration_marker(self) -> Path:
        return self.root / MIGRATION_MARKER_FILE_NAME

    @property
    def staging_directory(self) -> Path:
        return self.root / MIGRATION_STAGING_DIRECTORY

    def history_file(self, kind: HistoryKind) -> Path:
        return self.root / HISTORY_FILE_NAMES[kind]
