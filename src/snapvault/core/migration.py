"""Upgrading snapshot directories written by older releases.

Two older layouts exist:

* legacy: files are stored flat next to ``snapshot.json`` and the record
  maps each stored file name to the game paths it replaces;
* unversioned: already content-addressed, but missing ``format_version``.

Legacy directories are rewritten into the current layout, optionally after
zipping them into a backup archive. Unversioned ones are only stamped.
"""

import os
import shutil
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError

from snapvault.core.history import MIGRATED_DESCRIPTION, HistoryTracker
from snapvault.core.repository import SnapshotRepository
from snapvault.errors import MigrationError, SnapshotLoadError
from snapvault.models.base import PersistedModel
from snapvault.models.enums import HistoryKind, MigrationOutcome, SnapshotFormat
from snapvault.models.snapshot import CURRENT_FORMAT_VERSION, SnapshotRecord, utc_now
from snapvault.observability.logging import get_logger, log_event
from snapvault.storage.json_io import read_json
from snapvault.storage.paths import (
    FILES_SUBDIRECTORY,
    MIGRATION_FAILED_SUFFIX,
    SnapshotPaths,
)

logger = get_logger(__name__)

BACKUP_FILE_PREFIX = "snapvault_backup_"


class LegacySnapshotRecord(PersistedModel):
    """Root record of the legacy flat layout."""

    outfit: str = Field(default="", description="Outfit payload.")
    shape: str = Field(default="", description="Shape payload.")
    manipulation: str = Field(default="", description="Metadata blob.")
    file_replacements: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Stored file name to the game paths it replaces.",
    )


class MigrationReport(BaseModel):
    """Summary of a ``migrate_all`` run."""

    outcomes: dict[str, MigrationOutcome] = Field(
        default_factory=dict, description="Outcome per snapshot directory name."
    )
    backup_path: Optional[Path] = Field(
        default=None, description="Backup archive written before migrating."
    )
    aborted: bool = Field(
        default=False, description="Whether legacy migration was skipped because the backup failed."
    )

    def count(self, outcome: MigrationOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)

    def summary(self) -> str:
        parts = []
        if self.count(MigrationOutcome.UPGRADED):
            parts.append(f"Updated {self.count(MigrationOutcome.UPGRADED)} snapshot(s)")
        if self.count(MigrationOutcome.MIGRATED):
            parts.append(f"Migrated {self.count(MigrationOutcome.MIGRATED)} snapshot(s)")
        if self.count(MigrationOutcome.FAILED):
            parts.append(f"{self.count(MigrationOutcome.FAILED)} failed")
        if not parts:
            return "No old snapshots found to migrate or update."
        return " and ".join(parts) + "."


def detect_format(root_file: Union[str, Path]) -> SnapshotFormat:
    """Detects which layout a root record file is written in.

    Args:
        root_file: Path to ``snapshot.json``.

    Returns:
        VERSIONED if the record carries a format version; UNVERSIONED if
        ``file_replacements`` maps to strings or is empty; LEGACY if it maps
        to lists or is absent; UNKNOWN if the file cannot be parsed.
    """
    try:
        data = read_json(Path(root_file))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not determine snapshot format for {root_file}: {e}")
        return SnapshotFormat.UNKNOWN

    if "format_version" in data:
        return SnapshotFormat.VERSIONED

    replacements = data.get("file_replacements")
    if not isinstance(replacements, dict):
        return SnapshotFormat.LEGACY
    if not replacements:
        return SnapshotFormat.UNVERSIONED

    first = next(iter(replacements.values()))
    if isinstance(first, str):
        return SnapshotFormat.UNVERSIONED
    if isinstance(first, list):
        return SnapshotFormat.LEGACY
    return SnapshotFormat.UNKNOWN


class LegacyMigrator:
    """Migrates snapshot directories to the current layout.

    Args:
        repository: Repository used to write the migrated records.
        backup_before_migration: Zip legacy directories before migrating them.
    """

    def __init__(
        self,
        repository: Optional[SnapshotRepository] = None,
        backup_before_migration: bool = True,
    ):
        self.repository = repository or SnapshotRepository()
        self.backup_before_migration = backup_before_migration

    def find_outdated(self, working_dir: Union[str, Path]) -> dict[SnapshotFormat, list[Path]]:
        """Lists directories needing migration or a format stamp."""
        outdated: dict[SnapshotFormat, list[Path]] = {
            SnapshotFormat.LEGACY: [],
            SnapshotFormat.UNVERSIONED: [],
        }
        root = Path(working_dir)
        if not root.is_dir():
            return outdated

        for directory in sorted(p for p in root.iterdir() if p.is_dir()):
            paths = SnapshotPaths.of(directory)
            if paths.migration_marker.exists() or not paths.snapshot_file.exists():
                continue
            snapshot_format = detect_format(paths.snapshot_file)
            if snapshot_format in outdated:
                outdated[snapshot_format].append(directory)
        return outdated

    def _stamp_version(self, paths: SnapshotPaths) -> MigrationOutcome:
        try:
            record = self.repository.load(paths.root)
        except SnapshotLoadError as e:
            logger.error(f"Failed to update snapshot {paths.name}: {e.detail}")
            return MigrationOutcome.SKIPPED

        record.format_version = CURRENT_FORMAT_VERSION
        self.repository.save(paths.root, record)
        logger.debug(f"Updated {paths.name} to include format version.")
        return MigrationOutcome.UPGRADED

    def _migrate_legacy(self, paths: SnapshotPaths) -> None:
        try:
            legacy = LegacySnapshotRecord.model_validate_json(paths.snapshot_file.read_bytes())
        except ValidationError as e:
            raise MigrationError(f"Could not parse legacy record for {paths.name}: {e}") from e

        now = utc_now()
        store = self.repository.blob_store(paths.root)
        file_map: dict[str, str] = {}
        for file_name, game_paths in legacy.file_replacements.items():
            source = paths.root / file_name
            if not source.is_file():
                logger.warning(f"Missing file during migration: {source}. Skipping.")
                continue
            content_hash = store.put(source.read_bytes(), game_paths[0] if game_paths else file_name)
            for game_path in game_paths:
                file_map[game_path] = content_hash

        record = SnapshotRecord(
            source_actor=paths.name,
            last_update=now,
            manipulation=legacy.manipulation,
        )
        root_id = self.repository.resolver.create_root_if_missing(record, file_map, now)

        history = HistoryTracker(payload_tolerance=self.repository.payload_tolerance)
        history.append(HistoryKind.OUTFIT, legacy.outfit, root_id, MIGRATED_DESCRIPTION, now)
        history.append(HistoryKind.SHAPE, legacy.shape, root_id, MIGRATED_DESCRIPTION, now)

        # The new record is fully written before any legacy file is removed.
        staging = paths.staging_directory
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir()
        self.repository.save(staging, record, history)

        keep = {FILES_SUBDIRECTORY.lower(), staging.name.lower()}
        for child in paths.root.iterdir():
            if child.name.lower() in keep:
                continue
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()

        for staged in staging.iterdir():
            os.replace(staged, paths.root / staged.name)
        staging.rmdir()
        paths.migration_marker.touch()

    def migrate(self, path: Union[str, Path]) -> MigrationOutcome:
        """Migrates one snapshot directory.

        A directory that fails to migrate is moved aside to
        ``<dir>_migration_failed`` so it is not retried on every start.

        Returns:
            What happened to the directory.
        """
        paths = SnapshotPaths.of(path)
        if not paths.snapshot_file.exists() or paths.migration_marker.exists():
            return MigrationOutcome.SKIPPED

        snapshot_format = detect_format(paths.snapshot_file)
        if snapshot_format == SnapshotFormat.UNVERSIONED:
            return self._stamp_version(paths)
        if snapshot_format != SnapshotFormat.LEGACY:
            return MigrationOutcome.SKIPPED

        logger.info(f"Found old format snapshot. Migrating: {paths.name}")
        try:
            self._migrate_legacy(paths)
        except Exception as e:
            logger.error(f"Failed to migrate snapshot at {paths.root}: {e}", exc_info=True)
            shutil.rmtree(paths.staging_directory, ignore_errors=True)
            failed = paths.root.with_name(paths.name + MIGRATION_FAILED_SUFFIX)
            try:
                paths.root.rename(failed)
            except OSError as rename_error:
                logger.error(f"Could not move {paths.root} aside: {rename_error}")
            return MigrationOutcome.FAILED

        logger.info(f"Successfully migrated snapshot: {paths.name}")
        return MigrationOutcome.MIGRATED

    def backup(self, directories: list[Path], working_dir: Union[str, Path]) -> Path:
        """Zips directories into a timestamped archive in the working directory.

        The archive is written to a temporary file first and moved into
        place once complete.

        Raises:
            MigrationError: If the archive could not be written.
        """
        root = Path(working_dir)
        target = root / f"{BACKUP_FILE_PREFIX}{datetime.now():%Y-%m-%d_%H-%M-%S}.zip"
        fd, tmp_name = tempfile.mkstemp(suffix=".zip")
        os.close(fd)
        try:
            with zipfile.ZipFile(tmp_name, "w", zipfile.ZIP_DEFLATED) as archive:
                for directory in directories:
                    for file in sorted(Path(directory).rglob("*")):
                        if file.is_file():
                            archive.write(file, file.relative_to(root).as_posix())
            shutil.move(tmp_name, target)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise MigrationError(f"Backup failed: {e}") from e

        logger.info(f"Successfully created backup of {len(directories)} directories at {target}.")
        return target

    def migrate_all(
        self, working_dir: Union[str, Path], backup: Optional[bool] = None
    ) -> MigrationReport:
        """Stamps unversioned directories and migrates legacy ones.

        Legacy migration is skipped entirely when the backup fails.
        """
        if backup is None:
            backup = self.backup_before_migration

        outdated = self.find_outdated(working_dir)
        report = MigrationReport()

        for directory in outdated[SnapshotFormat.UNVERSIONED]:
            report.outcomes[directory.name] = self.migrate(directory)

        legacy = outdated[SnapshotFormat.LEGACY]
        if legacy and backup:
            try:
                report.backup_path = self.backup(legacy, working_dir)
            except MigrationError as e:
                logger.error(f"Backup failed. Aborting migration. {e.detail}")
                report.aborted = True
                return report

        for directory in legacy:
            report.outcomes[directory.name] = self.migrate(directory)

        log_event(logger, report.summary(), "migration_complete", aborted=report.aborted)
        return report
