"""Snapshot directory persistence and the capture update pipeline.

A snapshot directory holds the root record, one history file per
auxiliary kind and the blob store. SnapshotRepository is the only writer
of these files: every capture goes through ``update``, which diffs the
captured file map against the current version, stores any new blobs,
appends a new file-map version and records history entries.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field

from snapvault.config import VaultConfig
from snapvault.core.file_maps import FileMapResolver, apply_changes, diff
from snapvault.core.history import HistoryTracker
from snapvault.errors import SnapshotRenameError
from snapvault.models.base import FileMap
from snapvault.models.capture import CapturedState
from snapvault.models.enums import HistoryKind
from snapvault.models.snapshot import (
    History,
    HistoryEntry,
    SnapshotRecord,
    utc_now,
)
from snapvault.observability.logging import get_logger, log_event
from snapvault.observability.metrics import VaultMetrics
from snapvault.providers.interfaces import BlobSource
from snapvault.storage.blobs import BlobStore
from snapvault.storage.json_io import load_model, save_model, try_load_model
from snapvault.storage.paths import SnapshotPaths
from snapvault.utils import compute_hash, sanitize_file_system_name

logger = get_logger(__name__)

PathLike = Union[str, Path]


class UpdateResult(BaseModel):
    """Outcome of a single ``SnapshotRepository.update`` call.

    Attributes:
        path: The snapshot directory.
        version_id: Current file-map version after the update.
        created_version: Whether a new file-map version was appended.
        is_new_snapshot: Whether the root record did not exist before.
        appended: Auxiliary kinds that received a new history entry.
        missing_sources: Hashes whose bytes could not be obtained.
    """

    path: Path
    version_id: Optional[str] = None
    created_version: bool = False
    is_new_snapshot: bool = False
    appended: list[HistoryKind] = Field(default_factory=list)
    missing_sources: list[str] = Field(default_factory=list)


class VersionSummary(BaseModel):
    """One file-map version as listed for a snapshot.

    Attributes:
        id: Version id.
        base_id: Base version id, or None for a root.
        change_count: Number of entries in the version's change set.
        created_at: When the version was recorded.
        depth: Number of versions in its chain, itself included.
        is_current: Whether the snapshot's pointer is on this version.
    """

    id: str
    base_id: Optional[str] = None
    change_count: int = 0
    created_at: datetime
    depth: int = 1
    is_current: bool = False


class SnapshotRepository:
    """Loads, saves and updates snapshot directories.

    Concurrent ``update`` calls on the same directory are not supported;
    all mutation is expected to come from a single control thread.
    """

    def __init__(
        self,
        resolver: Optional[FileMapResolver] = None,
        payload_tolerance: Optional[float] = None,
        include_removals: bool = False,
        blob_workers: int = 4,
        metrics: Optional[VaultMetrics] = None,
    ):
        """Initializes the repository.

        Args:
            resolver: File-map resolver. Defaults to the standard depth ceiling.
            payload_tolerance: Numeric tolerance for history payload equality.
            include_removals: Default removal policy for ``update``.
            blob_workers: Threads used to copy blobs during ``update``.
            metrics: Optional counters sink.
        """
        self.resolver = resolver or FileMapResolver()
        self.payload_tolerance = payload_tolerance
        self.include_removals = include_removals
        self.blob_workers = blob_workers
        self.metrics = metrics or VaultMetrics()

    @classmethod
    def from_config(
        cls, config: VaultConfig, metrics: Optional[VaultMetrics] = None
    ) -> "SnapshotRepository":
        return cls(
            resolver=FileMapResolver(config.max_chain_depth),
            payload_tolerance=config.payload_tolerance,
            include_removals=config.include_removals,
            blob_workers=config.blob_workers,
            metrics=metrics,
        )

    # ------------------------------------------------------------------
    # Loading and saving

    @staticmethod
    def blob_store(path: PathLike) -> BlobStore:
        return BlobStore(SnapshotPaths.of(path).files_directory)

    def load(self, path: PathLike) -> SnapshotRecord:
        """Loads the root record.

        Raises:
            SnapshotLoadError: If the record is missing or invalid.
        """
        return load_model(SnapshotRecord, SnapshotPaths.of(path).snapshot_file)

    def try_load(self, path: PathLike) -> Optional[SnapshotRecord]:
        return try_load_model(SnapshotRecord, SnapshotPaths.of(path).snapshot_file)

    def load_history(self, path: PathLike, strict: bool = True) -> HistoryTracker:
        """Loads all history files of a snapshot.

        Args:
            path: The snapshot directory.
            strict: Raise on an unreadable history file instead of treating
                it as empty.

        Raises:
            SnapshotLoadError: If ``strict`` and a history file is invalid.
        """
        paths = SnapshotPaths.of(path)
        histories: dict[HistoryKind, History] = {}
        for kind in HistoryKind:
            history_file = paths.history_file(kind)
            if not history_file.exists():
                continue
            if strict:
                histories[kind] = load_model(History, history_file)
            else:
                histories[kind] = try_load_model(History, history_file) or History()
        return HistoryTracker(histories, payload_tolerance=self.payload_tolerance)

    def save(
        self,
        path: PathLike,
        record: SnapshotRecord,
        history: Optional[HistoryTracker] = None,
    ) -> None:
        """Persists the root record and, if given, all history files."""
        paths = SnapshotPaths.of(path)
        save_model(record, paths.snapshot_file)
        if history is not None:
            for kind, entries in history.histories.items():
                save_model(entries, paths.history_file(kind))

    # ------------------------------------------------------------------
    # Capture pipeline

    def _collect_blob(
        self,
        store: BlobStore,
        content_hash: str,
        hint_game_path: str,
        captured: CapturedState,
        source: Optional[BlobSource],
    ) -> Optional[bool]:
        """Stores one blob. Returns None when its bytes are unavailable."""
        data: Optional[bytes] = None
        local = captured.source_paths.get(content_hash)
        if local is not None and Path(local).is_file():
            data = Path(local).read_bytes()
        elif source is not None:
            data = source.read_source(content_hash)

        if data is None:
            logger.warning(
                f"Could not find source file for {hint_game_path} (hash: {content_hash})."
            )
            return None

        actual = compute_hash(data)
        if actual != content_hash.upper():
            logger.warning(
                f"Source bytes for {hint_game_path} hash to {actual}, expected {content_hash}. Skipped."
            )
            return None

        return store.write(content_hash, data, hint_game_path)

    def _store_blobs(
        self,
        store: BlobStore,
        file_map: FileMap,
        captured: CapturedState,
        source: Optional[BlobSource],
    ) -> list[str]:
        wanted: dict[str, str] = {}
        for game_path, content_hash in file_map.items():
            content_hash = content_hash.upper()
            if content_hash and content_hash not in wanted and not store.contains(content_hash):
                wanted[content_hash] = game_path

        if not wanted:
            return []

        with ThreadPoolExecutor(max_workers=self.blob_workers) as pool:
            futures = {
                content_hash: pool.submit(
                    self._collect_blob, store, content_hash, game_path, captured, source
                )
                for content_hash, game_path in wanted.items()
            }
            outcomes = {content_hash: f.result() for content_hash, f in futures.items()}

        missing = sorted(h for h, written in outcomes.items() if written is None)
        written = sum(1 for w in outcomes.values() if w)
        self.metrics.inc("blobs.written", written)
        if missing:
            self.metrics.inc("blobs.missing", len(missing))
        return missing

    def update(
        self,
        path: PathLike,
        captured: CapturedState,
        *,
        source: Optional[BlobSource] = None,
        include_removals: Optional[bool] = None,
        source_actor: Optional[str] = None,
        source_world_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> UpdateResult:
        """Records a capture into a snapshot directory.

        The captured file map is diffed against the current version. When
        anything changed, blobs for new hashes are written first, then a
        new version based on the current one is appended and the pointer
        advanced. History entries are appended per auxiliary kind, and the
        root record and history files are written last.

        Args:
            path: The snapshot directory. Created if missing.
            captured: State reported by the capture provider.
            source: Fallback supplier of blob bytes by hash.
            include_removals: Whether omitted paths count as removed.
                Defaults to the repository setting.
            source_actor: Actor label for a new record.
            source_world_id: World id to record if none is known yet.
            now: Optional timestamp override.

        Returns:
            An UpdateResult describing what changed.
        """
        paths = SnapshotPaths.of(path)
        now = now or utc_now()
        if include_removals is None:
            include_removals = self.include_removals

        record = self.try_load(paths.root)
        is_new = record is None
        if record is None:
            if paths.snapshot_file.exists():
                logger.warning(
                    f"Snapshot record in {paths.root} is unreadable; starting a new one."
                )
            record = SnapshotRecord(source_actor=source_actor or paths.name)
        if source_world_id and not record.source_world_id:
            record.source_world_id = source_world_id

        history = self.load_history(paths.root)

        self.resolver.create_root_if_missing(record, record.file_replacements, now)
        current = self.resolver.resolve_current(record)
        changes = diff(current, captured.file_map, include_removals)

        current_manipulation = self.resolver.resolve_manipulation(
            record, record.current_file_map_id
        )
        manipulation = (
            captured.manipulation
            if captured.manipulation is not None
            else current_manipulation
        )
        manipulation_changed = manipulation != current_manipulation

        paths.root.mkdir(parents=True, exist_ok=True)
        missing = self._store_blobs(
            self.blob_store(paths.root), captured.file_map, captured, source
        )

        created_version = False
        if changes or manipulation_changed:
            if self.resolver.needs_rebase(record):
                version = self.resolver.append_root(
                    record, apply_changes(current, changes), manipulation, now
                )
                logger.debug(f"File map chain of {paths.name} reached its depth limit; rebased.")
            else:
                version = self.resolver.append_version(record, changes, manipulation, now)
            created_version = True
            self.metrics.inc("versions.created")
            logger.debug(
                f"Appended file map {version.id} to {paths.name} with {len(changes)} change(s)."
            )
        record.manipulation = manipulation

        appended: list[HistoryKind] = []
        for kind in HistoryKind:
            entry = history.append(
                kind, captured.payload_for(kind), record.current_file_map_id, now=now
            )
            if entry is not None:
                appended.append(kind)
                self.metrics.inc("history.appended")
                logger.debug(f"New {kind.value} state detected. Appending to history.")

        record.last_update = now
        self.save(paths.root, record, history)

        if is_new:
            logger.info(f"New snapshot '{paths.name}' created.")
        else:
            log_event(
                logger,
                f"Snapshot '{paths.name}' updated.",
                "snapshot_updated",
                snapshot=paths.name,
                version_id=record.current_file_map_id,
                created_version=created_version,
            )

        return UpdateResult(
            path=paths.root,
            version_id=record.current_file_map_id,
            created_version=created_version,
            is_new_snapshot=is_new,
            appended=appended,
            missing_sources=missing,
        )

    # ------------------------------------------------------------------
    # Resolution

    def resolve(self, path: PathLike, version_id: Optional[str] = None) -> FileMap:
        """Resolves a version (default: current) of a snapshot to a flat map."""
        record = self.load(path)
        return self.resolver.resolve(record, version_id or record.current_file_map_id)

    def list_versions(self, path: PathLike) -> list[VersionSummary]:
        """Summarizes the file-map versions of a snapshot, oldest first."""
        record = self.load(path)
        current = (record.current_file_map_id or "").lower()
        return [
            VersionSummary(
                id=version.id,
                base_id=version.base_id,
                change_count=len(version.changes),
                created_at=version.created_at,
                depth=len(self.resolver.chain(record, version.id)),
                is_current=version.id.lower() == current,
            )
            for version in record.file_maps
        ]

    def resolve_blob_paths(self, path: PathLike, file_map: FileMap) -> dict[str, Path]:
        """Maps game paths to stored blob files.

        Game paths whose blob is missing are skipped with a warning.
        """
        store = self.blob_store(path)
        resolved: dict[str, Path] = {}
        for game_path, content_hash in file_map.items():
            blob_path = store.resolve_path(content_hash, game_path)
            if blob_path is None:
                logger.warning(
                    f"Missing file blob for {game_path} (hash: {content_hash}). It will not be applied."
                )
                self.metrics.inc("blobs.missing")
                continue
            resolved[game_path] = blob_path
        return resolved

    # ------------------------------------------------------------------
    # History editing

    def list_history(self, path: PathLike, kind: HistoryKind) -> list[HistoryEntry]:
        return self.load_history(path).entries(kind)

    def append_history(
        self,
        path: PathLike,
        kind: HistoryKind,
        payload: str,
        description: Optional[str] = None,
        version_id: Optional[str] = None,
    ) -> Optional[HistoryEntry]:
        """Appends an entry, linked to ``version_id`` or the current version."""
        record = self.load(path)
        history = self.load_history(path)
        entry = history.append(
            kind, payload, version_id or record.current_file_map_id, description
        )
        if entry is not None:
            self.save(path, record, history)
        return entry

    def delete_history_entry(
        self, path: PathLike, kind: HistoryKind, index: int
    ) -> HistoryEntry:
        record = self.load(path)
        history = self.load_history(path)
        removed = history.delete(kind, index)
        self.save(path, record, history)
        return removed

    def rename_history_entry(
        self, path: PathLike, kind: HistoryKind, index: int, description: str
    ) -> HistoryEntry:
        record = self.load(path)
        history = self.load_history(path)
        entry = history.rename(kind, index, description)
        self.save(path, record, history)
        return entry

    # ------------------------------------------------------------------
    # Directory management

    @staticmethod
    def rename(path: PathLike, new_name: str) -> Path:
        """Renames a snapshot directory within its parent.

        Raises:
            SnapshotRenameError: If the name is blank or already taken.
        """
        if not new_name or not new_name.strip():
            raise SnapshotRenameError("New snapshot name cannot be empty.")

        old_path = Path(path)
        new_path = old_path.parent / new_name
        if new_path.exists():
            raise SnapshotRenameError("A directory with that name already exists.")

        old_path.rename(new_path)
        logger.info(f"Snapshot '{old_path.name}' renamed to '{new_name}'.")
        return new_path

    @staticmethod
    def create_unique_directory(working_dir: PathLike, name: str) -> Path:
        base = Path(working_dir) / sanitize_file_system_name(
            name, f"snapshot_{utc_now():%Y%m%d%H%M%S}"
        )
        candidate = base
        counter = 1
        while candidate.exists():
            candidate = base.with_name(f"{base.name}_{counter}")
            counter += 1
        candidate.mkdir(parents=True)
        return candidate

    def create_from_import(
        self,
        working_dir: PathLike,
        name: str,
        captured: CapturedState,
        *,
        source_actor: Optional[str] = None,
        source_world_id: Optional[int] = None,
        source: Optional[BlobSource] = None,
    ) -> UpdateResult:
        """Creates a fresh snapshot directory from externally imported state.

        The directory name is made unique (``name_1``, ``name_2``, ...).
        """
        target = self.create_unique_directory(working_dir, name)
        return self.update(
            target,
            captured,
            source=source,
            include_removals=False,
            source_actor=source_actor or name,
            source_world_id=source_world_id,
        )

