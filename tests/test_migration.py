import json
import zipfile
from unittest.mock import patch

import pytest

from snapvault.core.history import MIGRATED_DESCRIPTION
from snapvault.core.migration import LegacyMigrator, detect_format
from snapvault.core.repository import SnapshotRepository
from snapvault.errors import MigrationError
from snapvault.models.enums import HistoryKind, MigrationOutcome, SnapshotFormat
from snapvault.storage.paths import SnapshotPaths
from snapvault.utils import compute_hash


def _write_legacy(directory, files=None, outfit="OUTFIT", shape="SHAPE", manipulation="meta"):
    directory.mkdir(parents=True)
    replacements = {}
    for name, (data, game_paths) in (files or {}).items():
        (directory / name).write_bytes(data)
        replacements[name] = game_paths
    (directory / "snapshot.json").write_text(
        json.dumps(
            {
                "outfit": outfit,
                "shape": shape,
                "manipulation": manipulation,
                "file_replacements": replacements,
            }
        )
    )


class TestDetectFormat:
    @pytest.mark.parametrize(
        "content, expected",
        [
            ({"format_version": 1, "file_replacements": {}}, SnapshotFormat.VERSIONED),
            ({"file_replacements": {"a.tex": "H1"}}, SnapshotFormat.UNVERSIONED),
            ({"file_replacements": {}}, SnapshotFormat.UNVERSIONED),
            ({"file_replacements": {"f.tex": ["a.tex"]}}, SnapshotFormat.LEGACY),
            ({"outfit": "x"}, SnapshotFormat.LEGACY),
            ({"file_replacements": {"a": 3}}, SnapshotFormat.UNKNOWN),
        ],
    )
    def test_formats(self, tmp_path, content, expected):
        root_file = tmp_path / "snapshot.json"
        root_file.write_text(json.dumps(content))
        assert detect_format(root_file) == expected

    def test_unparsable(self, tmp_path):
        root_file = tmp_path / "snapshot.json"
        root_file.write_text("{broken")
        assert detect_format(root_file) == SnapshotFormat.UNKNOWN


class TestLegacyMigrator:
    @pytest.fixture
    def migrator(self):
        return LegacyMigrator(SnapshotRepository())

    def test_migrate_legacy(self, migrator, tmp_path):
        snap = tmp_path / "Alice"
        _write_legacy(
            snap,
            {
                "body.tex": (b"BODY", ["chara/body.tex", "chara/body_alt.tex"]),
                "hair.mdl": (b"HAIR", ["chara/hair.mdl"]),
            },
        )
        (snap / "old_subdir").mkdir()
        (snap / "old_subdir" / "junk.bin").write_bytes(b"junk")

        assert migrator.migrate(snap) == MigrationOutcome.MIGRATED

        repo = migrator.repository
        paths = SnapshotPaths.of(snap)
        assert paths.migration_marker.exists()
        assert not (snap / "body.tex").exists()
        assert not (snap / "old_subdir").exists()
        assert not paths.staging_directory.exists()
        assert detect_format(paths.snapshot_file) == SnapshotFormat.VERSIONED

        record = repo.load(snap)
        assert record.source_actor == "Alice"
        assert len(record.file_maps) == 1
        assert record.file_maps[0].is_root
        assert repo.resolve(snap) == {
            "chara/body.tex": compute_hash(b"BODY"),
            "chara/body_alt.tex": compute_hash(b"BODY"),
            "chara/hair.mdl": compute_hash(b"HAIR"),
        }
        assert len(repo.blob_store(snap).list_hashes()) == 2

        for kind, payload in ((HistoryKind.OUTFIT, "OUTFIT"), (HistoryKind.SHAPE, "SHAPE")):
            entries = repo.list_history(snap, kind)
            assert len(entries) == 1
            assert entries[0].description == MIGRATED_DESCRIPTION
            assert entries[0].payload == payload
            assert entries[0].file_map_id == record.current_file_map_id

        # Marked directories are left alone
        assert migrator.migrate(snap) == MigrationOutcome.SKIPPED

    def test_missing_legacy_file_skipped(self, migrator, tmp_path):
        snap = tmp_path / "Bob"
        _write_legacy(snap, {"here.tex": (b"X", ["a.tex"])})
        data = json.loads((snap / "snapshot.json").read_text())
        data["file_replacements"]["gone.tex"] = ["b.tex"]
        (snap / "snapshot.json").write_text(json.dumps(data))

        assert migrator.migrate(snap) == MigrationOutcome.MIGRATED
        assert set(migrator.repository.resolve(snap)) == {"a.tex"}

    def test_failure_moves_directory_aside(self, migrator, tmp_path):
        snap = tmp_path / "Carol"
        _write_legacy(snap, {"f.tex": (b"F", ["a.tex"])})

        with patch.object(
            LegacyMigrator, "_migrate_legacy", side_effect=MigrationError("boom")
        ):
            assert migrator.migrate(snap) == MigrationOutcome.FAILED

        assert not snap.exists()
        assert (tmp_path / "Carol_migration_failed" / "snapshot.json").exists()

    def test_failed_write_keeps_original_files(self, migrator, tmp_path):
        snap = tmp_path / "Erin"
        _write_legacy(snap, {"a.bin": (b"A", ["chara/a.tex"])})
        original = (snap / "snapshot.json").read_text()

        with patch.object(SnapshotRepository, "save", side_effect=OSError("disk full")):
            assert migrator.migrate(snap) == MigrationOutcome.FAILED

        failed = tmp_path / "Erin_migration_failed"
        assert (failed / "snapshot.json").read_text() == original
        assert (failed / "a.bin").read_bytes() == b"A"
        assert not SnapshotPaths.of(failed).staging_directory.exists()
        assert not SnapshotPaths.of(failed).migration_marker.exists()

    def test_unexpected_error_moves_directory_aside(self, migrator, tmp_path):
        snap = tmp_path / "Frank"
        _write_legacy(snap, {"f.tex": (b"F", ["a.tex"])})

        with patch.object(LegacyMigrator, "_migrate_legacy", side_effect=RuntimeError("bug")):
            assert migrator.migrate(snap) == MigrationOutcome.FAILED

        assert not snap.exists()
        assert (tmp_path / "Frank_migration_failed" / "f.tex").exists()

    def test_unversioned_is_stamped(self, migrator, tmp_path):
        snap = tmp_path / "Dan"
        snap.mkdir()
        (snap / "snapshot.json").write_text(
            json.dumps({"source_actor": "Dan", "file_replacements": {"a.tex": "H1"}})
        )

        assert migrator.migrate(snap) == MigrationOutcome.UPGRADED
        data = json.loads((snap / "snapshot.json").read_text())
        assert data["format_version"] == 1
        assert data["file_replacements"] == {"a.tex": "H1"}

    def test_find_outdated(self, migrator, tmp_path):
        _write_legacy(tmp_path / "old")
        (tmp_path / "unversioned").mkdir()
        (tmp_path / "unversioned" / "snapshot.json").write_text('{"file_replacements": {}}')
        (tmp_path / "current").mkdir()
        (tmp_path / "current" / "snapshot.json").write_text('{"format_version": 1}')
        (tmp_path / "empty").mkdir()

        outdated = migrator.find_outdated(tmp_path)
        assert [p.name for p in outdated[SnapshotFormat.LEGACY]] == ["old"]
        assert [p.name for p in outdated[SnapshotFormat.UNVERSIONED]] == ["unversioned"]

    def test_migrate_all_with_backup(self, migrator, tmp_path):
        _write_legacy(tmp_path / "old", {"f.tex": (b"F", ["a.tex"])})
        (tmp_path / "unversioned").mkdir()
        (tmp_path / "unversioned" / "snapshot.json").write_text('{"file_replacements": {}}')

        report = migrator.migrate_all(tmp_path)

        assert report.outcomes == {
            "unversioned": MigrationOutcome.UPGRADED,
            "old": MigrationOutcome.MIGRATED,
        }
        assert report.backup_path.name.startswith("snapvault_backup_")
        with zipfile.ZipFile(report.backup_path) as archive:
            names = set(archive.namelist())
        assert "old/snapshot.json" in names
        assert "old/f.tex" in names
        assert report.summary() == "Updated 1 snapshot(s) and Migrated 1 snapshot(s)."

    def test_backup_failure_aborts(self, migrator, tmp_path):
        _write_legacy(tmp_path / "old", {"f.tex": (b"F", ["a.tex"])})

        with patch.object(LegacyMigrator, "backup", side_effect=MigrationError("disk full")):
            report = migrator.migrate_all(tmp_path)

        assert report.aborted
        assert report.outcomes == {}
        assert (tmp_path / "old" / "f.tex").exists()

    def test_nothing_to_do(self, migrator, tmp_path):
        report = migrator.migrate_all(tmp_path)
        assert report.outcomes == {}
        assert report.backup_path is None
        assert report.summary() == "No old snapshots found to migrate or update."
