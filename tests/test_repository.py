import json

import pytest

from snapvault.core.file_maps import FileMapResolver
from snapvault.core.repository import SnapshotRepository
from snapvault.errors import FileMapDepthError, SnapshotLoadError, SnapshotRenameError
from snapvault.models.capture import CapturedState
from snapvault.models.enums import HistoryKind
from snapvault.models.snapshot import FileMapVersion, SnapshotRecord
from snapvault.providers.in_memory import InMemoryCaptureProvider
from snapvault.storage.paths import SnapshotPaths
from snapvault.utils import compute_hash


def _captured(files: dict[str, bytes], tmp_path, **kwargs) -> CapturedState:
    """Builds a capture whose source bytes live in local files."""
    file_map = {}
    sources = {}
    for i, (game_path, data) in enumerate(files.items()):
        content_hash = compute_hash(data)
        local = tmp_path / "sources" / f"{i}.bin"
        local.parent.mkdir(parents=True, exist_ok=True)
        local.write_bytes(data)
        file_map[game_path] = content_hash
        sources[content_hash] = local
    return CapturedState(file_map=file_map, source_paths=sources, **kwargs)


class TestSnapshotRepository:
    @pytest.fixture
    def repo(self):
        return SnapshotRepository()

    @pytest.fixture
    def snap(self, tmp_path):
        return tmp_path / "vault" / "Alice"

    def test_first_update_creates_snapshot(self, repo, snap, tmp_path):
        captured = _captured(
            {"chara/a.tex": b"A", "chara/b.mdl": b"B"}, tmp_path, outfit="O1", shape="S1"
        )
        result = repo.update(snap, captured, source_actor="Alice")

        assert result.is_new_snapshot
        assert result.created_version
        assert result.appended == [HistoryKind.OUTFIT, HistoryKind.SHAPE]
        assert result.missing_sources == []

        paths = SnapshotPaths.of(snap)
        assert paths.snapshot_file.is_file()
        assert paths.history_file(HistoryKind.OUTFIT).is_file()
        assert paths.history_file(HistoryKind.SHAPE).is_file()

        record = repo.load(snap)
        assert record.source_actor == "Alice"
        assert record.current_file_map_id == result.version_id
        assert repo.resolve(snap) == captured.file_map
        assert repo.metrics.get("versions.created") == 1
        assert repo.metrics.get("blobs.written") == 2

    def test_round_trip_blob_bytes(self, repo, snap, tmp_path):
        files = {"chara/a.tex": b"alpha", "chara/b.mdl": b"beta"}
        repo.update(snap, _captured(files, tmp_path))

        blobs = repo.resolve_blob_paths(snap, repo.resolve(snap))
        assert {p: blobs[p].read_bytes() for p in blobs} == files

    def test_idempotent_update(self, repo, snap, tmp_path):
        captured = _captured({"chara/a.tex": b"A"}, tmp_path, outfit="O1")
        first = repo.update(snap, captured)
        second = repo.update(snap, captured)

        assert not second.created_version
        assert second.appended == []
        assert second.version_id == first.version_id
        record = repo.load(snap)
        assert len(record.file_maps) == 1
        assert len(repo.list_history(snap, HistoryKind.OUTFIT)) == 1

    def test_second_update_appends_delta(self, repo, snap, tmp_path):
        repo.update(snap, _captured({"a.tex": b"A", "b.tex": b"B"}, tmp_path))
        result = repo.update(snap, _captured({"a.tex": b"A", "b.tex": b"B2"}, tmp_path))

        record = repo.load(snap)
        latest = record.find_version(result.version_id)
        assert latest.changes == {"b.tex": compute_hash(b"B2")}
        assert latest.base_id == record.file_maps[0].id
        assert repo.resolve(snap) == {"a.tex": compute_hash(b"A"), "b.tex": compute_hash(b"B2")}

    def test_partial_capture_keeps_omitted_paths(self, repo, snap, tmp_path):
        repo.update(snap, _captured({"a.tex": b"A", "b.tex": b"B"}, tmp_path))
        result = repo.update(snap, _captured({"a.tex": b"A"}, tmp_path))
        assert not result.created_version
        assert set(repo.resolve(snap)) == {"a.tex", "b.tex"}

        result = repo.update(snap, _captured({"a.tex": b"A"}, tmp_path), include_removals=True)
        assert result.created_version
        assert set(repo.resolve(snap)) == {"a.tex"}

    def test_manipulation_change_creates_version(self, repo, snap, tmp_path):
        repo.update(snap, _captured({"a.tex": b"A"}, tmp_path, manipulation="m1"))
        result = repo.update(snap, _captured({"a.tex": b"A"}, tmp_path, manipulation="m2"))
        assert result.created_version

        record = repo.load(snap)
        assert FileMapResolver.resolve_manipulation(record, result.version_id) == "m2"
        assert record.file_maps[-1].changes == {}

    def test_dedup_across_paths(self, repo, snap, tmp_path):
        repo.update(snap, _captured({"x/one.tex": b"same", "y/two.mdl": b"other"}, tmp_path))
        # Same bytes under a second path
        captured = _captured({"x/one.tex": b"same", "y/two.mdl": b"other"}, tmp_path)
        captured.file_map["z/three.tex"] = compute_hash(b"same")
        repo.update(snap, captured)

        assert len(repo.blob_store(snap).list_hashes()) == 2

    def test_blob_from_source_fallback(self, repo, snap):
        provider = InMemoryCaptureProvider()
        state = provider.set_state(0, files={"a.tex": b"from provider"})
        repo.update(snap, state, source=provider)

        blobs = repo.resolve_blob_paths(snap, repo.resolve(snap))
        assert blobs["a.tex"].read_bytes() == b"from provider"

    def test_missing_source_is_skipped(self, repo, snap, caplog):
        provider = InMemoryCaptureProvider()
        state = provider.set_state(0, files={"a.tex": b"kept", "b.tex": b"lost"})
        provider.forget_blob(compute_hash(b"lost"))

        result = repo.update(snap, state, source=provider)
        assert result.missing_sources == [compute_hash(b"lost")]
        assert repo.metrics.get("blobs.missing") == 1
        assert "Could not find source file" in caplog.text

        # The file map still records the path; applying skips it
        file_map = repo.resolve(snap)
        assert set(file_map) == {"a.tex", "b.tex"}
        assert set(repo.resolve_blob_paths(snap, file_map)) == {"a.tex"}

    def test_history_version_link(self, repo, snap, tmp_path):
        # Scenario: outfit captured, then a file changes without an outfit change
        first = repo.update(snap, _captured({"a.tex": b"A"}, tmp_path, outfit="P"))
        second = repo.update(snap, _captured({"a.tex": b"A2"}, tmp_path, outfit="P"))

        entries = repo.list_history(snap, HistoryKind.OUTFIT)
        assert [e.file_map_id for e in entries] == [first.version_id, second.version_id]

    def test_legacy_map_becomes_root(self, repo, snap, tmp_path):
        SnapshotPaths.of(snap).root.mkdir(parents=True)
        repo.save(snap, SnapshotRecord(source_actor="Alice", file_replacements={"a.tex": "H1"}))

        repo.update(snap, _captured({"b.tex": b"B"}, tmp_path))
        record = repo.load(snap)
        assert len(record.file_maps) == 2
        assert record.file_maps[0].changes == {"a.tex": "H1"}
        assert repo.resolve(snap) == {"a.tex": "H1", "b.tex": compute_hash(b"B")}

    def test_unreadable_record_starts_over(self, repo, snap, tmp_path, caplog):
        snap.mkdir(parents=True)
        SnapshotPaths.of(snap).snapshot_file.write_text("{not json")

        result = repo.update(snap, _captured({"a.tex": b"A"}, tmp_path))
        assert result.is_new_snapshot
        assert "unreadable" in caplog.text
        assert repo.load(snap).current_file_map_id == result.version_id

    def test_load_errors(self, repo, tmp_path):
        with pytest.raises(SnapshotLoadError):
            repo.load(tmp_path / "nope")
        assert repo.try_load(tmp_path / "nope") is None

    def test_resolve_with_cycle_raises(self, repo, snap):
        snap.mkdir(parents=True)
        record = SnapshotRecord(
            file_maps=[
                FileMapVersion(id="x", base_id="y"),
                FileMapVersion(id="y", base_id="x"),
            ],
            current_file_map_id="x",
        )
        repo.save(snap, record)
        with pytest.raises(FileMapDepthError):
            repo.resolve(snap)

    def test_history_editing(self, repo, snap, tmp_path):
        repo.update(snap, _captured({}, tmp_path, outfit="P1"))
        repo.append_history(snap, HistoryKind.OUTFIT, "P2", description="Manual")
        assert [e.description for e in repo.list_history(snap, HistoryKind.OUTFIT)][1] == "Manual"

        repo.rename_history_entry(snap, HistoryKind.OUTFIT, 0, "First")
        removed = repo.delete_history_entry(snap, HistoryKind.OUTFIT, 1)
        assert removed.payload == "P2"

        entries = repo.list_history(snap, HistoryKind.OUTFIT)
        assert [(e.description, e.payload) for e in entries] == [("First", "P1")]

        raw = json.loads(SnapshotPaths.of(snap).history_file(HistoryKind.OUTFIT).read_text())
        assert raw["entries"][0]["description"] == "First"

    def test_rename(self, repo, snap, tmp_path):
        repo.update(snap, _captured({}, tmp_path, outfit="P1"))
        new_path = repo.rename(snap, "Bob")
        assert new_path.name == "Bob"
        assert not snap.exists()

        with pytest.raises(SnapshotRenameError):
            repo.rename(new_path, "  ")
        (new_path.parent / "Taken").mkdir()
        with pytest.raises(SnapshotRenameError):
            repo.rename(new_path, "Taken")

    def test_create_from_import_unique_names(self, repo, tmp_path):
        working_dir = tmp_path / "vault"
        captured = _captured({"a.tex": b"A"}, tmp_path, outfit="O", shape="S")

        first = repo.create_from_import(working_dir, "Imported", captured)
        second = repo.create_from_import(working_dir, "Imported", captured)

        assert first.path.name == "Imported"
        assert second.path.name == "Imported_1"
        record = repo.load(second.path)
        assert record.source_actor == "Imported"
        assert record.find_version(record.current_file_map_id).is_root
        for kind in HistoryKind:
            assert repo.list_history(second.path, kind)[0].file_map_id == record.current_file_map_id


class TestLongLivedSnapshots:
    def test_chain_is_rebased_before_reaching_depth_limit(self, tmp_path):
        repo = SnapshotRepository(resolver=FileMapResolver(max_depth=8))
        provider = InMemoryCaptureProvider()
        snap = tmp_path / "Alice"

        expected: dict[str, dict[str, str]] = {}
        files: dict[str, bytes] = {}
        for i in range(20):
            files[f"p{i}.tex"] = f"payload-{i}".encode()
            state = provider.set_state(0, files={f"p{i}.tex": files[f"p{i}.tex"]})
            result = repo.update(snap, state, source=provider)
            assert result.created_version
            expected[result.version_id] = {p: compute_hash(d) for p, d in files.items()}

        record = repo.load(snap)
        assert len(record.file_maps) == 20
        assert sum(1 for v in record.file_maps if v.is_root) > 1
        for version in record.file_maps:
            assert len(repo.resolver.chain(record, version.id)) <= 8
        for version_id, file_map in expected.items():
            assert repo.resolve(snap, version_id) == file_map

    def test_default_depth_survives_many_captures(self, tmp_path):
        repo = SnapshotRepository()
        provider = InMemoryCaptureProvider()
        snap = tmp_path / "Alice"
        for i in range(70):
            repo.update(snap, provider.set_state(0, files={f"p{i}.tex": bytes([i])}), source=provider)

        resolved = repo.resolve(snap)
        assert len(resolved) == 70
        assert resolved["p69.tex"] == compute_hash(bytes([69]))


class TestCaseFolding:
    @pytest.fixture
    def repo(self):
        return SnapshotRepository()

    def test_mixed_case_hashes_share_one_blob(self, repo, tmp_path):
        snap = tmp_path / "Alice"
        content_hash = compute_hash(b"shared")
        local = tmp_path / "shared.bin"
        local.write_bytes(b"shared")

        repo.update(
            snap,
            CapturedState(
                file_map={"a.tex": content_hash.lower()},
                source_paths={content_hash.lower(): local},
            ),
        )
        repo.update(
            snap,
            CapturedState(file_map={"b.dds": content_hash}, source_paths={content_hash: local}),
        )

        files_dir = SnapshotPaths.of(snap).files_directory
        assert [p.name for p in files_dir.iterdir()] == [f"{content_hash}.tex"]
        assert repo.resolve(snap) == {"a.tex": content_hash, "b.dds": content_hash}
        blobs = repo.resolve_blob_paths(snap, repo.resolve(snap))
        assert blobs["a.tex"] == blobs["b.dds"]

    def test_game_path_spelling_does_not_add_entries(self, repo, tmp_path):
        snap = tmp_path / "Alice"
        first = repo.update(snap, _captured({"Chara/A.tex": b"A"}, tmp_path))

        same = repo.update(snap, _captured({"chara/a.tex": b"A"}, tmp_path))
        assert not same.created_version
        assert same.version_id == first.version_id

        changed = repo.update(snap, _captured({"CHARA/a.TEX": b"B"}, tmp_path))
        assert changed.created_version
        assert repo.resolve(snap) == {"Chara/A.tex": compute_hash(b"B")}

        removed = repo.update(snap, _captured({}, tmp_path), include_removals=True)
        assert removed.created_version
        assert repo.resolve(snap) == {}


def test_list_versions_summaries(tmp_path):
    repo = SnapshotRepository()
    snap = tmp_path / "Alice"
    repo.update(snap, _captured({"a.tex": b"A", "b.tex": b"B"}, tmp_path))
    second = repo.update(snap, _captured({"a.tex": b"A2"}, tmp_path))

    versions = repo.list_versions(snap)
    assert [(v.base_id is None, v.change_count, v.depth, v.is_current) for v in versions] == [
        (True, 2, 1, False),
        (False, 1, 2, True),
    ]
    assert versions[1].id == second.version_id
    assert versions[1].base_id == versions[0].id
