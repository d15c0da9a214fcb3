import json

from snapvault.core.index import SnapshotIndex, split_actor_name


def _snapshot(root, dir_name, **record):
    directory = root / dir_name
    directory.mkdir(parents=True)
    (directory / "snapshot.json").write_text(json.dumps(record))
    return directory


class TestSplitActorName:
    def test_split(self):
        assert split_actor_name("Alice@Ragnarok") == ("Alice", "Ragnarok")
        assert split_actor_name("Alice") == ("Alice", None)
        assert split_actor_name("@Ragnarok") == ("@Ragnarok", None)
        assert split_actor_name("Alice@") == ("Alice@", None)


class TestSnapshotIndex:
    def test_single_candidate(self, tmp_path):
        alice = _snapshot(tmp_path, "Alice", source_actor="Alice")
        index = SnapshotIndex()
        index.refresh(tmp_path)

        assert index.find_for_actor("alice") == alice
        assert index.find_for_actor("Bob") is None

    def test_world_disambiguation(self, tmp_path):
        by_id = _snapshot(tmp_path, "A1", source_actor="Alice", source_world_id=21)
        by_name = _snapshot(tmp_path, "A2", source_actor="Alice@Ragnarok")
        index = SnapshotIndex()
        index.refresh(tmp_path)

        assert len(index) == 2
        assert index.find_for_actor("Alice", world_id=21) == by_id
        assert index.find_for_actor("Alice", world_id=99, world_name="ragnarok") == by_name
        assert index.find_for_actor("Alice@Ragnarok") == by_name
        # Ambiguous without world information
        assert index.find_for_actor("Alice") is None

    def test_unreadable_records_skipped(self, tmp_path, caplog):
        (tmp_path / "broken").mkdir()
        (tmp_path / "broken" / "snapshot.json").write_text("{nope")
        _snapshot(tmp_path, "anon", source_actor="")
        ok = _snapshot(tmp_path, "ok", source_actor="Carol")

        index = SnapshotIndex()
        index.refresh(tmp_path)
        assert len(index) == 1
        assert index.find_for_actor("Carol") == ok
        assert "broken" in caplog.text

    def test_missing_working_dir(self, tmp_path):
        index = SnapshotIndex()
        index.refresh(tmp_path / "missing")
        assert len(index) == 0
