"""Example of capturing an actor and inspecting the file-map delta chain.

This example demonstrates how:
1. The first capture creates a snapshot with a root file-map version.
2. Later captures only store the changed paths as a delta version.
3. Every version resolves back to the full file set it had when captured.
"""

import tempfile
from pathlib import Path

from snapvault.core.capture import SnapshotCaptureService
from snapvault.core.repository import SnapshotRepository
from snapvault.models.application import ActorRef
from snapvault.models.enums import HistoryKind
from snapvault.providers.in_memory import InMemoryCaptureProvider


def run_example():
    working_dir = Path(tempfile.mkdtemp(prefix="snapvault-demo-"))
    repository = SnapshotRepository()
    provider = InMemoryCaptureProvider()
    service = SnapshotCaptureService(repository, provider, working_dir)
    actor = ActorRef(slot_index=0, name="Alice", is_local=True)

    print("--- Phase 1: Capturing ---")
    provider.set_state(
        0,
        files={"chara/body.tex": b"body-v1", "chara/hair.mdl": b"hair-v1"},
        outfit='{"top": "jacket"}',
    )
    first = service.capture(actor)
    print(f"Created {first.path.name} at version {first.version_id[:8]}")

    provider.set_state(
        0,
        files={"chara/body.tex": b"body-v1", "chara/hair.mdl": b"hair-v2"},
        outfit='{"top": "jacket"}',
    )
    second = service.capture(actor)
    print(f"Updated to version {second.version_id[:8]} (new version: {second.created_version})")

    print("\n--- Phase 2: Inspecting the chain ---")
    record = repository.load(first.path)
    for version in record.file_maps:
        kind = "ROOT" if version.is_root else "DELTA"
        print(f"{version.id[:8]} {kind}: {sorted(version.changes)}")

    print("\n--- Phase 3: Resolving ---")
    for version in record.file_maps:
        resolved = repository.resolve(first.path, version.id)
        print(f"{version.id[:8]} -> {resolved['chara/hair.mdl'][:8]}")
    assert repository.resolve(first.path, first.version_id) != repository.resolve(first.path)

    entries = repository.list_history(first.path, HistoryKind.OUTFIT)
    print(f"\nOutfit history entries: {len(entries)} (Expected: 2, one per file-map version)")
    assert len(entries) == 2


if __name__ == "__main__":
    run_example()
