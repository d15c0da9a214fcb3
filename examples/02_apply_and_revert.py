"""Example of applying a snapshot to a live actor and reverting it.

This example demonstrates how:
1. Applying a snapshot installs its files, shape and outfit through the
   available apply layers and records an ActiveApplication.
2. The local actor's entry follows it into capture mode and back.
3. Reverting clears every layer and forgets the entry.
"""

import tempfile
from pathlib import Path

from snapvault.core.application import SnapshotApplicationService
from snapvault.core.capture_mode import CaptureModeWatcher
from snapvault.core.registry import ActiveSnapshotRegistry
from snapvault.core.repository import SnapshotRepository
from snapvault.models.application import ActorRef
from snapvault.providers.in_memory import (
    InMemoryActorDirectory,
    InMemoryCaptureProvider,
    build_recording_capabilities,
)
from snapvault.providers.interfaces import FileMappingLayer


def run_example():
    snapshot = Path(tempfile.mkdtemp(prefix="snapvault-demo-")) / "Alice"
    repository = SnapshotRepository()
    provider = InMemoryCaptureProvider()
    repository.update(
        snapshot,
        provider.set_state(0, files={"chara/body.tex": b"body"}, outfit="O", shape="S"),
        source=provider,
    )

    actor = ActorRef(slot_index=0, name="Alice", is_local=True)
    directory = InMemoryActorDirectory([actor])
    capabilities = build_recording_capabilities()
    # Keep the local actor's snapshot when leaving capture mode
    registry = ActiveSnapshotRegistry(
        directory, capabilities, disable_automatic_revert=True
    )
    service = SnapshotApplicationService(repository, registry)

    print("--- Phase 1: Apply ---")
    application = service.apply(snapshot, actor)
    print(f"Applied to slot {application.slot_index}, profile {application.profile_id[:8]}")

    print("\n--- Phase 2: Capture mode ---")
    watcher = CaptureModeWatcher(directory, registry)
    watcher.add_callback(lambda entered: print(f"Capture mode {'entered' if entered else 'exited'}"))
    directory.capture_mode = True
    watcher.poll()
    print(f"Entry now at slot {registry.applications[0].slot_index} (Expected: 201)")
    directory.capture_mode = False
    watcher.poll()

    print("\n--- Phase 3: Revert ---")
    reverted = registry.revert_all()
    mapping = capabilities.probe(FileMappingLayer)
    print(f"Reverted {reverted} application(s); cleared slots {mapping.cleared}")
    assert not registry.has_applications


if __name__ == "__main__":
    run_example()
