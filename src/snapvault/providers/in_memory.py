"""In-memory implementations of the collaborator interfaces.

These back the tests and offline tooling. The apply layers record every
call they receive so callers can inspect what would have happened.
"""

import uuid
from pathlib import Path
from typing import Optional

from snapvault.models.application import ActorRef
from snapvault.models.capture import CapturedState
from snapvault.providers.interfaces import (
    ActorDirectory,
    CapabilityRegistry,
    CaptureProvider,
    FileMappingLayer,
    OutfitLayer,
    ShapeLayer,
)
from snapvault.utils import compute_hash


class InMemoryActorDirectory(ActorDirectory):
    def __init__(self, actors: Optional[list[ActorRef]] = None, capture_mode: bool = False):
        self._actors: dict[int, ActorRef] = {a.slot_index: a for a in actors or []}
        self.capture_mode = capture_mode

    def add(self, actor: ActorRef) -> None:
        self._actors[actor.slot_index] = actor

    def remove(self, slot_index: int) -> Optional[ActorRef]:
        return self._actors.pop(slot_index, None)

    def move(self, old_slot: int, new_slot: int) -> ActorRef:
        actor = self._actors.pop(old_slot)
        moved = actor.model_copy(update={"slot_index": new_slot})
        self._actors[new_slot] = moved
        return moved

    def get(self, slot_index: int) -> Optional[ActorRef]:
        return self._actors.get(slot_index)

    def local_actor(self) -> Optional[ActorRef]:
        for actor in self._actors.values():
            if actor.is_local:
                return actor
        return None

    def in_capture_mode(self) -> bool:
        return self.capture_mode


class RecordingFileMappingLayer(FileMappingLayer):
    def __init__(self):
        self.mappings: dict[int, tuple[dict[str, Path], str]] = {}
        self.cleared: list[int] = []
        self.redrawn: list[int] = []

    def apply_mapping(self, actor: ActorRef, files: dict[str, Path], manipulation: str) -> None:
        self.mappings[actor.slot_index] = (dict(files), manipulation)

    def clear_mapping(self, slot_index: int) -> None:
        self.mappings.pop(slot_index, None)
        self.cleared.append(slot_index)

    def redraw(self, slot_index: int) -> None:
        self.redrawn.append(slot_index)


class RecordingOutfitLayer(OutfitLayer):
    def __init__(self, baseline: str = ""):
        self.baseline = baseline
        self.states: dict[int, str] = {}
        self.locked: set[int] = set()
        self.resets: list[int] = []

    def current_state(self, actor: ActorRef) -> str:
        return self.states.get(actor.slot_index, self.baseline)

    def apply(self, actor: ActorRef, payload: str) -> None:
        self.states[actor.slot_index] = payload
        self.locked.add(actor.slot_index)

    def unlock(self, actor: ActorRef) -> None:
        self.locked.discard(actor.slot_index)

    def reset_to_baseline(self, actor: ActorRef) -> None:
        self.states[actor.slot_index] = self.baseline
        self.resets.append(actor.slot_index)


class RecordingShapeLayer(ShapeLayer):
    def __init__(self):
        self.profiles: dict[str, tuple[int, str]] = {}
        self.released: list[str] = []

    def apply(self, actor: ActorRef, payload: str) -> Optional[str]:
        profile_id = uuid.uuid4().hex
        self.profiles[profile_id] = (actor.slot_index, payload)
        return profile_id

    def release(self, profile_id: str) -> None:
        self.profiles.pop(profile_id, None)
        self.released.append(profile_id)


class InMemoryCaptureProvider(CaptureProvider):
    """Serves preset states per slot and the bytes behind their hashes."""

    def __init__(self):
        self._states: dict[int, CapturedState] = {}
        self._blobs: dict[str, bytes] = {}

    def set_state(
        self,
        slot_index: int,
        files: Optional[dict[str, bytes]] = None,
        outfit: Optional[str] = None,
        shape: Optional[str] = None,
        manipulation: Optional[str] = None,
    ) -> CapturedState:
        """Presets what ``capture`` reports for a slot.

        Args:
            slot_index: The slot to capture from.
            files: Game path to file content. Hashes are computed here.
            outfit: Outfit payload.
            shape: Shape payload.
            manipulation: Metadata blob.

        Returns:
            The state that will be reported.
        """
        file_map: dict[str, str] = {}
        for game_path, data in (files or {}).items():
            content_hash = compute_hash(data)
            self._blobs[content_hash] = data
            file_map[game_path] = content_hash

        state = CapturedState(
            outfit=outfit, shape=shape, manipulation=manipulation, file_map=file_map
        )
        self._states[slot_index] = state
        return state

    def forget_blob(self, content_hash: str) -> None:
        self._blobs.pop(content_hash.upper(), None)

    def capture(self, actor: ActorRef) -> Optional[CapturedState]:
        state = self._states.get(actor.slot_index)
        return state.model_copy(deep=True) if state is not None else None

    def read_source(self, content_hash: str) -> Optional[bytes]:
        return self._blobs.get(content_hash.upper())


def build_recording_capabilities() -> CapabilityRegistry:
    capabilities = CapabilityRegistry()
    capabilities.register(FileMappingLayer, RecordingFileMappingLayer())
    capabilities.register(OutfitLayer, RecordingOutfitLayer())
    capabilities.register(ShapeLayer, RecordingShapeLayer())
    return capabilities
