"""Registry of snapshots currently applied to live actors.

The registry remembers which slot received which snapshot so the apply
layers can be undone later, either for one actor or for everything at
once. Entries are frozen ActiveApplication values; every change replaces
the old entry with an updated copy.
"""

from typing import Optional

from snapvault.config import CAPTURE_MODE_LOCAL_SLOT, VaultConfig
from snapvault.models.application import ActiveApplication, ActorRef
from snapvault.observability.logging import get_logger, log_event
from snapvault.providers.interfaces import (
    ActorDirectory,
    CapabilityRegistry,
    FileMappingLayer,
    OutfitLayer,
    ShapeLayer,
)

logger = get_logger(__name__)


class ActiveSnapshotRegistry:
    """Tracks and reverts snapshot applications.

    Not thread-safe; all calls are expected from one control thread.

    Args:
        directory: Resolves slot indices to live actors.
        capabilities: Optional apply layers used when reverting and locking.
        disable_automatic_revert: Keep entries of the local actor when an
            automatic ``revert_all`` asks to respect this flag.
        capture_mode_slot: Slot the local actor occupies in capture mode.
    """

    def __init__(
        self,
        directory: ActorDirectory,
        capabilities: Optional[CapabilityRegistry] = None,
        disable_automatic_revert: bool = False,
        capture_mode_slot: int = CAPTURE_MODE_LOCAL_SLOT,
    ):
        self.directory = directory
        self.capabilities = capabilities or CapabilityRegistry()
        self.disable_automatic_revert = disable_automatic_revert
        self.capture_mode_slot = capture_mode_slot
        self._entries: list[ActiveApplication] = []

    @classmethod
    def from_config(
        cls,
        config: VaultConfig,
        directory: ActorDirectory,
        capabilities: Optional[CapabilityRegistry] = None,
    ) -> "ActiveSnapshotRegistry":
        return cls(
            directory,
            capabilities,
            disable_automatic_revert=config.disable_automatic_revert,
            capture_mode_slot=config.capture_mode_slot,
        )

    # ------------------------------------------------------------------
    # Queries

    @property
    def applications(self) -> list[ActiveApplication]:
        return list(self._entries)

    @property
    def has_applications(self) -> bool:
        return bool(self._entries)

    @staticmethod
    def _matches(entry: ActiveApplication, actor: ActorRef) -> bool:
        if entry.slot_index == actor.slot_index:
            return True
        if entry.is_local and actor.is_local:
            return True
        return bool(entry.display_name) and entry.display_name == actor.name

    def find(self, actor: ActorRef) -> Optional[ActiveApplication]:
        """Finds the entry applied to an actor.

        Matching is tried by slot index first, then by the local flag, then
        by exact display name, so an entry survives the actor moving slots.
        """
        for entry in self._entries:
            if entry.slot_index == actor.slot_index:
                return entry
        if actor.is_local:
            for entry in self._entries:
                if entry.is_local:
                    return entry
        if actor.name:
            for entry in self._entries:
                if entry.display_name == actor.name:
                    return entry
        return None

    def is_applied(self, actor: ActorRef) -> bool:
        return self.find(actor) is not None

    def is_aux_locked(self, actor: ActorRef) -> bool:
        entry = self.find(actor)
        return entry is not None and entry.aux_locked

    # ------------------------------------------------------------------
    # Mutation

    def add(self, application: ActiveApplication) -> None:
        self._entries.append(application)

    def remove_all_for(self, actor: ActorRef) -> list[ActiveApplication]:
        """Drops every entry matching the actor without reverting anything."""
        removed = [e for e in self._entries if self._matches(e, actor)]
        self._entries = [e for e in self._entries if not self._matches(e, actor)]
        return removed

    def _replace(self, old: ActiveApplication, new: ActiveApplication) -> None:
        index = self._entries.index(old)
        self._entries[index] = new

    def _target_for(self, entry: ActiveApplication) -> Optional[ActorRef]:
        target = self.directory.get(entry.slot_index)
        if target is None and entry.is_local:
            target = self.directory.local_actor()
        return target

    def _revert_entry(self, entry: ActiveApplication) -> Optional[int]:
        """Undoes one application. Returns the slot to redraw, if any."""
        mapping = self.capabilities.probe(FileMappingLayer)
        shape = self.capabilities.probe(ShapeLayer)
        outfit = self.capabilities.probe(OutfitLayer)

        target = self._target_for(entry)
        if target is None:
            logger.warning(
                f"Could not find actor for slot {entry.slot_index} to revert. "
                "Clearing stored state only."
            )
            if mapping is not None and entry.has_file_mapping:
                mapping.clear_mapping(entry.slot_index)
            if shape is not None and entry.profile_id:
                shape.release(entry.profile_id)
            return None

        if mapping is not None and entry.has_file_mapping:
            mapping.clear_mapping(target.slot_index)
        if shape is not None and entry.profile_id:
            shape.release(entry.profile_id)
        if outfit is not None and entry.has_outfit_state:
            outfit.unlock(target)
            outfit.reset_to_baseline(target)
        return target.slot_index

    def _revert_entries(self, entries: list[ActiveApplication]) -> int:
        slots: list[int] = []
        for entry in entries:
            try:
                slot = self._revert_entry(entry)
            finally:
                self._entries.remove(entry)
            if slot is not None and slot not in slots:
                slots.append(slot)

        mapping = self.capabilities.probe(FileMappingLayer)
        if mapping is not None:
            for slot in slots:
                if self.directory.get(slot) is not None:
                    mapping.redraw(slot)
        return len(entries)

    def revert(self, actor: ActorRef) -> int:
        """Reverts every entry applied to the actor.

        Returns:
            The number of entries reverted.
        """
        entries = [e for e in self._entries if self._matches(e, actor)]
        count = self._revert_entries(entries)
        if count:
            logger.info(f"Reverted {count} snapshot application(s) for '{actor.name}'.")
        return count

    def revert_all(self, respect_persistence_flag: bool = False) -> int:
        """Reverts all entries.

        Args:
            respect_persistence_flag: When set and automatic revert is
                disabled in the configuration, entries of the local actor are
                kept.

        Returns:
            The number of entries reverted.
        """
        keep_local = respect_persistence_flag and self.disable_automatic_revert
        entries = [e for e in self._entries if not (keep_local and e.is_local)]
        count = self._revert_entries(entries)
        log_event(
            logger,
            f"Reverted {count} snapshot application(s).",
            "revert_all",
            kept=len(self._entries),
        )
        return count

    def remap_slot(self, old_slot: int, new_slot: int) -> int:
        """Moves entries of the local actor from one slot to another."""
        moved = 0
        for entry in list(self._entries):
            if entry.is_local and entry.slot_index == old_slot:
                self._replace(entry, entry.model_copy(update={"slot_index": new_slot}))
                moved += 1
        if moved:
            logger.debug(f"Remapped local snapshot from slot {old_slot} to {new_slot}.")
        return moved

    def on_capture_mode_entered(self) -> int:
        """Moves the local actor's entries to the capture-mode slot.

        Entries are selected by their local flag, so a stale recorded slot
        still follows the actor.
        """
        moved = 0
        for entry in list(self._entries):
            if entry.is_local and entry.slot_index != self.capture_mode_slot:
                self._replace(
                    entry, entry.model_copy(update={"slot_index": self.capture_mode_slot})
                )
                moved += 1
        if moved:
            logger.debug(
                f"Moved local snapshot tracking to capture-mode slot {self.capture_mode_slot}."
            )
        return moved

    def on_capture_mode_exited(self) -> int:
        """Runs the automatic revert, then moves kept entries back.

        Kept entries stay on the capture-mode slot while no local actor is
        reported.
        """
        self.revert_all(respect_persistence_flag=True)
        local = self.directory.local_actor()
        if local is None:
            return 0
        return self.remap_slot(self.capture_mode_slot, local.slot_index)

    def lock(self, actor: ActorRef) -> Optional[ActiveApplication]:
        """Protects the actor's outfit layer from being overwritten.

        The current outfit state is re-applied through the outfit layer, which
        locks it there as well.

        Returns:
            The updated entry, or None if nothing is applied to the actor.
        """
        entry = self.find(actor)
        if entry is None:
            return None

        outfit = self.capabilities.probe(OutfitLayer)
        if outfit is not None:
            outfit.apply(actor, outfit.current_state(actor))

        locked = entry.model_copy(update={"aux_locked": True, "has_outfit_state": True})
        self._replace(entry, locked)
        return locked

    def unlock(self, actor: ActorRef) -> Optional[ActiveApplication]:
        entry = self.find(actor)
        if entry is None:
            return None

        outfit = self.capabilities.probe(OutfitLayer)
        if outfit is not None:
            outfit.unlock(actor)

        unlocked = entry.model_copy(update={"aux_locked": False})
        self._replace(entry, unlocked)
        return unlocked
