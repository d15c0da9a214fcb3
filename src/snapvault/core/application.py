"""Applies stored snapshots to live actors."""

from pathlib import Path
from typing import Optional, Union

from snapvault.core.registry import ActiveSnapshotRegistry
from snapvault.core.repository import SnapshotRepository
from snapvault.errors import NothingToApplyError
from snapvault.models.application import ActiveApplication, ActorRef
from snapvault.models.enums import HistoryKind, LoadComponents
from snapvault.models.snapshot import HistoryEntry
from snapvault.observability.logging import get_logger, log_event
from snapvault.providers.interfaces import FileMappingLayer, OutfitLayer, ShapeLayer

logger = get_logger(__name__)


class SnapshotApplicationService:
    """Resolves a snapshot and hands it to the available apply layers.

    Args:
        repository: Source of snapshot records, histories and blobs.
        registry: Registry receiving the resulting ActiveApplication.
    """

    def __init__(self, repository: SnapshotRepository, registry: ActiveSnapshotRegistry):
        self.repository = repository
        self.registry = registry

    def apply(
        self,
        path: Union[str, Path],
        actor: ActorRef,
        components: LoadComponents = LoadComponents.ALL,
        outfit_entry: Optional[HistoryEntry] = None,
        shape_entry: Optional[HistoryEntry] = None,
        version_id: Optional[str] = None,
    ) -> ActiveApplication:
        """Applies a snapshot to an actor.

        The file-map version is chosen in this order: ``version_id``, the
        version referenced by the outfit entry, the one referenced by the
        shape entry, then the record's current version. Entries default to
        the latest of their kind.

        Args:
            path: The snapshot directory.
            actor: The live actor to apply to.
            components: Which parts of the snapshot to apply.
            outfit_entry: Outfit history entry to use instead of the latest.
            shape_entry: Shape history entry to use instead of the latest.
            version_id: Explicit file-map version to apply.

        Returns:
            The ActiveApplication recorded in the registry.

        Raises:
            SnapshotLoadError: If the root record cannot be loaded.
            NothingToApplyError: If the snapshot has no files and no payloads.
        """
        record = self.repository.load(path)
        history = self.repository.load_history(path, strict=False)

        if LoadComponents.OUTFIT in components:
            outfit_entry = outfit_entry or history.latest(HistoryKind.OUTFIT)
        else:
            outfit_entry = None
        if LoadComponents.SHAPE in components:
            shape_entry = shape_entry or history.latest(HistoryKind.SHAPE)
        else:
            shape_entry = None

        map_id = (
            version_id
            or (outfit_entry.file_map_id if outfit_entry else None)
            or (shape_entry.file_map_id if shape_entry else None)
            or record.current_file_map_id
        )

        resolver = self.repository.resolver
        file_map: dict[str, str] = {}
        manipulation = ""
        if LoadComponents.FILES in components:
            file_map = resolver.resolve(record, map_id)
            if not file_map and record.file_replacements:
                logger.warning(
                    f"File map {map_id} resolved empty; using legacy file replacements."
                )
                file_map = dict(record.file_replacements)
            manipulation = resolver.resolve_manipulation(record, map_id)

        outfit_payload = outfit_entry.payload if outfit_entry else ""
        shape_payload = shape_entry.payload if shape_entry else ""
        if not file_map and not outfit_payload and not shape_payload:
            raise NothingToApplyError(path)

        mapping = self.registry.capabilities.probe(FileMappingLayer)
        shape = self.registry.capabilities.probe(ShapeLayer)
        outfit = self.registry.capabilities.probe(OutfitLayer)

        was_locked = self.registry.is_aux_locked(actor)
        for previous in self.registry.remove_all_for(actor):
            if shape is not None and previous.profile_id:
                shape.release(previous.profile_id)

        has_file_mapping = False
        if file_map:
            if mapping is None:
                logger.debug("No file mapping layer available; skipping files.")
            else:
                files = self.repository.resolve_blob_paths(path, file_map)
                mapping.apply_mapping(actor, files, manipulation)
                has_file_mapping = True

        profile_id = None
        if shape_payload:
            if shape is None:
                logger.debug("No shape layer available; skipping shape.")
            else:
                profile_id = shape.apply(actor, shape_payload)

        has_outfit_state = was_locked
        if outfit_payload and not was_locked:
            if outfit is None:
                logger.debug("No outfit layer available; skipping outfit.")
            else:
                outfit.apply(actor, outfit_payload)
                has_outfit_state = True

        if mapping is not None and (has_file_mapping or profile_id or has_outfit_state):
            mapping.redraw(actor.slot_index)

        application = ActiveApplication(
            slot_index=actor.slot_index,
            profile_id=profile_id,
            is_local=actor.is_local,
            display_name=actor.name,
            aux_locked=was_locked,
            has_file_mapping=has_file_mapping,
            has_outfit_state=has_outfit_state,
        )
        self.registry.add(application)
        log_event(
            logger,
            f"Applied snapshot '{Path(path).name}' to '{actor.name}'.",
            "snapshot_applied",
            snapshot=Path(path).name,
            slot_index=actor.slot_index,
            file_map_id=map_id,
            files=len(file_map),
        )
        return application
