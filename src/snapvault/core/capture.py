"""Capturing live actors into snapshot directories."""

from pathlib import Path
from typing import Optional, Union

from snapvault.core.index import SnapshotIndex
from snapvault.core.repository import SnapshotRepository, UpdateResult
from snapvault.models.application import ActorRef
from snapvault.observability.logging import get_logger
from snapvault.providers.interfaces import CaptureProvider
from snapvault.utils import sanitize_file_system_name

logger = get_logger(__name__)


class SnapshotCaptureService:
    """Captures an actor and records the result in its snapshot directory.

    The directory is looked up in the index first, so renamed snapshots
    keep receiving updates; otherwise one named after the actor is used.

    Args:
        repository: Repository receiving the update.
        provider: Capture provider for live actors.
        working_dir: Directory holding snapshot directories.
        index: Optional index. A fresh one is built from ``working_dir``.
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        provider: CaptureProvider,
        working_dir: Union[str, Path],
        index: Optional[SnapshotIndex] = None,
    ):
        self.repository = repository
        self.provider = provider
        self.working_dir = Path(working_dir)
        if index is None:
            index = SnapshotIndex()
            index.refresh(self.working_dir)
        self.index = index

    def snapshot_path_for(self, actor: ActorRef) -> Path:
        existing = self.index.find_for_actor(actor.name, actor.world_id)
        if existing is not None:
            return existing
        return self.working_dir / sanitize_file_system_name(
            actor.name, f"actor_{actor.slot_index}"
        )

    def capture(
        self, actor: ActorRef, include_removals: Optional[bool] = None
    ) -> Optional[UpdateResult]:
        """Captures the actor and updates its snapshot.

        Returns:
            The update result, or None if the provider could not capture.
        """
        captured = self.provider.capture(actor)
        if captured is None:
            logger.warning(f"Could not capture actor '{actor.name}' in slot {actor.slot_index}.")
            return None

        path = self.snapshot_path_for(actor)
        result = self.repository.update(
            path,
            captured,
            source=self.provider,
            include_removals=include_removals,
            source_actor=actor.name,
            source_world_id=actor.world_id,
        )
        if result.is_new_snapshot:
            self.index.refresh(self.working_dir)
        return result
