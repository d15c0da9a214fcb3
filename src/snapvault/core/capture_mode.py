"""Tracks entry into and exit from the environment's capture mode."""

from typing import Callable

from snapvault.core.registry import ActiveSnapshotRegistry
from snapvault.observability.logging import get_logger
from snapvault.providers.interfaces import ActorDirectory

logger = get_logger(__name__)


class CaptureModeWatcher:
    """Keeps the local actor's snapshot attached across capture mode.

    While in capture mode the local actor occupies a dedicated slot. On
    entry the local entry is remapped to that slot; on exit the automatic
    revert runs and whatever is kept is remapped back.

    ``poll`` is meant to be called from the same control thread that uses
    the registry, e.g. once per frame or tick.
    """

    def __init__(self, directory: ActorDirectory, registry: ActiveSnapshotRegistry):
        """Initializes the watcher.

        Args:
            directory: Reports whether capture mode is active.
            registry: Registry whose local entry is remapped.
        """
        self.directory = directory
        self.registry = registry
        self._active = False
        self._callbacks: list[Callable[[bool], None]] = []

    @property
    def active(self) -> bool:
        return self._active

    def add_callback(self, callback: Callable[[bool], None]):
        """Registers a callback run after each transition.

        Args:
            callback: A callable receiving True on entry and False on exit.
        """
        self._callbacks.append(callback)

    def _notify(self, entered: bool):
        for cb in self._callbacks:
            try:
                cb(entered)
            except Exception as e:
                logger.error(f"Error in capture mode callback: {str(e)}")

    def poll(self) -> bool:
        """Checks for a capture mode transition and handles it.

        Returns:
            Whether a transition happened.
        """
        in_mode = self.directory.in_capture_mode()
        if in_mode and not self._active:
            self._active = True
            moved = self.registry.on_capture_mode_entered()
            logger.debug(f"Capture mode entered; remapped {moved} snapshot(s).")
            self._notify(True)
            return True
        if not in_mode and self._active:
            self.exit()
            return True
        return False

    def exit(self) -> None:
        if not self._active:
            return
        self._active = False
        moved = self.registry.on_capture_mode_exited()
        logger.debug(f"Capture mode exited; remapped {moved} snapshot(s) back.")
        self._notify(False)
