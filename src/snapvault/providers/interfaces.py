"""Interfaces of the external collaborators snapvault talks to.

Capture, apply and identity concerns live outside the storage engine.
Each optional apply-side layer is a typed interface registered in a
CapabilityRegistry; callers probe for it and skip the work when it is not
available.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, TypeVar

from snapvault.models.application import ActorRef
from snapvault.models.capture import CapturedState


class BlobSource(ABC):
    """Supplies file bytes for a content hash on demand."""

    @abstractmethod
    def read_source(self, content_hash: str) -> Optional[bytes]:
        """Returns the bytes for a hash, or None if they are unavailable."""
        pass  # pragma: no cover


class CaptureProvider(BlobSource):
    """Reads the current appearance state of a live actor."""

    @abstractmethod
    def capture(self, actor: ActorRef) -> Optional[CapturedState]:
        """Captures the actor's state.

        Args:
            actor: The live actor to capture.

        Returns:
            The captured state, or None if the actor could not be captured.
        """
        pass  # pragma: no cover


class ActorDirectory(ABC):
    """Resolves live actors and their slot indices."""

    @abstractmethod
    def get(self, slot_index: int) -> Optional[ActorRef]:
        """Returns the actor currently occupying a slot, if any."""
        pass  # pragma: no cover

    @abstractmethod
    def local_actor(self) -> Optional[ActorRef]:
        """Returns the privileged/local actor, if it is available."""
        pass  # pragma: no cover

    @abstractmethod
    def in_capture_mode(self) -> bool:
        """Whether the environment is in the special capture mode."""
        pass  # pragma: no cover


class FileMappingLayer(ABC):
    """Installs resolved file maps for actor slots."""

    @abstractmethod
    def apply_mapping(
        self, actor: ActorRef, files: dict[str, Path], manipulation: str
    ) -> None:
        """Installs a game path to local file mapping for the actor."""
        pass  # pragma: no cover

    @abstractmethod
    def clear_mapping(self, slot_index: int) -> None:
        """Removes any mapping installed for the slot."""
        pass  # pragma: no cover

    @abstractmethod
    def redraw(self, slot_index: int) -> None:
        """Asks the environment to redraw the actor in the slot."""
        pass  # pragma: no cover


class OutfitLayer(ABC):
    """Applies and locks outfit payloads."""

    @abstractmethod
    def current_state(self, actor: ActorRef) -> str:
        pass  # pragma: no cover

    @abstractmethod
    def apply(self, actor: ActorRef, payload: str) -> None:
        """Applies a payload and locks the actor's outfit layer."""
        pass  # pragma: no cover

    @abstractmethod
    def unlock(self, actor: ActorRef) -> None:
        pass  # pragma: no cover

    @abstractmethod
    def reset_to_baseline(self, actor: ActorRef) -> None:
        pass  # pragma: no cover


class ShapeLayer(ABC):
    """Applies shape payloads as temporary profiles."""

    @abstractmethod
    def apply(self, actor: ActorRef, payload: str) -> Optional[str]:
        """Applies a payload and returns the profile handle, if any."""
        pass  # pragma: no cover

    @abstractmethod
    def release(self, profile_id: str) -> None:
        pass  # pragma: no cover


CapabilityT = TypeVar("CapabilityT")


class CapabilityRegistry:
    """Holds the optional apply-side layers available at runtime."""

    def __init__(self):
        self._capabilities: dict[type, object] = {}

    def register(self, kind: type[CapabilityT], implementation: CapabilityT) -> None:
        if not isinstance(implementation, kind):
            raise TypeError(
                f"{type(implementation).__name__} does not implement {kind.__name__}"
            )
        self._capabilities[kind] = implementation

    def unregister(self, kind: type) -> None:
        self._capabilities.pop(kind, None)

    def probe(self, kind: type[CapabilityT]) -> Optional[CapabilityT]:
        """Returns the registered implementation of ``kind``, or None."""
        return self._capabilities.get(kind)  # type: ignore[return-value]
