"""Data models for persisted snapshot records.

This module defines the schema of the root metadata file, the file-map
versions forming the delta chain, and the auxiliary history files.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import ConfigDict, Field

from snapvault.models.base import FileMap, PersistedModel

CURRENT_FORMAT_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileMapVersion(PersistedModel):
    """A single link of a file-map delta chain.

    Attributes:
        id: Opaque unique token for this version.
        base_id: The version this one is a delta against, or None for a root.
        changes: Game path to content hash. An empty hash marks a removal.
        created_at: When the version was appended.
        manipulation: Metadata blob that was current for this version.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(..., description="Opaque unique token for this version.")
    base_id: Optional[str] = Field(
        default=None,
        description="The version this one is a delta against, or None for a root.",
    )
    changes: FileMap = Field(
        default_factory=dict,
        description="Game path to content hash. An empty hash marks a removal.",
    )
    created_at: datetime = Field(
        default_factory=utc_now, description="When the version was appended."
    )
    manipulation: Optional[str] = Field(
        default=None,
        description="Metadata blob that was current for this version.",
    )

    @property
    def is_root(self) -> bool:
        return self.base_id is None


class SnapshotRecord(PersistedModel):
    """The root metadata record of a snapshot directory.

    Attributes:
        format_version: Layout version of the snapshot directory.
        source_actor: Label of the actor the snapshot was captured from.
        source_world_id: Optional world id of the source actor.
        source_world_name: Optional world name of the source actor.
        last_update: When the record was last written.
        current_file_map_id: Pointer to the current file-map version.
        file_maps: All file-map versions, in append order.
        file_replacements: Legacy flat mapping, used only as a fallback.
        manipulation: Legacy record-level metadata blob.
    """

    format_version: int = Field(
        default=CURRENT_FORMAT_VERSION,
        description="Layout version of the snapshot directory.",
    )
    source_actor: str = Field(
        default="", description="Label of the actor the snapshot was captured from."
    )
    source_world_id: Optional[int] = Field(
        default=None, description="Optional world id of the source actor."
    )
    source_world_name: Optional[str] = Field(
        default=None, description="Optional world name of the source actor."
    )
    last_update: datetime = Field(
        default_factory=utc_now, description="When the record was last written."
    )
    current_file_map_id: Optional[str] = Field(
        default=None, description="Pointer to the current file-map version."
    )
    file_maps: list[FileMapVersion] = Field(
        default_factory=list,
        description="All file-map versions, in append order.",
    )
    file_replacements: FileMap = Field(
        default_factory=dict,
        description="Legacy flat mapping, used only as a fallback.",
    )
    manipulation: str = Field(
        default="", description="Legacy record-level metadata blob."
    )

    def find_version(self, version_id: Optional[str]) -> Optional[FileMapVersion]:
        if not version_id:
            return None
        for version in self.file_maps:
            if version.id.lower() == version_id.lower():
                return version
        return None


class HistoryEntry(PersistedModel):
    """A single captured auxiliary state.

    Attributes:
        timestamp: When the entry was recorded.
        description: Human readable label.
        payload: Opaque auxiliary state blob.
        file_map_id: File-map version that was current when recorded.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    timestamp: datetime = Field(
        default_factory=utc_now, description="When the entry was recorded."
    )
    description: str = Field(default="", description="Human readable label.")
    payload: str = Field(default="", description="Opaque auxiliary state blob.")
    file_map_id: Optional[str] = Field(
        default=None,
        description="File-map version that was current when recorded.",
    )


class History(PersistedModel):
    """Append-only list of history entries for one auxiliary kind."""

    entries: list[HistoryEntry] = Field(
        default_factory=list, description="Entries, oldest first."
    )
