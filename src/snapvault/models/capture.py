"""Data models exchanged with capture collaborators."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from snapvault.models.base import FileMap
from snapvault.models.enums import HistoryKind


class CapturedState(BaseModel):
    """Everything a capture provider reports for one actor.

    Attributes:
        outfit: Outfit payload, or None when unavailable.
        shape: Shape payload, or None when unavailable.
        manipulation: Metadata blob for the file map.
        file_map: Game path to content hash.
        source_paths: Content hash to a readable local file with those bytes.
    """

    outfit: Optional[str] = Field(default=None, description="Outfit payload.")
    shape: Optional[str] = Field(default=None, description="Shape payload.")
    manipulation: Optional[str] = Field(
        default=None, description="Metadata blob for the file map."
    )
    file_map: FileMap = Field(
        default_factory=dict, description="Game path to content hash."
    )
    source_paths: dict[str, Path] = Field(
        default_factory=dict,
        description="Content hash to a readable local file with those bytes.",
    )

    @model_validator(mode="after")
    def normalize_hashes(self) -> "CapturedState":
        # Hashes are stored and looked up in upper-case hex.
        self.file_map = {path: h.upper() for path, h in self.file_map.items()}
        self.source_paths = {h.upper(): p for h, p in self.source_paths.items()}
        return self

    def payload_for(self, kind: HistoryKind) -> Optional[str]:
        match kind:
            case HistoryKind.OUTFIT:
                return self.outfit
            case HistoryKind.SHAPE:
                return self.shape
            case _:
                raise ValueError(f"Unknown history kind: {kind}")
