"""Append-only history of auxiliary state captures.

Each auxiliary kind has its own ordered list of entries, oldest first. An
entry remembers which file-map version was current when it was recorded,
so applying an old entry can bring back the exact file set it was worn
with.
"""

import json
import math
from datetime import datetime
from typing import Any, Optional

from snapvault.errors import HistoryIndexError
from snapvault.models.enums import HistoryKind
from snapvault.models.snapshot import History, HistoryEntry, utc_now
from snapvault.utils import format_utc_label

MIGRATED_DESCRIPTION = "Migrated from old format"


def _values_close(a: Any, b: Any, tolerance: float) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return math.isclose(a, b, rel_tol=0.0, abs_tol=tolerance)
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(_values_close(a[k], b[k], tolerance) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        return all(_values_close(x, y, tolerance) for x, y in zip(a, b))
    return a == b


def payloads_equal(a: str, b: str, tolerance: Optional[float] = None) -> bool:
    """Compares two auxiliary payloads.

    Args:
        a: First payload.
        b: Second payload.
        tolerance: When set, payloads that both parse as JSON are compared
            structurally with numbers matching within this absolute
            tolerance. Otherwise, and for non-JSON payloads, equality is exact.
    """
    if a == b:
        return True
    if tolerance is None:
        return False

    try:
        parsed_a = json.loads(a)
        parsed_b = json.loads(b)
    except (TypeError, ValueError):
        return False
    return _values_close(parsed_a, parsed_b, tolerance)


def format_entry_preview(entry: HistoryEntry) -> str:
    name = entry.description.strip() or "Unnamed Entry"
    return f"{name}  ({entry.timestamp.astimezone().strftime('%Y-%m-%d %H:%M')})"


class HistoryTracker:
    """Tracks the history lists of a single snapshot.

    Args:
        histories: Loaded histories by kind. Missing kinds start empty.
        payload_tolerance: Optional numeric tolerance for payload equality.
    """

    def __init__(
        self,
        histories: Optional[dict[HistoryKind, History]] = None,
        payload_tolerance: Optional[float] = None,
    ):
        self._histories: dict[HistoryKind, History] = {
            kind: History() for kind in HistoryKind
        }
        if histories:
            self._histories.update(histories)
        self.payload_tolerance = payload_tolerance

    @property
    def histories(self) -> dict[HistoryKind, History]:
        return dict(self._histories)

    def entries(self, kind: HistoryKind) -> list[HistoryEntry]:
        return list(self._histories[kind].entries)

    def latest(self, kind: HistoryKind) -> Optional[HistoryEntry]:
        entries = self._histories[kind].entries
        return entries[-1] if entries else None

    def needs_entry(
        self, kind: HistoryKind, payload: Optional[str], version_id: Optional[str]
    ) -> bool:
        if not payload:
            return False
        last = self.latest(kind)
        if last is None:
            return True
        if not payloads_equal(last.payload, payload, self.payload_tolerance):
            return True
        return last.file_map_id != version_id

    def append(
        self,
        kind: HistoryKind,
        payload: Optional[str],
        version_id: Optional[str],
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[HistoryEntry]:
        """Records a capture of one auxiliary kind.

        An entry is added when the payload differs from the latest entry of
        the same kind, or when the payload is unchanged but the current
        file-map version is not the one the latest entry references.
        Empty payloads are never recorded.

        Args:
            kind: The auxiliary kind.
            payload: The captured payload.
            version_id: The file-map version current at capture time.
            description: Optional label. Defaults to a timestamped one.
            now: Optional timestamp override.

        Returns:
            The new entry, or None if nothing was appended.
        """
        if not self.needs_entry(kind, payload, version_id):
            return None

        now = now or utc_now()
        entry = HistoryEntry(
            timestamp=now,
            description=description or f"{kind.label} Update - {format_utc_label(now)}",
            payload=payload,
            file_map_id=version_id,
        )
        self._histories[kind].entries.append(entry)
        return entry

    def _check_index(self, kind: HistoryKind, index: int) -> None:
        size = len(self._histories[kind].entries)
        if not 0 <= index < size:
            raise HistoryIndexError(kind.value, index, size)

    def delete(self, kind: HistoryKind, index: int) -> HistoryEntry:
        """Removes one entry. Other entries keep their content and order."""
        self._check_index(kind, index)
        return self._histories[kind].entries.pop(index)

    def rename(self, kind: HistoryKind, index: int, description: str) -> HistoryEntry:
        self._check_index(kind, index)
        entries = self._histories[kind].entries
        entries[index] = entries[index].model_copy(update={"description": description})
        return entries[index]
