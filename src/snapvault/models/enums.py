"""Enumeration definitions for snapvault.

This module contains the Enum classes shared across the storage engine,
the migration tooling and the live application registry.
"""

from enum import Enum, Flag


class HistoryKind(str, Enum):
    """Defines the kinds of auxiliary state tracked as history.

    Attributes:
        OUTFIT: Outfit/glamour payload applied on top of the file map.
        SHAPE: Body shape/pose scaling payload.
    """

    OUTFIT = "outfit"
    SHAPE = "shape"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class SnapshotFormat(str, Enum):
    """Defines the on-disk layouts a snapshot directory may be in.

    Attributes:
        UNKNOWN: The root file could not be parsed.
        LEGACY: Flat files next to the root file, no content addressing.
        UNVERSIONED: Content-addressed but without a format version stamp.
        VERSIONED: Current layout.
    """

    UNKNOWN = "unknown"
    LEGACY = "legacy"
    UNVERSIONED = "unversioned"
    VERSIONED = "versioned"


class MigrationOutcome(str, Enum):
    """Defines the result of migrating a single snapshot directory.

    Attributes:
        SKIPPED: Nothing to do (already current, marked, or unreadable).
        UPGRADED: Format version stamped onto an unversioned record.
        MIGRATED: Legacy layout converted to content-addressed storage.
        FAILED: Migration raised; the directory was moved aside.
    """

    SKIPPED = "skipped"
    UPGRADED = "upgraded"
    MIGRATED = "migrated"
    FAILED = "failed"


class LoadComponents(Flag):
    """Selects which parts of a snapshot are applied to an actor."""

    NONE = 0
    FILES = 1
    OUTFIT = 2
    SHAPE = 4
    ALL = FILES | OUTFIT | SHAPE
