"""Exception types raised by snapvault."""


class SnapvaultError(Exception):
    def __init__(self, code: str, detail: str):
        self.code = code
        self.detail = detail
        super().__init__(detail)


class SnapshotLoadError(SnapvaultError):
    def __init__(self, path, detail: str):
        self.path = path
        super().__init__("snapshot.load", f"Could not load {path}: {detail}")


class FileMapDepthError(SnapvaultError):
    """Raised when a delta chain is deeper than the configured ceiling.

    This indicates structural corruption (most likely a base_id cycle); the
    resolve operation is abandoned rather than returning a truncated map.
    """

    def __init__(self, version_id: str, max_depth: int):
        self.version_id = version_id
        self.max_depth = max_depth
        super().__init__(
            "filemap.depth",
            f"File map resolution for {version_id} exceeded max depth "
            f"{max_depth}. Possible cycle in file maps.",
        )


class NothingToApplyError(SnapvaultError):
    def __init__(self, path):
        super().__init__(
            "snapshot.empty",
            f"Snapshot {path} has no files, outfit or shape data to apply.",
        )


class SnapshotRenameError(SnapvaultError):
    def __init__(self, detail: str):
        super().__init__("snapshot.rename", detail)


class HistoryIndexError(SnapvaultError):
    def __init__(self, kind: str, index: int, size: int):
        super().__init__(
            "history.index",
            f"No {kind} history entry at index {index} (history has {size} entries).",
        )


class MigrationError(SnapvaultError):
    def __init__(self, detail: str):
        super().__init__("migration.failed", detail)
