import json
from pathlib import Path

from snapvault.config import VaultConfig
from snapvault.models.snapshot import FileMapVersion, History, HistoryEntry, SnapshotRecord


OUTPUT_DIR = Path("docs/schemas")


MODELS = {
    "snapshot.schema.json": SnapshotRecord,
    "file_map_version.schema.json": FileMapVersion,
    "history.schema.json": History,
    "history_entry.schema.json": HistoryEntry,
    "config.schema.json": VaultConfig,
}


def main(output_dir: Path = OUTPUT_DIR) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    for filename, model in MODELS.items():
        schema = model.model_json_schema()
        (output_dir / filename).write_text(
            json.dumps(schema, indent=2),
            encoding="utf-8",
        )


if __name__ == "__main__":
    main()
