"""CLI tool for managing snapvault snapshot directories."""

import functools
import json
from pathlib import Path
from typing import Optional

import typer
import yaml
from jsonschema import validate as json_validate
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError
from typing_extensions import Annotated

from snapvault.config import VaultConfig, load_config
from snapvault.core.history import format_entry_preview
from snapvault.core.migration import LegacyMigrator, detect_format
from snapvault.core.repository import SnapshotRepository
from snapvault.errors import SnapvaultError
from snapvault.models.application import ActorRef
from snapvault.models.enums import HistoryKind, MigrationOutcome
from snapvault.observability.logging import setup_logging
from snapvault.providers.directory import DirectoryCaptureProvider
from snapvault.storage.paths import SnapshotPaths

app = typer.Typer(help="snapvault snapshot management CLI")
history_app = typer.Typer(help="Inspect and edit snapshot history")
config_app = typer.Typer(help="Manage configuration files")

app.add_typer(history_app, name="history")
app.add_typer(config_app, name="config")

_state: dict = {"config_path": None}


@app.callback()
def main(
    config: Annotated[
        Optional[Path], typer.Option(help="Path to the YAML config file")
    ] = None,
):
    """snapvault snapshot management CLI."""
    _state["config_path"] = config
    settings = get_config()
    setup_logging(settings.log_level, settings.log_file)


def get_config() -> VaultConfig:
    return load_config(_state["config_path"])


def get_repository() -> SnapshotRepository:
    return SnapshotRepository.from_config(get_config())


def snapshot_dir(snapshot: str) -> Path:
    """Resolves a snapshot name inside the working directory, or a path."""
    candidate = get_config().working_directory / snapshot
    if candidate.is_dir():
        return candidate
    return Path(snapshot)


def handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SnapvaultError as e:
            typer.echo(f"Error: {e.detail}", err=True)
            raise typer.Exit(code=1)

    return wrapper


@app.command("list")
def snapshot_list():
    """Lists snapshot directories in the working directory."""
    working_dir = get_config().working_directory
    dirs = (
        sorted(p for p in working_dir.iterdir() if SnapshotPaths.of(p).snapshot_file.exists())
        if working_dir.is_dir()
        else []
    )
    if not dirs:
        typer.echo("No snapshots found.")
        return

    repo = get_repository()
    for d in dirs:
        record = repo.try_load(d)
        if record is None:
            fmt = detect_format(SnapshotPaths.of(d).snapshot_file).value
            typer.echo(f"[{fmt}] {d.name}")
            continue
        typer.echo(
            f"[{len(record.file_maps)} version(s)] {d.name}: {record.source_actor} "
            f"(updated {record.last_update:%Y-%m-%d %H:%M})"
        )


@app.command("versions")
@handle_errors
def snapshot_versions(
    snapshot: Annotated[str, typer.Argument(help="Snapshot name or path")],
):
    """Lists the file-map versions of a snapshot, oldest first."""
    versions = get_repository().list_versions(snapshot_dir(snapshot))
    if not versions:
        typer.echo("No versions recorded.")
        return

    for version in versions:
        marker = "*" if version.is_current else " "
        base = version.base_id or "root"
        typer.echo(
            f"{marker} {version.id} <- {base} "
            f"({version.change_count} change(s), depth {version.depth}, "
            f"{version.created_at:%Y-%m-%d %H:%M})"
        )


@app.command("resolve")
@handle_errors
def snapshot_resolve(
    snapshot: Annotated[str, typer.Argument(help="Snapshot name or path")],
    version: Annotated[
        Optional[str], typer.Option(help="Version id. Defaults to the current one")
    ] = None,
):
    """Prints the flattened file map of a version as JSON."""
    file_map = get_repository().resolve(snapshot_dir(snapshot), version)
    typer.echo(json.dumps(file_map, indent=2, sort_keys=True))


@app.command("locate")
@handle_errors
def snapshot_locate(
    snapshot: Annotated[str, typer.Argument(help="Snapshot name or path")],
    version: Annotated[
        Optional[str], typer.Option(help="Version id. Defaults to the current one")
    ] = None,
):
    """Prints the stored blob file for every game path of a version."""
    repo = get_repository()
    path = snapshot_dir(snapshot)
    file_map = repo.resolve(path, version)
    blobs = repo.resolve_blob_paths(path, file_map)
    for game_path in sorted(file_map):
        typer.echo(f"{game_path} -> {blobs.get(game_path, 'MISSING')}")


@app.command("capture-dir")
@handle_errors
def capture_dir(
    source: Annotated[Path, typer.Argument(help="Directory whose files are captured")],
    name: Annotated[str, typer.Argument(help="Snapshot name")],
    outfit: Annotated[
        Optional[Path], typer.Option(help="Text file holding the outfit payload")
    ] = None,
    shape: Annotated[
        Optional[Path], typer.Option(help="Text file holding the shape payload")
    ] = None,
    manipulation: Annotated[
        Optional[Path], typer.Option(help="Text file holding the metadata blob")
    ] = None,
    include_removals: Annotated[
        Optional[bool],
        typer.Option(
            "--include-removals/--keep-missing",
            help="Treat files missing from the source as removed",
        ),
    ] = None,
):
    """Captures a directory tree into a snapshot."""
    if not source.is_dir():
        typer.echo(f"Error: Not a directory: {source}", err=True)
        raise typer.Exit(code=1)

    provider = DirectoryCaptureProvider(source, outfit, shape, manipulation)
    captured = provider.capture(ActorRef(slot_index=0, name=name))
    if captured is None:
        typer.echo(f"Error: Could not capture {source}", err=True)
        raise typer.Exit(code=1)

    config = get_config()
    result = get_repository().update(
        config.working_directory / name,
        captured,
        source=provider,
        include_removals=include_removals,
        source_actor=name,
    )
    status = "Created" if result.is_new_snapshot else "Updated"
    typer.echo(f"{status} snapshot {name} (version: {result.version_id or 'none'})")
    if result.created_version:
        typer.echo("New file map version recorded.")
    for kind in result.appended:
        typer.echo(f"New {kind.value} history entry.")
    if result.missing_sources:
        typer.echo(f"Warning: {len(result.missing_sources)} file(s) could not be stored.", err=True)


@app.command("migrate")
def migrate(
    backup: Annotated[
        Optional[bool], typer.Option("--backup/--no-backup", help="Zip legacy snapshots first")
    ] = None,
):
    """Migrates snapshots written by older releases."""
    config = get_config()
    if not config.is_valid():
        typer.echo("Error: Working directory is not set or does not exist.", err=True)
        raise typer.Exit(code=1)

    migrator = LegacyMigrator(
        SnapshotRepository.from_config(config), config.backup_before_migration
    )
    report = migrator.migrate_all(config.working_directory, backup)
    if report.backup_path:
        typer.echo(f"Backup written to {report.backup_path}")
    typer.echo(report.summary())
    if report.aborted:
        typer.echo("Error: Backup failed. Legacy snapshots were not migrated.", err=True)
        raise typer.Exit(code=1)
    if report.count(MigrationOutcome.FAILED):
        raise typer.Exit(code=1)


@app.command("rename")
@handle_errors
def rename(
    snapshot: Annotated[str, typer.Argument(help="Snapshot name or path")],
    new_name: Annotated[str, typer.Argument(help="New directory name")],
):
    """Renames a snapshot directory."""
    new_path = SnapshotRepository.rename(snapshot_dir(snapshot), new_name)
    typer.echo(f"Snapshot renamed to {new_path.name}")


@history_app.command("list")
@handle_errors
def history_list(
    snapshot: Annotated[str, typer.Argument(help="Snapshot name or path")],
    kind: Annotated[HistoryKind, typer.Argument(help="History kind")],
):
    """Lists history entries, oldest first."""
    entries = get_repository().list_history(snapshot_dir(snapshot), kind)
    if not entries:
        typer.echo(f"No {kind.value} history.")
        return

    for i, entry in enumerate(entries):
        typer.echo(f"{i}: {format_entry_preview(entry)} [{entry.file_map_id or 'no files'}]")


@history_app.command("delete")
@handle_errors
def history_delete(
    snapshot: Annotated[str, typer.Argument(help="Snapshot name or path")],
    kind: Annotated[HistoryKind, typer.Argument(help="History kind")],
    index: Annotated[int, typer.Argument(help="Entry index")],
):
    """Deletes one history entry."""
    removed = get_repository().delete_history_entry(snapshot_dir(snapshot), kind, index)
    typer.echo(f"Deleted: {removed.description}")


@history_app.command("rename")
@handle_errors
def history_rename(
    snapshot: Annotated[str, typer.Argument(help="Snapshot name or path")],
    kind: Annotated[HistoryKind, typer.Argument(help="History kind")],
    index: Annotated[int, typer.Argument(help="Entry index")],
    description: Annotated[str, typer.Argument(help="New description")],
):
    """Changes the description of one history entry."""
    entry = get_repository().rename_history_entry(
        snapshot_dir(snapshot), kind, index, description
    )
    typer.echo(f"Renamed entry {index} to: {entry.description}")


@config_app.command("validate")
def config_validate(
    file_path: Annotated[Path, typer.Argument(help="Path to config YAML file")],
):
    """Validates a config YAML file against the configuration schema."""
    if not file_path.exists():
        typer.echo(f"Error: File not found: {file_path}", err=True)
        raise typer.Exit(code=1)

    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        typer.echo(f"Error parsing YAML: {str(e)}", err=True)
        raise typer.Exit(code=1)

    try:
        json_validate(instance=data, schema=VaultConfig.model_json_schema())
    except JsonSchemaValidationError as e:
        typer.echo(f"Validation Error: {e.message}", err=True)
        if e.path:
            typer.echo(f"Path: {'.'.join(str(p) for p in e.path)}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Config file {file_path} is valid.")


if __name__ == "__main__":
    app()
