"""JSON persistence helpers for snapshot records.

Writes go to a temporary sibling file that is then moved over the target,
so an interrupted write never leaves a truncated file behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from snapvault.errors import SnapshotLoadError
from snapvault.observability.logging import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def write_bytes_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def save_model(model: BaseModel, path: Path) -> None:
    """Serializes a model to indented JSON at the given path."""
    payload = model.model_dump_json(indent=2)
    write_bytes_atomic(path, payload.encode("utf-8"))


def load_model(model_type: type[ModelT], path: Path) -> ModelT:
    """Loads and validates a model from a JSON file.

    Raises:
        SnapshotLoadError: If the file is missing, unreadable or invalid.
    """
    if not path.exists():
        raise SnapshotLoadError(path, "file not found")

    try:
        return model_type.model_validate_json(path.read_bytes())
    except (OSError, ValidationError, ValueError) as e:
        raise SnapshotLoadError(path, str(e)) from e


def try_load_model(model_type: type[ModelT], path: Path) -> Optional[ModelT]:
    """Loads a model, returning None when the file is absent or invalid."""
    if not path.exists():
        return None

    try:
        return load_model(model_type, path)
    except SnapshotLoadError as e:
        logger.error(e.detail)
        return None


def read_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return data
