"""Configuration for snapvault.

Settings are read from an optional YAML file and can be overridden with
environment variables:

* ``SNAPVAULT_CONFIG``: path of the YAML file.
* ``SNAPVAULT_WORKING_DIRECTORY``: directory holding snapshot directories.
* ``LOG_LEVEL``: log level name.
"""

import os
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from snapvault.core.file_maps import DEFAULT_MAX_CHAIN_DEPTH

DEFAULT_CONFIG_PATH = "snapvault.yaml"
CAPTURE_MODE_LOCAL_SLOT = 201


class VaultConfig(BaseModel):
    """Static configuration for the storage engine and the live registry."""

    model_config = ConfigDict(extra="forbid")

    working_directory: Path = Field(
        default=Path("./snapshots"),
        description="Directory holding one sub-directory per snapshot.",
    )
    disable_automatic_revert: bool = Field(
        default=False,
        description="Keep the local actor's snapshot applied on automatic revert-all.",
    )
    capture_mode_slot: int = Field(
        default=CAPTURE_MODE_LOCAL_SLOT,
        ge=0,
        description="Slot the local actor occupies while in capture mode.",
    )
    max_chain_depth: int = Field(
        default=DEFAULT_MAX_CHAIN_DEPTH,
        ge=1,
        description="Maximum file-map base hops before the chain is treated as corrupt.",
    )
    payload_tolerance: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Absolute numeric tolerance when comparing JSON history payloads.",
    )
    include_removals: bool = Field(
        default=False,
        description="Treat paths missing from a capture as removed.",
    )
    blob_workers: int = Field(
        default=4, ge=1, description="Worker threads used to write blobs."
    )
    backup_before_migration: bool = Field(
        default=True,
        description="Zip legacy snapshot directories before migrating them.",
    )
    log_level: str = Field(default="INFO", description="Log level name.")
    log_file: Optional[Path] = Field(
        default=None, description="Optional JSONL file that also receives log records."
    )

    def is_valid(self) -> bool:
        return self.working_directory.is_dir()


def load_config(path: Optional[Union[str, Path]] = None) -> VaultConfig:
    """Loads the configuration.

    Args:
        path: YAML file to read. Defaults to SNAPVAULT_CONFIG, then
            ``snapvault.yaml`` in the current directory. A missing file
            yields the defaults.

    Returns:
        The validated configuration with environment overrides applied.
    """
    config_path = Path(path or os.environ.get("SNAPVAULT_CONFIG", DEFAULT_CONFIG_PATH))

    data: dict = {}
    if config_path.exists():
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping.")

    working_dir = os.environ.get("SNAPVAULT_WORKING_DIRECTORY")
    if working_dir:
        data["working_directory"] = working_dir

    log_level = os.environ.get("LOG_LEVEL")
    if log_level:
        data["log_level"] = log_level.upper()

    return VaultConfig.model_validate(data)
