"""Centralized path management for receiptwright.

This module provides a single source of truth for on-disk locations used by
the local object store and configuration loader.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _get_project_root() -> Path:
    """Determine the project root directory."""
    override = os.environ.get("RECEIPTWRIGHT_HOME")
    if override:
        return Path(override).expanduser()
    return Path.cwd()


@dataclass
class ProjectPaths:
    """Container for all project-related paths.

    All paths are computed relative to the project root, which defaults to the
    current working directory and can be pinned with ``RECEIPTWRIGHT_HOME``.
    """

    root: Path = field(default_factory=_get_project_root)

    def __post_init__(self) -> None:
        self.root = self.root.resolve()

    # --- Configuration paths ---
    @property
    def config(self) -> Path:
        """Configuration directory (config/)."""
        return self.root / "config"

    @property
    def settings_file(self) -> Path:
        """Service settings TOML file."""
        return self.config / "receiptwright.toml"

    # --- Storage paths ---
    @property
    def objects(self) -> Path:
        """Root of the local object store (one directory per container)."""
        return self.root / "objects"


_paths: ProjectPaths | None = None


def get_paths() -> ProjectPaths:
    """Get the singleton ProjectPaths instance.

    Returns:
        The global ProjectPaths instance.
    """
    global _paths
    if _paths is None:
        _paths = ProjectPaths()
    return _paths


def reset_paths() -> None:
    """Forget the cached ProjectPaths so the next call re-reads the environment."""
    global _paths
    _paths = None
