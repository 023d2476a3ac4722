"""Hatch metadata hook: take the package version from the environment or the VERSION file."""

import os
from pathlib import Path

from hatchling.metadata.plugin.interface import MetadataHookInterface

VERSION_ENV_VAR = "GRAPHITI_MEMORY_VERSION"


def read_version(root: Path | None = None) -> str:
    """Return the project version: env var first, then the VERSION file, else 0.0.0."""
    root = root or Path(__file__).resolve().parent
    env_version = os.environ.get(VERSION_ENV_VAR, "").strip()
    if env_version:
        return env_version
    version_file = root / "VERSION"
    if version_file.is_file():
        return version_file.read_text().strip() or "0.0.0"
    return "0.0.0"


class VersionMetadataHook(MetadataHookInterface):
    """Fill ``project.version`` (declared dynamic in pyproject.toml)."""

    def update(self, metadata: dict) -> None:
        metadata["version"] = read_version(Path(self.root))
