"""
GearboxSettings — the single explicit configuration object.

Built once by the CLI (flags > environment > defaults) and handed to
every component constructor. Nothing below the CLI reads ``os.environ``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel

DEFAULT_HOME = "~/.gearbox"
DEFAULT_BUILD_DIR = "~/tools/build"

MANIFEST_FILE = "manifest.json"
BACKUPS_DIR = "backups"
AUDIT_FILE = "audit.ndjson"

# Environment variables consulted by from_env()
ENV_HOME = "GEARBOX_HOME"
ENV_CATALOG = "GEARBOX_CATALOG"
ENV_SCRIPTS_DIR = "GEARBOX_SCRIPTS_DIR"
ENV_BUILD_DIR = "GEARBOX_BUILD_DIR"
ENV_LOG_LEVEL = "GEARBOX_LOG_LEVEL"
ENV_LOG_FILE = "GEARBOX_LOG_FILE"
ENV_LOG_FILE_LEVEL = "GEARBOX_LOG_FILE_LEVEL"


class GearboxSettings(BaseModel):
    """Filesystem locations and logging preferences for one process."""

    home: Path = Path(DEFAULT_HOME).expanduser()
    catalog_path: Path | None = None
    scripts_dir: Path | None = None
    build_dir: Path = Path(DEFAULT_BUILD_DIR).expanduser()

    log_level: str = "WARNING"
    log_file: str | None = None
    log_file_level: str | None = None

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: object,
    ) -> GearboxSettings:
        """Resolve settings from the environment, then apply overrides.

        Overrides whose value is ``None`` are ignored, so CLI options
        that were not given fall through to the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        if env.get(ENV_HOME):
            values["home"] = Path(env[ENV_HOME]).expanduser()
        if env.get(ENV_CATALOG):
            values["catalog_path"] = Path(env[ENV_CATALOG]).expanduser()
        if env.get(ENV_SCRIPTS_DIR):
            values["scripts_dir"] = Path(env[ENV_SCRIPTS_DIR]).expanduser()
        if env.get(ENV_BUILD_DIR):
            values["build_dir"] = Path(env[ENV_BUILD_DIR]).expanduser()
        if env.get(ENV_LOG_LEVEL):
            values["log_level"] = env[ENV_LOG_LEVEL]
        if env.get(ENV_LOG_FILE):
            values["log_file"] = env[ENV_LOG_FILE]
        if env.get(ENV_LOG_FILE_LEVEL):
            values["log_file_level"] = env[ENV_LOG_FILE_LEVEL]

        for key, value in overrides.items():
            if value is not None:
                values[key] = value

        return cls.model_validate(values)

    @property
    def manifest_path(self) -> Path:
        return self.home / MANIFEST_FILE

    @property
    def backups_dir(self) -> Path:
        return self.home / BACKUPS_DIR

    @property
    def audit_path(self) -> Path:
        return self.home / AUDIT_FILE

    def resolve_scripts_dir(self, catalog_file: Path | None = None) -> Path:
        """Where the per-tool ``install-<tool>.sh`` scripts live.

        Defaults to ``scripts/`` next to the ``config/`` directory that
        holds the catalog.
        """
        if self.scripts_dir is not None:
            return self.scripts_dir
        catalog_file = catalog_file or self.catalog_path
        if catalog_file is not None:
            return catalog_file.resolve().parent.parent / "scripts"
        return Path.cwd() / "scripts"
