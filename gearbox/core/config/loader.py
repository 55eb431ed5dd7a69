"""
Catalog loader — reads tools.json (and bundles) into domain models.

This is the primary entry point for loading the tool catalog.
It reads JSON or YAML, validates against Pydantic schemas plus the
cross-reference rules below, and returns a typed Catalog.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from gearbox.core.errors import ConfigError
from gearbox.core.models.catalog import BundleConfig, Catalog
from gearbox.core.services.tool_install.domain.dag import find_cycle

logger = logging.getLogger(__name__)

CATALOG_DIR = "config"
CATALOG_FILE = "tools.json"
BUNDLE_FILES = ("bundles.json", "bundles.yml", "bundles.yaml")
SYSTEM_CATALOG = Path("/etc/gearbox") / CATALOG_FILE

_SCHEMA_VERSION_RE = re.compile(r"^\d+\.\d+(\.\d+)?$")


def find_catalog_file(
    start_dir: Path | None = None,
    home: Path | None = None,
) -> Path | None:
    """Search for config/tools.json starting from a directory, walking up.

    Falls back to ``<home>/tools.json`` and then the system-wide
    ``/etc/gearbox/tools.json``.

    Args:
        start_dir: Directory to start searching from (default: cwd).
        home: Gearbox state directory (``~/.gearbox``).

    Returns:
        Path to the catalog, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CATALOG_DIR / CATALOG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    if home is not None and (home / CATALOG_FILE).is_file():
        return home / CATALOG_FILE
    if SYSTEM_CATALOG.is_file():
        return SYSTEM_CATALOG
    return None


def _read_mapping(path: Path) -> dict:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", cause=e) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid JSON/YAML in {path}: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")
    return data


def load_bundles(catalog_file: Path) -> list[BundleConfig]:
    """Load the optional sibling bundle file.

    An absent file means "no bundles".
    """
    for name in BUNDLE_FILES:
        path = catalog_file.parent / name
        if not path.is_file():
            continue
        logger.debug("Loading bundles from %s", path)
        data = _read_mapping(path)
        try:
            return [BundleConfig.model_validate(b) for b in data.get("bundles") or []]
        except ValidationError as e:
            raise ConfigError(f"Invalid bundle configuration in {path}: {e}", cause=e) from e
    return []


def load_catalog(path: Path | None = None, *, home: Path | None = None) -> Catalog:
    """Load and validate the tool catalog.

    Args:
        path: Explicit path to tools.json. If None, searches for one.
        home: Gearbox state directory, consulted during the search.

    Returns:
        Validated Catalog model.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_catalog_file(home=home)

    if path is None:
        raise ConfigError(
            f"No {CATALOG_DIR}/{CATALOG_FILE} found. "
            "Run from the gearbox repository, or specify --catalog."
        )

    if not path.is_file():
        raise ConfigError(f"Catalog file not found: {path}")

    logger.debug("Loading tool catalog from %s", path)
    data = _read_mapping(path)

    if "bundles" not in data:
        data["bundles"] = [b.model_dump() for b in load_bundles(path)]

    try:
        catalog = Catalog.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid tool catalog {path}: {e}", cause=e) from e

    errors = validate_catalog(catalog)
    if errors:
        raise ConfigError(f"Invalid tool catalog {path}: " + "; ".join(errors))

    logger.info(
        "Loaded catalog with %d tools and %d bundles",
        len(catalog.tools), len(catalog.bundles),
    )
    return catalog


def validate_catalog(catalog: Catalog) -> list[str]:
    """Cross-reference checks that a single model field can't express.

    Checks for:
    - Schema version format
    - Duplicate bundle names, or bundles named like tools
    - Bundle references to unknown tools or bundles
    - Bundle include cycles

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []

    if not _SCHEMA_VERSION_RE.match(catalog.schema_version):
        errors.append(f"Invalid schema version: {catalog.schema_version}")

    tool_names = set(catalog.tool_names)
    bundle_names: set[str] = set()
    for bundle in catalog.bundles:
        if bundle.name in bundle_names:
            errors.append(f"Duplicate bundle name: {bundle.name}")
        if bundle.name in tool_names:
            errors.append(f"Bundle '{bundle.name}' has the same name as a tool")
        bundle_names.add(bundle.name)

    for bundle in catalog.bundles:
        for tool in bundle.tools:
            if tool not in tool_names:
                errors.append(f"Bundle '{bundle.name}' references unknown tool '{tool}'")
        for included in bundle.includes_bundles:
            if included not in bundle_names:
                errors.append(
                    f"Bundle '{bundle.name}' includes unknown bundle '{included}'"
                )

    cycle = find_cycle({b.name: b.includes_bundles for b in catalog.bundles})
    if cycle:
        errors.append("Circular bundle reference: " + " -> ".join(cycle))

    return errors
