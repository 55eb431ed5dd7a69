"""
Domain models — Pydantic types for gearbox.

All models are re-exported here for convenient access:

    from gearbox.core.models import Catalog, ToolConfig, Manifest, ToolStatus
"""

from gearbox.core.models.catalog import (
    BUILD_TYPES,
    BuildType,
    BundleConfig,
    Catalog,
    LanguageConfig,
    ToolConfig,
)
from gearbox.core.models.manifest import (
    SCHEMA_VERSION,
    DependencyRecord,
    InstallationRecord,
    InstallMethod,
    Manifest,
)
from gearbox.core.models.options import InstallationOptions
from gearbox.core.models.status import StatusSource, ToolStatus

__all__ = [
    # catalog.py
    "BUILD_TYPES",
    "BuildType",
    "BundleConfig",
    "Catalog",
    # options.py
    "InstallationOptions",
    # manifest.py
    "DependencyRecord",
    "InstallationRecord",
    "InstallMethod",
    "LanguageConfig",
    "Manifest",
    "SCHEMA_VERSION",
    # status.py
    "StatusSource",
    "ToolConfig",
    "ToolStatus",
]
