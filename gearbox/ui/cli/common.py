"""
Shared plumbing for CLI commands: settings, catalog and store lookup.

Every command reaches the engine through these helpers so the
settings built once in the root group are the only configuration
source.
"""

from __future__ import annotations

import functools
import sys
from collections.abc import Callable
from typing import Any

import click

from gearbox.core.config.settings import GearboxSettings
from gearbox.core.errors import GearboxError
from gearbox.core.models.catalog import Catalog
from gearbox.core.persistence.audit import AuditWriter
from gearbox.core.persistence.manifest_store import ManifestStore

STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red"}


def get_settings(ctx: click.Context) -> GearboxSettings:
    return ctx.obj["settings"]


def get_catalog(ctx: click.Context) -> Catalog:
    """Load the catalog once per invocation."""
    if ctx.obj.get("catalog") is None:
        from gearbox.core.config.loader import find_catalog_file, load_catalog

        settings = get_settings(ctx)
        path = settings.catalog_path or find_catalog_file(home=settings.home)
        ctx.obj["catalog"] = load_catalog(path, home=settings.home)
        ctx.obj["catalog_file"] = path
    return ctx.obj["catalog"]


def get_store(ctx: click.Context) -> ManifestStore:
    settings = get_settings(ctx)
    return ManifestStore(settings.manifest_path, settings.backups_dir)


def get_audit(ctx: click.Context) -> AuditWriter:
    return AuditWriter(get_settings(ctx).audit_path)


def handle_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Report a GearboxError in red and exit 1 instead of a traceback."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except GearboxError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(1)

    return wrapper
