"""
ToolStatus — the merged view of manifest data and live detection.

Derived on every status query and never persisted.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

StatusSource = Literal["gearbox-managed", "system-detected", "unknown"]


class ToolStatus(BaseModel):
    """Installation status of one tool."""

    name: str
    installed: bool = False
    version: str = ""
    source: StatusSource = "unknown"
    binary_paths: list[str] = Field(default_factory=list)

    in_manifest: bool = False
    live_detected: bool = False
    needs_sync: bool = False

    # Manifest-side details, empty when not tracked
    manifest_version: str = ""
    install_method: str = ""
    installed_at: str = ""
    in_catalog: bool = True
