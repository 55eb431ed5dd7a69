"""
Catalog models — the validated tool and bundle definitions.

Loaded from ``config/tools.json`` (and optionally ``bundles.json``),
this is the canonical truth about which tools gearbox can install.
If a tool isn't declared here, gearbox doesn't manage it.
"""

from __future__ import annotations

import re
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

BuildType = Literal["minimal", "standard", "maximum"]
BUILD_TYPES: tuple[str, ...] = ("minimal", "standard", "maximum")

Category = Literal[
    "core",
    "navigation",
    "development",
    "system",
    "system-monitoring",
    "text-processing",
    "analysis",
    "media",
    "ui",
]

Language = Literal["rust", "go", "python", "c", "shell"]

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{2,30}$")
_DEP_RE = re.compile(r"^[A-Za-z0-9._-]+$")


class LanguageConfig(BaseModel):
    """Toolchain requirements for one implementation language."""

    min_version: str = ""
    build_tool: str = ""


class ToolConfig(BaseModel):
    """A single installable tool.

    ``dependencies`` may name other catalog tools or opaque system
    packages; the planner tells them apart by catalog membership.
    """

    name: str
    binary_name: str
    description: str = ""
    category: Category
    repository: str
    language: Language
    build_types: dict[str, str]
    dependencies: list[str] = Field(default_factory=list)
    test_command: str
    min_version: str = ""
    shell_integration: bool = False

    @field_validator("name", "binary_name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _NAME_RE.match(value):
            raise ValueError(
                "must be 2-30 characters of letters, digits, hyphens or underscores"
            )
        return value

    @field_validator("repository")
    @classmethod
    def _check_repository(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"repository must be an http(s) URL with a host: {value!r}")
        return value

    @field_validator("build_types")
    @classmethod
    def _check_build_types(cls, value: dict[str, str]) -> dict[str, str]:
        if not value:
            raise ValueError("build_types cannot be empty")
        for variant, flag in value.items():
            if variant not in BUILD_TYPES:
                raise ValueError(f"invalid build type: {variant}")
            if not flag:
                raise ValueError(f"build flag for {variant} cannot be empty")
        return value

    @field_validator("dependencies")
    @classmethod
    def _check_dependencies(cls, value: list[str]) -> list[str]:
        for dep in value:
            if not _DEP_RE.match(dep):
                raise ValueError(f"invalid dependency name: {dep!r}")
        return value

    @field_validator("test_command")
    @classmethod
    def _check_test_command(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("test_command cannot be empty")
        return value

    def build_flag(self, variant: str) -> str | None:
        """Resolve the backend flag for a build variant, if the tool has one."""
        return self.build_types.get(variant)


class BundleConfig(BaseModel):
    """A named group of tools, possibly including other bundles."""

    name: str
    description: str = ""
    category: str = ""
    tools: list[str] = Field(default_factory=list)
    includes_bundles: list[str] = Field(default_factory=list)
    system_packages: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class Catalog(BaseModel):
    """Root catalog — every tool and bundle gearbox knows about.

    Tool order is significant: it is the tie-breaker whenever several
    installation orders are valid.
    """

    schema_version: str = "1.0"
    default_build_type: BuildType = "standard"
    tools: list[ToolConfig] = Field(min_length=1)
    categories: dict[str, str] = Field(default_factory=dict)
    languages: dict[str, LanguageConfig] = Field(default_factory=dict)
    bundles: list[BundleConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique(self) -> Catalog:
        names: set[str] = set()
        binaries: set[str] = set()
        for tool in self.tools:
            if tool.name in names:
                raise ValueError(f"duplicate tool name: {tool.name}")
            if tool.binary_name in binaries:
                raise ValueError(f"duplicate binary name: {tool.binary_name}")
            names.add(tool.name)
            binaries.add(tool.binary_name)
        return self

    def get_tool(self, name: str) -> ToolConfig | None:
        """Look up a tool by name."""
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def get_bundle(self, name: str) -> BundleConfig | None:
        """Look up a bundle by name."""
        for bundle in self.bundles:
            if bundle.name == name:
                return bundle
        return None

    def is_bundle(self, name: str) -> bool:
        return self.get_bundle(name) is not None

    def has_tool(self, name: str) -> bool:
        return self.get_tool(name) is not None

    @property
    def tool_names(self) -> list[str]:
        return [t.name for t in self.tools]

    def tool_order(self) -> dict[str, int]:
        """Map each tool name to its position in the catalog."""
        return {tool.name: index for index, tool in enumerate(self.tools)}

    def tools_by_category(self, category: str | None = None) -> dict[str, list[ToolConfig]]:
        """Group tools by category, optionally keeping a single category."""
        grouped: dict[str, list[ToolConfig]] = {}
        for tool in self.tools:
            if category and tool.category != category:
                continue
            grouped.setdefault(tool.category, []).append(tool)
        return grouped
