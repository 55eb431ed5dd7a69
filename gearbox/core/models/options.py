"""
Installation options — one run's knobs, as chosen on the command line.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from gearbox.core.models.catalog import BuildType


class InstallationOptions(BaseModel):
    """How to build the tools in a plan.

    ``jobs = 0`` means auto-detect from CPU count and available memory.
    """

    build_type: BuildType = "standard"
    jobs: int = Field(default=0, ge=0)
    skip_common_deps: bool = False
    run_tests: bool = False
    skip_shell_integration: bool = False
    force: bool = False
    no_cache: bool = False
    dry_run: bool = False
