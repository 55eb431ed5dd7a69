"""
L3 Detection — Host CPU and memory probes.

Used to size the build pool when ``jobs = 0``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

MEMINFO = Path("/proc/meminfo")

# Assumed free memory when /proc/meminfo is unavailable (macOS, containers)
FALLBACK_AVAILABLE_MB = 4096
# Memory left for the rest of the system while building
RESERVED_MB = 1024
MAX_JOBS = 8

# Peak memory per concurrent build, by build variant
BUILD_MEMORY_MB: dict[str, int] = {
    "minimal": 200,
    "standard": 500,
    "maximum": 1000,
}


def read_available_memory_mb(meminfo: Path = MEMINFO) -> int:
    """Read available RAM in MB from /proc/meminfo."""
    try:
        with meminfo.open() as f:
            for line in f:
                if line.startswith("MemAvailable:"):
                    return int(line.split()[1]) // 1024
    except (OSError, ValueError, IndexError):
        pass
    return FALLBACK_AVAILABLE_MB


def auto_jobs(
    build_type: str = "standard",
    *,
    cpu_count: int | None = None,
    available_mb: int | None = None,
) -> int:
    """How many builds to run at once on this host.

    ``min(cpu_count, memory-limited jobs)``, clamped to ``1..8``.
    """
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    available = available_mb if available_mb is not None else read_available_memory_mb()

    per_build = BUILD_MEMORY_MB.get(build_type, BUILD_MEMORY_MB["standard"])
    by_memory = max(available - RESERVED_MB, 0) // per_build

    jobs = max(1, min(cpus, by_memory, MAX_JOBS))
    logger.debug(
        "Auto jobs: %d (cpus=%d, available=%dMB, per build=%dMB)",
        jobs, cpus, available, per_build,
    )
    return jobs


def resolve_jobs(jobs: int, build_type: str = "standard") -> int:
    """Explicit job count, or the auto-detected one for ``0``."""
    return jobs if jobs > 0 else auto_jobs(build_type)
