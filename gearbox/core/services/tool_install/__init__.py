"""
Tool installation service — planning and building catalog tools.

Each module lives in its single-responsibility layer:
domain (pure graph logic) → resolver (plans) → detection (live probes)
→ execution (backends, tracking) → orchestration (the build pool).

Import from the layer modules directly; this package re-exports nothing
so that the pure layers stay importable without the execution stack.
"""
