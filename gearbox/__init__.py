"""
Gearbox — install, track, and remove a curated catalog of developer tools.
"""

__version__ = "0.1.0"
