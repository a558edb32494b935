#!/usr/bin/env python3
"""
Version information for profile-relocator
"""

__version__ = "0.3.0"


def get_version() -> str:
    """Version recorded in backup_meta.json and shown by ``relocate --version``."""
    return __version__
