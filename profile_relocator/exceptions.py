#!/usr/bin/env python3
"""
Error taxonomy for profile-relocator.

Convention:
- Structural / precondition errors (missing manifest, broken staging layout,
  insufficient space) are raised and abort a run before anything is copied.
- Per-record conditions (missing source, existing destination, declined
  confirmation) are never raised; they are reported as ``RestoreStatus``
  values on the outcome.
"""

from typing import Optional


class RelocatorError(Exception):
    """Base class for all profile-relocator errors."""


class UnresolvableFolder(RelocatorError):
    """A known folder cannot be resolved to a concrete path.

    Raised for user-scoped folders requested without a user name. The caller
    decides whether this aborts or skips.
    """

    def __init__(self, folder: str, message: Optional[str] = None):
        self.folder = folder
        super().__init__(message or f"User is required to resolve {{{{{folder}}}}}")


class SymbolicPathError(RelocatorError, ValueError):
    """A symbolic path does not follow the ``{{Token}}/suffix`` grammar."""


class ManifestMissing(RelocatorError):
    """manifest.json could not be found."""


class ManifestMalformed(RelocatorError):
    """manifest.json exists but does not hold a valid record array."""


class StagingLayoutInvalid(RelocatorError):
    """A staged root lacks the ``manifest.json`` + ``files/`` layout."""


class IntegrityMismatch(RelocatorError):
    """Staged files do not match the manifest."""

    def __init__(self, report, message: Optional[str] = None):
        self.report = report
        problems = len(report.problems) if report is not None else 0
        super().__init__(
            message or f"Manifest validation found {problems} mismatched record(s)"
        )


class InsufficientSpace(RelocatorError):
    """The destination volume has less free space than the restore needs."""

    def __init__(self, required: int, available: int, path: str = ""):
        self.required = required
        self.available = available
        self.path = path
        super().__init__(
            f"Insufficient space on {path or 'destination'}: "
            f"required {required} bytes, available {available} bytes"
        )
