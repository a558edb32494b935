#!/usr/bin/env python3
"""
Known-folder catalog.

Maps symbolic folder identifiers ({{Documents}}, {{ProgramFiles}}, ...) to
path templates under a volume root. User-scoped templates are relative to
``Users/<user>`` so every user-scoped folder stays inside that user's
profile, including localized overrides.
"""

from enum import Enum
from typing import Dict, List, Optional, Union

from .exceptions import UnresolvableFolder
from .utils import join_posix, path_parts

USERS_DIR = "Users"


class FolderScope(Enum):
    """Known folder scope."""

    USER = "user"
    MACHINE = "machine"


class KnownFolder(Enum):
    """Closed set of known folder tokens.

    Declaration order breaks precedence ties, so user-scoped folders are
    listed first.
    """

    USER_PROFILE = ("UserProfile", FolderScope.USER, "")
    DESKTOP = ("Desktop", FolderScope.USER, "Desktop")
    DOCUMENTS = ("Documents", FolderScope.USER, "Documents")
    DOWNLOADS = ("Downloads", FolderScope.USER, "Downloads")
    PICTURES = ("Pictures", FolderScope.USER, "Pictures")
    VIDEOS = ("Videos", FolderScope.USER, "Videos")
    MUSIC = ("Music", FolderScope.USER, "Music")
    FAVORITES = ("Favorites", FolderScope.USER, "Favorites")
    CONTACTS = ("Contacts", FolderScope.USER, "Contacts")
    LINKS = ("Links", FolderScope.USER, "Links")
    SAVED_GAMES = ("SavedGames", FolderScope.USER, "Saved Games")
    SEARCHES = ("Searches", FolderScope.USER, "Searches")
    APP_DATA_ROAMING = ("AppDataRoaming", FolderScope.USER, "AppData/Roaming")
    APP_DATA_LOCAL = ("AppDataLocal", FolderScope.USER, "AppData/Local")
    APP_DATA_LOCAL_LOW = ("AppDataLocalLow", FolderScope.USER, "AppData/LocalLow")
    START_MENU = (
        "StartMenu",
        FolderScope.USER,
        "AppData/Roaming/Microsoft/Windows/Start Menu",
    )

    SYSTEM_DRIVE = ("SystemDrive", FolderScope.MACHINE, "")
    WINDOWS = ("Windows", FolderScope.MACHINE, "Windows")
    PROGRAM_FILES = ("ProgramFiles", FolderScope.MACHINE, "Program Files")
    PROGRAM_FILES_X86 = ("ProgramFilesX86", FolderScope.MACHINE, "Program Files (x86)")
    PROGRAM_DATA = ("ProgramData", FolderScope.MACHINE, "ProgramData")
    USERS = ("Users", FolderScope.MACHINE, USERS_DIR)
    PUBLIC = ("Public", FolderScope.MACHINE, "Users/Public")
    PUBLIC_DOCUMENTS = ("PublicDocuments", FolderScope.MACHINE, "Users/Public/Documents")

    def __init__(self, token: str, scope: FolderScope, template: str):
        self.token = token
        self.scope = scope
        self.template = template

    @property
    def is_user_scoped(self) -> bool:
        return self.scope is FolderScope.USER

    @classmethod
    def from_token(cls, token: str) -> Optional["KnownFolder"]:
        """Look up a folder by its token name (case-sensitive)."""
        for folder in cls:
            if folder.token == token:
                return folder
        return None

    @classmethod
    def tokens(cls) -> List[str]:
        return [folder.token for folder in cls]


def _clean_template(template: str) -> str:
    parts = path_parts(template.replace("\\", "/"))
    if any(part in (".", "..") for part in parts):
        raise ValueError(f"Folder template must not contain '.' or '..': {template}")
    return "/".join(parts)


class FolderCatalog:
    """Known folder templates, optionally overridden for localized layouts."""

    def __init__(self, overrides: Optional[Dict[str, str]] = None):
        self._templates: Dict[KnownFolder, str] = {
            folder: folder.template for folder in KnownFolder
        }
        for token, template in (overrides or {}).items():
            folder = KnownFolder.from_token(token)
            if folder is None:
                raise ValueError(f"Unknown known folder in overrides: {token}")
            self._templates[folder] = _clean_template(template)

        # sorted() is stable: equal depths keep declaration order
        self._precedence = sorted(KnownFolder, key=lambda f: -self.depth(f))

    def template(self, folder: KnownFolder) -> str:
        return self._templates[folder]

    def depth(self, folder: KnownFolder) -> int:
        """Number of path components below the volume root."""
        depth = len(path_parts(self._templates[folder]))
        if folder.is_user_scoped:
            depth += 2  # Users/<user>
        return depth

    def by_specificity(self, include_user_scoped: bool = True) -> List[KnownFolder]:
        """Folders ordered most specific (deepest) first."""
        return [
            folder
            for folder in self._precedence
            if include_user_scoped or not folder.is_user_scoped
        ]

    def resolve(
        self,
        folder_id: Union[KnownFolder, str],
        volume_root: str,
        user: Optional[str] = None,
    ) -> str:
        """Resolve a folder identifier to a concrete path.

        Unknown string identifiers fall back to ``volume_root/folder_id``.

        Raises:
            UnresolvableFolder: user-scoped folder without a (valid) user.
        """
        folder = folder_id
        if not isinstance(folder_id, KnownFolder):
            folder = KnownFolder.from_token(folder_id)
            if folder is None:
                return join_posix(volume_root, folder_id)

        template = self._templates[folder]
        if not folder.is_user_scoped:
            return join_posix(volume_root, template)

        if not user:
            raise UnresolvableFolder(folder.token)
        if "/" in user or "\\" in user or user in (".", ".."):
            raise UnresolvableFolder(
                folder.token, f"Invalid user name for {{{{{folder.token}}}}}: {user!r}"
            )
        return join_posix(volume_root, USERS_DIR, user, template)


DEFAULT_CATALOG = FolderCatalog()


def resolve(
    folder_id: Union[KnownFolder, str],
    volume_root: str,
    user: Optional[str] = None,
    catalog: Optional[FolderCatalog] = None,
) -> str:
    """Resolve ``folder_id`` against ``volume_root`` using ``catalog``."""
    return (catalog or DEFAULT_CATALOG).resolve(folder_id, volume_root, user)
