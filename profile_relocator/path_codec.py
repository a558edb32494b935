#!/usr/bin/env python3
"""
Path codec: symbolic ``{{Token}}/suffix`` paths <-> concrete paths.

Symbolic paths are parsed structurally (one leading token, plain suffix);
nothing here relies on substring replacement, so folders whose concrete
paths prefix one another (AppDataRoaming under UserProfile, StartMenu under
AppDataRoaming) cannot corrupt each other.

Round-trip laws, for a volume root R and user U:
    decode(encode(s, R, U), R, U) == s   for s built from a known token
    encode(decode(p, R, U), R, U) == p   for canonical p under a known folder
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional, Union

from .exceptions import SymbolicPathError, UnresolvableFolder
from .known_folders import DEFAULT_CATALOG, FolderCatalog, KnownFolder
from .utils import canonical_path, join_posix, relative_posix

logger = logging.getLogger(__name__)

_LEADING_TOKEN = re.compile(r"^\{\{([A-Za-z][A-Za-z0-9_]*)\}\}(.*)$", re.DOTALL)
_ANY_TOKEN = re.compile(r"\{\{[A-Za-z][A-Za-z0-9_]*\}\}")


@dataclass(frozen=True)
class SymbolicPath:
    """Parsed symbolic path.

    ``token`` is None for non-portable paths, in which case ``rest`` holds the
    whole (canonical) path.
    """

    token: Optional[str]
    rest: str = ""

    @property
    def is_portable(self) -> bool:
        return self.token is not None

    @property
    def folder(self) -> Optional[KnownFolder]:
        if self.token is None:
            return None
        return KnownFolder.from_token(self.token)

    @classmethod
    def parse(cls, text: str) -> "SymbolicPath":
        """Parse ``text``.

        Raises:
            SymbolicPathError: token not at the start, a second complete
                token, text glued directly to the token, or ``.``/``..``
                components after the token. Stray ``{{`` or ``}}`` in file
                names are plain text.
        """
        match = _LEADING_TOKEN.match(text)
        if match is None:
            if _ANY_TOKEN.search(text):
                raise SymbolicPathError(f"Token must lead the symbolic path: {text}")
            return cls(token=None, rest=canonical_path(text))

        token, remainder = match.group(1), match.group(2)
        if _ANY_TOKEN.search(remainder):
            raise SymbolicPathError(
                f"Symbolic path must contain exactly one token: {text}"
            )
        if remainder and not remainder.startswith("/"):
            raise SymbolicPathError(
                f"Expected '/' after {{{{{token}}}}} in symbolic path: {text}"
            )
        rest = canonical_path(remainder).strip("/")
        if any(part in (".", "..") for part in rest.split("/")):
            raise SymbolicPathError(
                f"Relative components are not allowed in symbolic paths: {text}"
            )
        return cls(token=token, rest=rest)

    def __str__(self) -> str:
        if self.token is None:
            return self.rest
        if not self.rest:
            return f"{{{{{self.token}}}}}"
        return f"{{{{{self.token}}}}}/{self.rest}"


def encode(
    symbolic_path: Union[str, SymbolicPath],
    volume_root: Union[str, os.PathLike],
    user: Optional[str] = None,
    catalog: Optional[FolderCatalog] = None,
) -> str:
    """Resolve a symbolic path to a concrete path on ``volume_root``.

    Non-portable input comes back with separators canonicalized. Unknown
    tokens resolve to ``volume_root/<token>``.

    Raises:
        SymbolicPathError: malformed symbolic path.
        UnresolvableFolder: user-scoped token without ``user``.
    """
    parsed = (
        symbolic_path
        if isinstance(symbolic_path, SymbolicPath)
        else SymbolicPath.parse(symbolic_path)
    )
    if not parsed.is_portable:
        return parsed.rest

    base = (catalog or DEFAULT_CATALOG).resolve(
        parsed.token, canonical_path(volume_root), user
    )
    return join_posix(base, parsed.rest)


def decode(
    concrete_path: Union[str, os.PathLike],
    volume_root: Union[str, os.PathLike],
    user: Optional[str] = None,
    catalog: Optional[FolderCatalog] = None,
) -> str:
    """Tokenize a concrete path, most specific known folder first.

    Without ``user`` only machine-scoped folders are considered. A path
    under no known folder is returned unchanged (canonicalized).
    """
    catalog = catalog or DEFAULT_CATALOG
    path = canonical_path(concrete_path)
    root = canonical_path(volume_root)

    for folder in catalog.by_specificity(include_user_scoped=bool(user)):
        try:
            base = catalog.resolve(folder, root, user)
        except UnresolvableFolder:
            # 不正なユーザー名の場合はユーザー単位のフォルダを全て飛ばす
            continue

        relative = relative_posix(path, base)
        if relative is None:
            continue
        if _ANY_TOKEN.search(relative) or any(
            part in (".", "..") for part in relative.split("/")
        ):
            break
        return str(SymbolicPath(token=folder.token, rest=relative))

    logger.debug("Non-portable path (no known folder matches): %s", path)
    return path


def leading_folder(symbolic_path: str) -> Optional[str]:
    """Token name leading ``symbolic_path``, or None if it has none."""
    try:
        return SymbolicPath.parse(symbolic_path).token
    except SymbolicPathError:
        return None


def is_portable(symbolic_path: str) -> bool:
    return leading_folder(symbolic_path) is not None
