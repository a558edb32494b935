#!/usr/bin/env python3
"""
Known folder catalog tests
"""

import pytest

from profile_relocator.exceptions import UnresolvableFolder
from profile_relocator.known_folders import (
    DEFAULT_CATALOG,
    FolderCatalog,
    FolderScope,
    KnownFolder,
    resolve,
)
from profile_relocator.utils import relative_posix


class TestKnownFolder:
    """Enum lookups"""

    def test_from_token(self):
        assert KnownFolder.from_token("Documents") is KnownFolder.DOCUMENTS
        assert KnownFolder.from_token("ProgramFilesX86") is KnownFolder.PROGRAM_FILES_X86
        assert KnownFolder.from_token("NotAFolder") is None

    def test_scopes(self):
        assert KnownFolder.DESKTOP.scope is FolderScope.USER
        assert KnownFolder.DESKTOP.is_user_scoped
        assert KnownFolder.WINDOWS.scope is FolderScope.MACHINE
        assert not KnownFolder.PROGRAM_DATA.is_user_scoped

    def test_tokens_are_unique(self):
        tokens = KnownFolder.tokens()
        assert len(tokens) == len(set(tokens))
        assert "AppDataRoaming" in tokens


class TestResolve:
    """resolve() against a volume root"""

    def test_user_scoped(self):
        assert resolve("Documents", "/vol", "Ann") == "/vol/Users/Ann/Documents"
        assert (
            resolve(KnownFolder.APP_DATA_ROAMING, "/vol", "Ann")
            == "/vol/Users/Ann/AppData/Roaming"
        )
        assert resolve("UserProfile", "/vol", "Ann") == "/vol/Users/Ann"

    def test_machine_scoped(self):
        assert resolve("ProgramFilesX86", "/vol") == "/vol/Program Files (x86)"
        assert resolve("Windows", "/vol/", "Ann") == "/vol/Windows"
        assert resolve("SystemDrive", "/vol") == "/vol"

    def test_user_scoped_without_user(self):
        with pytest.raises(UnresolvableFolder) as exc_info:
            resolve("Desktop", "/vol")
        assert exc_info.value.folder == "Desktop"

    def test_invalid_user_name(self):
        with pytest.raises(UnresolvableFolder):
            resolve("Desktop", "/vol", "../Bob")

    def test_unknown_identifier_falls_back_to_root(self):
        assert resolve("Custom", "/vol") == "/vol/Custom"

    def test_volume_root_is_explicit(self):
        """Same folder, two roots, no shared state"""
        assert resolve("Music", "/a", "Ann") == "/a/Users/Ann/Music"
        assert resolve("Music", "/b", "Ann") == "/b/Users/Ann/Music"


class TestFolderCatalog:
    """Catalog invariants and overrides"""

    @pytest.mark.parametrize(
        "catalog",
        [
            DEFAULT_CATALOG,
            FolderCatalog({"Documents": "Documentos", "Desktop": "Escritorio"}),
        ],
    )
    def test_user_scoped_folders_stay_inside_profile(self, catalog):
        profile = catalog.resolve(KnownFolder.USER_PROFILE, "/vol", "Ann")
        for folder in KnownFolder:
            if folder.is_user_scoped:
                path = catalog.resolve(folder, "/vol", "Ann")
                assert relative_posix(path, profile) is not None

    def test_override_template(self):
        catalog = FolderCatalog({"Documents": "Documentos"})
        assert catalog.resolve("Documents", "/vol", "Ann") == "/vol/Users/Ann/Documentos"
        assert catalog.resolve("Pictures", "/vol", "Ann") == "/vol/Users/Ann/Pictures"

    def test_override_unknown_folder(self):
        with pytest.raises(ValueError):
            FolderCatalog({"Nope": "x"})

    def test_override_rejects_parent_components(self):
        with pytest.raises(ValueError):
            FolderCatalog({"Documents": "../Other"})

    def test_specificity_order(self):
        order = DEFAULT_CATALOG.by_specificity()
        assert order.index(KnownFolder.START_MENU) < order.index(KnownFolder.APP_DATA_ROAMING)
        assert order.index(KnownFolder.APP_DATA_ROAMING) < order.index(KnownFolder.USER_PROFILE)
        assert order.index(KnownFolder.PUBLIC_DOCUMENTS) < order.index(KnownFolder.PUBLIC)
        assert order.index(KnownFolder.PUBLIC) < order.index(KnownFolder.USERS)
        assert order[-1] is KnownFolder.SYSTEM_DRIVE

    def test_specificity_without_users(self):
        order = DEFAULT_CATALOG.by_specificity(include_user_scoped=False)
        assert all(not folder.is_user_scoped for folder in order)
