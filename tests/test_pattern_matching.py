#!/usr/bin/env python3
"""
Pattern Matching Tests for Relocator

Tests include/exclude glob matching used by file selection:
- Basic glob patterns
- Globstar patterns (**)
- Pattern lists (OR evaluation)
"""

from pathlib import Path

from profile_relocator.utils import matches_any_pattern, matches_glob_pattern


class TestMatchesGlobPattern:
    """Basic pattern matching tests"""

    def test_exact_filename(self):
        """Exact filename match"""
        assert matches_glob_pattern(Path("report.pdf"), "report.pdf")
        assert not matches_glob_pattern(Path("report.pdf"), "notes.txt")

    def test_wildcard_extension(self):
        """Wildcard extension match (*.pdf)"""
        assert matches_glob_pattern(Path("report.pdf"), "*.pdf")
        assert matches_glob_pattern(Path("invoice.pdf"), "*.pdf")
        assert not matches_glob_pattern(Path("photo.jpg"), "*.pdf")

    def test_filename_match_in_subdirectory(self):
        """Patterns without / also match the file name of nested paths"""
        assert matches_glob_pattern(Path("projects/2024/report.pdf"), "*.pdf")
        assert matches_glob_pattern(Path("Music/desktop.ini"), "desktop.ini")

    def test_question_mark_wildcard(self):
        """Single character wildcard (?)"""
        assert matches_glob_pattern(Path("IMG1.jpg"), "IMG?.jpg")
        assert not matches_glob_pattern(Path("IMG12.jpg"), "IMG?.jpg")

    def test_path_pattern(self):
        """Patterns with / match against the whole relative path"""
        assert matches_glob_pattern(Path("projects/a/report.pdf"), "projects/*/report.pdf")
        assert not matches_glob_pattern(Path("archive/a/report.pdf"), "projects/*/report.pdf")


class TestGlobstarPattern:
    """Globstar (**) pattern tests"""

    def test_globstar_any_depth(self):
        """**/ matches zero or more directories"""
        assert matches_glob_pattern(Path("Users/Ann/Music/desktop.ini"), "**/desktop.ini")
        assert matches_glob_pattern(Path("desktop.ini"), "**/desktop.ini")

    def test_globstar_does_not_cross_into_name(self):
        """* inside a globstar pattern stays within one component"""
        assert matches_glob_pattern(Path("Documents/a.tmp"), "**/*.tmp")
        assert not matches_glob_pattern(Path("Documents/a.tmp/keep.txt"), "**/*.tmp")

    def test_globstar_directory_tree(self):
        """dir/** matches everything below dir"""
        assert matches_glob_pattern(
            Path("Users/Ann/AppData/Local/Temp/x/y.log"), "Users/*/AppData/Local/Temp/**"
        )
        assert not matches_glob_pattern(
            Path("Users/Ann/AppData/Roaming/y.log"), "Users/*/AppData/Local/Temp/**"
        )

    def test_special_characters_are_literal(self):
        """Regex metacharacters in patterns are not interpreted"""
        assert matches_glob_pattern(Path("Program Files (x86)/app/a.dll"), "Program Files (x86)/**")
        assert not matches_glob_pattern(Path("Program Files x86/app/a.dll"), "Program Files (x86)/**")


class TestMatchesAnyPattern:
    """Pattern list evaluation"""

    def test_any_pattern_matches(self):
        patterns = ["**/Thumbs.db", "*.tmp"]
        assert matches_any_pattern(Path("Pictures/Thumbs.db"), patterns)
        assert matches_any_pattern(Path("Desktop/x.tmp"), patterns)
        assert not matches_any_pattern(Path("Desktop/x.txt"), patterns)

    def test_empty_pattern_list(self):
        assert not matches_any_pattern(Path("Desktop/x.txt"), [])
