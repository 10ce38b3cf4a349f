#!/usr/bin/env python3
r"""Pattern matching for tree-relative paths with glob and regex support.

This module provides the path matching used by classification rules:
- Glob pattern matching (*.jar, **/lib/**/*.jar)
- Regex pattern matching with compiled patterns (``regex:`` prefix)
- Path normalization for consistent matching
- Case-sensitive and case-insensitive modes
- Multiple pattern support with OR logic

Example:
    >>> matcher = PatternMatcher()
    >>> matcher.add_glob_pattern("**/lib/**/*.jar")
    >>> matcher.add_regex_pattern(r"^BOOT-INF/lib/")
    >>> matcher.matches("app/lib/guava-33.0.0-jre.jar")
    True
"""

import fnmatch
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from typing import List, Optional, Pattern, Union

REGEX_PREFIX = "regex:"


class PatternType(Enum):
    """Pattern matching type."""

    GLOB = "glob"  # Shell-style patterns (*.jar, **/*.class)
    REGEX = "regex"  # Regular expressions


@dataclass
class PatternEntry:
    """A single pattern entry with metadata."""

    pattern: str
    pattern_type: PatternType
    compiled: Optional[Union[Pattern, str]] = None
    case_sensitive: bool = True
    name: Optional[str] = None


def glob_to_regex(pattern: str) -> str:
    """Translate a glob with ``**`` segments to an anchored regex.

    ``**/`` matches zero or more leading directories, ``/**`` zero or more
    trailing segments, ``*`` and ``?`` never cross a ``/``.
    """
    doublestar = "\x00DOUBLESTAR\x00"
    star = "\x00STAR\x00"
    question = "\x00QUESTION\x00"

    regex = pattern.replace("**", doublestar).replace("*", star).replace("?", question)
    regex = re.escape(regex)

    regex = regex.replace(re.escape(doublestar) + re.escape("/"), "(?:.*/|)")
    regex = regex.replace(re.escape("/") + re.escape(doublestar), "(?:/.*|)")
    regex = regex.replace(re.escape(doublestar), ".*")
    regex = regex.replace(re.escape(star), "[^/]*")
    regex = regex.replace(re.escape(question), "[^/]")

    return "^" + regex + "$"


class PatternMatcher:
    """Pattern matcher supporting glob and regex patterns.

    Features:
    - Multiple pattern types (glob, regex)
    - Case-sensitive/insensitive matching
    - Path normalization
    - Patterns compiled once when added
    - OR logic (matches any pattern)
    """

    def __init__(self, case_sensitive: bool = True):
        """Initialize pattern matcher.

        Args:
            case_sensitive: Whether patterns are case-sensitive
        """
        self._patterns: List[PatternEntry] = []
        self._case_sensitive = case_sensitive

    def add_pattern(self, pattern: str, name: Optional[str] = None) -> None:
        """Add a pattern, treating a ``regex:`` prefix as a regular expression.

        Args:
            pattern: Glob pattern, or ``regex:<expression>``
            name: Optional name for this pattern
        """
        if pattern.startswith(REGEX_PREFIX):
            self.add_regex_pattern(pattern[len(REGEX_PREFIX):], name)
        else:
            self.add_glob_pattern(pattern, name)

    def add_glob_pattern(
        self, pattern: str, name: Optional[str] = None, case_sensitive: Optional[bool] = None
    ) -> None:
        """Add glob pattern.

        Args:
            pattern: Glob pattern (e.g., "*.jar", "**/lib/**")
            name: Optional name for this pattern
            case_sensitive: Override default case sensitivity
        """
        is_case_sensitive = case_sensitive if case_sensitive is not None else self._case_sensitive
        normalized = self._normalize_pattern(pattern, is_case_sensitive)

        if "**" in normalized:
            compiled: Union[Pattern, str] = re.compile(glob_to_regex(normalized))
        else:
            compiled = normalized

        self._patterns.append(
            PatternEntry(
                pattern=pattern,
                pattern_type=PatternType.GLOB,
                compiled=compiled,
                case_sensitive=is_case_sensitive,
                name=name,
            )
        )

    def add_regex_pattern(
        self, pattern: str, name: Optional[str] = None, case_sensitive: Optional[bool] = None
    ) -> None:
        """Add regex pattern.

        Args:
            pattern: Regular expression pattern (searched, not anchored)
            name: Optional name for this pattern
            case_sensitive: Override default case sensitivity
        """
        is_case_sensitive = case_sensitive if case_sensitive is not None else self._case_sensitive
        flags = 0 if is_case_sensitive else re.IGNORECASE

        self._patterns.append(
            PatternEntry(
                pattern=pattern,
                pattern_type=PatternType.REGEX,
                compiled=re.compile(pattern, flags),
                case_sensitive=is_case_sensitive,
                name=name,
            )
        )

    def _normalize_pattern(self, pattern: str, case_sensitive: bool) -> str:
        """Normalize glob pattern."""
        if not case_sensitive:
            pattern = pattern.lower()

        return pattern.replace("\\", "/").lstrip("/")

    def _normalize_path(self, path: Union[str, PurePath], case_sensitive: bool) -> str:
        """Normalize file path for matching.

        Args:
            path: File path to normalize
            case_sensitive: Whether to preserve case

        Returns:
            Normalized path
        """
        if isinstance(path, PurePath):
            path = path.as_posix()

        path = path.replace("\\", "/").lstrip("/")
        if path.startswith("./"):
            path = path[2:]

        if not case_sensitive:
            path = path.lower()

        return path

    def matches(self, path: Union[str, PurePath]) -> bool:
        """Check if path matches any pattern.

        Args:
            path: File path to check

        Returns:
            True if path matches any pattern
        """
        return any(self._matches_entry(path, entry) for entry in self._patterns)

    def _matches_entry(self, path: Union[str, PurePath], entry: PatternEntry) -> bool:
        """Check if path matches a specific pattern entry."""
        normalized_path = self._normalize_path(path, entry.case_sensitive)

        if entry.pattern_type == PatternType.GLOB:
            if isinstance(entry.compiled, str):
                return fnmatch.fnmatchcase(normalized_path, entry.compiled)
            return bool(entry.compiled.match(normalized_path))

        if entry.pattern_type == PatternType.REGEX:
            return bool(entry.compiled.search(normalized_path))

        return False

    def get_matching_patterns(self, path: Union[str, PurePath]) -> List[str]:
        """Get all pattern names that match the path.

        Args:
            path: File path to check

        Returns:
            List of matching pattern names (or raw patterns when unnamed)
        """
        return [
            entry.name or entry.pattern
            for entry in self._patterns
            if self._matches_entry(path, entry)
        ]

    def clear(self) -> None:
        """Clear all patterns."""
        self._patterns.clear()

    def remove_pattern(self, name: str) -> bool:
        """Remove pattern by name.

        Returns:
            True if pattern was found and removed
        """
        for i, entry in enumerate(self._patterns):
            if entry.name == name:
                self._patterns.pop(i)
                return True
        return False

    def get_patterns(self) -> List[PatternEntry]:
        """Get all registered patterns."""
        return self._patterns.copy()

    def __len__(self) -> int:
        """Return number of patterns."""
        return len(self._patterns)

    def __bool__(self) -> bool:
        """Return True if any patterns are registered."""
        return bool(self._patterns)
