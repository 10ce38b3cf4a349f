"""
LayerPlanner Layers: File Classifier.

This module assigns every file of a build output tree to a volatility class.
Rules are evaluated by descending priority and the first match wins:

    SNAPSHOT_DEPENDENCY  (400)  dependency location + unstable version marker
    FIXED_DEPENDENCY     (300)  dependency location
    RESOURCE             (200)  resource directory convention
    APPLICATION_CODE     (100)  compiled classes
    default class               APPLICATION_CODE unless disabled

User rules from configuration sit above the built-ins (priority 500 unless
given). A resource file inside a dependency location is a dependency.

Example structure:
    BOOT-INF/lib/spring-core-6.1.2.jar         -> FIXED_DEPENDENCY
    BOOT-INF/lib/shared-model-1.4-SNAPSHOT.jar -> SNAPSHOT_DEPENDENCY
    BOOT-INF/classes/static/index.html         -> RESOURCE
    BOOT-INF/classes/com/acme/App.class        -> APPLICATION_CODE
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from layerplanner.core.constants import (
    DEFAULT_APPLICATION_PATTERNS,
    DEFAULT_DEPENDENCY_PATTERNS,
    DEFAULT_RESOURCE_PATTERNS,
    DEFAULT_SNAPSHOT_MARKERS,
    ConfigKey,
    Pattern,
    VolatilityClass,
)
from layerplanner.core.errors import ClassificationError
from layerplanner.infrastructure.logger import get_logger
from layerplanner.layers.base import FileEntry, canonical_order, relative_posix_path
from layerplanner.rules.engine import Condition, Rule, RuleEngine, RuleOperator

# artifact-1.2.3[-qualifier].jar; the version starts at the first "-<digit>"
_ARCHIVE_RE = re.compile(
    r"^(?P<artifact>.+?)-(?P<version>\d[^/]*?)\.(?P<ext>jar|war|ear|aar|zip)$",
    re.IGNORECASE,
)

USER_RULE_PRIORITY = 500


class RulePriority:
    """Priorities of the built-in classification rules."""

    SNAPSHOT_DEPENDENCY = 400
    FIXED_DEPENDENCY = 300
    RESOURCE = 200
    APPLICATION_CODE = 100


def parse_archive_version(filename: str) -> Optional[str]:
    """
    Extract the version string from a dependency archive filename.

    Args:
        filename: Archive filename (e.g., "guava-33.0.0-jre.jar")

    Returns:
        Version string (e.g., "33.0.0-jre"), or None if the name carries none
    """
    match = _ARCHIVE_RE.match(filename)
    if not match:
        return None
    return match.group("version")


def file_attributes(path: str, size: int) -> Dict[str, Any]:
    """Attributes classification conditions can refer to."""
    name = path.rsplit("/", 1)[-1]
    match = _ARCHIVE_RE.match(name)
    return {
        "path": path,
        "name": name,
        "size": size,
        "artifact": match.group("artifact") if match else None,
        "version": match.group("version") if match else None,
    }


class BuiltinRules:
    """Built-in classification rules for common JVM build layouts."""

    @staticmethod
    def snapshot_dependency(
        dependency_patterns: List[Pattern], snapshot_markers: List[str]
    ) -> Rule:
        """Dependency archives whose version contains any snapshot marker."""
        return Rule(
            volatility=VolatilityClass.SNAPSHOT_DEPENDENCY,
            name="builtin:snapshot-dependency",
            patterns=list(dependency_patterns),
            conditions=[
                Condition(field="version", operator="matches", value=marker, case_sensitive=False)
                for marker in snapshot_markers
            ],
            condition_operator=RuleOperator.OR,
            priority=RulePriority.SNAPSHOT_DEPENDENCY,
        )

    @staticmethod
    def fixed_dependency(dependency_patterns: List[Pattern]) -> Rule:
        return Rule(
            volatility=VolatilityClass.FIXED_DEPENDENCY,
            name="builtin:fixed-dependency",
            patterns=list(dependency_patterns),
            priority=RulePriority.FIXED_DEPENDENCY,
        )

    @staticmethod
    def resource(resource_patterns: List[Pattern]) -> Rule:
        return Rule(
            volatility=VolatilityClass.RESOURCE,
            name="builtin:resource",
            patterns=list(resource_patterns),
            priority=RulePriority.RESOURCE,
        )

    @staticmethod
    def application_code(application_patterns: List[Pattern]) -> Rule:
        return Rule(
            volatility=VolatilityClass.APPLICATION_CODE,
            name="builtin:application-code",
            patterns=list(application_patterns),
            priority=RulePriority.APPLICATION_CODE,
        )

    @staticmethod
    def from_dict(rule_dict: Dict[str, Any], index: int = 0) -> Rule:
        """
        Create a user Rule from a configuration dictionary.

        Args:
            rule_dict: {"class": ..., "pattern"/"patterns": ..., "name", "priority"}
            index: Position in the configured list (used for the default name)

        Raises:
            ValueError: If the rule configuration is invalid
        """
        volatility = VolatilityClass.parse(rule_dict.get("class", ""))

        pattern = rule_dict.get("pattern")
        patterns = rule_dict.get("patterns", [])
        if pattern:
            patterns = [pattern]
        elif not patterns:
            raise ValueError("Rule must have 'pattern' or 'patterns'")

        return Rule(
            volatility=volatility,
            name=rule_dict.get("name", f"user:{index}"),
            patterns=list(patterns),
            priority=rule_dict.get("priority", USER_RULE_PRIORITY),
        )


class FileClassifier:
    """
    Classifies the files of a build output tree into FileEntries.

    Classification is a pure function of the tree: it reads file content to
    hash it and never writes anything.

    Attributes:
        engine: RuleEngine holding built-in and user rules
    """

    def __init__(self, engine: RuleEngine):
        """
        Initialize the classifier.

        Args:
            engine: Rule engine to classify with
        """
        self.engine = engine
        self._logger = get_logger()

    @classmethod
    def from_config(cls, classification: Optional[Dict[str, Any]] = None) -> "FileClassifier":
        """
        Build a classifier from the ``classification`` config section.

        Missing keys fall back to the built-in defaults; an explicit
        ``default_class: null`` disables the fallback class.
        """
        classification = classification or {}

        dependency_patterns = classification.get(
            ConfigKey.DEPENDENCY_PATTERNS, DEFAULT_DEPENDENCY_PATTERNS
        )
        resource_patterns = classification.get(
            ConfigKey.RESOURCE_PATTERNS, DEFAULT_RESOURCE_PATTERNS
        )
        application_patterns = classification.get(
            ConfigKey.APPLICATION_PATTERNS, DEFAULT_APPLICATION_PATTERNS
        )
        snapshot_markers = classification.get(ConfigKey.SNAPSHOT_MARKERS, DEFAULT_SNAPSHOT_MARKERS)

        if ConfigKey.DEFAULT_CLASS in classification:
            default_name = classification[ConfigKey.DEFAULT_CLASS]
            default_class = VolatilityClass.parse(default_name) if default_name else None
        else:
            default_class = VolatilityClass.APPLICATION_CODE

        engine = RuleEngine(default_class=default_class)
        if dependency_patterns:
            if snapshot_markers:
                engine.add_rule(
                    BuiltinRules.snapshot_dependency(dependency_patterns, snapshot_markers)
                )
            engine.add_rule(BuiltinRules.fixed_dependency(dependency_patterns))
        if resource_patterns:
            engine.add_rule(BuiltinRules.resource(resource_patterns))
        if application_patterns:
            engine.add_rule(BuiltinRules.application_code(application_patterns))

        for i, rule_dict in enumerate(classification.get(ConfigKey.RULES) or []):
            engine.add_rule(BuiltinRules.from_dict(rule_dict, i))

        return cls(engine)

    def classify_path(self, path: str, size: int = 0) -> VolatilityClass:
        """
        Classify a tree-relative path without touching the filesystem.

        Raises:
            ClassificationError: If no rule matches and there is no default class
        """
        volatility = self.engine.classify(path, file_attributes(path, size))
        if volatility is None:
            raise ClassificationError(
                f"No classification rule matches {path} and no default class is configured",
                path=path,
            )
        return volatility

    def classify_file(self, real_path: Union[str, Path], root: Union[str, Path]) -> FileEntry:
        """
        Classify a single file under root.

        Args:
            real_path: Path to the file
            root: Tree root

        Returns:
            Classified FileEntry

        Raises:
            ClassificationError: If the file name is not valid UTF-8, or the
                file cannot be read or classified
        """
        path = relative_posix_path(real_path, root)
        try:
            path.encode("utf-8")
        except UnicodeEncodeError:
            # layer archives and plan documents store UTF-8 paths
            raise ClassificationError(f"File name is not valid UTF-8: {path!r}", path=path)

        try:
            size = os.stat(real_path).st_size
        except OSError as e:
            raise ClassificationError(f"Cannot read {path}: {e}", path=path)

        volatility = self.classify_path(path, size)
        try:
            entry = FileEntry.from_path(real_path, root, volatility)
        except (OSError, ValueError) as e:
            raise ClassificationError(f"Cannot read {path}: {e}", path=path)

        self._logger.debug("Classified file", path=path, volatility=volatility.value)
        return entry

    def classify_tree(self, root: Union[str, Path]) -> List[FileEntry]:
        """
        Classify every file under root.

        Directories are walked in sorted order without following directory
        symlinks; symlinks to files are classified by their target content.

        Args:
            root: Build output directory

        Returns:
            FileEntries sorted by path, one per file

        Raises:
            ClassificationError: If root is not a directory, or any file is
                unreadable or unclassifiable
        """
        root_path = Path(root)
        if not root_path.is_dir():
            raise ClassificationError(f"Build output is not a directory: {root}", path=str(root))

        entries: List[FileEntry] = []
        for dirpath, dirnames, filenames in os.walk(root_path):
            dirnames.sort()
            for filename in sorted(filenames):
                entries.append(self.classify_file(os.path.join(dirpath, filename), root_path))

        counts: Dict[str, int] = {}
        for entry in entries:
            counts[entry.volatility.value] = counts.get(entry.volatility.value, 0) + 1
        self._logger.info("Classified build output", root=str(root_path), files=len(entries), **counts)

        return list(canonical_order(entries))

    def explain(self, path: str, size: int = 0) -> List[str]:
        """Names of all rules matching a path, in evaluation order."""
        return [
            rule.name or rule.volatility.value
            for rule in self.engine.get_matching_rules(path, file_attributes(path, size))
        ]
