"""Module implementing the list of paths that a relay refuses to serve."""

from __future__ import annotations

from dataclasses import dataclass
import fnmatch
import os
from typing import List

from relayfs.logger import log


@dataclass
class IgnorePattern:
    """
    Single pattern from an ignore file, with .gitignore-like semantics.

    * A pattern without a slash matches any path component (e.g. "*.key").
    * A pattern with a slash is anchored to the relay root (e.g. "secrets/*.pem").
    * A trailing slash only matches directories and everything inside them.
    * A leading "!" re-includes paths that an earlier pattern ignored.
    """

    pattern: str
    anchored: bool
    directory_only: bool
    negated: bool

    @staticmethod
    def parse(line: str) -> IgnorePattern:
        """Parse a non-empty, non-comment line of an ignore file."""
        negated = line.startswith("!")

        if negated:
            line = line[1:]

        directory_only = line.endswith("/")
        line = line.rstrip("/")

        anchored = "/" in line
        line = line.lstrip("/")

        return IgnorePattern(line, anchored, directory_only, negated)

    def matches(self, components: List[str], is_dir: bool) -> bool:
        """Check if the pattern matches the path made up of these components."""
        for i in range(len(components)):
            # Leading components are always directories
            if self.directory_only and i == len(components) - 1 and not is_dir:
                continue

            if self.anchored:
                candidate = "/".join(components[: i + 1])
            else:
                candidate = components[i]

            if fnmatch.fnmatchcase(candidate, self.pattern):
                return True

        return False


class IgnoreList:
    """Collection of ignore patterns relative to a root directory."""

    def __init__(self, root: str, patterns: List[IgnorePattern]):
        """Instantiate with already parsed patterns."""
        self.root = os.path.abspath(root)
        self.real_root = os.path.realpath(root)
        self.patterns = patterns

    @staticmethod
    def parse(root: str, text: str) -> IgnoreList:
        """Parse the contents of an ignore file."""
        patterns = []

        for line in text.splitlines():
            line = line.strip()

            if line and not line.startswith("#"):
                patterns.append(IgnorePattern.parse(line))

        return IgnoreList(root, patterns)

    @staticmethod
    def load(root: str, filename: str) -> IgnoreList:
        """Load an ignore file, treating a missing file as an empty list."""
        path = os.path.join(root, filename)

        try:
            with open(path, "r") as f:
                ignore_list = IgnoreList.parse(root, f.read())
        except FileNotFoundError:
            log.debug(f"no ignore file at {path}")
            return IgnoreList(root, [])

        log.info(f"loaded {len(ignore_list.patterns)} ignore patterns from {path}")

        return ignore_list

    def matches(self, path: str) -> bool:
        """
        Check if the (absolute) path should be refused.

        Symbolic links are resolved as well, so a path is refused if either the path
        as written or the file it ends up at is ignored.
        """
        is_dir = os.path.isdir(path)

        return self._matches_components(
            self._components(os.path.abspath(path), self.root), is_dir
        ) or self._matches_components(
            self._components(os.path.realpath(path), self.real_root), is_dir
        )

    @staticmethod
    def _components(path: str, root: str) -> List[str]:
        relative = os.path.relpath(path, root)

        if relative == os.curdir:
            return []

        if relative.startswith(os.pardir + os.sep) or relative == os.pardir:
            # Outside of the root, so only the full path can be matched against
            return [c for c in path.split(os.sep) if c]

        return relative.split(os.sep)

    def _matches_components(self, components: List[str], is_dir: bool) -> bool:
        if not components:
            return False

        ignored = False

        for pattern in self.patterns:
            if pattern.negated == ignored and pattern.matches(components, is_dir):
                ignored = not pattern.negated

        return ignored
