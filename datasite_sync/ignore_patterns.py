"""
DatasiteSync Client - Ignore Pattern Matching

gitignore-style matching for the .datasiteignore file at the root of the
sync folder. Ignored paths are left out of every sync direction.
"""

import fnmatch
import logging
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".datasiteignore"


class IgnorePatterns:
    """
    Matches server paths against gitignore-style patterns

    Supports:
    - Wildcards: *, ?, [abc]
    - Directory patterns: trailing /
    - Negation: ! prefix (last matching pattern wins)
    - Comments: # prefix, blank lines
    """

    def __init__(self, patterns: List[str]):
        self.patterns = self._parse(patterns)

    @classmethod
    def load(cls, sync_folder: Path) -> "IgnorePatterns":
        """
        Load patterns from <sync_folder>/.datasiteignore, if present.
        """
        ignore_file = Path(sync_folder) / IGNORE_FILE_NAME
        if not ignore_file.exists():
            logger.debug(f"Ignore file not found: {ignore_file}")
            return cls([])

        try:
            lines = ignore_file.read_text(encoding='utf-8').splitlines()
        except OSError as e:
            logger.warning(f"Error reading ignore file {ignore_file}: {e}")
            return cls([])

        matcher = cls(lines)
        logger.info(f"Loaded {len(matcher.patterns)} ignore patterns from {ignore_file}")
        return matcher

    @staticmethod
    def _parse(lines: List[str]) -> List[Tuple[str, bool]]:
        parsed = []
        for line in lines:
            line = line.strip()
            if not line or line.startswith('#'):
                continue

            is_negation = line.startswith('!')
            if is_negation:
                line = line[1:].strip()
            if line:
                parsed.append((line.replace('\\', '/'), is_negation))
        return parsed

    def should_ignore(self, path: str) -> bool:
        """
        Check if a path should be ignored.

        Args:
            path: Server path (e.g. "alice@example.org/public/a.tmp")
        """
        normalized = path.replace('\\', '/').lstrip('/')
        ignored = False
        for pattern, is_negation in self.patterns:
            if self._matches(normalized, pattern):
                ignored = not is_negation
        return ignored

    @staticmethod
    def _matches(path: str, pattern: str) -> bool:
        pattern = pattern.rstrip('/') if pattern.endswith('/') else pattern

        if '/' in pattern:
            # Anchored pattern: whole path or a directory prefix
            pattern = pattern.lstrip('/')
            return fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(path, f"{pattern}/*")

        # Unanchored pattern: any path component
        return any(fnmatch.fnmatch(part, pattern) for part in path.split('/'))

    def filter_paths(self, paths: List[str]) -> List[str]:
        return [p for p in paths if not self.should_ignore(p)]
