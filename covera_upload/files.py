"""Coverage file discovery.

Usage:
    files = discover("coverage/lcov.info\\nbackend/**/*.out")

Patterns use shell-style wildcards per path segment plus ``**`` for any
number of directories. Hidden files and directories are matched like any
other entry, and symbolic links to directories are never descended into.
"""

import fnmatch
import glob
import logging
import os
from pathlib import Path

from covera_upload import CoveraError

logger = logging.getLogger(__name__)

GLOBSTAR = "**"


class NoCoverageFilesError(CoveraError):
    """Raised by callers that treat an empty discovery result as fatal."""


def discover(pattern_block: str) -> list[str]:
    """Expand newline-separated glob patterns into a list of absolute paths.

    Each pattern is expanded on its own, matches of one pattern are sorted,
    and the concatenation across patterns is deduplicated keeping the first
    occurrence. An empty list is returned when nothing matches; deciding
    whether that is an error is up to the caller.
    """
    patterns = [line.strip() for line in pattern_block.splitlines()]
    patterns = [p for p in patterns if p]

    found: list[str] = []
    for pattern in patterns:
        logger.debug("Globbing pattern: %s", pattern)
        found.extend(_expand(pattern))

    unique = list(dict.fromkeys(found))
    logger.debug("Found %d unique file(s)", len(unique))
    return unique


def _expand(pattern: str) -> list[str]:
    base, segments = _split_pattern(pattern)
    if not segments:
        return [base] if os.path.isfile(base) else []
    if not os.path.isdir(base):
        return []

    # Without a globstar nothing deeper than the pattern itself can match
    max_depth = None if GLOBSTAR in segments else len(segments) - 1

    matches = []
    for root, dirnames, filenames in os.walk(base, followlinks=False):
        rel_root = os.path.relpath(root, base)
        prefix = () if rel_root == os.curdir else tuple(rel_root.split(os.sep))
        if max_depth is not None and len(prefix) >= max_depth:
            dirnames[:] = []
        for name in filenames:
            if _match_segments(segments, prefix + (name,)):
                matches.append(os.path.join(root, name))
    return sorted(matches)


def _split_pattern(pattern: str) -> tuple[str, tuple[str, ...]]:
    """Split *pattern* into its absolute literal head directory and wildcard tail."""
    parts = Path(pattern).parts
    head: list[str] = []
    for part in parts:
        if glob.has_magic(part):
            break
        head.append(part)
    base = os.path.abspath(os.path.join(*head)) if head else os.getcwd()
    return base, tuple(parts[len(head):])


def _match_segments(segments: tuple[str, ...], path: tuple[str, ...]) -> bool:
    if not segments:
        return not path
    first, rest = segments[0], segments[1:]
    if first == GLOBSTAR:
        return any(_match_segments(rest, path[i:]) for i in range(len(path) + 1))
    return bool(path) and fnmatch.fnmatch(path[0], first) and _match_segments(rest, path[1:])
