"""Path normalization context detection.

The backend receives coverage paths exactly as the coverage tool wrote them
(``github.com/org/svc/pkg/foo.go``, ``src/App.tsx``, ...). To map those onto
repository paths it needs to know which sub-directory the tool ran in and,
for Go, the module path declared in ``go.mod``.

Usage:
    ctx = resolve(files, repo_root="/home/runner/work/repo/repo")
    ctx.working_directory   # "backend" or None
    ctx.go_module_path      # "github.com/org/backend" or None

Detection is an ordered chain of probes; the first one that returns a
context wins:
    1. explicit working directory
    2. Go (``*.out`` files, ``go.mod`` marker)
    3. frontend (``clover.xml`` / ``lcov.info``, ``package.json`` marker)
    4. repo root only
"""

import logging
import os
import re
from collections import Counter
from collections.abc import Callable, Sequence

from covera_upload.models import CoveragePathSummary, PathNormalizationContext, ProbeResult

logger = logging.getLogger(__name__)

GO_MOD = "go.mod"
PACKAGE_JSON = "package.json"
GO_COVERAGE_SUFFIX = ".out"
FRONTEND_COVERAGE_NAMES = ("clover.xml", "lcov.info")

_MODULE_RE = re.compile(r"^module\s+(\S+)", re.MULTILINE)

ContextProbe = Callable[[Sequence[str], str, str | None], PathNormalizationContext | None]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve(
    files: Sequence[str],
    repo_root: str,
    working_directory: str | None = None,
) -> PathNormalizationContext:
    """Return the normalization context for *files* checked out at *repo_root*.

    Diagnostics about the file locations are logged first; they never change
    the result. Filesystem errors while probing are treated as "not found".
    """
    log_summary(files, repo_root, working_directory)

    for probe in PROBES:
        context = probe(files, repo_root, working_directory)
        if context is not None:
            return context

    return PathNormalizationContext(repo_root=repo_root)


def summarise(files: Sequence[str], repo_root: str) -> CoveragePathSummary:
    """Classify *files* as inside or outside *repo_root* and count basenames."""
    inside_dirs: set[str] = set()
    outside_repo: list[tuple[str, str]] = []
    basenames: Counter[str] = Counter()

    for original in files:
        resolved = _absolute(original, repo_root)
        basenames[os.path.basename(resolved)] += 1

        relative = _relative_to(resolved, repo_root)
        if relative is not None:
            inside_dirs.add(os.path.dirname(relative) or ".")
        else:
            outside_repo.append((original, resolved))

    duplicates = sorted((name, count) for name, count in basenames.items() if count > 1)
    return CoveragePathSummary(
        inside_dirs=sorted(inside_dirs),
        outside_repo=outside_repo,
        duplicate_basenames=duplicates,
    )


def log_summary(
    files: Sequence[str],
    repo_root: str,
    working_directory: str | None = None,
) -> None:
    """Log where the coverage files live relative to *repo_root*."""
    if not files:
        return

    summary = summarise(files, repo_root)

    logger.info("Coverage path diagnostics")
    logger.info("Repo root: %s", repo_root)
    if working_directory:
        logger.info("Working directory input: %s", working_directory)

    if summary.inside_dirs:
        logger.info("Coverage directories (relative to repo root):")
        for directory in summary.inside_dirs:
            logger.info("  - %s", directory)
    else:
        logger.warning("No coverage files were detected inside the repo root.")

    if summary.outside_repo:
        logger.warning("Coverage files resolved outside repo root:")
        for original, resolved in summary.outside_repo:
            logger.warning("  - %s -> %s", original, resolved)
        logger.warning(
            "Paths outside the repository usually mean the coverage file was "
            "generated in a different workspace."
        )

    if summary.duplicate_basenames:
        logger.info("Duplicate coverage filenames detected:")
        for name, count in summary.duplicate_basenames:
            logger.info("  - %s (%d occurrences)", name, count)
        logger.info(
            "Basename collisions make heuristic matching harder; "
            "consider renaming or grouping files."
        )


# ---------------------------------------------------------------------------
# Filesystem probes
# ---------------------------------------------------------------------------

def probe_go_module(directory: str) -> ProbeResult:
    """Read the ``module`` declaration from ``directory/go.mod``."""
    go_mod = os.path.join(directory, GO_MOD)
    try:
        with open(go_mod, encoding="utf-8") as f:
            content = f.read()
    except FileNotFoundError:
        return ProbeResult.miss()
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Error detecting Go module path in %s: %s", go_mod, exc)
        return ProbeResult.miss()

    match = _MODULE_RE.search(content)
    if not match:
        return ProbeResult.miss()

    module_path = match.group(1).strip()
    logger.debug("Found Go module path: %s", module_path)
    return ProbeResult.hit(module_path)


def find_marker_upwards(coverage_file: str, marker: str, repo_root: str) -> ProbeResult:
    """Walk up from *coverage_file*'s directory looking for *marker*.

    The hit value is the directory relative to *repo_root* (``"."`` for the
    root itself). The walk never leaves *repo_root*.
    """
    root = os.path.abspath(repo_root)
    current = os.path.dirname(_absolute(coverage_file, root))
    try:
        while _is_within(current, root):
            if os.path.isfile(os.path.join(current, marker)):
                return ProbeResult.hit(os.path.relpath(current, root))

            parent = os.path.dirname(current)
            if parent == current:
                break
            current = parent
    except (OSError, ValueError) as exc:
        logger.debug("Error looking for %s above %s: %s", marker, coverage_file, exc)

    return ProbeResult.miss()


# ---------------------------------------------------------------------------
# Context probes, in priority order
# ---------------------------------------------------------------------------

def explicit_context(files, repo_root, working_directory):
    if not working_directory:
        return None

    logger.info("Using explicit working directory: %s", working_directory)
    module = probe_go_module(os.path.join(repo_root, working_directory))
    return PathNormalizationContext(
        repo_root=repo_root,
        working_directory=working_directory,
        go_module_path=module.value,
    )


def go_context(files, repo_root, working_directory):
    go_files = [f for f in files if f.endswith(GO_COVERAGE_SUFFIX)]
    if not go_files:
        return None

    marker = find_marker_upwards(go_files[0], GO_MOD, repo_root)
    work_dir = _non_root(marker)
    module = probe_go_module(os.path.join(repo_root, work_dir) if work_dir else repo_root)

    if not (work_dir or module.found):
        return None

    logger.info("Auto-detected Go context:")
    if work_dir:
        logger.info("  Working directory: %s", work_dir)
    if module.found:
        logger.info("  Module path: %s", module.value)

    return PathNormalizationContext(
        repo_root=repo_root,
        working_directory=work_dir,
        go_module_path=module.value,
    )


def frontend_context(files, repo_root, working_directory):
    frontend_files = [f for f in files if any(name in f for name in FRONTEND_COVERAGE_NAMES)]
    if not frontend_files:
        return None

    work_dir = _non_root(find_marker_upwards(frontend_files[0], PACKAGE_JSON, repo_root))
    if not work_dir:
        return None

    logger.info("Auto-detected frontend working directory: %s", work_dir)
    return PathNormalizationContext(repo_root=repo_root, working_directory=work_dir)


PROBES: tuple[ContextProbe, ...] = (explicit_context, go_context, frontend_context)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _absolute(path: str, repo_root: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.normpath(os.path.join(repo_root, path))


def _relative_to(resolved: str, repo_root: str) -> str | None:
    """Return *resolved* relative to *repo_root*, or None if it lies outside."""
    try:
        relative = os.path.relpath(resolved, repo_root)
    except ValueError:
        # Different drives on Windows
        return None
    if not relative or relative == os.curdir or _is_parent_traversal(relative) or os.path.isabs(relative):
        return None
    return relative


def _is_parent_traversal(relative: str) -> bool:
    return relative == os.pardir or relative.startswith(os.pardir + os.sep)


def _is_within(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        return False


def _non_root(result: ProbeResult) -> str | None:
    """A marker found at the repo root yields no working directory."""
    if not result.found or result.value == os.curdir:
        return None
    return result.value
