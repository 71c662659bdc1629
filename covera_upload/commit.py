"""Commit detection from the trigger context, with a local git fallback."""

import logging
import subprocess
from collections.abc import Callable, Sequence

from covera_upload.event import GitHubEvent
from covera_upload.models import CommitInfo

logger = logging.getLogger(__name__)

GitRunner = Callable[[Sequence[str]], str]


def run_git(args: Sequence[str]) -> str:
    return subprocess.run(
        ["git", *args], check=True, capture_output=True, text=True
    ).stdout


def detect_commit_info(event: GitHubEvent, git: GitRunner = run_git) -> CommitInfo:
    """Return the commit the coverage belongs to.

    Pull requests use the head commit and PR title, pushes use the head
    commit from the payload. Anything else falls back to ``git log`` on HEAD.

    Raises:
        subprocess.CalledProcessError: the git fallback failed.
    """
    logger.debug("Event name: %s", event.name)

    if event.name == "pull_request" and event.payload.get("pull_request"):
        pr = event.payload["pull_request"]
        login = pr["user"]["login"]
        logger.debug("PR event detected, head SHA: %s", pr["head"]["sha"])
        return CommitInfo(
            sha=pr["head"]["sha"],
            message=pr.get("title", ""),
            author_name=login,
            author_email=f"{login}@users.noreply.github.com",
        )

    if event.name == "push" and event.payload.get("head_commit"):
        commit = event.payload["head_commit"]
        author = commit.get("author") or {}
        logger.debug("Push event detected, commit SHA: %s", commit["id"])
        return CommitInfo(
            sha=commit["id"],
            message=commit.get("message", ""),
            author_name=author.get("name", ""),
            author_email=author.get("email", ""),
        )

    logger.warning("Unable to detect commit from GitHub context, using git HEAD")
    return CommitInfo(
        sha=git(["rev-parse", "HEAD"]).strip(),
        message=git(["log", "-1", "--pretty=%B"]).strip(),
        author_name=git(["log", "-1", "--pretty=%an"]).strip(),
        author_email=git(["log", "-1", "--pretty=%ae"]).strip(),
    )
