"""GitHub Actions trigger context.

Usage:
    event  = GitHubEvent.from_environment()
    branch = resolve_branch(event, explicit=None)
    pr     = pull_request_from_event(event) or lookup_pull_request(repo, branch, token)
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import requests

from covera_upload.models import PullRequestInfo

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class GitHubEvent:
    name: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    ref_name: str = ""

    @classmethod
    def from_environment(cls, environ=None) -> "GitHubEvent":
        """Read the triggering event from the standard GitHub Actions variables.

        A missing or unreadable event file gives an empty payload.
        """
        env = os.environ if environ is None else environ
        payload: dict[str, Any] = {}

        event_path = env.get("GITHUB_EVENT_PATH")
        if event_path:
            try:
                with open(event_path, encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    payload = data
            except (OSError, ValueError) as exc:
                logger.debug("Unable to read event payload %s: %s", event_path, exc)

        return cls(
            name=env.get("GITHUB_EVENT_NAME", ""),
            payload=payload,
            ref_name=env.get("GITHUB_REF_NAME", ""),
        )

    @property
    def pull_request(self) -> dict[str, Any] | None:
        """The ``pull_request`` object for pull_request* events, else None."""
        if not self.name.startswith("pull_request"):
            return None
        return self.payload.get("pull_request") or None


def resolve_branch(event: GitHubEvent, explicit: str | None = None) -> str:
    """Explicit value first, then the PR head ref, then the pushed ref name."""
    if explicit:
        return explicit
    pr = event.pull_request
    if pr is not None:
        return (pr.get("head") or {}).get("ref", "")
    return event.ref_name


def pull_request_from_event(event: GitHubEvent) -> PullRequestInfo | None:
    pr = event.pull_request
    if pr is None:
        return None

    base = pr.get("base") or {}
    info = PullRequestInfo(
        number=pr.get("number"),
        base_branch=base.get("ref"),
        base_sha=base.get("sha"),
    )
    logger.info(
        "Pull request detected from event payload: #%s (base: %s)",
        info.number, info.base_branch or "unknown",
    )
    return info


def lookup_pull_request(
    repository: str,
    branch: str,
    token: str | None,
    api_url: str = GITHUB_API_URL,
    timeout: float = 10,
) -> PullRequestInfo | None:
    """Find the open pull request whose head is *branch*.

    Used for push events on a branch that has a PR open. Any failure is
    logged as a warning and yields None; PR metadata is optional.
    """
    if not token:
        logger.info("No GITHUB_TOKEN available; skipping PR metadata lookup")
        return None

    owner, _, repo = repository.partition("/")
    if not (owner and repo and branch):
        return None

    try:
        response = requests.get(
            f"{api_url.rstrip('/')}/repos/{owner}/{repo}/pulls",
            params={"state": "open", "head": f"{owner}:{branch}", "per_page": 1},
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=timeout,
        )
        response.raise_for_status()
        prs = response.json()
    except (requests.exceptions.RequestException, ValueError) as exc:
        logger.warning("Unable to look up pull request metadata: %s", exc)
        return None

    if not isinstance(prs, list) or not prs:
        logger.info("No open pull request found for %s:%s", owner, branch)
        return None

    pr = prs[0]
    base = pr.get("base") or {}
    info = PullRequestInfo(number=pr.get("number"), base_branch=base.get("ref"), base_sha=base.get("sha"))
    logger.info("Pull request detected via API: #%s (base: %s)", info.number, info.base_branch)
    return info
