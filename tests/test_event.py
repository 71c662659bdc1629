"""Tests for covera_upload/event.py"""

import json

import pytest
import requests

from covera_upload.event import (
    GITHUB_API_URL,
    GitHubEvent,
    lookup_pull_request,
    pull_request_from_event,
    resolve_branch,
)
from covera_upload.models import PullRequestInfo

PULLS_URL = f"{GITHUB_API_URL}/repos/owner/repo/pulls"

PR_PAYLOAD = {
    "pull_request": {
        "number": 42,
        "title": "Add feature",
        "head": {"ref": "feature-x", "sha": "head123"},
        "base": {"ref": "main", "sha": "base456"},
        "user": {"login": "octocat"},
    }
}


# ---------------------------------------------------------------------------
# GitHubEvent.from_environment()
# ---------------------------------------------------------------------------

def test_from_environment_reads_payload(tmp_path):
    event_file = tmp_path / "event.json"
    event_file.write_text(json.dumps(PR_PAYLOAD), encoding="utf-8")
    event = GitHubEvent.from_environment({
        "GITHUB_EVENT_NAME": "pull_request",
        "GITHUB_EVENT_PATH": str(event_file),
        "GITHUB_REF_NAME": "42/merge",
    })
    assert event.name == "pull_request"
    assert event.payload == PR_PAYLOAD
    assert event.ref_name == "42/merge"


def test_from_environment_without_event_file():
    event = GitHubEvent.from_environment({"GITHUB_EVENT_PATH": "/nonexistent/event.json"})
    assert event == GitHubEvent()


def test_from_environment_with_invalid_json(tmp_path):
    event_file = tmp_path / "event.json"
    event_file.write_text("{not json", encoding="utf-8")
    event = GitHubEvent.from_environment({"GITHUB_EVENT_PATH": str(event_file)})
    assert event.payload == {}


# ---------------------------------------------------------------------------
# resolve_branch()
# ---------------------------------------------------------------------------

def test_explicit_branch_wins():
    event = GitHubEvent("pull_request", PR_PAYLOAD, "42/merge")
    assert resolve_branch(event, "release") == "release"


@pytest.mark.parametrize("name", ["pull_request", "pull_request_target"])
def test_pr_head_ref(name):
    assert resolve_branch(GitHubEvent(name, PR_PAYLOAD, "42/merge")) == "feature-x"


def test_push_ref_name():
    assert resolve_branch(GitHubEvent("push", {}, "main")) == "main"


def test_no_branch_information():
    assert resolve_branch(GitHubEvent()) == ""


# ---------------------------------------------------------------------------
# pull_request_from_event()
# ---------------------------------------------------------------------------

def test_pull_request_from_payload():
    info = pull_request_from_event(GitHubEvent("pull_request", PR_PAYLOAD))
    assert info == PullRequestInfo(number=42, base_branch="main", base_sha="base456")


def test_pull_request_absent_on_push():
    assert pull_request_from_event(GitHubEvent("push", PR_PAYLOAD)) is None


def test_pull_request_event_without_payload():
    assert pull_request_from_event(GitHubEvent("pull_request", {})) is None


# ---------------------------------------------------------------------------
# lookup_pull_request()
# ---------------------------------------------------------------------------

def test_lookup_finds_open_pr(requests_mock):
    adapter = requests_mock.get(PULLS_URL, json=[{"number": 7, "base": {"ref": "main", "sha": "b1"}}])
    info = lookup_pull_request("owner/repo", "feature-x", "ghs_token")

    assert info == PullRequestInfo(number=7, base_branch="main", base_sha="b1")
    assert adapter.last_request.qs["head"] == ["owner:feature-x"]
    assert adapter.last_request.headers["Authorization"] == "Bearer ghs_token"


def test_lookup_no_open_pr(requests_mock):
    requests_mock.get(PULLS_URL, json=[])
    assert lookup_pull_request("owner/repo", "feature-x", "tok") is None


def test_lookup_without_token_skips_request(requests_mock):
    assert lookup_pull_request("owner/repo", "feature-x", None) is None
    assert not requests_mock.called


def test_lookup_with_malformed_repository(requests_mock):
    assert lookup_pull_request("just-a-name", "feature-x", "tok") is None
    assert not requests_mock.called


def test_lookup_http_error_is_swallowed(requests_mock, caplog):
    requests_mock.get(PULLS_URL, status_code=403, text="forbidden")
    assert lookup_pull_request("owner/repo", "feature-x", "tok") is None
    assert "Unable to look up pull request metadata" in caplog.text


def test_lookup_network_error_is_swallowed(requests_mock):
    requests_mock.get(PULLS_URL, exc=requests.exceptions.ConnectionError)
    assert lookup_pull_request("owner/repo", "feature-x", "tok") is None
