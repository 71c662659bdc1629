"""Covera.gg upload client.

Usage:
    client  = CoveraClient(url="https://api.covera.gg", token="cov_xxx")
    result  = client.upload(metadata, files, context=ctx)
    payload = build_payload(metadata, files, context=ctx)   # body only, no network
"""

import json
import logging
import os
import time
from collections.abc import Sequence

import requests

from covera_upload import CoveraError
from covera_upload.models import (
    PathNormalizationContext,
    PullRequestInfo,
    UploadMetadata,
    UploadPayload,
    UploadResult,
)

logger = logging.getLogger(__name__)

UPLOAD_ENDPOINT = "/api/v1/coverage"
SUCCESS_STATUSES = (200, 201)
UNKNOWN_REPORT_ID = "unknown"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CoveraClientError(CoveraError):
    """Base exception for all client errors."""


class UploadError(CoveraClientError):
    """Raised when the API answers with anything but 200 or 201."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Upload failed with status {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class ResponseParseError(CoveraClientError):
    """Raised when a successful response does not carry valid JSON."""


class NetworkError(CoveraClientError):
    """Raised on connection timeout or unreachable server."""


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------

def build_payload(
    metadata: UploadMetadata,
    files: Sequence[str],
    context: PathNormalizationContext | None = None,
    boundary: str | None = None,
) -> UploadPayload:
    """Assemble the multipart body for one upload.

    Field order is fixed: commit metadata, then path context, then pull
    request fields, then one ``files[]`` part per coverage file. Optional
    values that are missing are left out entirely.

    Raises:
        OSError: a coverage file could not be read.
    """
    payload = UploadPayload(boundary=boundary or f"----CoveraUpload{int(time.time() * 1000)}")

    commit = metadata.commit
    payload.fields.extend([
        ("repository", metadata.repository),
        ("branch", metadata.branch),
        ("commit_sha", commit.sha),
        ("commit_message", commit.message),
        ("author_name", commit.author_name),
        ("author_email", commit.author_email),
    ])

    if context is not None:
        payload.fields.extend(_present([
            ("working_directory", context.working_directory),
            ("go_module_path", context.go_module_path),
            ("repo_root", context.repo_root),
        ]))

    if metadata.pull_request is not None:
        payload.fields.extend(_pull_request_fields(metadata.pull_request))

    for path in files:
        with open(path, "rb") as f:
            payload.files.append((os.path.basename(path), f.read()))

    return payload


def parse_result(body: str) -> UploadResult:
    """Extract the report id and URL from a successful response body.

    Raises:
        ResponseParseError: *body* is not a JSON object.
    """
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise ResponseParseError(f"Invalid JSON in upload response: {exc}") from exc
    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object in upload response, got: {body[:200]}")

    return UploadResult(
        report_id=str(data.get("report_id") or data.get("id") or UNKNOWN_REPORT_ID),
        report_url=str(data.get("report_url") or ""),
    )


def _present(fields: list[tuple[str, str | None]]) -> list[tuple[str, str]]:
    return [(name, value) for name, value in fields if value]


def _pull_request_fields(pr: PullRequestInfo) -> list[tuple[str, str]]:
    number = _as_pr_number(pr.number)
    return _present([
        ("pr_number", str(number) if number is not None else None),
        ("pr_base_branch", pr.base_branch),
        ("pr_base_sha", pr.base_sha),
    ])


def _as_pr_number(value) -> int | None:
    """Return *value* as an int, or None when it is not a well-formed number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class CoveraClient:
    """Thin wrapper around the Covera.gg coverage ingestion API."""

    def __init__(self, url: str, token: str, timeout: float | None = None) -> None:
        self.base_url = url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._session = requests.Session()

    def upload(
        self,
        metadata: UploadMetadata,
        files: Sequence[str],
        context: PathNormalizationContext | None = None,
    ) -> UploadResult:
        """Send *files* with *metadata* in a single POST and return the result.

        There is no retry: the first failure is final.

        Raises:
            UploadError:        HTTP status other than 200/201
            ResponseParseError: 2xx response without a JSON object
            NetworkError:       Timeout or connection failure
            OSError:            A coverage file could not be read
        """
        payload = build_payload(metadata, files, context)
        body = payload.encode()
        url = f"{self.base_url}{UPLOAD_ENDPOINT}"

        logger.debug("Uploading to: %s", url)
        logger.debug("Repository: %s", metadata.repository)
        logger.debug("Branch: %s", metadata.branch)
        logger.debug("Commit: %s", metadata.commit.sha)
        logger.debug("Files: %d", len(payload.files))

        headers = {
            "Content-Type": payload.content_type,
            "Authorization": f"Bearer {self._token}",
            "Content-Length": str(len(body)),
        }
        try:
            response = self._session.post(url, data=body, headers=headers, timeout=self._timeout)
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                f"Request timed out after {self._timeout}s while contacting '{url}'"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise NetworkError(
                f"Unable to reach Covera.gg API at '{self.base_url}'"
            ) from exc

        text = response.text
        if response.status_code not in SUCCESS_STATUSES:
            logger.debug("Response status: %d", response.status_code)
            logger.debug("Response body: %s", text)
            raise UploadError(response.status_code, text)

        return parse_result(text)
