"""Data models shared across the upload pipeline.

Contains dataclasses used to carry values between steps:
    - ProbeResult               (filesystem probe outcome)
    - PathNormalizationContext  (resolver output)
    - CoveragePathSummary       (resolver diagnostics)
    - CommitInfo / PullRequestInfo / UploadMetadata
    - UploadPayload             (multipart body)
    - UploadResult
"""

from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Path context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a filesystem probe: either found with a value, or not."""

    found: bool
    value: str | None = None

    @classmethod
    def hit(cls, value: str) -> "ProbeResult":
        return cls(found=True, value=value)

    @classmethod
    def miss(cls) -> "ProbeResult":
        return cls(found=False)


@dataclass(frozen=True)
class PathNormalizationContext:
    repo_root: str
    working_directory: str | None = None
    go_module_path: str | None = None


@dataclass(frozen=True)
class CoveragePathSummary:
    inside_dirs: list[str] = field(default_factory=list)
    outside_repo: list[tuple[str, str]] = field(default_factory=list)
    duplicate_basenames: list[tuple[str, int]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Upload metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CommitInfo:
    sha: str
    message: str
    author_name: str
    author_email: str


@dataclass(frozen=True)
class PullRequestInfo:
    number: int | None = None
    base_branch: str | None = None
    base_sha: str | None = None


@dataclass(frozen=True)
class UploadMetadata:
    repository: str
    branch: str
    commit: CommitInfo
    pull_request: PullRequestInfo | None = None


# ---------------------------------------------------------------------------
# Wire payload
# ---------------------------------------------------------------------------

@dataclass
class UploadPayload:
    """Ordered multipart/form-data body.

    Field values and filenames are written verbatim: nothing is escaped, so
    a value containing the boundary or a CRLF will corrupt the body. The
    ingestion endpoint relies on this exact layout.
    """

    boundary: str
    fields: list[tuple[str, str]] = field(default_factory=list)
    files: list[tuple[str, bytes]] = field(default_factory=list)

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def encode(self) -> bytes:
        parts: list[bytes] = []
        for name, value in self.fields:
            parts.append(
                (
                    f"--{self.boundary}\r\n"
                    f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                    f"{value}\r\n"
                ).encode("utf-8")
            )
        for filename, content in self.files:
            parts.append(
                (
                    f"--{self.boundary}\r\n"
                    f'Content-Disposition: form-data; name="files[]"; filename="{filename}"\r\n'
                    "Content-Type: application/octet-stream\r\n\r\n"
                ).encode("utf-8")
            )
            parts.append(content)
            parts.append(b"\r\n")
        parts.append(f"--{self.boundary}--\r\n".encode("utf-8"))
        return b"".join(parts)


@dataclass(frozen=True)
class UploadResult:
    report_id: str
    report_url: str = ""
