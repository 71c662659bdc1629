"""Configuration loading and validation.

Usage:
    config = load(".covera.yaml")                   # raises ConfigError on bad config
    config = load(".covera.yaml", branch="main")    # CLI values win
    generate_template(".covera.yaml", ["coverage/lcov.info"])   # starter file

Precedence, lowest to highest: config file, environment, explicit overrides.
The config file is optional; in CI everything usually comes from the
environment and the step inputs.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from covera_upload import CoveraError

DEFAULT_API_URL = "https://api.covera.gg"
DEFAULT_COVERAGE_FILES = "coverage/**/*"

#: Environment variable → Config attribute
_ENV_VARS: dict[str, str] = {
    "COVERA_API_KEY": "api_key",
    "COVERA_API_URL": "api_url",
    "GITHUB_REPOSITORY": "repository",
    "GITHUB_WORKSPACE": "repo_root",
    "GITHUB_TOKEN": "github_token",
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(CoveraError):
    """Raised when the configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# Config dataclass
# ---------------------------------------------------------------------------

@dataclass
class Config:
    api_key: str
    api_url: str = DEFAULT_API_URL
    repository: str = ""
    branch: str = ""
    coverage_files: str = DEFAULT_COVERAGE_FILES
    fail_on_error: bool = False
    working_directory: str | None = None
    repo_root: str = ""
    github_token: str | None = None

    def __post_init__(self) -> None:
        if not self.repo_root:
            self.repo_root = os.getcwd()


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load(config_path: str = ".covera.yaml", environ=None, **overrides) -> Config:
    """Load and validate configuration.

    Values come from the YAML file at *config_path* (if it exists), then
    from the environment (COVERA_API_KEY, COVERA_API_URL, GITHUB_REPOSITORY,
    GITHUB_WORKSPACE, GITHUB_TOKEN), then from *overrides*. Overrides that
    are None are ignored so CLI options can be passed straight through.

    Raises:
        ConfigError: if the file is malformed or required fields are absent.
    """
    env = os.environ if environ is None else environ
    values: dict = {}

    values.update(_read_file(config_path))
    for var, attr in _ENV_VARS.items():
        if env.get(var):
            values[attr] = env[var]
    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(Config)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    errors: list[str] = []
    if not str(values.get("api_key") or "").strip():
        errors.append(
            "  - 'api_key' is missing (or set the COVERA_API_KEY environment variable)"
        )
    if "fail_on_error" in values:
        try:
            values["fail_on_error"] = _as_bool(values["fail_on_error"])
        except ValueError as exc:
            errors.append(f"  - 'fail_on_error' {exc}")

    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors))

    values["api_key"] = str(values["api_key"]).strip()
    if values.get("api_url"):
        values["api_url"] = str(values["api_url"]).strip().rstrip("/")
    return Config(**values)


def _read_file(config_path: str) -> dict:
    path = Path(config_path)
    if not path.exists():
        return {}

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{config_path}' must be a YAML mapping at the top level.")
    return {str(k).replace("-", "_"): v for k, v in raw.items()}


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no", ""):
        return False
    raise ValueError(f"must be true or false, got '{value}'")


# ---------------------------------------------------------------------------
# Starter file (used by `init` command)
# ---------------------------------------------------------------------------

#: Report names written by common coverage tools, tried by `init`
KNOWN_REPORTS: tuple[str, ...] = (
    "**/lcov.info",
    "**/clover.xml",
    "**/cobertura.xml",
    "**/coverage.xml",
    "**/*.out",
)

TEMPLATE = """\
# Covera.gg upload settings. COVERA_API_KEY / COVERA_API_URL override these.
api-key: "cov_xxxxxxxxxxxx"
api-url: "{api_url}"

# One glob per line; `**` spans directories, hidden ones included.
coverage-files: |
{coverage_files}
# Directory (relative to the repo root) the coverage tool ran in.
# Leave unset to auto-detect from go.mod / package.json.
# working-directory: "backend"

fail-on-error: false
"""


def render_template(coverage_files: list[str] | None = None) -> str:
    """Return the starter config listing *coverage_files* as patterns."""
    patterns = coverage_files or DEFAULT_COVERAGE_FILES.splitlines()
    return TEMPLATE.format(
        api_url=DEFAULT_API_URL,
        coverage_files="".join(f"  {p}\n" for p in patterns),
    )


def generate_template(
    output_path: str = ".covera.yaml",
    coverage_files: list[str] | None = None,
    overwrite: bool = False,
) -> None:
    """Write a starter .covera.yaml to *output_path*.

    Raises:
        ConfigError: if the file exists and *overwrite* is false; it may
                     already hold an API key.
    """
    path = Path(output_path)
    if path.exists() and not overwrite:
        raise ConfigError(
            f"'{output_path}' already exists and may contain your API key. "
            "Pass --force to replace it."
        )
    path.write_text(render_template(coverage_files), encoding="utf-8")
