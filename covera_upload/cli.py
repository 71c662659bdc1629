"""CLI entry point — command definitions using Click.

Commands:
    init      Generate a template config file
    upload    Discover coverage files and upload them to Covera.gg
"""

import functools
import logging
import os
import subprocess
import sys

import click

from covera_upload import CoveraError, __version__

logger = logging.getLogger("covera_upload")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

class _ClickHandler(logging.Handler):
    """Route log records to stderr through click so CliRunner captures them."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def _configure_logging(verbose: bool) -> None:
    handler = _ClickHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_config(ctx: click.Context, **overrides):
    """Load config with CLI overrides applied. Exits on error."""
    from covera_upload.config import ConfigError, load

    try:
        config = load(ctx.obj["config_path"], **overrides)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    ctx.obj["fail_on_error"] = config.fail_on_error
    return config


def _set_outputs(**outputs: str) -> None:
    """Write step outputs to $GITHUB_OUTPUT, or to stdout outside Actions."""
    lines = [f"{name.replace('_', '-')}={value}" for name, value in outputs.items()]
    output_path = os.environ.get("GITHUB_OUTPUT")
    if output_path:
        with open(output_path, "a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
    else:
        for line in lines:
            click.echo(line)


def _handle_upload_errors(func):
    """Decorator that reports upload failures according to fail-on-error."""

    @functools.wraps(func)
    def wrapper(ctx: click.Context, *args, **kwargs):
        try:
            return func(ctx, *args, **kwargs)
        except (CoveraError, OSError, subprocess.CalledProcessError) as exc:
            click.echo(f"Failed to upload coverage: {exc}", err=True)
            _set_outputs(status="failed", files_uploaded="0")
            if ctx.obj.get("fail_on_error", True):
                sys.exit(1)
            logger.warning("Upload failed but fail-on-error is false, continuing...")

    return wrapper


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default=".covera.yaml", show_default=True,
              help="Path to the optional configuration file.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable debug logging.")
@click.version_option(__version__, prog_name="covera-upload")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """Upload coverage reports from CI to Covera.gg."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default=".covera.yaml", show_default=True,
              help="Where to write the starter config.")
@click.option("--force", is_flag=True, default=False,
              help="Replace an existing config file.")
def init_command(output_path: str, force: bool) -> None:
    """Write a starter .covera.yaml listing coverage reports found here."""
    from covera_upload.config import KNOWN_REPORTS, ConfigError, generate_template
    from covera_upload.files import discover

    found = [os.path.relpath(p) for p in discover("\n".join(KNOWN_REPORTS))]
    try:
        generate_template(output_path, coverage_files=found, overwrite=force)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if found:
        click.echo(f"Found {len(found)} coverage report(s); listed them in '{output_path}'.")
    else:
        click.echo(f"No coverage reports found yet; '{output_path}' uses the default pattern.")
    click.echo("Set your API key there or in COVERA_API_KEY, then run `covera-upload upload`.")


# ---------------------------------------------------------------------------
# upload
# ---------------------------------------------------------------------------

@cli.command("upload")
@click.option("--api-key", default=None, help="Covera.gg API key (or COVERA_API_KEY).")
@click.option("--api-url", default=None, help="Covera.gg API base URL.")
@click.option("--repository", default=None, help="owner/name (defaults to GITHUB_REPOSITORY).")
@click.option("--branch", default=None, help="Branch name (defaults to the triggering ref).")
@click.option("--coverage-files", default=None,
              help="Glob pattern(s) for coverage files, one per line.")
@click.option("--working-directory", default=None,
              help="Directory, relative to the repo root, the coverage tool ran in.")
@click.option("--fail-on-error/--no-fail-on-error", default=None,
              help="Exit non-zero when no files are found or the upload fails.")
@click.pass_context
@_handle_upload_errors
def upload_command(ctx: click.Context, api_key, api_url, repository, branch,
                   coverage_files, working_directory, fail_on_error) -> None:
    """Discover coverage files and upload them with commit metadata."""
    from covera_upload.client import CoveraClient
    from covera_upload.commit import detect_commit_info
    from covera_upload.context import resolve
    from covera_upload.event import (
        GitHubEvent,
        lookup_pull_request,
        pull_request_from_event,
        resolve_branch,
    )
    from covera_upload.files import NoCoverageFilesError, discover
    from covera_upload.models import UploadMetadata

    config = _load_config(
        ctx,
        api_key=api_key,
        api_url=api_url,
        repository=repository,
        branch=branch,
        coverage_files=coverage_files,
        working_directory=working_directory,
        fail_on_error=fail_on_error,
    )

    event = GitHubEvent.from_environment()
    branch = resolve_branch(event, config.branch)
    pull_request = pull_request_from_event(event) or lookup_pull_request(
        config.repository, branch, config.github_token
    )

    logger.info("Covera.gg Coverage Upload")
    logger.info("Repository: %s", config.repository)
    logger.info("Branch: %s", branch)

    logger.info("Detecting commit information...")
    commit = detect_commit_info(event)
    logger.info("Commit: %s - %s", commit.sha[:7], commit.message)
    logger.info("Author: %s <%s>", commit.author_name, commit.author_email)

    logger.info("Searching for coverage files...")
    files = discover(config.coverage_files)
    if not files:
        message = f"No coverage files found matching pattern: {config.coverage_files}"
        if config.fail_on_error:
            raise NoCoverageFilesError(message)
        logger.warning(message)
        _set_outputs(status="skipped", files_uploaded="0")
        return

    logger.info("Found %d coverage file(s):", len(files))
    for path in files:
        logger.info("  - %s", path)

    context = resolve(files, config.repo_root, config.working_directory)
    metadata = UploadMetadata(
        repository=config.repository,
        branch=branch,
        commit=commit,
        pull_request=pull_request,
    )

    logger.info("Uploading to Covera.gg...")
    result = CoveraClient(url=config.api_url, token=config.api_key).upload(metadata, files, context)

    _set_outputs(
        status="success",
        files_uploaded=str(len(files)),
        coverage_url=result.report_url,
        report_id=result.report_id,
    )
    logger.info("Successfully uploaded %d file(s)", len(files))
    if result.report_url:
        logger.info("View report: %s", result.report_url)
