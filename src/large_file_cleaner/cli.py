"""Command line interface for Git Large File Cleaner."""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console

from . import __version__
from .config import DEFAULT_SIZE_MB, ConfigManager, RunContext
from .display import Display
from .errors import EnvironmentCheckError
from .orchestrator import Orchestrator
from .utils.git_runner import find_missing_tools
from .utils.repo_log import PACKAGE_LOGGER

console = Console()

LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"

INSTALL_HINTS = {
    "git": "Install Git from https://git-scm.com/downloads",
    "git-filter-repo": "Install git-filter-repo: pip install git-filter-repo",
}


class CleanerCommand(click.Command):
    """Command whose usage errors exit with status 1."""

    def parse_args(self, ctx: click.Context, args: List[str]) -> List[str]:
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = 1
            raise


def configure_logging(verbose: bool) -> None:
    """
    Route package log records to stderr only in verbose mode.

    Display already echoes every operator-facing line, so by default package
    records go to the per-repository log files only.
    """
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.propagate = False
    for existing in list(package_logger.handlers):
        if getattr(existing, "_cleaner_console", False):
            package_logger.removeHandler(existing)
    handler: logging.Handler
    if verbose:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.setLevel(logging.DEBUG)
    else:
        # Keeps records away from logging.lastResort
        handler = logging.NullHandler()
    handler._cleaner_console = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)


def check_environment(execute: bool) -> None:
    """
    Verify required external tools are on PATH.

    Raises:
        EnvironmentCheckError: If any tool is missing
    """
    tools = ["git"]
    if execute:
        tools.append("git-filter-repo")
    missing = find_missing_tools(tools)
    if missing:
        hints = "; ".join(INSTALL_HINTS.get(tool, tool) for tool in missing)
        raise EnvironmentCheckError(
            f"Missing required tool(s): {', '.join(missing)}. {hints}"
        )


def prompt_confirmation(prompt: str) -> str:
    """Read the operator's answer; end of input counts as a refusal."""
    try:
        return click.prompt(prompt, default="", show_default=False)
    except click.Abort:
        return ""


@click.command(
    cls=CleanerCommand,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument(
    "parent_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
)
@click.option(
    "--execute",
    is_flag=True,
    help="Perform the destructive cleanup (default is a dry-run preview)",
)
@click.option(
    "--size",
    "size_mb",
    type=click.IntRange(min=1),
    default=None,
    help=f"Size threshold in MB (default: {DEFAULT_SIZE_MB})",
)
@click.option("--bucket", default=None, help="S3 bucket for archived blobs")
@click.option("--remote", default=None, help="Git remote to force-push to")
@click.option("--skip-s3", is_flag=True, help="Skip uploading blobs to S3")
@click.option("--skip-push", is_flag=True, help="Skip force-pushing to the remote")
@click.option(
    "--strict-archive",
    is_flag=True,
    help="Do not rewrite a repository if any of its uploads failed",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for report, backups and logs",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with default settings",
)
@click.option("--verbose", is_flag=True, help="Show debug logging on stderr")
@click.version_option(
    __version__,
    "-v",
    "--version",
    prog_name="git-large-file-cleaner",
    message="Git Large File Cleaner v%(version)s",
)
def cli(
    parent_dir: Path,
    execute: bool,
    size_mb: Optional[int],
    bucket: Optional[str],
    remote: Optional[str],
    skip_s3: bool,
    skip_push: bool,
    strict_archive: bool,
    output_dir: Optional[Path],
    config_path: Optional[Path],
    verbose: bool,
):
    """Find, archive and purge large files from Git repositories.

    Scans every Git repository directly under PARENT_DIR for files at or
    above the size threshold, in the working tree and in history.

    \b
    Without --execute only a preview and a CSV report are produced.
    With --execute, after typing YES, each repository is:
      1. Backed up to a tar.gz archive
      2. Large historical blobs uploaded to S3
      3. History rewritten with git-filter-repo
      4. Force-pushed to the remote
      5. Verified and garbage collected

    \b
    EXAMPLES:
      git-large-file-cleaner ~/repos
      git-large-file-cleaner ~/repos --size 50
      git-large-file-cleaner ~/repos --execute --skip-push
    """
    configure_logging(verbose)
    display = Display()
    display.header("Git Large File Cleaner")

    try:
        check_environment(execute)
    except EnvironmentCheckError as e:
        display.error(e.message)
        sys.exit(1)

    try:
        defaults = ConfigManager.for_parent_dir(parent_dir, config_path).load()
    except ValueError as e:
        display.error(str(e))
        sys.exit(1)

    context = RunContext.create(
        parent_dir,
        size_mb=size_mb or defaults.size_mb,
        output_dir=output_dir,
        execute=execute,
        bucket=bucket or defaults.bucket,
        remote=remote or defaults.remote,
        skip_archive=skip_s3,
        skip_publish=skip_push,
        strict_archive=strict_archive,
        aws_profile=defaults.aws_profile,
        aws_region=defaults.aws_region,
    )
    display.configuration(context)

    summary = Orchestrator(context, prompt_confirmation, display=display).run()
    sys.exit(summary.exit_code)


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\nInterrupted by user", style="red")
        sys.exit(1)
    except Exception as e:
        console.print(f"Unexpected error: {str(e)}", style="red", markup=False)
        sys.exit(1)


if __name__ == "__main__":
    main()
