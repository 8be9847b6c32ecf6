"""CLI interface for PySpSync."""

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import click
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .api import GraphClient
from .config import config
from .exceptions import NoContentError, SpSyncConfigError
from .output import OutputFormatter
from .retry import RetryPolicy, upload_policy
from .sync import DirectoryTreeScanner, RemoteLocation, SyncEngine, SyncReport
from .sync.report import UploadOutcome
from .sync.scanner import SourceEntry

logger = logging.getLogger(__name__)


def write_github_outputs(path: Path, report: SyncReport) -> None:
    """Append the report outputs to a GitHub Actions output file."""
    with path.open("a", encoding="utf-8") as f:
        for key, value in report.to_outputs().items():
            f.write(f"{key}={value}\n")


@click.group()
@click.option(
    "--token", "-t", envvar="SPSYNC_ACCESS_TOKEN", help="Graph API access token"
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pyspsync")
@click.pass_context
def main(
    ctx: Any,
    token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """PySpSync - Mirror local directories into SharePoint/OneDrive drives."""
    ctx.ensure_object(dict)
    ctx.obj["token"] = token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pyspsync").setLevel(logging.DEBUG)
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--drive-id", "-d", help="Destination drive id [SPSYNC_DRIVE_ID]")
@click.option(
    "--folder-id", "-f", help="Destination folder id in the drive [SPSYNC_FOLDER_ID]"
)
@click.option(
    "--delay",
    type=click.IntRange(min=0),
    default=None,
    help="Delay between requests in milliseconds [SPSYNC_DELAY]",
)
@click.option(
    "--max-retries",
    type=click.IntRange(min=0),
    default=None,
    help="Retries per request [SPSYNC_UPLOAD_MAX_RETRIES]",
)
@click.option(
    "--base-delay",
    type=click.IntRange(min=0),
    default=None,
    help="Backoff base in milliseconds [SPSYNC_UPLOAD_BASE_DELAY]",
)
@click.option(
    "--github-output",
    envvar="GITHUB_OUTPUT",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Append workflow outputs to this file",
)
@click.pass_context
def upload(
    ctx: Any,
    path: Path,
    drive_id: Optional[str],
    folder_id: Optional[str],
    delay: Optional[int],
    max_retries: Optional[int],
    base_delay: Optional[int],
    github_output: Optional[Path],
) -> None:
    """Upload a local directory tree to a drive folder.

    Missing folders are created, existing ones are reused, and every file
    is uploaded (replacing remote copies). Exits with status 1 if anything
    failed.
    """
    out: OutputFormatter = ctx.obj["out"]
    token = ctx.obj["token"] or config.access_token
    drive_id = drive_id or config.drive_id
    folder_id = folder_id or config.folder_id
    delay_ms = delay if delay is not None else config.delay_ms

    try:
        config.require(access_token=token, drive_id=drive_id, folder_id=folder_id)
    except SpSyncConfigError as e:
        out.error(str(e))
        ctx.exit(2)

    policy = upload_policy()
    if max_retries is not None:
        policy = replace(policy, max_retries=max_retries)
    if base_delay is not None:
        policy = replace(policy, base_delay_ms=base_delay)

    location = RemoteLocation(drive_id=drive_id, folder_id=folder_id)
    report = asyncio.run(_run_upload(token, path, location, delay_ms, policy, out))

    out.output_report(report)
    if github_output is not None:
        write_github_outputs(github_output, report)
    if report.has_failures:
        ctx.exit(1)


async def _run_upload(
    token: str,
    path: Path,
    location: RemoteLocation,
    delay_ms: int,
    policy: RetryPolicy,
    out: OutputFormatter,
) -> SyncReport:
    async with GraphClient(access_token=token) as client:
        engine = SyncEngine(client, policy=policy)
        if out.quiet or out.json_output:
            return await engine.sync(path, location, delay_ms)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            transient=True,
            console=out.err_console,
        ) as progress:
            task = progress.add_task("Uploading...", total=None)

            def on_file(
                index: int, total: int, entry: SourceEntry, outcome: UploadOutcome
            ) -> None:
                progress.update(
                    task,
                    completed=index,
                    total=total,
                    description=f"{outcome.value}: {entry.relative_path}",
                )

            return await engine.sync(path, location, delay_ms, progress_callback=on_file)


@main.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_context
def scan(ctx: Any, path: Path) -> None:
    """Show the folders and files an upload of PATH would send."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        structure = DirectoryTreeScanner().scan(path)
    except NoContentError as e:
        out.error(str(e))
        ctx.exit(1)
    out.output_structure(structure, total_size=structure.total_size())


if __name__ == "__main__":
    main()
