"""Command-line interface for filecabinet_uploader."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from pathlib import Path

import click

from filecabinet_uploader import (
    ConfigCache,
    FileCabinetClient,
    FileCabinetError,
    Settings,
    UploadDispatcher,
    UploadResult,
    UploadState,
)
from filecabinet_uploader.config import write_env_template
from filecabinet_uploader.watcher import WorkspaceWatcher

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

workspace_option = click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace root holding the .env files (default: current directory)",
)


def load_workspace_settings(
    workspace: Path, cache: ConfigCache | None = None, *, require_credentials: bool = True
) -> Settings:
    """Load settings, exiting with a hint when credentials are incomplete."""
    settings = (cache or ConfigCache()).get(workspace)
    missing = settings.missing_credentials()
    if require_credentials and missing:
        click.echo(
            click.style(f"Missing configuration: {', '.join(missing)}", fg="red"), err=True
        )
        click.echo("Run 'filecabinet init' to create a .env template.", err=True)
        sys.exit(1)
    return settings


def _echo_result(result: UploadResult) -> None:
    target = result.target
    if result.success:
        click.echo(
            click.style("✓ ", fg="green")
            + f"{target.file_name} -> {target.logical_remote_path} ({result.action})"
        )
    else:
        click.echo(click.style("✗ ", fg="red") + f"{target.file_name}: {result.error}", err=True)


def _echo_status(path: Path, state: UploadState, detail: str | None) -> None:
    if state is UploadState.IN_FLIGHT:
        click.echo(f"Uploading {path.name}...")
    elif state is UploadState.SUCCEEDED:
        click.echo(click.style("✓ ", fg="green") + f"{path.name} -> {detail}")
    elif state is UploadState.FAILED:
        click.echo(click.style("✗ ", fg="red") + f"{path.name}: {detail}", err=True)


@click.group()
@click.version_option(package_name="filecabinet-uploader")
@click.option("--verbose", "-v", is_flag=True, help="Log request details")
def main(verbose: bool) -> None:
    """File cabinet auto-upload - push saved files to the remote file cabinet."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


@main.command()
@workspace_option
def watch(workspace: Path) -> None:
    """Watch the workspace and upload files as they are saved.

    Saves under the watch folder (default: src) upload the matching file
    from the upload folder (default: dist). Press Ctrl+C to stop.
    """
    workspace = workspace.resolve()
    cache = ConfigCache()
    settings = load_workspace_settings(workspace, cache)

    async def run() -> None:
        dispatcher = UploadDispatcher(
            FileCabinetClient.from_settings(settings),
            settings,
            workspace,
            on_status=_echo_status,
        )
        watcher = WorkspaceWatcher(dispatcher, cache)
        try:
            await watcher.run()
        finally:
            await dispatcher.client.aclose()

    click.echo(
        f"Watching {workspace / settings.watch_folder} -> {settings.root_path} "
        f"(uploading from {settings.upload_folder})"
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run())
    click.echo("\nStopped watching.")


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@workspace_option
def upload(files: tuple[Path, ...], workspace: Path) -> None:
    """Upload files now, without waiting for a save.

    FILES: One or more files inside the workspace.

    Examples:

        filecabinet upload src/FileCabinet/SuiteScripts/app/lib.js

        filecabinet upload src/FileCabinet/SuiteScripts/app/*.js -w ~/project
    """
    workspace = workspace.resolve()
    settings = load_workspace_settings(workspace)

    async def run() -> list[UploadResult]:
        async with FileCabinetClient.from_settings(settings) as client:
            dispatcher = UploadDispatcher(client, settings, workspace)
            results = await asyncio.gather(
                *(dispatcher.upload_now(f.resolve()) for f in files)
            )
            await dispatcher.close()
            return list(results)

    try:
        results = asyncio.run(run())
    except FileCabinetError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    success_count = 0
    for result in results:
        _echo_result(result)
        if result.success:
            success_count += 1

    total = len(results)
    if success_count == total:
        click.echo(click.style(f"\nAll {total} file(s) uploaded successfully!", fg="green"))
    else:
        click.echo(f"\n{success_count}/{total} file(s) uploaded.", err=True)
        sys.exit(1)


@main.command("resolve")
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@workspace_option
def resolve_command(files: tuple[Path, ...], workspace: Path) -> None:
    """Show which file would be uploaded and where, without uploading."""
    workspace = workspace.resolve()
    settings = load_workspace_settings(workspace, require_credentials=False)
    # Never opened: resolving needs no network
    dispatcher = UploadDispatcher(
        FileCabinetClient.from_settings(settings), settings, workspace
    )
    failed = False
    for path in files:
        try:
            target = dispatcher.resolve(path.resolve())
        except FileCabinetError as e:
            click.echo(click.style(f"✗ {path}: {e}", fg="red"), err=True)
            failed = True
            continue
        mapped = " (mapped)" if target.was_remapped else ""
        click.echo(f"{target.relative_path}{mapped} -> {target.logical_remote_path}")
    if failed:
        sys.exit(1)


@main.command("test")
@workspace_option
def test_connection(workspace: Path) -> None:
    """Test the connection and credentials."""
    settings = load_workspace_settings(workspace)

    async def run():
        async with FileCabinetClient.from_settings(settings) as client:
            return await client.test_connection()

    click.echo(f"Testing connection to: {settings.restlet_url}")
    try:
        info = asyncio.run(run())
    except FileCabinetError as e:
        click.echo(click.style(f"Connection failed: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(click.style(f"✓ Connection successful! RESTlet v{info.version}", fg="green"))
    if info.user_name:
        click.echo(f"  User: {info.user_name} (id {info.user_id}, role {info.role})")


@main.command()
@click.argument("path", required=False)
@click.option("--file-id", type=int, default=None, help="Remote file id to delete")
@workspace_option
@click.confirmation_option(prompt="Delete the remote file?")
def delete(path: str | None, file_id: int | None, workspace: Path) -> None:
    """Delete a remote file by path or id.

    PATH: Remote path, e.g. /SuiteScripts/app/lib.js
    """
    if not path and file_id is None:
        raise click.UsageError("Give a remote PATH or --file-id")
    settings = load_workspace_settings(workspace)

    async def run():
        async with FileCabinetClient.from_settings(settings) as client:
            return await client.delete(path, file_id=file_id)

    try:
        result = asyncio.run(run())
    except FileCabinetError as e:
        click.echo(click.style(f"Delete failed: {e}", fg="red"), err=True)
        sys.exit(1)
    click.echo(click.style(f"Deleted file {result.file_id}", fg="green"))


@main.command()
@workspace_option
def init(workspace: Path) -> None:
    """Create a .env template in the workspace."""
    target = write_env_template(workspace)
    click.echo(click.style(f"Created {target.name}. Fill in your credentials.", fg="green"))


if __name__ == "__main__":
    main()
