"""Typer-powered command line for ``bvm``."""

import asyncio
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import BvmConfig
from .errors import BvmError
from .install import HttpFetcher, InstallOpts, InstallOrchestrator, Linker, TarArchiver
from .utils import SpinnerProgress, setup_logging, time_format
from .utils.progress import ProgressReporter
from .versions import CatalogResolver, VersionStore

console = Console()

app = typer.Typer(
    help="Install and switch between versions of bit.",
    no_args_is_help=True,
    add_completion=False,
)


@dataclass
class Runtime:
    config: BvmConfig
    store: VersionStore
    linker: Linker


def build_orchestrator(config: BvmConfig, progress: Optional[ProgressReporter] = None) -> InstallOrchestrator:
    store = VersionStore(config.root_dir)
    return InstallOrchestrator(
        store=store,
        resolver=CatalogResolver(config.catalog_url, timeout=config.request_timeout),
        fetcher=HttpFetcher(
            config.release_url_template,
            retries=config.download_retries,
            timeout=config.request_timeout,
        ),
        archiver=TarArchiver(),
        linker=Linker(store, config.default_link_name),
        progress=progress,
    )


def _runtime(ctx: typer.Context) -> Runtime:
    return ctx.obj


def _fail(error: BvmError) -> NoReturn:
    console.print(f"[red]error:[/red] {escape(str(error))}")
    raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"bvm {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    root_dir: Optional[Path] = typer.Option(
        None, "--root-dir", file_okay=False, help="Directory holding installed versions (default ~/.bvm)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to the console."),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show bvm's version and exit."
    ),
) -> None:
    config = BvmConfig.load(root_dir)
    setup_logging(config.log_dir, verbose=verbose)
    store = VersionStore(config.root_dir)
    ctx.obj = Runtime(config=config, store=store, linker=Linker(store, config.default_link_name))


@app.command()
def install(
    ctx: typer.Context,
    bit_version: str = typer.Argument("latest", metavar="[BIT_VERSION]", help="Version to install."),
    override: bool = typer.Option(
        False, "--override/--no-override",
        help="Download the version again even if it already exists in the file system.",
    ),
    replace: bool = typer.Option(True, "--replace/--no-replace", help="Replace the current version."),
    as_json: bool = typer.Option(False, "--json", help="Print the install result as JSON."),
) -> None:
    """Install a specific bit version (e.g. `bvm install 0.0.200`)."""
    runtime = _runtime(ctx)
    orchestrator = build_orchestrator(runtime.config, None if as_json else SpinnerProgress())
    started = time.monotonic()
    try:
        result = asyncio.run(orchestrator.install(bit_version, InstallOpts(override=override, replace=replace)))
    except BvmError as e:
        _fail(e)
    elapsed = time_format(time.monotonic() - started)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    console.print(
        f"version [green]{escape(result.installed_version)}[/green] installed on "
        f"[green]{escape(str(result.version_path))}[/green] in {elapsed}"
    )


@app.command()
def upgrade(ctx: typer.Context) -> None:
    """Install the latest bit version from the server and make it current."""
    runtime = _runtime(ctx)
    orchestrator = build_orchestrator(runtime.config, SpinnerProgress())
    try:
        result = asyncio.run(orchestrator.install("latest", InstallOpts(override=False, replace=True)))
    except BvmError as e:
        _fail(e)
    console.print(
        f"current is now linked to version [green]{escape(result.installed_version)}[/green] "
        f"in path [green]{escape(str(result.version_path))}[/green]"
    )


@app.command("list")
def list_versions(
    ctx: typer.Context,
    remote: bool = typer.Option(False, "--remote", help="List versions available on the server."),
) -> None:
    """List installed versions, or the versions available remotely."""
    runtime = _runtime(ctx)
    if remote:
        resolver = CatalogResolver(runtime.config.catalog_url, timeout=runtime.config.request_timeout)
        try:
            listing = asyncio.run(resolver.list_remote())
        except BvmError as e:
            _fail(e)
        latest = listing.latest()
        for entry in listing.sorted():
            marker = " (latest)" if latest is not None and entry.version == latest.version else ""
            typer.echo(f"{entry.version}{marker}")
        return

    async def _collect():
        return await runtime.store.installed(), await runtime.linker.current()

    try:
        installed, current = asyncio.run(_collect())
    except BvmError as e:
        _fail(e)
    if not installed:
        console.print("no versions installed")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Current", no_wrap=True)
    table.add_column("Version", no_wrap=True)
    table.add_column("Path")
    for version in installed:
        table.add_row(
            "*" if version == current else "",
            version,
            str(runtime.store.path_for(version)),
        )
    console.print(table)


@app.command()
def link(ctx: typer.Context, bit_version: str = typer.Argument(..., help="Installed version to make current.")) -> None:
    """Point the current link at an installed version."""
    runtime = _runtime(ctx)
    try:
        link_path = asyncio.run(runtime.linker.link(bit_version))
    except BvmError as e:
        _fail(e)
    console.print(f"{escape(str(link_path))} now points to version [green]{escape(bit_version)}[/green]")


@app.command()
def remove(ctx: typer.Context, bit_version: str = typer.Argument(..., help="Installed version to delete.")) -> None:
    """Delete an installed version. The current version cannot be removed."""
    runtime = _runtime(ctx)

    async def _remove() -> bool:
        if await runtime.linker.current() == bit_version:
            return False
        await runtime.store.remove(bit_version)
        return True

    try:
        removed = asyncio.run(_remove())
    except BvmError as e:
        _fail(e)
    if not removed:
        console.print(f"[red]error:[/red] version {escape(bit_version)} is the current version, link another version first")
        raise typer.Exit(code=1)
    console.print(f"removed version {escape(bit_version)}")
