"""Command-line interface for Quire.

This module defines the CLI commands using Click framework.

Commands:
- build: Compile the project into the output directory.
- watch: Build, then recompile changed files as they are saved.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .log import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="quire")
def cli():
    """Quire static site compiler."""


def _fail(source_path: str, message: str) -> None:
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    if source_path:
        click.echo(click.style(f"  File: {source_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {message}", fg="white"), err=True)
    raise SystemExit(1)


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--verbose", "-v", is_flag=True, help="Log every compilation step")
def build(drafts: bool, verbose: bool):
    """Build the site into the output directory."""
    setup_logging(verbose)
    project_root = Path.cwd()
    from .build import BuildError, build_site
    from .config import ConfigError

    try:
        result = build_site(project_root, include_drafts=drafts)
    except BuildError as exc:
        _fail(exc.source_path, exc.message)
    except ConfigError as exc:
        _fail("", str(exc))
    else:
        click.echo(
            f"Built {len(result.page_views)} page views into {len(result.written)} "
            f"files in {result.output_dir}"
        )


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--serve", is_flag=True, help="Serve the output with live reload")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides quire.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides quire.yaml ws_port)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every compilation step")
def watch(drafts: bool, serve: bool, port: int | None, ws_port: int | None, verbose: bool):
    """Build, then recompile files as they change."""
    setup_logging(verbose)
    project_root = Path.cwd()
    from .build import BuildError
    from .config import ConfigError
    from .watch import WatchSession

    try:
        session = WatchSession(project_root, serve=serve, http_port=port, ws_port=ws_port)
        session.start(include_drafts=drafts)
    except BuildError as exc:
        _fail(exc.source_path, exc.message)
    except ConfigError as exc:
        _fail("", str(exc))


def main():
    """Entry point for the CLI application."""
    cli()
