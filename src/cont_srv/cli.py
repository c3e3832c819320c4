"""Main CLI application."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from cont_srv.core.errors import ContentServerError

app = typer.Typer(
    name="cont-srv",
    help="Serve directories, files and EPUB books to a web browser.",
    add_completion=False,
)

console = Console()


def setup_logging(verbose: bool) -> None:
    """Route all logging, uvicorn's included, through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )
    # Per-request access lines only with -v
    logging.getLogger("uvicorn.access").setLevel(logging.INFO if verbose else logging.WARNING)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Serve directories, files and EPUB books to a web browser.

    Run without a command to serve the current directory with defaults.
    """
    setup_logging(verbose)
    if ctx.invoked_subcommand is None:
        serve(address=None, port=None, root_dir=None, config_file=None)


@app.command()
def serve(
    address: Annotated[
        Optional[str],
        typer.Option(
            "--address",
            "-a",
            help="The address the server binds to. Use '::' to bind to all addresses [default: 0.0.0.0]",
        ),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option(
            "--port",
            "-p",
            help="The server listening port [default: 1131]",
            min=1,
            max=65535,
        ),
    ] = None,
    root_dir: Annotated[
        Optional[Path],
        typer.Option(
            "--root-dir",
            "-r",
            help="The contents root directory [default: .]",
        ),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option(
            "--config-file",
            "-c",
            help="Path of a TOML config file; its keys override the options above",
        ),
    ] = None,
) -> None:
    """Run the content server."""
    from cont_srv.commands.serve import execute_serve
    from cont_srv.core.config import load_config

    try:
        config = load_config(
            config_file,
            address=address,
            port=port,
            root_dir=root_dir,
        )
        execute_serve(config, console)
    except ContentServerError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)


@app.command("hash-password")
def hash_password_command(
    password: Annotated[
        str,
        typer.Argument(help="Password to hash for the password_hash config key"),
    ],
) -> None:
    """Hash a password and print the result for use in the config file."""
    from cont_srv.server.auth import hash_password

    console.print(hash_password(password), highlight=False, soft_wrap=True)


@app.command()
def toc(
    book_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the EPUB file",
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
) -> None:
    """Display book metadata and table of contents."""
    from cont_srv.commands.toc import execute_toc

    try:
        execute_toc(book_path, console)
    except ContentServerError as e:
        console.print(f"[red]Error reading file: {e}[/]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
