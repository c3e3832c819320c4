"""Serve command implementation."""

import os

import uvicorn
from rich.console import Console
from rich.panel import Panel

from cont_srv.core.errors import ConfigError
from cont_srv.models.config import ServerConfig
from cont_srv.server.app import CONFIG_ENV, create_app


def check_paths(config: ServerConfig) -> None:
    """Fail early on missing root directory or TLS files."""
    if not config.root_dir.is_dir():
        raise ConfigError(f"Root directory not found: {config.root_dir}")
    for path in (config.cert_path, config.key_path):
        if path is not None and not path.is_file():
            raise ConfigError(f"TLS file not found: {path}")


def execute_serve(config: ServerConfig, console: Console) -> None:
    """Run the HTTP(S) server until interrupted."""
    check_paths(config)

    scheme = "https" if config.tls_enabled else "http"
    info_lines = [
        f"[bold]{scheme}://{config.address}:{config.port}/[/]",
        "",
        f"[dim]Root:[/] {config.root_dir.resolve()}",
        f"[dim]Auth:[/] {'basic (' + config.user_name + ')' if config.auth_enabled else 'off'}",
        f"[dim]Workers:[/] {config.workers}",
    ]
    console.print(Panel("\n".join(info_lines), title="cont-srv", border_style="green"))

    options = {
        "host": config.address,
        "port": config.port,
        "log_config": None,
    }
    if config.tls_enabled:
        options["ssl_certfile"] = str(config.cert_path)
        options["ssl_keyfile"] = str(config.key_path)

    if config.workers > 1:
        # Worker processes rebuild the app from the serialized config
        os.environ[CONFIG_ENV] = config.model_dump_json()
        uvicorn.run(
            "cont_srv.server.app:create_app_from_env",
            factory=True,
            workers=config.workers,
            **options,
        )
    else:
        uvicorn.run(create_app(config), **options)
