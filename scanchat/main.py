"""Command-line entry point for scanchat."""

import os
from dataclasses import asdict
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from scanchat.config import Config, set_config
from scanchat.exceptions import ConfigurationError
from scanchat.logging import configure_logging, get_logger
from scanchat.plugins.registry import PluginKind, resolve_plugin

log = get_logger(__name__)

app = typer.Typer(help="scanchat - chat backend with security scanning plugins")
console = Console()


def _load_config(config: str) -> Config:
    if config:
        try:
            return Config.from_yaml(Path(config))
        except ConfigurationError as e:
            log.error("Failed to load config", path=config, error=str(e))
    return Config.load()


@app.command()
def serve(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    host: str = typer.Option("", "--host", help="Override bind host"),
    port: int = typer.Option(0, "--port", help="Override bind port"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Run the chat API server."""
    if verbose:
        os.environ["SCANCHAT_LOGGING__LEVEL"] = "DEBUG"

    cfg = _load_config(config)
    if host:
        cfg.web.host = host
    if port:
        cfg.web.port = port
    set_config(cfg)
    configure_logging()

    from scanchat.web_server import run_web_server

    console.print(f"[bold]scanchat[/bold] listening on http://{cfg.web.host}:{cfg.web.port}")
    run_web_server(cfg)


@app.command()
def parse(
    command: str = typer.Argument(..., help='Tool command, e.g. "/katana -u example.com"'),
) -> None:
    """Parse a tool command locally and show the resulting parameters."""
    text = command.strip()
    name = text.split()[0] if text else ""
    kind = PluginKind.from_name(name)
    if kind is None:
        known = ", ".join(f"/{k.value}" for k in PluginKind)
        console.print(f"[red]Unknown tool '{name}'. Known tools: {known}[/red]")
        raise typer.Exit(code=2)

    tool = resolve_plugin(kind)
    params = tool.parse(text)
    if params.help:
        console.print(params.help, markup=False)
        return
    if params.error:
        console.print(params.error, markup=False, style="red")
        raise typer.Exit(code=1)

    fields = {k: v for k, v in asdict(params).items() if k not in ("error", "help")}
    console.print_json(data=fields)
    console.print(
        Panel(
            Text(f"{params.to_command()}\n\nquery: {params.to_query()}"),
            title=f"{tool.title} canonical form",
        )
    )


@app.command()
def version() -> None:
    """Show version information."""
    from scanchat import __version__
    console.print(f"scanchat v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
