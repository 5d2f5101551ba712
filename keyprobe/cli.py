"""
keyprobe CLI

Command-line interface for the keyprobe server.
"""

import sys
from pathlib import Path

import click
import httpx
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .config import load_config, create_default_config, DEFAULT_PORT


console = Console()


def _server_port(ctx, port):
    """Port from --port, else the config file, else the default."""
    if port:
        return port
    config_path = ctx.obj.get("config_path")
    if config_path and Path(config_path).exists():
        return load_config(config_path).server.port
    return DEFAULT_PORT


@click.group()
@click.version_option(__version__, prog_name="keyprobe")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config file")
@click.pass_context
def cli(ctx, config_path: str):
    """keyprobe - OpenAI API key checker"""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# =============================================================================
# Server Commands
# =============================================================================

@cli.command()
@click.option("--host", "-h", default=None, help="Host to bind to")
@click.option("--port", "-p", default=None, type=int, help="Port to bind to")
@click.pass_context
def start(ctx, host: str, port: int):
    """Start the keyprobe server."""
    config_path = ctx.obj.get("config_path")

    if config_path and not Path(config_path).exists():
        console.print(f"[red]✗[/red] Config file not found: {config_path}")
        sys.exit(1)

    console.print(Panel(
        f"[bold]keyprobe v{__version__}[/bold]\n"
        f"Starting server on [cyan]http://{host or '0.0.0.0'}:{port or DEFAULT_PORT}[/cyan]\n"
        f"Press CTRL+C to stop",
        title="Starting"
    ))

    from .server import main as server_main
    server_main(config_path, host=host, port=port)


@cli.command()
def init():
    """Initialize a new configuration file."""
    config_path = Path("keyprobe.yaml")

    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    config_path.write_text(create_default_config())
    console.print(f"[green]✓[/green] Created {config_path}")
    console.print("\nEdit the file if needed, then run:")
    console.print("  [cyan]keyprobe -c keyprobe.yaml start[/cyan]")


@cli.command()
@click.option("--port", "-p", default=None, type=int, help="Server port")
@click.pass_context
def status(ctx, port: int):
    """Show server status."""
    port = _server_port(ctx, port)

    try:
        response = httpx.get(f"http://localhost:{port}/health")
        data = response.json()

        console.print(Panel(
            f"[bold green]Running[/bold green]\n\n"
            f"Version: {data.get('version', 'unknown')}\n"
            f"Port: {port}",
            title="keyprobe Status"
        ))
    except httpx.HTTPError as e:
        console.print(f"[red]✗[/red] Server not running: {e}")
        sys.exit(1)


# =============================================================================
# Key Commands
# =============================================================================

def _post_key(path: str, key: str, port: int) -> httpx.Response:
    return httpx.post(f"http://localhost:{port}{path}", json={"key": key}, timeout=60.0)


def _report(response: httpx.Response, title: str):
    data = response.json()

    if response.status_code == 200:
        console.print(Panel(
            f"[bold green]{data.get('message')}[/bold green]",
            title=f"✓ {title}"
        ))
        return

    error_type = data.get("errorType")
    console.print(Panel(
        f"[bold red]{data.get('error', 'Unknown error')}[/bold red]\n\n"
        f"Status: {response.status_code}"
        + (f"\nType: {error_type}" if error_type else ""),
        title=f"✗ {title}"
    ))
    sys.exit(1)


@cli.command("check")
@click.argument("key", envvar="OPENAI_API_KEY")
@click.option("--port", "-p", default=None, type=int, help="Server port")
@click.pass_context
def check_cmd(ctx, key: str, port: int):
    """Check whether KEY is a working OpenAI key."""
    port = _server_port(ctx, port)

    try:
        response = _post_key("/api/check-key", key, port)
    except httpx.HTTPError as e:
        console.print(f"[red]✗[/red] Failed to reach keyprobe: {e}")
        sys.exit(1)

    _report(response, "Key Check")


@cli.command("chat")
@click.argument("key", envvar="OPENAI_API_KEY")
@click.option("--port", "-p", default=None, type=int, help="Server port")
@click.pass_context
def chat_cmd(ctx, key: str, port: int):
    """Send a test chat completion using KEY."""
    port = _server_port(ctx, port)

    try:
        response = _post_key("/api/chat", key, port)
    except httpx.HTTPError as e:
        console.print(f"[red]✗[/red] Failed to reach keyprobe: {e}")
        sys.exit(1)

    _report(response, "Chat Probe")


# =============================================================================
# Main
# =============================================================================

def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
