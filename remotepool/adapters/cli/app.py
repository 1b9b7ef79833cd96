"""
Main CLI application
"""
import typer
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from ...client import RemoteClient
from ...core.exceptions import RemoteError
from ...core.utils import ssh_config_hosts
from ...core.logging import setup_logging, get_logger, get_stdout_console, get_stderr_console
from .connection import build_client

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()

# Create main app
app = typer.Typer(
    name="remotepool",
    add_completion=False,
    help="Run commands and transfer files over a pool of SSH sessions",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML configuration file"),
    host: Optional[str] = typer.Option(None, "--host", "-H", help="Remote host or ~/.ssh/config alias"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Remote user"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="SSH port"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Private key file"),
    password: Optional[str] = typer.Option(None, "--password", help="Password (prompted if omitted)"),
    max_connection: Optional[int] = typer.Option(
        None, "--max-connection", "-n", help="Maximum number of SSH sessions"
    ),
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log file path",
    ),
):
    """
    remotepool - resilient remote exec / file transfer

    Connection options can also come from the TOML file or REMOTEPOOL_* variables.
    """
    setup_logging(level=log_level, log_file=log_file)

    overrides: Dict[str, Any] = {
        "user": user,
        "port": port,
        "key": key,
        "password": password,
        "pool": {"max_connection": max_connection},
    }
    if host:
        # A host alias from ~/.ssh/config resolves through ssh_config
        overrides["ssh_config" if _is_ssh_alias(host) else "host"] = host
    ctx.obj = {"config": config, "overrides": overrides}


def _is_ssh_alias(host: str) -> bool:
    return host in ssh_config_hosts()


@contextmanager
def _client(ctx: typer.Context) -> Iterator[RemoteClient]:
    """Build a client from the global options, report RemoteError and exit 1"""
    client: Optional[RemoteClient] = None
    try:
        client = build_client(ctx.obj["config"], ctx.obj["overrides"])
        yield client
    except RemoteError as e:
        logger.debug("command failed", exc_info=True)
        stderr_console.print(f"[red]Error:[/red] {e.reason}")
        raise typer.Exit(1)
    finally:
        if client is not None:
            client.close()


def _write_stdout(data: str) -> None:
    stdout_console.out(data, end="", highlight=False)


def _write_stderr(data: str) -> None:
    stderr_console.out(data, end="", highlight=False)


# ============================================================
# Commands
# ============================================================

@app.command("exec")
def exec_command(
    ctx: typer.Context,
    cmd: str = typer.Argument(..., help="Command line to run remotely"),
):
    """Run a command and exit with its status"""
    with _client(ctx) as client:
        rc = client.exec(cmd, stdout=_write_stdout, stderr=_write_stderr)
    raise typer.Exit(rc)


@app.command("send")
def send_command(
    ctx: typer.Context,
    src: str = typer.Argument(..., help="Local file, directory or glob"),
    dst: str = typer.Argument(..., help="Remote destination"),
    only: Optional[str] = typer.Option(None, "--only", help="Only send files matching this glob"),
    exclude: Optional[str] = typer.Option(None, "--exclude", help="Never send files matching this glob"),
):
    """Upload files or directory trees"""
    with _client(ctx) as client:
        client.send(src, dst, only, exclude)
    stdout_console.print(f"[green]✓[/green] {src} → {dst}")


@app.command("recv")
def recv_command(
    ctx: typer.Context,
    src: str = typer.Argument(..., help="Remote file, directory or glob"),
    dst: str = typer.Argument(..., help="Local destination"),
    only: Optional[str] = typer.Option(None, "--only", help="Only receive files matching this glob"),
    exclude: Optional[str] = typer.Option(None, "--exclude", help="Never receive files matching this glob"),
    recursive: bool = typer.Option(False, "-r", "--recursive", help="Source is a directory"),
):
    """Download files or directory trees"""
    with _client(ctx) as client:
        client.recv(src, dst, only, exclude, recursive=recursive)
    stdout_console.print(f"[green]✓[/green] {src} → {dst}")


@app.command("ls")
def ls_command(
    ctx: typer.Context,
    path: str = typer.Argument(".", help="Remote path"),
):
    """List a remote directory"""
    with _client(ctx) as client:
        names = client.ls(path)
    for name in names:
        stdout_console.print(name, highlight=False)


@app.command("mkdir")
def mkdir_command(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Remote directory"),
):
    """Create a remote directory and its parents"""
    with _client(ctx) as client:
        client.mkdir_p(path)


@app.command("check")
def check_command(ctx: typer.Context):
    """Check that the host is reachable and the credentials work"""
    with _client(ctx) as client:
        client.can_connect()
    stdout_console.print("[green]✓[/green] connection OK")


def run():
    """CLI entry point"""
    app()


if __name__ == "__main__":
    run()
