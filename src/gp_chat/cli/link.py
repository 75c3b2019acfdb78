"""CLI: gpchat link"""

from typing import Optional

import click
from rich.console import Console

from gp_chat.app import ChatApp
from gp_chat.transport.socketio import SocketIOFrontendLink

console = Console()


def _build_app(mock: bool) -> ChatApp:
    from gp_chat.cli.main import _build_app
    return _build_app(mock)


def _run(coro):
    from gp_chat.cli.main import _run
    return _run(coro)


@click.command("link")
@click.argument("url")
@click.option("--token", default=None, help="Auth token presented to the frontend host")
@click.option("--mock", is_flag=True, help="Use deterministic mock services")
def link_cmd(url: str, token: Optional[str], mock: bool):
    """Serve the bridge to a Socket.IO frontend host at URL."""

    async def _link():
        app = _build_app(mock)
        link = SocketIOFrontendLink(app.bridge, url, token=token)
        with console.status(f"Connecting to {url}..."):
            await link.connect()
        console.print(f"[green]Linked to {url}[/green] (Ctrl+C to stop)")
        app.orchestrator.start()
        try:
            await link.pump()
        finally:
            await link.disconnect()
            await app.close()

    try:
        _run(_link())
    except KeyboardInterrupt:
        pass
