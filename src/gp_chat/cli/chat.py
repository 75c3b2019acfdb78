"""CLI: gpchat chat, gpchat send"""

import asyncio
import json
from typing import Any

import click
from rich.console import Console

from gp_chat.app import ChatApp
from gp_chat.frontend import FrontendBridge
from gp_chat.models.events import BridgeEventType

console = Console()


def _build_app(mock: bool) -> ChatApp:
    from gp_chat.cli.main import _build_app
    return _build_app(mock)


def _run(coro):
    from gp_chat.cli.main import _run
    return _run(coro)


def _render(frontend: FrontendBridge) -> None:
    """Print bridge events the way the embedded chat would show them."""

    def on_chunk(data: Any, _raw: dict[str, Any]) -> None:
        console.print(f"[dim]{data.get('chunk', '')}[/dim]", end="\r")

    def on_message(data: Any, _raw: dict[str, Any]) -> None:
        if data.get("role") != "bot":
            return
        console.print(f"[green]Bot:[/green] {data.get('message', '')}")
        for button in data.get("buttons") or []:
            console.print(f"  [cyan][{button['identifier']}][/cyan] {button['text']}")

    def on_error(data: Any, _raw: dict[str, Any]) -> None:
        console.print(f"[red]Error:[/red] {data.get('error', '')}")

    def on_history(data: Any, _raw: dict[str, Any]) -> None:
        for message in data.get("history") or []:
            console.print(f"[dim]{message['timestamp']}[/dim] {message['role']}: {message['message']}")

    def on_initialized(data: Any, _raw: dict[str, Any]) -> None:
        count = len(data.get("conversationHistory") or [])
        console.print(f"[dim]Chat ready ({count} earlier messages)[/dim]")

    frontend.on(BridgeEventType.STREAM_CHUNK, on_chunk)
    frontend.on(BridgeEventType.MESSAGE_RECEIVED, on_message)
    frontend.on(BridgeEventType.ERROR_OCCURRED, on_error)
    frontend.on(BridgeEventType.CONVERSATION_HISTORY, on_history)
    frontend.on(BridgeEventType.CHAT_INITIALIZED, on_initialized)


async def _settle(app: ChatApp) -> None:
    """Show events live until the running turn finishes."""
    stop = asyncio.Event()
    pump = asyncio.create_task(app.frontend.run(stop, interval=0.1))
    task = app.orchestrator.turn_task
    if task is not None:
        await asyncio.gather(task, return_exceptions=True)
    stop.set()
    await pump
    await app.frontend.poll()


@click.command("chat")
@click.option("--mock", is_flag=True, help="Use deterministic mock services")
def chat_cmd(mock: bool):
    """Interactive chat. /new, /history, /button <id>, /quit."""

    async def _chat():
        app = _build_app(mock)
        _render(app.frontend)
        app.orchestrator.start()
        with console.status("Connecting..."):
            await app.orchestrator.wait_ready()
        await _settle(app)
        console.print("[cyan]Type your message (Ctrl+C to exit)[/cyan]\n")
        try:
            while True:
                msg = await asyncio.to_thread(click.prompt, "You", prompt_suffix=": ")
                if msg.lower() in ("/quit", "/exit"):
                    break
                if msg == "/new":
                    await app.frontend.start_new_conversation()
                elif msg == "/history":
                    await app.frontend.request_conversation_history()
                elif msg.startswith("/button "):
                    await app.frontend.click_button(msg.split(" ", 1)[1].strip())
                elif msg.strip():
                    await app.frontend.send_message(msg)
                await _settle(app)
        except (KeyboardInterrupt, EOFError, click.Abort):
            pass
        finally:
            await app.close()

    _run(_chat())


@click.command("send")
@click.argument("message")
@click.option("--mock", is_flag=True, help="Use deterministic mock services")
@click.option("--json-output", "--json", is_flag=True)
def send_cmd(message: str, mock: bool, json_output: bool):
    """Send a one-shot message."""

    async def _send():
        app = _build_app(mock)
        if json_output:
            for event_type in (BridgeEventType.CHAT_INITIALIZED, BridgeEventType.MESSAGE_RECEIVED,
                               BridgeEventType.STREAM_CHUNK, BridgeEventType.ERROR_OCCURRED):
                app.frontend.on(event_type, lambda _data, raw: click.echo(json.dumps(raw)))
        else:
            _render(app.frontend)
        try:
            await app.orchestrator.bootstrap()
            await _settle(app)
            await app.frontend.send_message(message)
            await _settle(app)
            await app.orchestrator.wait_persisted()
        finally:
            await app.close()

    _run(_send())
