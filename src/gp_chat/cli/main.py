"""
gp-chat CLI: `gpchat` command.

Commands:
  gpchat chat             Interactive REPL chat through the bridge
  gpchat send <message>   One-shot message
  gpchat config <cmd>     Show or change ~/.gp_chat/config.json
  gpchat link <url>       Serve the bridge to a Socket.IO frontend host
"""

import asyncio
import logging

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install gp-chat[cli]")

from gp_chat.app import ChatApp, build_app
from gp_chat.config import ChatConfig, load_config

console = Console()


def _load_config() -> ChatConfig:
    return load_config()


def _build_app(mock: bool) -> ChatApp:
    return build_app(_load_config(), mock=True if mock else None)


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("--debug", is_flag=True, help="Verbose logging")
def main(debug: bool):
    """gp-chat: conversational pipeline behind an embedded chat frontend."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


from gp_chat.cli.chat import chat_cmd, send_cmd
from gp_chat.cli.config import config
from gp_chat.cli.link import link_cmd

main.add_command(chat_cmd)
main.add_command(send_cmd)
main.add_command(config)
main.add_command(link_cmd)


if __name__ == "__main__":
    main()
