"""CLI: gpchat config show|set"""

import json

import click
from rich.console import Console

from gp_chat.config import ChatConfig, save_config

console = Console()


def _load_config() -> ChatConfig:
    from gp_chat.cli.main import _load_config
    return _load_config()


@click.group()
def config():
    """Configuration commands."""


@config.command("show")
def config_show():
    """Print the effective configuration. Secrets are masked."""
    cfg = _load_config().model_dump()
    if cfg.get("openai_api_key"):
        cfg["openai_api_key"] = cfg["openai_api_key"][:4] + "..."
    click.echo(json.dumps(cfg, indent=2))


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a value. VALUE is parsed as JSON when possible (numbers, booleans, objects)."""
    cfg = _load_config()
    if key not in ChatConfig.model_fields:
        raise click.BadParameter(f"unknown setting {key!r}", param_hint="KEY")
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    updated = ChatConfig.model_validate({**cfg.model_dump(), key: parsed})
    save_config(updated)
    console.print(f"[green]Saved {key}[/green]")
