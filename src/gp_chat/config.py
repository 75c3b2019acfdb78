"""
Configuration stored as JSON at ~/.gp_chat/config.json.

Scalar settings can be overridden with GP_CHAT_<FIELD> environment
variables, e.g. GP_CHAT_OPENAI_API_KEY.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

CONFIG_DIR = Path.home() / ".gp_chat"
CONFIG_FILE = CONFIG_DIR / "config.json"
ENV_PREFIX = "GP_CHAT_"


class ChatConfig(BaseModel):
    base_url: str = "http://localhost:8000"
    login_path: str = "/login"
    login_credentials: dict[str, str] = {}
    router_url: str = ""
    openai_api_key: str = ""
    openai_endpoint: str = "https://api.openai.com/v1/chat/completions"
    openai_model: str = "gpt-4"
    embeddings_endpoint: str = "https://api.openai.com/v1/embeddings"
    embedding_model: str = "text-embedding-3-small"
    history_window: int = 10
    retry_delay_s: float = 4.0
    request_timeout_s: float = 30.0
    instructions: dict[str, str] = {}
    rag_corpora: dict[str, dict[str, str]] = {}
    # Empty path disables the backend source.
    predefined_path: str = "/chat-predefined-messages"
    instructions_path: str = "/chat-instructions"
    history_file: str = str(CONFIG_DIR / "history.jsonl")
    module_context: Optional[str] = None
    mock: bool = False


def _env_overrides(environ: Optional[dict[str, str]] = None) -> dict[str, Any]:
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for name, field in ChatConfig.model_fields.items():
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is None:
            continue
        if field.annotation is bool:
            overrides[name] = value.lower() in ("1", "true", "yes", "on")
        elif field.annotation in (str, int, float, Optional[str]):
            overrides[name] = value
    return overrides


def load_config(path: Path = CONFIG_FILE, environ: Optional[dict[str, str]] = None) -> ChatConfig:
    try:
        raw = json.loads(Path(path).read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        raw = {}
    if not isinstance(raw, dict):
        raw = {}
    return ChatConfig.model_validate({**raw, **_env_overrides(environ)})


def save_config(cfg: ChatConfig, path: Path = CONFIG_FILE) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(cfg.model_dump_json(indent=2))
