from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

PRESENCE_TYPES = ("playing", "watching", "listening", "competing")


@dataclass(slots=True)
class BotTexts:
    version: str = "texts_v1"
    help_title: str = "📚 Command reference"
    help_description: str = ""
    help_entries: list[dict[str, str]] = field(default_factory=list)
    presence: list[dict[str, str]] = field(default_factory=list)
    default_rules: str = ""


def default_bot_texts() -> BotTexts:
    return BotTexts(
        version="texts_v1",
        help_title="📚 Command reference",
        help_description="Use the commands below to post formatted messages on your server!",
        help_entries=[
            {"name": "🎨 /embed", "value": "Post the embed message composed in the web dashboard"},
            {"name": "📜 /rules", "value": "Post the server rules"},
            {"name": "📊 /stats", "value": "Show the most active members of the server"},
            {"name": "📚 /help", "value": "Show this message"},
        ],
        presence=[
            {"type": "watching", "name": "over the server"},
            {"type": "playing", "name": "/help for help"},
            {"type": "listening", "name": "settings in the web dashboard"},
        ],
        default_rules=(
            "**1. Respect comes first:** Treat every member with respect.\n\n"
            "**2. No spam:** Keep channels readable.\n\n"
            "**3. Listen to the moderators:** Moderator decisions are final."
        ),
    )


def default_texts_path() -> str:
    return str(Path(__file__).resolve().parent / "texts.yml")


def _as_entries(value: Any) -> list[dict[str, str]]:
    if not isinstance(value, list):
        return []
    out: list[dict[str, str]] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        text = str(item.get("value") or "").strip()
        if name and text:
            out.append({"name": name, "value": text})
    return out


def _as_presence(value: Any) -> list[dict[str, str]]:
    if not isinstance(value, list):
        return []
    out: list[dict[str, str]] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        kind = str(item.get("type") or "").strip().lower()
        name = str(item.get("name") or "").strip()
        if kind in PRESENCE_TYPES and name:
            out.append({"type": kind, "name": name})
    return out


def load_bot_texts(path: str | Path | None) -> tuple[BotTexts, str | None]:
    """
    Returns (texts, warning_message). warning_message is None on clean load.
    """
    defaults = default_bot_texts()
    if not path:
        return (defaults, "Texts path missing; using built-in defaults.")

    p = Path(path)
    if not p.exists():
        return (defaults, f"Texts file not found at {p}; using built-in defaults.")

    try:
        payload = yaml.safe_load(p.read_text(encoding="utf-8"))
    except Exception as exc:
        return (defaults, f"Failed to read texts from {p}: {exc}; using built-in defaults.")

    if not isinstance(payload, dict):
        return (defaults, f"Invalid texts format in {p}; using built-in defaults.")

    help_block = payload.get("help") if isinstance(payload.get("help"), dict) else {}
    texts = BotTexts(
        version=str(payload.get("version") or defaults.version),
        help_title=str(help_block.get("title") or defaults.help_title),
        help_description=str(help_block.get("description") or defaults.help_description),
        help_entries=_as_entries(help_block.get("entries")) or defaults.help_entries,
        presence=_as_presence(payload.get("presence")) or defaults.presence,
        default_rules=str(payload.get("default_rules") or "").strip() or defaults.default_rules,
    )
    return (texts, None)
