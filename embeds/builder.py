from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import discord

from config.defaults import DEFAULT_EMBED_COLOR
from config.defaults import MAX_EMBEDS_PER_MESSAGE

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")
EMBED_CONTENT_KEYS = ("title", "description", "fields", "image", "thumbnail", "author", "footer")


class EmbedPayloadError(ValueError):
    pass


def parse_color(value: Any, default: int = DEFAULT_EMBED_COLOR) -> int:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, int):
        return value if 0 <= value <= 0xFFFFFF else default
    m = HEX_COLOR_RE.match(str(value).strip())
    if not m:
        return default
    return int(m.group(1), 16)


def _text(value: Any) -> str:
    return str(value or "").strip()


def _url_of(value: Any) -> str:
    # Blocks store images either as plain URLs or as {"url": ...} objects.
    if isinstance(value, dict):
        return _text(value.get("url"))
    return _text(value)


def build_block_embed(block: dict, *, first: bool, now: datetime | None = None) -> discord.Embed:
    embed = discord.Embed(colour=discord.Colour(parse_color(block.get("color"))))
    if _text(block.get("title")):
        embed.title = _text(block.get("title"))[:256]
    if _text(block.get("description")):
        embed.description = _text(block.get("description"))[:4096]

    if first:
        if block.get("timestamp") is not False:
            embed.timestamp = now or datetime.now(timezone.utc)
        footer = block.get("footer")
        if isinstance(footer, dict) and (_text(footer.get("text")) or _text(footer.get("icon_url"))):
            embed.set_footer(text=_text(footer.get("text")), icon_url=_text(footer.get("icon_url")) or None)

    if _url_of(block.get("thumbnail")):
        embed.set_thumbnail(url=_url_of(block.get("thumbnail")))
    if _url_of(block.get("image")):
        embed.set_image(url=_url_of(block.get("image")))

    author = block.get("author")
    if isinstance(author, dict) and _text(author.get("name")):
        embed.set_author(
            name=_text(author.get("name")),
            icon_url=_text(author.get("icon_url")) or None,
            url=_text(author.get("url")) or None,
        )

    for field in block.get("fields") or []:
        if not isinstance(field, dict):
            continue
        name, value = _text(field.get("name")), _text(field.get("value"))
        if name and value:
            embed.add_field(name=name[:256], value=value[:1024], inline=bool(field.get("inline", False)))
    return embed


def build_block_embeds(blocks: list[dict], *, now: datetime | None = None) -> list[discord.Embed]:
    usable = [b for b in (blocks or []) if isinstance(b, dict)]
    return [build_block_embed(block, first=(i == 0), now=now) for i, block in enumerate(usable)]


def batch_embeds(embeds: list[discord.Embed], size: int = MAX_EMBEDS_PER_MESSAGE) -> list[list[discord.Embed]]:
    size = max(1, int(size))
    return [embeds[i : i + size] for i in range(0, len(embeds), size)]


def build_rules_embeds(
    blocks: list[dict],
    *,
    guild_name: str,
    guild_icon_url: str | None,
    updated_by: str,
    updated_by_icon_url: str | None,
    now: datetime | None = None,
) -> list[discord.Embed]:
    embeds: list[discord.Embed] = []
    for i, block in enumerate(b for b in (blocks or []) if isinstance(b, dict)):
        first = i == 0
        embed = discord.Embed(
            title=(_text(block.get("title")) or f"📜 Rules of {guild_name}")[:256],
            colour=discord.Colour(DEFAULT_EMBED_COLOR),
        )
        if first:
            embed.timestamp = now or datetime.now(timezone.utc)
            embed.set_footer(text=f"Updated by {updated_by}", icon_url=updated_by_icon_url or None)

        if _url_of(block.get("icon")):
            embed.set_thumbnail(url=_url_of(block.get("icon")))
        elif first and guild_icon_url:
            embed.set_thumbnail(url=guild_icon_url)
        if _url_of(block.get("image")):
            embed.set_image(url=_url_of(block.get("image")))

        for rule in block.get("rules") or []:
            if not isinstance(rule, dict):
                continue
            number = _text(rule.get("number"))
            value = f"**{_text(rule.get('description')) or 'No description given'}**"
            extras = []
            if _text(rule.get("punishment")):
                extras.append(f"⚖️ **Punishment:** {_text(rule.get('punishment'))}")
            if _text(rule.get("duration")):
                extras.append(f"⏱️ **Duration:** {_text(rule.get('duration'))}")
            if extras:
                value += "\n\n" + "\n".join(extras)
            embed.add_field(name=f"Rule - {number}" if number else "Rule", value=value[:1024], inline=False)
        embeds.append(embed)
    return embeds


def build_legacy_rules_embed(
    rules_text: str,
    *,
    guild_name: str,
    guild_icon_url: str | None,
    updated_by: str,
    updated_by_icon_url: str | None,
    now: datetime | None = None,
) -> discord.Embed:
    embed = discord.Embed(
        title=f"📜 Rules of {guild_name}"[:256],
        description=rules_text[:4096],
        colour=discord.Colour(DEFAULT_EMBED_COLOR),
        timestamp=now or datetime.now(timezone.utc),
    )
    if guild_icon_url:
        embed.set_thumbnail(url=guild_icon_url)
    embed.set_footer(text=f"Updated by {updated_by}", icon_url=updated_by_icon_url or None)
    return embed


EMBED_OBJECT_KEYS = ("footer", "author", "image", "thumbnail", "provider", "video")


def embed_from_payload(payload: Any) -> discord.Embed:
    """Validate an embed dict posted by the dashboard editor and build it."""
    if not isinstance(payload, dict):
        raise EmbedPayloadError("embed must be a JSON object")
    if not any(payload.get(key) for key in EMBED_CONTENT_KEYS):
        raise EmbedPayloadError("embed has no content")
    for key in ("title", "description", "url"):
        if payload.get(key) is not None and not isinstance(payload.get(key), str):
            raise EmbedPayloadError(f"embed {key} must be a string")
    for key in EMBED_OBJECT_KEYS:
        if payload.get(key) is not None and not isinstance(payload.get(key), dict):
            raise EmbedPayloadError(f"embed {key} must be an object")

    data = dict(payload)
    if "color" in data:
        data["color"] = parse_color(data.get("color"))
    fields = data.get("fields")
    if fields is not None:
        if not isinstance(fields, list):
            raise EmbedPayloadError("embed fields must be a list")
        if len(fields) > 25:
            raise EmbedPayloadError("embed has more than 25 fields")
        for f in fields:
            if not isinstance(f, dict):
                raise EmbedPayloadError("embed fields must be objects")
            if not all(isinstance(f.get(k), (str, type(None))) for k in ("name", "value")):
                raise EmbedPayloadError("embed field name and value must be strings")
        data["fields"] = [f for f in fields if _text(f.get("name")) and _text(f.get("value"))]
    try:
        embed = discord.Embed.from_dict(data)
        size = len(embed)
    except (TypeError, ValueError, KeyError, AttributeError) as exc:
        raise EmbedPayloadError(f"invalid embed: {exc}") from exc
    if size > 6000:
        raise EmbedPayloadError("embed exceeds 6000 characters")
    return embed
