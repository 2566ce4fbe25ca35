from __future__ import annotations

import hmac
from typing import Any

import discord
from aiohttp import web

from config.defaults import MODLOG_DEFAULT_LIMIT
from embeds.builder import EmbedPayloadError
from embeds.builder import embed_from_payload

STORE_KEY = web.AppKey("store", Any)
BOT_KEY = web.AppKey("bot", Any)
API_TOKEN_KEY = web.AppKey("api_token", str)

# Reachable without a token even when one is configured.
PUBLIC_PATHS = {"/api/health"}


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"success": False, "message": message}, status=status)


def _parse_snowflake(raw: str | None) -> int | None:
    text = str(raw or "").strip()
    return int(text) if text.isdigit() else None


def _bot_ready(bot) -> bool:
    return bot is not None and bot.is_ready()


@web.middleware
async def json_error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException as ex:
        if ex.content_type == "application/json":
            raise
        return _error(ex.status, ex.reason)
    except Exception as ex:
        print(f"[Web] unhandled error {request.method} {request.path}: {ex!r}")
        return _error(500, str(ex) or "Internal server error")


@web.middleware
async def token_middleware(request: web.Request, handler):
    token = request.app[API_TOKEN_KEY]
    if token and request.path.startswith("/api/") and request.path not in PUBLIC_PATHS:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return _error(401, "Missing or invalid Authorization header")
        if not hmac.compare_digest(auth_header.split(" ", 1)[1], token):
            return _error(403, "Invalid token")
    return await handler(request)


async def handle_health(request: web.Request) -> web.Response:
    bot = request.app[BOT_KEY]
    return web.json_response({"status": "ok", "bot_ready": _bot_ready(bot)})


async def handle_guilds(request: web.Request) -> web.Response:
    bot = request.app[BOT_KEY]
    if not _bot_ready(bot):
        return _error(503, "Bot is not connected to Discord")
    guilds = []
    for guild in bot.guilds:
        icon = getattr(guild, "icon", None)
        guilds.append(
            {
                "id": str(guild.id),
                "name": guild.name,
                "icon": str(icon.url) if icon is not None else None,
                "memberCount": guild.member_count,
            }
        )
    return web.json_response({"success": True, "guilds": guilds})


async def handle_get_settings(request: web.Request) -> web.Response:
    guild_id = _parse_snowflake(request.match_info.get("guild_id"))
    if guild_id is None:
        return _error(400, "Invalid guild ID")
    settings = request.app[STORE_KEY].get_guild_settings(guild_id)
    return web.json_response(settings or {})


async def handle_save_settings(request: web.Request) -> web.Response:
    guild_id = _parse_snowflake(request.match_info.get("guild_id"))
    if guild_id is None:
        return _error(400, "Invalid guild ID")
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Request body must be JSON")
    if not isinstance(payload, dict):
        return _error(400, "Settings must be a JSON object")

    try:
        merged = request.app[STORE_KEY].set_guild_settings(guild_id, payload)
    except OSError as e:
        print(f"[Web] failed to save settings guild={guild_id}: {e}")
        return _error(500, "Failed to save settings")
    print(f"[Web] settings saved guild={guild_id} keys={sorted(payload)}")
    return web.json_response({"success": True, "message": "Settings saved!", "settings": merged})


async def handle_warnings(request: web.Request) -> web.Response:
    guild_id = _parse_snowflake(request.match_info.get("guild_id"))
    user_id = _parse_snowflake(request.match_info.get("user_id"))
    if guild_id is None or user_id is None:
        return _error(400, "Invalid guild or user ID")
    return web.json_response(request.app[STORE_KEY].get_warnings(guild_id, user_id))


async def handle_modlogs(request: web.Request) -> web.Response:
    guild_id = _parse_snowflake(request.match_info.get("guild_id"))
    if guild_id is None:
        return _error(400, "Invalid guild ID")
    try:
        limit = int(request.query.get("limit") or MODLOG_DEFAULT_LIMIT)
    except ValueError:
        limit = MODLOG_DEFAULT_LIMIT
    if limit <= 0:
        limit = MODLOG_DEFAULT_LIMIT
    return web.json_response(request.app[STORE_KEY].get_mod_logs(guild_id, limit))


async def handle_channels(request: web.Request) -> web.Response:
    bot = request.app[BOT_KEY]
    if not _bot_ready(bot):
        return _error(503, "Bot is not connected to Discord")
    guild_id = _parse_snowflake(request.match_info.get("guild_id"))
    if guild_id is None:
        return _error(400, "Invalid guild ID")
    guild = bot.get_guild(guild_id)
    if guild is None:
        return _error(404, "Server not found")

    channels = [
        {"id": str(channel.id), "name": channel.name, "type": str(channel.type)}
        for channel in guild.text_channels
    ]
    channels.sort(key=lambda c: c["name"])
    return web.json_response({"success": True, "channels": channels})


async def _resolve_text_channel(bot, channel_id: int):
    channel = bot.get_channel(channel_id)
    if channel is None:
        try:
            channel = await bot.fetch_channel(channel_id)
        except (discord.NotFound, discord.Forbidden):
            return None
    if not isinstance(channel, discord.abc.Messageable):
        return None
    return channel


async def handle_send_embed(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Request body must be JSON")
    if not isinstance(payload, dict):
        return _error(400, "Request body must be a JSON object")

    channel_id = _parse_snowflake(payload.get("channelId"))
    if channel_id is None or not payload.get("embed"):
        return _error(400, "Missing channel or embed data")

    try:
        embed = embed_from_payload(payload.get("embed"))
    except EmbedPayloadError as e:
        return _error(400, str(e))

    bot = request.app[BOT_KEY]
    if not _bot_ready(bot):
        return _error(503, "Bot is not connected to Discord")

    channel = await _resolve_text_channel(bot, channel_id)
    if channel is None:
        return _error(404, "Channel not found or not a text channel")

    try:
        await channel.send(embed=embed)
    except discord.HTTPException as e:
        print(f"[Web] send-embed failed channel={channel_id}: {e}")
        return _error(500, str(e) or "Failed to send message")
    print(f"[Web] embed sent channel={channel_id}")
    return web.json_response({"success": True, "message": "Message sent!"})


def create_app(*, store, bot=None, api_token: str | None = None) -> web.Application:
    app = web.Application(middlewares=[json_error_middleware, token_middleware])
    app[STORE_KEY] = store
    app[BOT_KEY] = bot
    app[API_TOKEN_KEY] = (api_token or "").strip()

    app.router.add_get("/api/health", handle_health)
    app.router.add_get("/api/guilds", handle_guilds)
    app.router.add_get("/api/guild/{guild_id}/settings", handle_get_settings)
    app.router.add_post("/api/guild/{guild_id}/settings", handle_save_settings)
    app.router.add_get("/api/guild/{guild_id}/warnings/{user_id}", handle_warnings)
    app.router.add_get("/api/guild/{guild_id}/modlogs", handle_modlogs)
    app.router.add_get("/api/guild/{guild_id}/channels", handle_channels)
    app.router.add_post("/api/send-embed", handle_send_embed)
    return app


async def start_web_server(app: web.Application, *, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    print(f"[Web] dashboard API listening on http://{host}:{port}")
    return runner
