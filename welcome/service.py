from __future__ import annotations

import os
from typing import Mapping

import discord

from config.defaults import DEFAULT_EMBED_COLOR
from config.defaults import DEFAULT_RENDER_SERVICE_NAME
from config.defaults import DEFAULT_WEB_PORT
from config.defaults import DEFAULT_WELCOME_IMAGE_SEND_TYPE
from config.defaults import DEFAULT_WELCOME_TEMPLATE
from config.defaults import WELCOME_IMAGE_SEND_TYPES
from welcome.join_dedup import JoinDeduplicator
from welcome.join_dedup import JoinKey
from welcome.join_dedup import JoinOutcome


def is_enabled_flag(value) -> bool:
    if value is True:
        return True
    if value is None or value is False:
        return False
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    try:
        return int(float(text)) == 1
    except ValueError:
        return False


def render_welcome_message(template: str | None, *, member) -> str:
    text = template or DEFAULT_WELCOME_TEMPLATE
    mention = f"<@{int(member.id)}>"
    replacements = {
        "{mention}": mention,
        "{user}": mention,
        "{username}": str(getattr(member, "name", "") or ""),
        "{guild}": str(getattr(member.guild, "name", "") or ""),
        "{memberCount}": str(getattr(member.guild, "member_count", "") or ""),
    }
    for token, value in replacements.items():
        text = text.replace(token, value)
    return text


def resolve_public_base_url(env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env
    base = (
        env.get("ANKUI_WEB_SERVER_URL")
        or env.get("WEB_SERVER_URL")
        or env.get("RENDER_EXTERNAL_URL")
        or env.get("RAILWAY_STATIC_URL")
        or ""
    ).strip()
    if not base:
        port = (env.get("PORT") or "").strip() or str(DEFAULT_WEB_PORT)
        if env.get("RENDER") == "true" or env.get("RENDER_SERVICE_NAME"):
            service = env.get("RENDER_SERVICE_NAME") or DEFAULT_RENDER_SERVICE_NAME
            base = f"https://{service}.onrender.com"
        elif env.get("RAILWAY_ENVIRONMENT"):
            domain = (env.get("RAILWAY_PUBLIC_DOMAIN") or "").strip()
            base = f"https://{domain}" if domain else f"http://localhost:{port}"
        else:
            base = f"http://localhost:{port}"
    return base.rstrip("/")


def resolve_welcome_image_url(raw: str | None, env: Mapping[str, str] | None = None) -> str:
    url = (raw or "").strip()
    if url.startswith("/uploads/"):
        return resolve_public_base_url(env) + url
    return url


class DiscordNotificationSender:
    """Outbound side effects of a join. Both calls may raise discord.HTTPException."""

    async def send_welcome(
        self,
        channel,
        text: str,
        image_embed: discord.Embed | None = None,
        send_type: str = DEFAULT_WELCOME_IMAGE_SEND_TYPE,
    ) -> None:
        if image_embed is None:
            await channel.send(content=text)
            return
        if send_type == "with":
            await channel.send(content=text, embed=image_embed)
        elif send_type == "before":
            await channel.send(embed=image_embed)
            await channel.send(content=text)
        else:
            await channel.send(embed=image_embed)

    async def grant_role(self, member, role) -> None:
        await member.add_roles(role, reason="Auto role on join")


class WelcomeService:
    def __init__(
        self,
        *,
        store,
        deduplicator: JoinDeduplicator,
        sender: DiscordNotificationSender | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.store = store
        self.deduplicator = deduplicator
        self.sender = sender or DiscordNotificationSender()
        self.env = env

    @staticmethod
    async def _resolve_channel(guild, channel_id: int):
        channel = guild.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await guild.fetch_channel(channel_id)
        except discord.NotFound:
            return None

    @staticmethod
    async def _resolve_role(guild, role_id: int):
        role = guild.get_role(role_id)
        if role is not None:
            return role
        try:
            roles = await guild.fetch_roles()
        except discord.NotFound:
            return None
        return next((r for r in roles if int(r.id) == role_id), None)

    def build_image_embed(self, settings: dict, member) -> discord.Embed | None:
        if not is_enabled_flag(settings.get("welcome_image_enabled")):
            return None
        image_url = resolve_welcome_image_url(settings.get("welcome_image_background"), self.env)
        if not image_url:
            return None
        embed = discord.Embed(colour=discord.Colour(DEFAULT_EMBED_COLOR))
        embed.set_image(url=image_url)
        embed.set_thumbnail(url=str(member.display_avatar.url))
        return embed

    async def process_join(self, member) -> str:
        """
        The side-effecting body for one logical join: welcome message, then auto role.
        Returns a short status string; send and role failures raise.
        """
        guild = member.guild
        settings = self.store.get_guild_settings(guild.id)
        if not settings:
            return "skipped:no_settings"

        raw_channel_id = str(settings.get("welcome_channel_id") or "").strip()
        if not is_enabled_flag(settings.get("welcome_enabled")) or not raw_channel_id.isdigit():
            return "skipped:welcome_disabled"

        channel = await self._resolve_channel(guild, int(raw_channel_id))
        if channel is None or not hasattr(channel, "send"):
            print(f"[Welcome] channel unavailable guild={guild.id} channel={raw_channel_id}")
            return "skipped:channel_unavailable"

        text = render_welcome_message(settings.get("welcome_message"), member=member)
        image_embed = self.build_image_embed(settings, member)
        send_type = str(settings.get("welcome_image_send_type") or DEFAULT_WELCOME_IMAGE_SEND_TYPE)
        if send_type not in WELCOME_IMAGE_SEND_TYPES:
            send_type = DEFAULT_WELCOME_IMAGE_SEND_TYPE
        await self.sender.send_welcome(channel, text, image_embed, send_type)
        print(f"[Welcome] sent guild={guild.id} user={member.id} image={image_embed is not None} mode={send_type}")

        raw_role_id = str(settings.get("auto_role_id") or "").strip()
        if raw_role_id.isdigit():
            role = await self._resolve_role(guild, int(raw_role_id))
            if role is None:
                print(f"[Welcome] auto role not found guild={guild.id} role={raw_role_id}")
                return "sent:role_missing"
            await self.sender.grant_role(member, role)
            print(f"[Welcome] auto role granted guild={guild.id} user={member.id} role={role.id}")
            return "sent:role_granted"
        return "sent"

    async def on_member_join(self, member) -> JoinOutcome:
        key = JoinKey.for_member(member)

        async def body():
            status = await self.process_join(member)
            print(f"[Welcome] join processed key={key} status={status}")
            return status

        outcome = await self.deduplicator.handle(key, body)
        if outcome is not JoinOutcome.EXECUTED:
            print(f"[Welcome] duplicate join notification key={key} outcome={outcome.value}")
        return outcome
