from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

import discord
from activity.stats import build_stats_embed
from activity.stats import rank_member_stats
from config.defaults import DEFAULT_EMBED_COLOR
from discord import app_commands
from discord.ext import commands
from embeds.builder import batch_embeds
from embeds.builder import build_block_embeds
from embeds.builder import build_legacy_rules_embed
from embeds.builder import build_rules_embeds
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


async def _reply_error(interaction: discord.Interaction, text: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(text, ephemeral=True)
    else:
        await interaction.response.send_message(text, ephemeral=True)


def _avatar_url(user) -> str | None:
    avatar = getattr(user, "display_avatar", None)
    return str(avatar.url) if avatar is not None else None


def _icon_url(guild) -> str | None:
    icon = getattr(guild, "icon", None)
    return str(icon.url) if icon is not None else None


async def _get_or_create_webhook(channel, name: str):
    # Threads have no webhooks of their own; the parent channel's webhook posts into them.
    if isinstance(channel, discord.Thread):
        channel = channel.parent
    for hook in await channel.webhooks():
        if hook.name == name:
            return hook
    return await channel.create_webhook(name=name, reason="Sending seamless rule blocks")


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    sleep = deps.sleep_func or asyncio.sleep

    @bot.tree.command(name="help", description="Show the list of bot commands")
    async def help_command(interaction: discord.Interaction):
        texts = deps.texts
        embed = discord.Embed(
            title=texts.help_title,
            description=texts.help_description or None,
            colour=discord.Colour(DEFAULT_EMBED_COLOR),
            timestamp=datetime.now(timezone.utc),
        )
        for entry in texts.help_entries:
            embed.add_field(name=entry["name"], value=entry["value"], inline=False)
        if deps.dashboard_url:
            embed.set_footer(text=f"Dashboard: {deps.dashboard_url}", icon_url=_avatar_url(bot.user))
        await interaction.response.send_message(embed=embed)

    @bot.tree.command(name="rules", description="Post the server rules")
    @app_commands.describe(channel="Channel for the rules (defaults to this one)")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def rules_command(interaction: discord.Interaction, channel: discord.TextChannel | None = None):
        if not gates.user_is_admin(interaction.user):
            await interaction.response.send_message("❌ This command is admin-only.", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        guild = interaction.guild
        target = channel or interaction.channel
        settings = deps.store.get_guild_settings(guild.id) or {}
        blocks = [b for b in (settings.get("rules_data") or []) if isinstance(b, dict)]
        updated_by = str(getattr(interaction.user, "name", "") or "")

        try:
            if blocks:
                embeds = build_rules_embeds(
                    blocks,
                    guild_name=guild.name,
                    guild_icon_url=_icon_url(guild),
                    updated_by=updated_by,
                    updated_by_icon_url=_avatar_url(interaction.user),
                )
                bot_name = str(getattr(bot.user, "name", "") or "Bot")
                webhook = None
                thread = target if isinstance(target, discord.Thread) else discord.utils.MISSING
                if len(embeds) > 1:
                    webhook = await _get_or_create_webhook(target, f"{bot_name} Messages")

                for i, embed in enumerate(embeds):
                    if i == 0:
                        await target.send(embed=embed)
                    else:
                        await webhook.send(
                            embed=embed,
                            username=bot_name,
                            avatar_url=_avatar_url(bot.user),
                            thread=thread,
                        )
                    if i < len(embeds) - 1:
                        await sleep(deps.rules_block_pause_seconds)
            else:
                rules_text = str(settings.get("rules_text") or "").strip() or deps.texts.default_rules
                await target.send(
                    embed=build_legacy_rules_embed(
                        rules_text,
                        guild_name=guild.name,
                        guild_icon_url=_icon_url(guild),
                        updated_by=updated_by,
                        updated_by_icon_url=_avatar_url(interaction.user),
                    )
                )
        except discord.HTTPException as e:
            print(f"[Commands] /rules failed guild={guild.id} channel={getattr(target, 'id', None)}: {e}")
            await _reply_error(interaction, "❌ Something went wrong while posting the rules!")
            return

        await interaction.followup.send(f"✅ Rules posted in {target.mention}!", ephemeral=True)

    @bot.tree.command(name="embed", description="Post the embed message saved in the dashboard")
    @app_commands.describe(channel="Channel for the message (defaults to this one)")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def embed_command(interaction: discord.Interaction, channel: discord.TextChannel | None = None):
        if not gates.user_is_admin(interaction.user):
            await interaction.response.send_message("❌ This command is admin-only.", ephemeral=True)
            return

        target = channel or interaction.channel
        settings = deps.store.get_guild_settings(interaction.guild.id) or {}
        embeds = build_block_embeds(settings.get("embed_data") or [])
        if not embeds:
            await interaction.response.send_message(
                "❌ No saved embed messages. Create them in the web dashboard!",
                ephemeral=True,
            )
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            for batch in batch_embeds(embeds):
                await target.send(embeds=batch)
        except discord.HTTPException as e:
            print(f"[Commands] /embed failed guild={interaction.guild.id} channel={getattr(target, 'id', None)}: {e}")
            await _reply_error(interaction, "❌ Something went wrong while sending the message!")
            return

        await interaction.followup.send(f"✅ Embed message sent to {target.mention}!", ephemeral=True)

    @bot.tree.command(name="stats", description="Show member activity statistics for this server")
    @app_commands.describe(limit="How many members to show (default 10)")
    @app_commands.guild_only()
    async def stats_command(
        interaction: discord.Interaction,
        limit: Optional[app_commands.Range[int, 1, 50]] = None,
    ):
        lim = max(1, min(int(limit or deps.stats_default_limit), deps.stats_max_limit))
        guild = interaction.guild
        await interaction.response.defer()
        try:
            if not guild.chunked:
                await guild.chunk()
            ranked = rank_member_stats(guild.members, deps.store, guild.id)
            embed = build_stats_embed(ranked, limit=lim, icon_url=_icon_url(guild))
            await interaction.edit_original_response(embed=embed)
        except discord.HTTPException as e:
            print(f"[Commands] /stats failed guild={guild.id}: {e}")
            await interaction.edit_original_response(content="Something went wrong while loading the statistics.")
