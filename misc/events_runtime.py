from __future__ import annotations

import asyncio

import discord
from discord.ext import commands
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


async def sync_command_tree(bot: commands.Bot, *, guild_id: int = 0) -> int:
    if guild_id:
        guild = discord.Object(id=int(guild_id))
        bot.tree.copy_global_to(guild=guild)
        synced = await bot.tree.sync(guild=guild)
        print(f"[Commands] synced {len(synced)} commands to guild={guild_id}")
    else:
        synced = await bot.tree.sync()
        print(f"[Commands] synced {len(synced)} commands globally (can take time to appear)")
    return len(synced)


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"Ankui is online as {bot.user} guilds={len(bot.guilds)}")

        if not getattr(bot, "_voice_states_initialized", False):
            deps.activity_tracker.initialize_voice_states(bot.guilds)
            bot._voice_states_initialized = True

        if deps.sync_commands and not getattr(bot, "_commands_synced", False):
            try:
                await sync_command_tree(bot, guild_id=deps.command_guild_id)
                bot._commands_synced = True
            except discord.HTTPException as e:
                print(f"[Commands] sync failed: {e}")

        if boot.presence_enabled and not getattr(bot, "_presence_task", None):
            bot._presence_task = asyncio.create_task(boot.presence_loop_func())
            print("[Presence] rotation loop started")

        if not getattr(bot, "_join_sweep_task", None):
            bot._join_sweep_task = asyncio.create_task(boot.join_sweep_loop_func())
            print("[Welcome] join sweep loop started")

    @bot.event
    async def on_member_join(member: discord.Member):
        try:
            await deps.welcome_service.on_member_join(member)
        except Exception as e:
            print(f"[Welcome] join handling failed guild={member.guild.id} user={member.id}: {e}")

    @bot.event
    async def on_message(message: discord.Message):
        try:
            deps.activity_tracker.handle_message(message)
        except OSError as e:
            print(f"[Activity] message tracking failed message={message.id}: {e}")

        if message.author.bot:
            return
        await bot.process_commands(message)

    @bot.event
    async def on_voice_state_update(member: discord.Member, before: discord.VoiceState, after: discord.VoiceState):
        try:
            deps.activity_tracker.handle_voice_state_update(member, before, after)
        except OSError as e:
            print(f"[Activity] voice tracking failed user={member.id}: {e}")

    @bot.event
    async def on_interaction(interaction: discord.Interaction):
        if interaction.type is not discord.InteractionType.component:
            return
        try:
            await deps.role_button_handler(interaction)
        except discord.HTTPException as e:
            print(f"[Roles] role button failed user={interaction.user.id}: {e}")
            if not interaction.response.is_done():
                await interaction.response.send_message("❌ Something went wrong while changing your role.", ephemeral=True)
