from __future__ import annotations

import importlib
import tempfile
from pathlib import Path


async def _noop_async(*args, **kwargs):
    return None


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install the project and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0

    import discord
    from discord.ext import commands
    from activity.tracker import ActivityTracker
    from config.texts import default_bot_texts
    from misc.runtime_wiring import wire_bot_runtime
    from storage.json_store import JsonDatastore
    from welcome.join_dedup import JoinDeduplicator
    from welcome.service import WelcomeService

    intents = discord.Intents.none()
    bot = commands.Bot(command_prefix="!", intents=intents)

    with tempfile.TemporaryDirectory() as tmp:
        store = JsonDatastore(Path(tmp) / "bot-data.json")
        wire_bot_runtime(
            bot,
            store=store,
            welcome_service=WelcomeService(store=store, deduplicator=JoinDeduplicator()),
            activity_tracker=ActivityTracker(store=store),
            texts=default_bot_texts(),
            dashboard_url="http://localhost:3000",
            admin_user_ids=set(),
            stats_default_limit=10,
            stats_max_limit=50,
            rules_block_pause_seconds=0.5,
            sync_commands=False,
            command_guild_id=0,
            presence_enabled=False,
            presence_loop_func=_noop_async,
            join_sweep_loop_func=_noop_async,
        )

    expected_commands = {"help", "rules", "embed", "stats"}
    existing_commands = {cmd.name for cmd in bot.tree.get_commands()}
    missing = sorted(expected_commands - existing_commands)
    if missing:
        raise RuntimeError(f"Missing expected slash commands: {missing}")

    expected_events = ("on_ready", "on_member_join", "on_message", "on_voice_state_update", "on_interaction")
    unregistered = [name for name in expected_events if getattr(bot, name, None) is None]
    if unregistered:
        raise RuntimeError(f"Runtime events were not registered: {unregistered}")

    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
