import os
import asyncio
import discord
from discord.ext import commands
from activity.tracker import ActivityTracker
from config.defaults import DEFAULT_DATA_PATH
from config.defaults import DEFAULT_WEB_HOST
from config.defaults import DEFAULT_WEB_PORT
from config.defaults import JOIN_DEDUP_TTL_SECONDS
from config.defaults import JOIN_FOLLOWER_TIMEOUT_SECONDS
from config.defaults import JOIN_SWEEP_INTERVAL_SECONDS
from config.defaults import PRESENCE_ROTATE_SECONDS
from config.defaults import RULES_BLOCK_PAUSE_SECONDS
from config.defaults import STATS_DEFAULT_LIMIT
from config.defaults import STATS_MAX_LIMIT
from config.env import env_flag
from config.env import env_float
from config.env import env_int
from config.env import parse_id_set
from config.texts import default_texts_path
from config.texts import load_bot_texts
from jobs.join_sweep import join_sweep_loop as join_sweep_loop_service
from jobs.presence import build_activities
from jobs.presence import presence_loop as presence_loop_service
from misc.runtime_wiring import wire_bot_runtime
from storage.json_store import JsonDatastore
from web.server import create_app
from web.server import start_web_server
from welcome.join_dedup import JoinDeduplicator
from welcome.service import WelcomeService
from welcome.service import resolve_public_base_url

# =========================
# ENV
# =========================
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")

if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN env var")

DATA_PATH = os.getenv("ANKUI_DATA_PATH", DEFAULT_DATA_PATH).strip() or DEFAULT_DATA_PATH
TEXTS_PATH = os.getenv("ANKUI_TEXTS_PATH", default_texts_path()).strip()

# Join deduplication
#   ANKUI_JOIN_DEDUP_TTL_SECONDS      stale entry eviction (default: 30)
#   ANKUI_JOIN_FOLLOWER_TIMEOUT_SECONDS  max wait for a duplicate join (default: 10)
JOIN_DEDUP_TTL = env_float("ANKUI_JOIN_DEDUP_TTL_SECONDS", JOIN_DEDUP_TTL_SECONDS)
JOIN_FOLLOWER_TIMEOUT = env_float("ANKUI_JOIN_FOLLOWER_TIMEOUT_SECONDS", JOIN_FOLLOWER_TIMEOUT_SECONDS)
JOIN_SWEEP_INTERVAL = env_float("ANKUI_JOIN_SWEEP_INTERVAL_SECONDS", JOIN_SWEEP_INTERVAL_SECONDS)
if JOIN_FOLLOWER_TIMEOUT >= JOIN_DEDUP_TTL:
    print(
        f"[CFG] follower timeout {JOIN_FOLLOWER_TIMEOUT}s is not below TTL {JOIN_DEDUP_TTL}s; "
        f"using defaults {JOIN_FOLLOWER_TIMEOUT_SECONDS}/{JOIN_DEDUP_TTL_SECONDS}"
    )
    JOIN_DEDUP_TTL = JOIN_DEDUP_TTL_SECONDS
    JOIN_FOLLOWER_TIMEOUT = JOIN_FOLLOWER_TIMEOUT_SECONDS

# Dashboard API
WEB_ENABLED = env_flag("ANKUI_WEB_ENABLED", True)
WEB_HOST = os.getenv("ANKUI_WEB_HOST", DEFAULT_WEB_HOST).strip() or DEFAULT_WEB_HOST
WEB_PORT = env_int("PORT", DEFAULT_WEB_PORT)
DASHBOARD_TOKEN = (os.getenv("ANKUI_DASHBOARD_TOKEN") or "").strip()
DASHBOARD_URL = resolve_public_base_url()

# Commands
SYNC_COMMANDS = env_flag("ANKUI_SYNC_COMMANDS", False)
COMMAND_GUILD_ID = env_int("ANKUI_COMMAND_GUILD_ID", 0)
ADMIN_USER_IDS = parse_id_set(os.getenv("ANKUI_ADMIN_USER_IDS", ""))
STATS_LIMIT = max(1, min(env_int("ANKUI_STATS_DEFAULT_LIMIT", STATS_DEFAULT_LIMIT), STATS_MAX_LIMIT))

# Presence
PRESENCE_ENABLED = env_flag("ANKUI_PRESENCE_ENABLED", True)
PRESENCE_INTERVAL = env_int("ANKUI_PRESENCE_ROTATE_SECONDS", PRESENCE_ROTATE_SECONDS)

TEXTS, TEXTS_WARNING = load_bot_texts(TEXTS_PATH)

print(f"[CFG] data_path={DATA_PATH} texts={TEXTS.version} texts_path={TEXTS_PATH}")
if TEXTS_WARNING:
    print(f"[CFG] {TEXTS_WARNING}")
print(
    f"[CFG] join_dedup_ttl_s={JOIN_DEDUP_TTL} follower_timeout_s={JOIN_FOLLOWER_TIMEOUT} "
    f"sweep_interval_s={JOIN_SWEEP_INTERVAL}"
)
print(
    f"[CFG] web_enabled={WEB_ENABLED} web={WEB_HOST}:{WEB_PORT} dashboard_url={DASHBOARD_URL} "
    f"dashboard_token={'set' if DASHBOARD_TOKEN else 'unset'}"
)
print(
    f"[CFG] sync_commands={SYNC_COMMANDS} command_guild_id={COMMAND_GUILD_ID or 'global'} "
    f"admin_overrides={len(ADMIN_USER_IDS)} presence={PRESENCE_ENABLED}/{PRESENCE_INTERVAL}s"
)

# =========================
# RUNTIME
# =========================
store = JsonDatastore(DATA_PATH)
join_deduplicator = JoinDeduplicator(
    ttl_seconds=JOIN_DEDUP_TTL,
    follower_timeout_seconds=JOIN_FOLLOWER_TIMEOUT,
)
welcome_service = WelcomeService(store=store, deduplicator=join_deduplicator)
activity_tracker = ActivityTracker(store=store)

intents = discord.Intents.default()
intents.members = True
intents.message_content = True
intents.voice_states = True

bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)


async def presence_loop() -> None:
    await presence_loop_service(
        bot=bot,
        activities=build_activities(TEXTS.presence),
        interval_seconds=PRESENCE_INTERVAL,
    )


async def join_sweep_loop() -> None:
    await join_sweep_loop_service(
        deduplicator=join_deduplicator,
        interval_seconds=JOIN_SWEEP_INTERVAL,
    )


wire_bot_runtime(
    bot,
    store=store,
    welcome_service=welcome_service,
    activity_tracker=activity_tracker,
    texts=TEXTS,
    dashboard_url=DASHBOARD_URL,
    admin_user_ids=ADMIN_USER_IDS,
    stats_default_limit=STATS_LIMIT,
    stats_max_limit=STATS_MAX_LIMIT,
    rules_block_pause_seconds=RULES_BLOCK_PAUSE_SECONDS,
    sync_commands=SYNC_COMMANDS,
    command_guild_id=COMMAND_GUILD_ID,
    presence_enabled=PRESENCE_ENABLED,
    presence_loop_func=presence_loop,
    join_sweep_loop_func=join_sweep_loop,
)


async def main() -> None:
    runner = None
    try:
        async with bot:
            if WEB_ENABLED:
                app = create_app(store=store, bot=bot, api_token=DASHBOARD_TOKEN)
                runner = await start_web_server(app, host=WEB_HOST, port=WEB_PORT)
            await bot.start(DISCORD_TOKEN)
    finally:
        activity_tracker.save_active_voice_sessions()
        store.close()
        if runner is not None:
            await runner.cleanup()
        print("[Store] datastore flushed; shutdown complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Ankui stopped.")
