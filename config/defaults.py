from __future__ import annotations

# Datastore
DEFAULT_DATA_PATH = "bot-data.json"
DEFAULT_GUILD_LANGUAGE = "ru"
DEFAULT_GUILD_PREFIX = "!"

# Welcome
DEFAULT_WELCOME_TEMPLATE = "Welcome, {mention}!"
DEFAULT_WELCOME_IMAGE_SEND_TYPE = "channel"
WELCOME_IMAGE_SEND_TYPES = ("channel", "with", "before")
DEFAULT_RENDER_SERVICE_NAME = "ankui-bot"

# Join deduplication (seconds). TTL must stay well above the slowest welcome send.
JOIN_DEDUP_TTL_SECONDS = 30.0
JOIN_FOLLOWER_TIMEOUT_SECONDS = 10.0
JOIN_SWEEP_INTERVAL_SECONDS = 15

# Embeds
DEFAULT_EMBED_COLOR = 0x5865F2
MAX_EMBEDS_PER_MESSAGE = 10
RULES_BLOCK_PAUSE_SECONDS = 0.5

# Stats
STATS_DEFAULT_LIMIT = 10
STATS_MAX_LIMIT = 50
MODLOG_DEFAULT_LIMIT = 50

# Presence
PRESENCE_ROTATE_SECONDS = 30

# Dashboard
DEFAULT_WEB_HOST = "0.0.0.0"
DEFAULT_WEB_PORT = 3000
