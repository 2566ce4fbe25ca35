from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import discord

from config.defaults import DEFAULT_EMBED_COLOR
from misc.discord_gates import is_human_member
from storage.json_store import activity_score

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


@dataclass(slots=True)
class MemberActivity:
    user_id: int
    messages: int
    voice_ms: int
    last_active_ms: int | None

    @property
    def score(self) -> int:
        return activity_score({"messages": self.messages, "voiceTime": self.voice_ms})


def format_voice_time(voice_ms: int) -> str:
    voice_ms = max(0, int(voice_ms or 0))
    hours = voice_ms // 3_600_000
    minutes = (voice_ms % 3_600_000) // 60_000
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_last_active(last_active_ms: int | None, *, now: datetime | None = None) -> str:
    if not last_active_ms:
        return "Never"
    now = now or datetime.now(timezone.utc)
    last = datetime.fromtimestamp(int(last_active_ms) / 1000, tz=timezone.utc)
    days = int((now - last).total_seconds() // 86400)
    if days <= 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"
    return last.strftime("%d.%m.%Y")


def rank_member_stats(members, store, guild_id: int) -> list[MemberActivity]:
    ranked: list[MemberActivity] = []
    for member in members:
        if not is_human_member(member):
            continue
        stats = store.get_user_stats(guild_id, member.id) or {}
        ranked.append(
            MemberActivity(
                user_id=int(member.id),
                messages=int(stats.get("messages") or 0),
                voice_ms=int(stats.get("voiceTime") or 0),
                last_active_ms=stats.get("lastActive"),
            )
        )
    # Stable sort keeps member order for ties.
    ranked.sort(key=lambda row: row.score, reverse=True)
    return ranked


def build_stats_embed(
    ranked: list[MemberActivity],
    *,
    limit: int,
    icon_url: str | None = None,
    now: datetime | None = None,
) -> discord.Embed:
    top = ranked[: max(1, int(limit))]
    embed = discord.Embed(
        title="📊 Server activity",
        description=f"Top {limit} most active members",
        colour=discord.Colour(DEFAULT_EMBED_COLOR),
        timestamp=now or datetime.now(timezone.utc),
    )
    embed.set_footer(text=f"Members counted: {len(ranked)}", icon_url=icon_url or None)

    if not top:
        embed.add_field(name="📭 No data", value="No activity has been recorded yet.", inline=False)
    else:
        lines: list[str] = []
        for position, row in enumerate(top, start=1):
            medal = MEDALS.get(position, f"{position}.")
            lines.append(f"{medal} <@{row.user_id}>")
            lines.append(f"💬 **{row.messages}** messages • 🎤 **{format_voice_time(row.voice_ms)}** in voice")
            lines.append(f"🕒 Last active: {format_last_active(row.last_active_ms, now=now)}")
            lines.append("")
        embed.description = "\n".join(lines).strip()[:4096]

    total_messages = sum(row.messages for row in ranked)
    total_voice = sum(row.voice_ms for row in ranked)
    embed.add_field(
        name="📈 Totals",
        value=f"💬 Messages: **{total_messages}**\n🎤 Voice time: **{format_voice_time(total_voice)}**",
        inline=False,
    )
    return embed
