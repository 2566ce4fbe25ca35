from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import discord

ACTIVITY_TYPES = {
    "playing": discord.ActivityType.playing,
    "watching": discord.ActivityType.watching,
    "listening": discord.ActivityType.listening,
    "competing": discord.ActivityType.competing,
}


def build_activities(entries: list[dict[str, str]]) -> list[discord.Activity]:
    out: list[discord.Activity] = []
    for entry in entries or []:
        kind = ACTIVITY_TYPES.get(str(entry.get("type") or "").lower())
        name = str(entry.get("name") or "").strip()
        if kind is not None and name:
            out.append(discord.Activity(type=kind, name=name))
    return out


async def presence_loop(
    *,
    bot,
    activities: list[discord.Activity],
    interval_seconds: int = 30,
    sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    if not activities:
        return
    index = 0
    while True:
        try:
            await bot.change_presence(activity=activities[index % len(activities)])
        except Exception as e:
            print(f"[Presence] loop error: {e}")
        index += 1
        await sleep_func(max(10, int(interval_seconds)))
