from __future__ import annotations

import discord


def is_human_member(member) -> bool:
    return not bool(getattr(member, "bot", False))


def is_trackable_message(message: discord.Message) -> bool:
    # DMs and bot/system authors never count toward server activity.
    if getattr(message, "guild", None) is None:
        return False
    author = getattr(message, "author", None)
    if author is None or getattr(author, "bot", False):
        return False
    return not bool(getattr(message, "is_system", lambda: False)())
