from __future__ import annotations

import time
from typing import Callable

from misc.discord_gates import is_human_member
from misc.discord_gates import is_trackable_message


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


def _blank_stats() -> dict:
    return {"messages": 0, "voiceTime": 0, "lastActive": None}


class ActivityTracker:
    """
    Counts messages and voice time per (guild, member) into the datastore.

    Voice sessions are held in memory from join until leave; a channel move
    restarts the session clock without crediting the time spent so far.
    """

    def __init__(self, *, store, now_ms: Callable[[], int] = _wall_clock_ms) -> None:
        self.store = store
        self.now_ms = now_ms
        self.voice_sessions: dict[tuple[int, int], int] = {}

    def _load_stats(self, guild_id: int, user_id: int) -> dict:
        return self.store.get_user_stats(guild_id, user_id) or _blank_stats()

    def handle_message(self, message) -> dict | None:
        if not is_trackable_message(message):
            return None
        guild_id = int(message.guild.id)
        user_id = int(message.author.id)
        stats = self._load_stats(guild_id, user_id)
        stats["messages"] = int(stats.get("messages") or 0) + 1
        stats["lastActive"] = self.now_ms()
        return self.store.set_user_stats(guild_id, user_id, stats)

    def handle_voice_state_update(self, member, before, after) -> dict | None:
        if member is None or not is_human_member(member):
            return None
        guild = getattr(member, "guild", None)
        if guild is None:
            return None

        key = (int(guild.id), int(member.id))
        before_channel = getattr(before, "channel", None)
        after_channel = getattr(after, "channel", None)
        now = self.now_ms()

        if before_channel is None and after_channel is not None:
            self.voice_sessions[key] = now
            print(f"[Activity] voice join guild={key[0]} user={key[1]}")
            return None

        if before_channel is not None and after_channel is None:
            started = self.voice_sessions.pop(key, None)
            if started is None:
                return None
            return self._credit_voice(key, now - started, now)

        if before_channel is not None and after_channel is not None and before_channel.id != after_channel.id:
            self.voice_sessions[key] = now
            print(f"[Activity] voice move guild={key[0]} user={key[1]}")
        return None

    def _credit_voice(self, key: tuple[int, int], duration_ms: int, now: int) -> dict:
        guild_id, user_id = key
        stats = self._load_stats(guild_id, user_id)
        stats["voiceTime"] = int(stats.get("voiceTime") or 0) + max(0, int(duration_ms))
        stats["lastActive"] = now
        saved = self.store.set_user_stats(guild_id, user_id, stats)
        print(
            f"[Activity] voice session guild={guild_id} user={user_id} "
            f"session_min={duration_ms // 60000} total_min={saved['voiceTime'] // 60000}"
        )
        return saved

    def initialize_voice_states(self, guilds) -> int:
        now = self.now_ms()
        for guild in guilds:
            for channel in getattr(guild, "voice_channels", []) or []:
                for member in getattr(channel, "members", []) or []:
                    if is_human_member(member):
                        self.voice_sessions[(int(guild.id), int(member.id))] = now
        print(f"[Activity] initialized voice sessions count={len(self.voice_sessions)}")
        return len(self.voice_sessions)

    def save_active_voice_sessions(self) -> int:
        now = self.now_ms()
        saved = 0
        for key, started in list(self.voice_sessions.items()):
            try:
                self._credit_voice(key, now - started, now)
                saved += 1
            except OSError as e:
                print(f"[Activity] failed to save voice session guild={key[0]} user={key[1]}: {e}")
        self.voice_sessions.clear()
        print(f"[Activity] saved active voice sessions count={saved}")
        return saved
