from __future__ import annotations

import copy
import json
import math
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any

from config.defaults import DEFAULT_GUILD_LANGUAGE
from config.defaults import DEFAULT_GUILD_PREFIX
from config.defaults import MODLOG_DEFAULT_LIMIT


def _empty_layout() -> dict[str, Any]:
    return {
        "guilds": {},
        "warnings": [],
        "modLogs": [],
        "userLevels": {},
        "userStats": {},
    }


def _now_ms() -> int:
    return int(time.time() * 1000)


def member_key(guild_id, user_id) -> str:
    return f"{guild_id}_{user_id}"


def activity_score(stats: dict) -> int:
    messages = int(stats.get("messages") or 0)
    voice_ms = int(stats.get("voiceTime") or 0)
    return messages + voice_ms // 60000


def level_for_xp(xp: int) -> int:
    return int(math.floor(math.sqrt(max(0, int(xp)) / 100)))


class JsonDatastore:
    """
    Flat JSON-file datastore shared by the bot and the dashboard.

    Everything lives in one in-memory dict that is flushed to disk after each
    write. Reads pick up changes written by another process by reloading when
    the file's mtime moves. Guild and user ids are stored as strings.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.data: dict[str, Any] = _empty_layout()
        self._lock = threading.RLock()
        self._mtime_ns: int | None = None
        self.load()

    # ---- persistence ----

    def load(self) -> None:
        with self._lock:
            if not self.path.exists():
                self.data = _empty_layout()
                self.save()
                print(f"[Store] initialized new datastore path={self.path}")
                return
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
                if not isinstance(payload, dict):
                    raise ValueError("top-level JSON value is not an object")
            except (OSError, ValueError) as exc:
                print(f"[Store] failed to load {self.path}: {exc}; starting from an empty datastore")
                self.data = _empty_layout()
                self.save()
                return
            layout = _empty_layout()
            for key, default in layout.items():
                value = payload.get(key)
                layout[key] = value if isinstance(value, type(default)) else default
            for key, value in payload.items():
                layout.setdefault(key, value)
            self.data = layout
            self._mtime_ns = self._current_mtime_ns()

    def save(self) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            raw = json.dumps(self.data, ensure_ascii=False, indent=2)
            fd, tmp_path = tempfile.mkstemp(prefix=".bot-data-", suffix=".json", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(raw)
                os.replace(tmp_path, self.path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
            self._mtime_ns = self._current_mtime_ns()

    def close(self) -> None:
        self.save()

    def _current_mtime_ns(self) -> int | None:
        try:
            return self.path.stat().st_mtime_ns
        except OSError:
            return None

    def _refresh(self) -> None:
        current = self._current_mtime_ns()
        if current is None or current != self._mtime_ns:
            self.load()

    # ---- guild settings ----

    def get_guild_settings(self, guild_id) -> dict | None:
        with self._lock:
            self._refresh()
            settings = self.data["guilds"].get(str(guild_id))
            return copy.deepcopy(settings) if settings is not None else None

    def set_guild_settings(self, guild_id, settings: dict) -> dict:
        gid = str(guild_id)
        with self._lock:
            self._refresh()
            current = self.data["guilds"].get(gid)
            if current is None:
                current = {
                    "guild_id": gid,
                    "rules_text": "",
                    "prefix": DEFAULT_GUILD_PREFIX,
                    "language": DEFAULT_GUILD_LANGUAGE,
                }
            merged = {**current, **dict(settings or {})}
            self.data["guilds"][gid] = merged
            self.save()
            print(f"[Store] saved guild settings guild={gid} keys={sorted((settings or {}).keys())}")
            return copy.deepcopy(merged)

    # ---- warnings ----

    def _next_id(self, rows: list[dict]) -> int:
        candidate = _now_ms()
        taken = {int(r.get("id") or 0) for r in rows}
        while candidate in taken:
            candidate += 1
        return candidate

    def add_warning(self, guild_id, user_id, moderator_id, reason: str) -> dict:
        with self._lock:
            self._refresh()
            warning = {
                "id": self._next_id(self.data["warnings"]),
                "guild_id": str(guild_id),
                "user_id": str(user_id),
                "moderator_id": str(moderator_id),
                "reason": reason,
                "timestamp": _now_ms(),
            }
            self.data["warnings"].append(warning)
            self.save()
            return dict(warning)

    def get_warnings(self, guild_id, user_id) -> list[dict]:
        gid, uid = str(guild_id), str(user_id)
        with self._lock:
            self._refresh()
            rows = [
                dict(w)
                for w in self.data["warnings"]
                if str(w.get("guild_id")) == gid and str(w.get("user_id")) == uid
            ]
        rows.sort(key=lambda w: int(w.get("timestamp") or 0), reverse=True)
        return rows

    def remove_warning(self, warning_id: int) -> bool:
        with self._lock:
            self._refresh()
            before = len(self.data["warnings"])
            self.data["warnings"] = [w for w in self.data["warnings"] if int(w.get("id") or 0) != int(warning_id)]
            removed = len(self.data["warnings"]) != before
            self.save()
            return removed

    def clear_warnings(self, guild_id, user_id) -> int:
        gid, uid = str(guild_id), str(user_id)
        with self._lock:
            self._refresh()
            kept = [
                w
                for w in self.data["warnings"]
                if not (str(w.get("guild_id")) == gid and str(w.get("user_id")) == uid)
            ]
            cleared = len(self.data["warnings"]) - len(kept)
            self.data["warnings"] = kept
            self.save()
            return cleared

    # ---- moderation log ----

    def add_mod_log(self, guild_id, action_type: str, target_id, moderator_id, reason: str | None = None) -> dict:
        with self._lock:
            self._refresh()
            entry = {
                "id": self._next_id(self.data["modLogs"]),
                "guild_id": str(guild_id),
                "action_type": action_type,
                "target_id": str(target_id),
                "moderator_id": str(moderator_id),
                "reason": reason,
                "timestamp": _now_ms(),
            }
            self.data["modLogs"].append(entry)
            self.save()
            return dict(entry)

    def get_mod_logs(self, guild_id, limit: int = MODLOG_DEFAULT_LIMIT) -> list[dict]:
        gid = str(guild_id)
        with self._lock:
            self._refresh()
            rows = [dict(e) for e in self.data["modLogs"] if str(e.get("guild_id")) == gid]
        rows.sort(key=lambda e: int(e.get("timestamp") or 0), reverse=True)
        return rows[: max(0, int(limit))]

    # ---- levels ----

    def get_user_level(self, guild_id, user_id) -> dict | None:
        with self._lock:
            self._refresh()
            row = self.data["userLevels"].get(member_key(guild_id, user_id))
            return dict(row) if row is not None else None

    def add_user_xp(self, guild_id, user_id, xp_amount: int) -> tuple[bool, int]:
        key = member_key(guild_id, user_id)
        with self._lock:
            self._refresh()
            row = self.data["userLevels"].get(key)
            if row is None:
                self.data["userLevels"][key] = {
                    "guild_id": str(guild_id),
                    "user_id": str(user_id),
                    "xp": int(xp_amount),
                    "level": 0,
                    "messages": 1,
                }
                self.save()
                return (False, 0)

            old_level = int(row.get("level") or 0)
            new_xp = int(row.get("xp") or 0) + int(xp_amount)
            new_level = level_for_xp(new_xp)
            row["xp"] = new_xp
            row["level"] = new_level
            row["messages"] = int(row.get("messages") or 0) + 1
            self.save()
            return (new_level > old_level, new_level)

    def get_top_users(self, guild_id, limit: int = 10) -> list[dict]:
        gid = str(guild_id)
        with self._lock:
            self._refresh()
            rows = [dict(r) for r in self.data["userLevels"].values() if str(r.get("guild_id")) == gid]
        rows.sort(key=lambda r: int(r.get("xp") or 0), reverse=True)
        return rows[: max(0, int(limit))]

    # ---- activity stats ----

    def get_user_stats(self, guild_id, user_id) -> dict | None:
        with self._lock:
            self._refresh()
            row = self.data["userStats"].get(member_key(guild_id, user_id))
            return dict(row) if row is not None else None

    def set_user_stats(self, guild_id, user_id, stats: dict) -> dict:
        row = {
            "guild_id": str(guild_id),
            "user_id": str(user_id),
            "messages": int(stats.get("messages") or 0),
            "voiceTime": int(stats.get("voiceTime") or 0),
            "lastActive": int(stats.get("lastActive") or _now_ms()),
        }
        with self._lock:
            self._refresh()
            self.data["userStats"][member_key(guild_id, user_id)] = row
            self.save()
        return dict(row)

    def get_all_user_stats(self, guild_id) -> list[dict]:
        gid = str(guild_id)
        with self._lock:
            self._refresh()
            rows = [dict(r) for r in self.data["userStats"].values() if str(r.get("guild_id")) == gid]
        rows.sort(key=activity_score, reverse=True)
        return rows
