from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # core
    welcome_service: Any
    activity_tracker: Any

    # interactions
    role_button_handler: Callable

    # slash commands
    sync_commands: bool = False
    command_guild_id: int = 0


@dataclass(frozen=True)
class RuntimeBootDeps:
    presence_enabled: bool
    presence_loop_func: Callable
    join_sweep_loop_func: Callable
