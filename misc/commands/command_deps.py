from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable

from config.defaults import RULES_BLOCK_PAUSE_SECONDS
from config.defaults import STATS_DEFAULT_LIMIT
from config.defaults import STATS_MAX_LIMIT


def _default_false(*args, **kwargs) -> bool:
    return False


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    store: Any = None
    texts: Any = None
    dashboard_url: str = ""

    # Stats
    stats_default_limit: int = STATS_DEFAULT_LIMIT
    stats_max_limit: int = STATS_MAX_LIMIT

    # Rules
    rules_block_pause_seconds: float = RULES_BLOCK_PAUSE_SECONDS
    sleep_func: Callable | None = None


@dataclass(frozen=True)
class CommandGates:
    user_is_admin: Callable[[Any], bool] = _default_false
