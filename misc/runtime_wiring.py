from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_community import register as register_community
from misc.events_runtime import register_runtime_events
from misc.role_buttons import handle_role_button
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    store,
    welcome_service,
    activity_tracker,
    texts,
    dashboard_url: str,
    admin_user_ids: set[int],
    stats_default_limit: int,
    stats_max_limit: int,
    rules_block_pause_seconds: float,
    sync_commands: bool,
    command_guild_id: int,
    presence_enabled: bool,
    presence_loop_func,
    join_sweep_loop_func,
) -> None:
    def user_is_admin(user) -> bool:
        if int(getattr(user, "id", 0) or 0) in admin_user_ids:
            return True
        perms = getattr(user, "guild_permissions", None)
        return bool(getattr(perms, "administrator", False))

    command_deps = CommandDeps(
        store=store,
        texts=texts,
        dashboard_url=dashboard_url,
        stats_default_limit=stats_default_limit,
        stats_max_limit=stats_max_limit,
        rules_block_pause_seconds=rules_block_pause_seconds,
    )
    command_gates = CommandGates(
        user_is_admin=user_is_admin,
    )

    register_community(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    async def role_button_handler(interaction):
        return await handle_role_button(interaction, store=store)

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            welcome_service=welcome_service,
            activity_tracker=activity_tracker,
            role_button_handler=role_button_handler,
            sync_commands=sync_commands,
            command_guild_id=command_guild_id,
        ),
        boot=RuntimeBootDeps(
            presence_enabled=presence_enabled,
            presence_loop_func=presence_loop_func,
            join_sweep_loop_func=join_sweep_loop_func,
        ),
    )
