from __future__ import annotations

import discord

ROLE_BUTTON_PREFIX = "role_select_"


def parse_role_button_id(custom_id: str | None) -> int | None:
    text = str(custom_id or "")
    if not text.startswith(ROLE_BUTTON_PREFIX):
        return None
    raw = text[len(ROLE_BUTTON_PREFIX):]
    return int(raw) if raw.isdigit() else None


def find_role_group(settings: dict | None, role_id: int) -> tuple[str | None, dict | None]:
    groups = (settings or {}).get("role_buttons") or {}
    if not isinstance(groups, dict):
        return (None, None)
    for message_id, group in groups.items():
        roles = group.get("roles") if isinstance(group, dict) else None
        if not roles:
            continue
        if any(str(r.get("roleId")) == str(role_id) for r in roles if isinstance(r, dict)):
            return (str(message_id), group)
    return (None, None)


async def handle_role_button(interaction: discord.Interaction, *, store) -> bool:
    """
    Toggle the role behind a role_select_<id> button. Roles in one group are
    mutually exclusive. Returns False when the interaction is not a role button.
    """
    data = getattr(interaction, "data", None) or {}
    role_id = parse_role_button_id(data.get("custom_id"))
    if role_id is None:
        return False

    guild = interaction.guild
    member = interaction.user
    if guild is None or not isinstance(member, discord.Member):
        await interaction.response.send_message(
            "❌ I couldn't read your member or server info.",
            ephemeral=True,
        )
        return True

    _message_id, group = find_role_group(store.get_guild_settings(guild.id), role_id)
    if group is None:
        await interaction.response.send_message("❌ That role group is not configured.", ephemeral=True)
        return True

    role = guild.get_role(role_id)
    if role is None:
        await interaction.response.send_message("❌ That role no longer exists on this server.", ephemeral=True)
        return True

    if role in member.roles:
        await member.remove_roles(role, reason="Role button: remove")
        await interaction.response.send_message(f"✅ Role {role.name} removed.", ephemeral=True)
        return True

    group_role_ids = {int(r["roleId"]) for r in group["roles"] if str(r.get("roleId", "")).isdigit()}
    others = [r for r in member.roles if int(r.id) in group_role_ids and int(r.id) != role_id]
    if others:
        await member.remove_roles(*others, reason="Role button: exclusive group")
    await member.add_roles(role, reason="Role button: grant")
    await interaction.response.send_message(f"✅ Role {role.name} granted.", ephemeral=True)
    return True
