from __future__ import annotations

import unittest
from types import SimpleNamespace
from unittest import mock

try:
    from misc.role_buttons import find_role_group
    from misc.role_buttons import handle_role_button
    from misc.role_buttons import parse_role_button_id
except ModuleNotFoundError:
    handle_role_button = None


SETTINGS = {
    "role_buttons": {
        "1111": {"roles": [{"roleId": "10", "label": "Red"}, {"roleId": "11", "label": "Blue"}]},
        "2222": {"roles": [{"roleId": "20", "label": "EU"}]},
    }
}


class FakeStore:
    def __init__(self, settings):
        self.settings = settings

    def get_guild_settings(self, guild_id):
        return self.settings


class FakeResponse:
    def __init__(self):
        self.messages: list[tuple[str, bool]] = []

    async def send_message(self, text, ephemeral=False):
        self.messages.append((text, ephemeral))


class FakeMember:
    def __init__(self, roles):
        self.id = 42
        self.roles = list(roles)
        self.added: list = []
        self.removed: list = []

    async def add_roles(self, *roles, reason=None):
        self.added.extend(roles)
        self.roles.extend(roles)

    async def remove_roles(self, *roles, reason=None):
        self.removed.extend(roles)
        self.roles = [r for r in self.roles if r not in roles]


def _role(role_id, name):
    return SimpleNamespace(id=role_id, name=name)


ROLES = {10: _role(10, "Red"), 11: _role(11, "Blue"), 20: _role(20, "EU")}


def _interaction(custom_id, member, *, roles=ROLES):
    return SimpleNamespace(
        data={"custom_id": custom_id},
        guild=SimpleNamespace(id=7, get_role=roles.get),
        user=member,
        response=FakeResponse(),
    )


@unittest.skipIf(handle_role_button is None, "discord.py not installed")
class RoleButtonParsingTests(unittest.TestCase):
    def test_parse_role_button_id(self):
        self.assertEqual(parse_role_button_id("role_select_10"), 10)
        self.assertIsNone(parse_role_button_id("role_select_abc"))
        self.assertIsNone(parse_role_button_id("other_10"))
        self.assertIsNone(parse_role_button_id(None))

    def test_find_role_group(self):
        message_id, group = find_role_group(SETTINGS, 11)
        self.assertEqual(message_id, "1111")
        self.assertEqual(len(group["roles"]), 2)
        self.assertEqual(find_role_group(SETTINGS, 99), (None, None))
        self.assertEqual(find_role_group(None, 10), (None, None))


@unittest.skipIf(handle_role_button is None, "discord.py not installed")
class RoleButtonHandlerTests(unittest.IsolatedAsyncioTestCase):
    async def test_non_role_buttons_are_ignored(self):
        interaction = _interaction("ticket_open", FakeMember([]))
        self.assertFalse(await handle_role_button(interaction, store=FakeStore(SETTINGS)))
        self.assertEqual(interaction.response.messages, [])

    async def test_grant_removes_other_roles_in_group(self):
        member = FakeMember([ROLES[10], ROLES[20]])
        interaction = _interaction("role_select_11", member)
        with mock.patch("misc.role_buttons.discord.Member", FakeMember):
            self.assertTrue(await handle_role_button(interaction, store=FakeStore(SETTINGS)))

        self.assertEqual(member.removed, [ROLES[10]])
        self.assertEqual(member.added, [ROLES[11]])
        self.assertIn(ROLES[20], member.roles)
        self.assertEqual(interaction.response.messages, [("✅ Role Blue granted.", True)])

    async def test_second_click_removes_role(self):
        member = FakeMember([ROLES[11]])
        interaction = _interaction("role_select_11", member)
        with mock.patch("misc.role_buttons.discord.Member", FakeMember):
            await handle_role_button(interaction, store=FakeStore(SETTINGS))

        self.assertEqual(member.removed, [ROLES[11]])
        self.assertEqual(member.added, [])
        self.assertEqual(interaction.response.messages, [("✅ Role Blue removed.", True)])

    async def test_unconfigured_role_is_rejected(self):
        member = FakeMember([])
        interaction = _interaction("role_select_30", member, roles={30: _role(30, "Ghost")})
        with mock.patch("misc.role_buttons.discord.Member", FakeMember):
            await handle_role_button(interaction, store=FakeStore(SETTINGS))
        self.assertEqual(member.added, [])
        self.assertIn("not configured", interaction.response.messages[0][0])

    async def test_deleted_role_is_reported(self):
        member = FakeMember([])
        interaction = _interaction("role_select_10", member, roles={})
        with mock.patch("misc.role_buttons.discord.Member", FakeMember):
            await handle_role_button(interaction, store=FakeStore(SETTINGS))
        self.assertIn("no longer exists", interaction.response.messages[0][0])

    async def test_non_member_user_is_rejected(self):
        interaction = _interaction("role_select_10", SimpleNamespace(id=42))
        await handle_role_button(interaction, store=FakeStore(SETTINGS))
        self.assertIn("couldn't read", interaction.response.messages[0][0])


if __name__ == "__main__":
    unittest.main()
