from __future__ import annotations

import asyncio
import unittest
from types import SimpleNamespace

try:
    import discord
    from discord.ext import commands
except ModuleNotFoundError:
    discord = None
    commands = None

if commands is not None:
    from misc.events_runtime import register_runtime_events
    from misc.runtime_deps import RuntimeBootDeps
    from misc.runtime_deps import RuntimeDeps


class RecordingWelcome:
    def __init__(self, error: Exception | None = None):
        self.members: list = []
        self.error = error

    async def on_member_join(self, member):
        self.members.append(member)
        if self.error is not None:
            raise self.error


class RecordingTracker:
    def __init__(self):
        self.messages: list = []
        self.voice: list = []
        self.initialized = 0

    def handle_message(self, message):
        self.messages.append(message)

    def handle_voice_state_update(self, member, before, after):
        self.voice.append((member, before, after))

    def initialize_voice_states(self, guilds):
        self.initialized += 1
        return 0


@unittest.skipIf(commands is None, "discord.py not installed")
class RuntimeEventsTests(unittest.IsolatedAsyncioTestCase):
    def _wire(self, *, welcome=None, role_handler=None, presence_enabled=True):
        self.welcome = welcome or RecordingWelcome()
        self.tracker = RecordingTracker()
        self.loop_starts: list[str] = []
        self.role_calls: list = []

        async def presence_loop():
            self.loop_starts.append("presence")

        async def join_sweep_loop():
            self.loop_starts.append("sweep")

        async def default_role_handler(interaction):
            self.role_calls.append(interaction)
            return True

        bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
        register_runtime_events(
            bot,
            deps=RuntimeDeps(
                welcome_service=self.welcome,
                activity_tracker=self.tracker,
                role_button_handler=role_handler or default_role_handler,
            ),
            boot=RuntimeBootDeps(
                presence_enabled=presence_enabled,
                presence_loop_func=presence_loop,
                join_sweep_loop_func=join_sweep_loop,
            ),
        )
        return bot

    async def test_member_join_delegates_to_welcome_service(self):
        bot = self._wire()
        member = SimpleNamespace(id=42, guild=SimpleNamespace(id=7))
        await bot.on_member_join(member)
        self.assertEqual(self.welcome.members, [member])

    async def test_member_join_failure_is_logged_not_raised(self):
        bot = self._wire(welcome=RecordingWelcome(error=PermissionError("no perms")))
        member = SimpleNamespace(id=42, guild=SimpleNamespace(id=7))
        await bot.on_member_join(member)
        self.assertEqual(len(self.welcome.members), 1)

    async def test_on_ready_starts_background_loops_once(self):
        bot = self._wire()
        await bot.on_ready()
        await bot.on_ready()
        await asyncio.sleep(0)

        self.assertEqual(sorted(self.loop_starts), ["presence", "sweep"])
        self.assertEqual(self.tracker.initialized, 1)

    async def test_presence_can_be_disabled(self):
        bot = self._wire(presence_enabled=False)
        await bot.on_ready()
        await asyncio.sleep(0)
        self.assertEqual(self.loop_starts, ["sweep"])

    async def test_voice_updates_reach_tracker(self):
        bot = self._wire()
        member = SimpleNamespace(id=42)
        await bot.on_voice_state_update(member, "before", "after")
        self.assertEqual(self.tracker.voice, [(member, "before", "after")])

    async def test_bot_messages_are_tracked_but_not_processed(self):
        bot = self._wire()
        processed: list = []

        async def fake_process(message):
            processed.append(message)

        bot.process_commands = fake_process
        bot_message = SimpleNamespace(id=1, author=SimpleNamespace(bot=True))
        human_message = SimpleNamespace(id=2, author=SimpleNamespace(bot=False))
        await bot.on_message(bot_message)
        await bot.on_message(human_message)

        self.assertEqual(self.tracker.messages, [bot_message, human_message])
        self.assertEqual(processed, [human_message])

    async def test_only_component_interactions_reach_role_handler(self):
        bot = self._wire()
        command = SimpleNamespace(type=discord.InteractionType.application_command)
        component = SimpleNamespace(type=discord.InteractionType.component)
        await bot.on_interaction(command)
        await bot.on_interaction(component)
        self.assertEqual(self.role_calls, [component])


if __name__ == "__main__":
    unittest.main()
