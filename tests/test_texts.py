from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from config.texts import default_bot_texts
from config.texts import default_texts_path
from config.texts import load_bot_texts


class BotTextsLoaderTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)

    def _write(self, text: str) -> Path:
        path = self.dir / "texts.yml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_shipped_texts_file_loads_cleanly(self):
        texts, warning = load_bot_texts(default_texts_path())
        self.assertIsNone(warning)
        self.assertEqual(texts.version, "texts_v1")
        self.assertIn("📜 /rules", [e["name"] for e in texts.help_entries])
        self.assertTrue(texts.presence)
        self.assertIn("Respect comes first", texts.default_rules)

    def test_missing_path_falls_back_with_warning(self):
        texts, warning = load_bot_texts(self.dir / "absent.yml")
        self.assertIn("not found", warning)
        self.assertEqual(texts, default_bot_texts())

        texts, warning = load_bot_texts(None)
        self.assertIsNotNone(warning)

    def test_invalid_yaml_falls_back(self):
        texts, warning = load_bot_texts(self._write("help: [unterminated"))
        self.assertIn("Failed to read", warning)
        self.assertEqual(texts.help_title, default_bot_texts().help_title)

    def test_non_mapping_payload_falls_back(self):
        texts, warning = load_bot_texts(self._write("- just\n- a list\n"))
        self.assertIn("Invalid texts format", warning)
        self.assertEqual(texts.version, "texts_v1")

    def test_partial_file_keeps_defaults_for_missing_sections(self):
        path = self._write(
            "version: custom_v2\n"
            "presence:\n"
            "  - {type: competing, name: tournaments}\n"
            "  - {type: streaming, name: ignored}\n"
            "  - {type: playing}\n"
        )
        texts, warning = load_bot_texts(path)
        self.assertIsNone(warning)
        self.assertEqual(texts.version, "custom_v2")
        self.assertEqual(texts.presence, [{"type": "competing", "name": "tournaments"}])
        self.assertEqual(texts.help_entries, default_bot_texts().help_entries)
        self.assertEqual(texts.default_rules, default_bot_texts().default_rules)


if __name__ == "__main__":
    unittest.main()
