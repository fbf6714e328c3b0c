from pathlib import Path
import sys
import unittest
from unittest.mock import AsyncMock, patch

SERVER_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(SERVER_DIR))

import log_sources
from log_sources import LogSourceRegistry, MemoryLogSource, TmuxPaneSource


class ValidateTargetTests(unittest.TestCase):
    def test_accepts_none(self):
        self.assertIsNone(log_sources._validate_target(None))

    def test_accepts_valid_target(self):
        self.assertEqual(log_sources._validate_target("work:2.1"), "work:2.1")

    def test_rejects_invalid_target(self):
        with self.assertRaises(ValueError):
            log_sources._validate_target("work:2; rm -rf /")

    def test_rejects_invalid_source_name(self):
        with self.assertRaises(ValueError):
            log_sources.validate_name("has space")
        with self.assertRaises(ValueError):
            MemoryLogSource("a/b")


class TmuxPaneSourceTests(unittest.IsolatedAsyncioTestCase):
    async def test_captures_pane_with_escapes(self):
        with patch.object(log_sources, "_run", AsyncMock(return_value=b"\x1b[32mok\x1b[0m\n")) as run_mock:
            data = await TmuxPaneSource("build", target="dev:1", lines=40).collect()
        self.assertEqual(data, b"\x1b[32mok\x1b[0m\n")
        run_mock.assert_awaited_once_with(
            "tmux", "capture-pane", "-e", "-p", "-J", "-S", "-40", "-t", "dev:1",
        )

    async def test_capture_without_target(self):
        with patch.object(log_sources, "_run", AsyncMock(return_value=b"")) as run_mock:
            await log_sources.capture_pane()
        run_mock.assert_awaited_once_with("tmux", "capture-pane", "-e", "-p", "-J", "-S", "-80")

    async def test_tmux_failure_propagates(self):
        with patch.object(log_sources, "_run", AsyncMock(side_effect=RuntimeError("no server running"))):
            with self.assertRaises(RuntimeError):
                await TmuxPaneSource("build").collect()

    async def test_has_tmux_false_when_missing(self):
        with patch.object(log_sources, "_run", AsyncMock(side_effect=FileNotFoundError("tmux"))):
            self.assertFalse(await log_sources.has_tmux())

    def test_rejects_bad_arguments(self):
        with self.assertRaises(ValueError):
            TmuxPaneSource("build", target="x y")
        with self.assertRaises(ValueError):
            TmuxPaneSource("build", lines=0)


class MemoryLogSourceTests(unittest.IsolatedAsyncioTestCase):
    async def test_collect_joins_messages(self):
        source = MemoryLogSource("plugin")
        source.append("\x1b[31merror\x1b[0m\n")
        source.append("ok\n")
        self.assertEqual(await source.collect(), b"\x1b[31merror\x1b[0m\nok\n")

    async def test_drops_oldest_past_limit(self):
        source = MemoryLogSource("plugin", max_entries=2)
        for msg in ("a", "b", "c"):
            source.append(msg)
        self.assertEqual(len(source), 2)
        self.assertEqual(await source.collect(), b"bc")

    async def test_clear(self):
        source = MemoryLogSource("plugin")
        source.append("x")
        source.clear()
        self.assertEqual(await source.collect(), b"")


class RegistryTests(unittest.TestCase):
    def setUp(self):
        self.registry = LogSourceRegistry()

    def test_add_and_get(self):
        source = self.registry.add(MemoryLogSource("one"))
        self.assertIs(self.registry.get("one"), source)
        self.assertIn("one", self.registry)
        self.assertEqual(len(self.registry), 1)

    def test_rejects_duplicate_names(self):
        self.registry.add(MemoryLogSource("one"))
        with self.assertRaises(ValueError):
            self.registry.add(TmuxPaneSource("one"))

    def test_unknown_name(self):
        with self.assertRaises(KeyError):
            self.registry.get("missing")
        with self.assertRaises(KeyError):
            self.registry.remove("missing")

    def test_get_or_create_memory(self):
        first = self.registry.get_or_create_memory("plugin")
        self.assertIs(self.registry.get_or_create_memory("plugin"), first)

    def test_get_or_create_memory_rejects_tmux_source(self):
        self.registry.add(TmuxPaneSource("pane"))
        with self.assertRaises(TypeError):
            self.registry.get_or_create_memory("pane")

    def test_preserves_insertion_order(self):
        for name in ("b", "a", "c"):
            self.registry.add(MemoryLogSource(name))
        self.assertEqual(self.registry.names(), ["b", "a", "c"])
        self.assertEqual([s.name for s in self.registry], ["b", "a", "c"])

    def test_remove(self):
        self.registry.add(MemoryLogSource("one"))
        self.registry.remove("one")
        self.assertEqual(len(self.registry), 0)

    def test_describe(self):
        self.registry.add(MemoryLogSource("mem")).append("hi")
        self.registry.add(TmuxPaneSource("pane", target="dev:0", lines=10))
        self.assertEqual(self.registry.describe(), [
            {"name": "mem", "kind": "memory", "entries": 1},
            {"name": "pane", "kind": "tmux", "target": "dev:0", "lines": 10},
        ])


if __name__ == "__main__":
    unittest.main()
