import datetime as _dt
import json
import os
import stat
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from mcp_deploy.documents import _toml_parser
from mcp_deploy.errors import MergeError, ParseError, SettingsIOError, UnsupportedEnvironment
from mcp_deploy.merger import (
    JqMerger,
    ShallowMerger,
    create_backup,
    make_backup_path,
    merge,
    resolve_merger,
)

FIXED_NOW = 1700000000


def _write_json(path: Path, data) -> None:
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def _backups(directory: Path) -> list[Path]:
    return sorted(directory.glob("*.backup.*"))


class TestShallowMerge(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.settings = self.root / "settings.json"
        self.overlay = self.root / "overlay.json"

    def tearDown(self):
        self._tmp.cleanup()

    def test_nested_values_are_replaced_not_unioned(self):
        _write_json(self.settings, {"a": 1, "b": {"x": 1}})
        _write_json(self.overlay, {"b": {"y": 2}, "c": 3})

        result = merge(self.settings, self.overlay, clock=lambda: FIXED_NOW)

        expected = {"a": 1, "b": {"y": 2}, "c": 3}
        self.assertEqual(result.document, expected)
        self.assertEqual(json.loads(self.settings.read_text(encoding="utf-8")), expected)
        self.assertEqual(result.action, "merged")
        self.assertEqual(result.dest_path, self.settings)

    def test_result_keys_are_union_and_overlay_wins(self):
        cases = [
            ({}, {"k": 1}),
            ({"k": 1}, {}),
            ({"k": [1, 2]}, {"k": [3]}),
            ({"a": {"deep": {"x": 1}}, "z": None}, {"a": "flat", "n": {"m": True}}),
        ]
        for base, overlay in cases:
            with self.subTest(base=base, overlay=overlay):
                _write_json(self.settings, base)
                _write_json(self.overlay, overlay)
                result = merge(self.settings, self.overlay)
                self.assertEqual(set(result.document), set(base) | set(overlay))
                for key, value in overlay.items():
                    self.assertEqual(result.document[key], value)
                for key in set(base) - set(overlay):
                    self.assertEqual(result.document[key], base[key])

    def test_reapplying_overlay_is_idempotent(self):
        _write_json(self.settings, {"a": 1, "b": {"x": 1}})
        _write_json(self.overlay, {"b": {"y": 2}, "c": 3})

        first = merge(self.settings, self.overlay, clock=lambda: FIXED_NOW)
        first_text = self.settings.read_text(encoding="utf-8")
        second = merge(self.settings, self.overlay, clock=lambda: FIXED_NOW + 1)

        self.assertEqual(first.document, second.document)
        self.assertEqual(self.settings.read_text(encoding="utf-8"), first_text)

    def test_existing_destination_gets_one_byte_identical_backup(self):
        original = b'{\r\n  "editor.fontSize": 14\r\n}'
        self.settings.write_bytes(original)
        _write_json(self.overlay, {"mcp": {}})

        result = merge(self.settings, self.overlay, clock=lambda: FIXED_NOW)

        self.assertEqual(result.backup_path, self.root / f"settings.json.backup.{FIXED_NOW}")
        self.assertEqual(_backups(self.root), [result.backup_path])
        self.assertEqual(result.backup_path.read_bytes(), original)

    def test_absent_destination_is_overlay_verbatim_without_backup(self):
        overlay_bytes = b'{"mcp":{"servers":["github"]}}'
        self.overlay.write_bytes(overlay_bytes)

        result = merge(self.settings, self.overlay)

        self.assertEqual(result.action, "created")
        self.assertIsNone(result.backup_path)
        self.assertEqual(result.document, {"mcp": {"servers": ["github"]}})
        self.assertEqual(self.settings.read_bytes(), overlay_bytes)
        self.assertEqual(_backups(self.root), [])

    def test_absent_destination_directory_is_created(self):
        _write_json(self.overlay, {"a": 1})
        dest = self.root / "nested" / "dir" / "settings.json"

        merge(dest, self.overlay)

        self.assertEqual(json.loads(dest.read_text(encoding="utf-8")), {"a": 1})

    def test_malformed_overlay_leaves_destination_untouched(self):
        original = '{"keep": true}\n'
        self.settings.write_text(original, encoding="utf-8")
        self.overlay.write_text('{"mcp": ', encoding="utf-8")

        with self.assertRaises(ParseError) as ctx:
            merge(self.settings, self.overlay)

        self.assertIn(str(self.overlay), str(ctx.exception))
        self.assertEqual(ctx.exception.path, self.overlay)
        self.assertEqual(self.settings.read_text(encoding="utf-8"), original)
        self.assertEqual(_backups(self.root), [])

    def test_non_object_overlay_is_rejected(self):
        self.overlay.write_text("[1, 2]", encoding="utf-8")
        with self.assertRaises(ParseError):
            merge(self.settings, self.overlay)
        self.assertFalse(self.settings.exists())

    def test_malformed_destination_names_destination(self):
        original = "{ not json"
        self.settings.write_text(original, encoding="utf-8")
        _write_json(self.overlay, {"a": 1})

        with self.assertRaises(ParseError) as ctx:
            merge(self.settings, self.overlay)

        self.assertIn(str(self.settings), str(ctx.exception))
        self.assertEqual(self.settings.read_text(encoding="utf-8"), original)
        self.assertEqual(_backups(self.root), [])

    def test_missing_overlay_raises_io_error(self):
        _write_json(self.settings, {"a": 1})
        with self.assertRaises(SettingsIOError) as ctx:
            merge(self.settings, self.root / "missing.json")
        self.assertIsInstance(ctx.exception, OSError)
        self.assertEqual(_backups(self.root), [])

    def test_backup_failure_aborts_without_overwrite(self):
        original = '{"a": 1}\n'
        self.settings.write_text(original, encoding="utf-8")
        _write_json(self.overlay, {"b": 2})

        with patch("mcp_deploy.merger.shutil.copy2", side_effect=PermissionError("denied")):
            with self.assertRaises(SettingsIOError) as ctx:
                merge(self.settings, self.overlay)

        self.assertIn("denied", str(ctx.exception))
        self.assertEqual(self.settings.read_text(encoding="utf-8"), original)

    def test_separate_base_and_destination(self):
        base = self.root / "base.json"
        _write_json(base, {"a": 1, "b": 1})
        _write_json(self.overlay, {"b": 2})

        result = merge(base, self.overlay, self.settings)

        self.assertEqual(json.loads(self.settings.read_text(encoding="utf-8")), {"a": 1, "b": 2})
        self.assertEqual(json.loads(base.read_text(encoding="utf-8")), {"a": 1, "b": 1})
        self.assertIsNone(result.backup_path)

    def test_toml_destination_is_rendered_as_toml(self):
        if _toml_parser is None:
            self.skipTest("TOML parser unavailable in this runtime.")
        dest = self.root / "config.toml"
        dest.write_text('model = "x"\n\n[mcp_servers.old]\ncommand = "old"\n', encoding="utf-8")
        _write_json(self.overlay, {"mcp_servers": {"gh": {"command": "npx", "args": ["-y"]}}})

        result = merge(dest, self.overlay)

        parsed = _toml_parser.loads(dest.read_text(encoding="utf-8"))
        self.assertEqual(parsed, {"model": "x", "mcp_servers": {"gh": {"command": "npx", "args": ["-y"]}}})
        self.assertEqual(parsed, result.document)

    def test_toml_destination_keeps_datetime_values(self):
        if _toml_parser is None:
            self.skipTest("TOML parser unavailable in this runtime.")
        dest = self.root / "config.toml"
        dest.write_text("when = 1979-05-27T07:32:00Z\nday = 1979-05-27\n", encoding="utf-8")
        _write_json(self.overlay, {"b": 2})

        merge(dest, self.overlay)

        parsed = _toml_parser.loads(dest.read_text(encoding="utf-8"))
        self.assertEqual(
            parsed,
            {
                "when": _dt.datetime(1979, 5, 27, 7, 32, tzinfo=_dt.timezone.utc),
                "day": _dt.date(1979, 5, 27),
                "b": 2,
            },
        )

    def test_symlinked_destination_is_written_through(self):
        target = self.root / "dotfiles_settings.json"
        _write_json(target, {"a": 1})
        try:
            self.settings.symlink_to(target)
        except (OSError, NotImplementedError):
            self.skipTest("Symlinks unavailable in this runtime.")
        _write_json(self.overlay, {"b": 2})

        merge(self.settings, self.overlay)

        self.assertTrue(self.settings.is_symlink())
        self.assertEqual(json.loads(target.read_text(encoding="utf-8")), {"a": 1, "b": 2})

    def test_existing_file_mode_is_preserved(self):
        if os.name == "nt":
            self.skipTest("POSIX permission bits only.")
        _write_json(self.settings, {"a": 1})
        os.chmod(self.settings, 0o644)
        _write_json(self.overlay, {"b": 2})

        merge(self.settings, self.overlay)

        self.assertEqual(stat.S_IMODE(self.settings.stat().st_mode), 0o644)


class TestDegradedMode(unittest.TestCase):
    def test_no_merger_refuses_to_touch_existing_destination(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            settings = root / "settings.json"
            overlay = root / "overlay.json"
            original = '{"a": 1}\n'
            settings.write_text(original, encoding="utf-8")
            _write_json(overlay, {"b": 2})

            with self.assertRaises(UnsupportedEnvironment) as ctx:
                merge(settings, overlay, merger=None, clock=lambda: FIXED_NOW)

            self.assertEqual(ctx.exception.overlay_path, overlay)
            self.assertEqual(ctx.exception.dest_path, settings)
            self.assertEqual(settings.read_text(encoding="utf-8"), original)
            self.assertEqual(_backups(root), [])

    def test_no_merger_still_creates_absent_destination(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            settings = root / "settings.json"
            overlay = root / "overlay.json"
            _write_json(overlay, {"b": 2})

            result = merge(settings, overlay, merger=None)

            self.assertEqual(result.action, "created")
            self.assertEqual(json.loads(settings.read_text(encoding="utf-8")), {"b": 2})


class TestBackupNaming(unittest.TestCase):
    def test_collision_appends_suffix(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            dest = Path(tmpdir) / "settings.json"
            dest.write_text("{}", encoding="utf-8")
            first = create_backup(dest, clock=lambda: FIXED_NOW)
            second = create_backup(dest, clock=lambda: FIXED_NOW)

            self.assertEqual(first.name, f"settings.json.backup.{FIXED_NOW}")
            self.assertEqual(second.name, f"settings.json.backup.{FIXED_NOW}.1")
            self.assertEqual(make_backup_path(dest, timestamp=FIXED_NOW).name, f"settings.json.backup.{FIXED_NOW}.2")


class TestMergerResolution(unittest.TestCase):
    def test_builtin(self):
        self.assertIsInstance(resolve_merger("builtin"), ShallowMerger)

    def test_jq_when_installed(self):
        merger = resolve_merger("jq", which=lambda name: "/usr/bin/jq")
        self.assertIsInstance(merger, JqMerger)
        self.assertEqual(merger.executable, "/usr/bin/jq")

    def test_jq_missing_degrades(self):
        self.assertIsNone(resolve_merger("jq", which=lambda name: None))

    def test_none(self):
        self.assertIsNone(resolve_merger("none"))

    def test_unknown(self):
        with self.assertRaises(ValueError):
            resolve_merger("deep")


class TestJqMerger(unittest.TestCase):
    def test_uses_shallow_filter(self):
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout='{"a": 1, "b": {"y": 2}}\n', stderr="")
        with patch("mcp_deploy.merger.subprocess.run", return_value=completed) as run:
            merged = JqMerger("jq").merge_documents({"a": 1, "b": {"x": 1}}, {"b": {"y": 2}})

        self.assertEqual(merged, {"a": 1, "b": {"y": 2}})
        cmd = run.call_args.args[0]
        self.assertEqual(cmd, ["jq", "-s", ".[0] + .[1]"])
        stdin = run.call_args.kwargs["input"]
        self.assertEqual([json.loads(line) for line in stdin.splitlines()], [{"a": 1, "b": {"x": 1}}, {"b": {"y": 2}}])

    def test_failure_raises_merge_error(self):
        completed = subprocess.CompletedProcess(args=[], returncode=5, stdout="", stderr="jq: error")
        with patch("mcp_deploy.merger.subprocess.run", return_value=completed):
            with self.assertRaises(MergeError) as ctx:
                JqMerger("jq").merge_documents({}, {})
        self.assertIn("jq: error", str(ctx.exception))

    def test_missing_executable_raises_merge_error(self):
        with patch("mcp_deploy.merger.subprocess.run", side_effect=FileNotFoundError("jq")):
            with self.assertRaises(MergeError):
                JqMerger("jq").merge_documents({}, {})


if __name__ == "__main__":
    unittest.main()
