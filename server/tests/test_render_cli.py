from pathlib import Path
import contextlib
import io
import json
import sys
import tempfile
import unittest

SERVER_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(SERVER_DIR))

import render_cli


class RenderCliTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.input = self.tmp / "log.ans"
        self.input.write_bytes(b"\x1b[31merr\x1b[0m\tok\r\n")

    def tearDown(self):
        self._tmp.cleanup()

    def test_prints_json_runs(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = render_cli.main([str(self.input), "--char-width", "10", "--line-height", "20"])
        self.assertEqual(code, 0)
        result = json.loads(out.getvalue())
        self.assertEqual(result["runs"], [
            {"t": "err", "x": 0.0, "y": 0.0, "w": 30.0, "fg": "#dc5050"},
            {"t": "ok", "x": 80.0, "y": 0.0, "w": 20.0, "fg": "#ffffff"},
        ])
        self.assertEqual(result["pen"], {"x": 0.0, "y": 20.0})

    def test_origin_flags(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            render_cli.main([
                str(self.input), "--char-width", "10", "--origin-x", "5", "--origin-y", "7",
            ])
        first = json.loads(out.getvalue())["runs"][0]
        self.assertEqual((first["x"], first["y"]), (5.0, 7.0))

    def test_writes_png(self):
        target = self.tmp / "out.png"
        code = render_cli.main([str(self.input), "--png", str(target)])
        self.assertEqual(code, 0)
        self.assertTrue(target.read_bytes().startswith(b"\x89PNG"))

    def test_help_says_origin_is_json_only(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out), self.assertRaises(SystemExit):
            render_cli.main(["--help"])
        self.assertIn("JSON output only", out.getvalue())

    def test_missing_input(self):
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            code = render_cli.main([str(self.tmp / "nope.ans")])
        self.assertEqual(code, 2)
        self.assertIn("cannot read", err.getvalue())

    def test_bad_background(self):
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            code = render_cli.main([str(self.input), "--bg", "nothex"])
        self.assertEqual(code, 2)


if __name__ == "__main__":
    unittest.main()
