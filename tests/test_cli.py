import os
import shutil
import sys
import tempfile
import unittest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.join(PROJECT_ROOT, "tests"))

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")

from fakes import FakePreprocessor
from macro_expander.cli import main
from macro_expander.errors import ConfigError
from macro_expander.settings import ExpanderSettings, load_settings


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        s = load_settings(None)
        self.assertEqual(s.invocation_template, "cpp -E")
        self.assertEqual(s.extensions, frozenset({".h", ".hpp", ".c", ".cpp"}))
        self.assertEqual(s.output_suffix, ".expanded")
        self.assertIsNone(s.timeout)

    def test_load_from_json(self):
        s = load_settings(os.path.join(MOCK_PROJECT, "settings.json"))
        self.assertEqual(s.compiler_args, ["-undef", "-nostdinc"])
        self.assertEqual(s.invocation_template, "cpp -E -undef -nostdinc")
        self.assertEqual(s.extensions, frozenset({".c", ".h", ".inl"}))
        self.assertEqual(s.output_suffix, ".out")
        self.assertEqual(s.timeout, 30)

    def test_whitelist(self):
        s = ExpanderSettings()
        self.assertTrue(s.is_whitelisted("a/b/x.CPP"))
        self.assertFalse(s.is_whitelisted("notes.txt"))
        self.assertFalse(s.is_whitelisted("Makefile"))

    def test_unknown_key_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "s.json")
            with open(path, "w") as f:
                f.write('{"compilr": "gcc"}')
            with self.assertRaises(ConfigError):
                load_settings(path)

    def test_invalid_json(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "s.json")
            with open(path, "w") as f:
                f.write("{not json")
            with self.assertRaises(ConfigError):
                load_settings(path)

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_settings(os.path.join(MOCK_PROJECT, "missing.json"))

    def test_overrides_are_validated(self):
        s = ExpanderSettings().with_overrides(extensions=["INL"], compiler=None)
        self.assertEqual(s.extensions, frozenset({".inl"}))
        self.assertEqual(s.compiler, "cpp")
        with self.assertRaises(ConfigError):
            ExpanderSettings().with_overrides(max_passes=0)


class TestMain(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.project = os.path.join(self.tmp, "project")
        shutil.copytree(MOCK_PROJECT, self.project)
        self.defs = os.path.join(self.project, "macros.ini")
        self.src = os.path.join(self.project, "src")
        self.fake = FakePreprocessor()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def test_sibling_run(self):
        rc = main([self.defs, self.src], runner=self.fake)
        self.assertEqual(rc, 0)
        self.assertTrue(os.path.exists(os.path.join(self.src, "main.c.expanded")))

    def test_overwrite_run(self):
        rc = main(["-w", "-q", self.defs, os.path.join(self.src, "main.c")], runner=self.fake)
        self.assertEqual(rc, 0)
        with open(os.path.join(self.src, "main.c"), encoding="utf-8") as f:
            self.assertIn("int x = 1+1;", f.read())

    def test_compiler_flags_reach_the_runner(self):
        rc = main(
            ["--compiler", "clang", "--compiler-arg", "-std=c11", self.defs, os.path.join(self.src, "main.c")],
            runner=self.fake,
        )
        self.assertEqual(rc, 0)
        self.assertEqual(self.fake.calls[0][:3], ["clang", "-E", "-std=c11"])

    def test_settings_file_and_suffix(self):
        settings = os.path.join(self.project, "settings.json")
        rc = main(["-c", settings, "--suffix", ".new", self.defs, self.src], runner=self.fake)
        self.assertEqual(rc, 0)
        self.assertTrue(os.path.exists(os.path.join(self.src, "main.c.new")))

    def test_extension_override(self):
        rc = main(["--extension", "txt", self.defs, os.path.join(self.project, "docs")], runner=self.fake)
        self.assertEqual(rc, 0)
        with open(os.path.join(self.project, "docs", "notes.txt.expanded"), encoding="utf-8") as f:
            self.assertIn("are documented", f.read())

    def test_invalid_path_exit_code(self):
        rc = main([self.defs, os.path.join(self.project, "missing")], runner=self.fake)
        self.assertEqual(rc, 1)

    def test_bad_definitions_exit_code(self):
        bad = os.path.join(self.project, "dup.ini")
        with open(bad, "w") as f:
            f.write("[a]\nmacro = X\nvalue = 1\n[b]\nmacro = X\nvalue = 2\n")
        self.assertEqual(main([bad, self.src], runner=self.fake), 1)
        self.assertFalse(os.path.exists(os.path.join(self.src, "main.c.expanded")))

    def test_compiler_failure_exit_code(self):
        rc = main(["-w", self.defs, self.src], runner=FakePreprocessor(fail_on={"FOO"}))
        self.assertEqual(rc, 1)

    def test_usage_error(self):
        self.assertEqual(main([]), 2)


if __name__ == "__main__":
    unittest.main()
