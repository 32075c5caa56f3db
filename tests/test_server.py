"""
MCP server tests: tool functions are called directly, with the
preprocessor replaced by the fake runner after loading.
"""

import importlib
import os
import shutil
import sys
import tempfile
import unittest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.join(PROJECT_ROOT, "tests"))

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")

import fastmcp_server as srv
from fakes import FakePreprocessor
from macro_expander.expansion_engine import ExpansionEngine


class TestServerTools(unittest.TestCase):

    def setUp(self):
        importlib.reload(srv)  # ensure clean state
        self.tmp = tempfile.mkdtemp()
        self.project = os.path.join(self.tmp, "project")
        shutil.copytree(MOCK_PROJECT, self.project)
        self.defs = os.path.join(self.project, "macros.ini")

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def _load(self, **fake_kwargs):
        msg = srv.load_definitions(self.defs)
        srv.engine = ExpansionEngine(srv.settings.invocation_template, runner=FakePreprocessor(**fake_kwargs))
        return msg

    def test_tools_require_loading(self):
        for result in (srv.list_macros(), srv.expand_line("int x = FOO();"), srv.expand_paths(self.project)):
            self.assertTrue(result.startswith("Error: No definitions loaded"), result)

    def test_load_definitions(self):
        msg = self._load()
        self.assertIn("Loaded 6 macro(s)", msg)
        self.assertIn("`cpp -E`", msg)

    def test_load_with_settings(self):
        msg = srv.load_definitions(self.defs, os.path.join(self.project, "settings.json"))
        self.assertIn("cpp -E -undef -nostdinc", msg)
        self.assertIn(".inl", msg)

    def test_load_missing_file(self):
        msg = srv.load_definitions(os.path.join(self.project, "nope.ini"))
        self.assertTrue(msg.startswith("Error: Definitions file not found"))
        self.assertIsNone(srv.registry)

    def test_load_invalid_definitions(self):
        bad = os.path.join(self.project, "bad.ini")
        with open(bad, "w") as f:
            f.write("[a]\nmacro = X\n")
        msg = srv.load_definitions(bad)
        self.assertTrue(msg.startswith("Error loading definitions"), msg)

    def test_list_macros(self):
        self._load()
        table = srv.list_macros()
        self.assertIn("| `FOO` | `()` | `1+1` |", table)
        self.assertIn("| `LIMIT` | `-` | `128` |", table)
        self.assertIn("| `STR` | `(x)` | `#x` |", table)

    def test_expand_line(self):
        self._load()
        self.assertEqual(srv.expand_line("int x = FOO() + LIMIT;"), "int x = 1+1 + 128;")
        self.assertEqual(srv.expand_line("#include <foo.h>"), "#include <foo.h>")

    def test_expand_line_failure(self):
        self._load(fail_on={"FOO"})
        self.assertTrue(srv.expand_line("int x = FOO();").startswith("Error expanding line"))

    def test_expand_paths(self):
        self._load()
        msg = srv.expand_paths(os.path.join(self.project, "src"))
        self.assertIn("2 file(s) expanded", msg)
        self.assertIn("*.expanded copies", msg)
        self.assertTrue(os.path.exists(os.path.join(self.project, "src", "main.c.expanded")))

    def test_expand_paths_overwrite_multiple_roots(self):
        self._load()
        roots = f"{os.path.join(self.project, 'src')}, {os.path.join(self.project, 'docs')}"
        msg = srv.expand_paths(roots, overwrite=True)
        self.assertIn("in place", msg)
        self.assertIn("1 skipped", msg)

    def test_expand_paths_invalid(self):
        self._load()
        msg = srv.expand_paths(os.path.join(self.project, "missing"))
        self.assertTrue(msg.startswith("Error expanding paths"), msg)
        self.assertEqual(srv.expand_paths(" , "), "Error: No paths given.")


if __name__ == "__main__":
    unittest.main()
