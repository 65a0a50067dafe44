import unittest
import os
import sys
import tempfile

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from snapcall.errors import UnsupportedConstructError, UnsupportedTypeError
from snapcall.frontend import FrontendContext
from snapcall.global_refs import collect_global_assignments
from snapcall.walker import function_definitions

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")


class TestGlobalReferenceCollector(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.ctx = FrontendContext()
        cls.decls = cls.ctx.parse(os.path.join(MOCK_PROJECT, "declarations.c"))
        cls.scenarios = cls.ctx.parse(os.path.join(MOCK_PROJECT, "scenarios.c"))

    def globals_of(self, unit, name):
        function = function_definitions(unit.root, name)[0]
        return collect_global_assignments(function)

    def test_single_global(self):
        assignments = self.globals_of(self.scenarios, "use_global")
        self.assertEqual([(a.lhs, a.rhs) for a in assignments], [("g", "g")])
        self.assertEqual(assignments[0].type.display_name, "int")

    def test_one_assignment_per_occurrence(self):
        """A global read twice is assigned twice."""
        assignments = self.globals_of(self.decls, "reads_counter_twice")
        self.assertEqual([a.lhs for a in assignments], ["counter", "counter"])

    def test_internal_linkage_is_ignored(self):
        """static globals are not reachable from the replay's translation unit."""
        self.assertEqual(self.globals_of(self.decls, "scale"), [])

    def test_shadowed_names_are_ignored(self):
        assignments = self.globals_of(self.decls, "shadowed")
        self.assertEqual([a.lhs for a in assignments], ["shared"])

    def test_block_scope_extern(self):
        assignments = self.globals_of(self.decls, "block_extern")
        self.assertEqual([a.lhs for a in assignments], ["late"])

    def test_no_globals(self):
        self.assertEqual(self.globals_of(self.scenarios, "add"), [])
        self.assertEqual(self.globals_of(self.scenarios, "touch"), [])

    def test_non_primitive_globals_are_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ptr.c")
            with open(path, "w") as f:
                f.write("int *cursor;\nstruct S { int a; } state;\n"
                        "int peek(void) { return *cursor; }\n"
                        "int first(void) { return state.a; }\n")
            unit = self.ctx.parse(path)
        with self.assertRaises(UnsupportedTypeError) as cm:
            collect_global_assignments(function_definitions(unit.root, "peek")[0])
        self.assertEqual(cm.exception.function, "peek")
        with self.assertRaises(UnsupportedTypeError):
            collect_global_assignments(function_definitions(unit.root, "first")[0])

    def test_const_global_is_rejected(self):
        """A const global cannot be re-assigned by the replay."""
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "limit.c")
            with open(path, "w") as f:
                f.write("const int LIMIT = 5;\n"
                        "int volatile ticks;\n"
                        "int under(int x) { return x < LIMIT; }\n"
                        "int elapsed(void) { return ticks; }\n")
            unit = self.ctx.parse(path)
        with self.assertRaises(UnsupportedConstructError) as cm:
            collect_global_assignments(function_definitions(unit.root, "under")[0])
        self.assertEqual(cm.exception.function, "under")
        self.assertIn("LIMIT", cm.exception.detail)

        assignments = collect_global_assignments(function_definitions(unit.root, "elapsed")[0])
        self.assertEqual([a.lhs for a in assignments], ["ticks"])

    def test_nested_reads_in_source_order(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested.c")
            with open(path, "w") as f:
                f.write(
                    "int a;\nint b;\nint c;\n"
                    "int helper(int v) { return v; }\n"
                    "int nested(int n) {\n"
                    "    int total = a;\n"
                    "    for (int i = 0; i < n; i++) {\n"
                    "        if (i > b) { total += helper(c); }\n"
                    "    }\n"
                    "    return total;\n"
                    "}\n"
                )
            unit = self.ctx.parse(path)
        function = function_definitions(unit.root, "nested")[0]
        assignments = collect_global_assignments(function)
        self.assertEqual([a.lhs for a in assignments], ["a", "b", "c"])


if __name__ == "__main__":
    unittest.main()
