import unittest
import os
import sys

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from snapcall.errors import StructuralError, UnsupportedConstructError
from snapcall.frontend import Entity, EntityKind, FrontendContext
from snapcall.type_model import PrimitiveKind, PrimitiveType
from snapcall.walker import function_definitions, is_definition, signature_of

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")
INT = PrimitiveType(PrimitiveKind.INT)


class TestDeclarationWalker(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        ctx = FrontendContext()
        cls.scenarios = ctx.parse(os.path.join(MOCK_PROJECT, "scenarios.c"))
        cls.decls = ctx.parse(os.path.join(MOCK_PROJECT, "declarations.c"))

    def test_all_definitions_in_source_order(self):
        names = [f.name for f in function_definitions(self.scenarios.root)]
        self.assertEqual(names, ["add", "use_global", "sum", "touch", "deref", "peek"])

    def test_prototypes_are_skipped(self):
        names = [f.name for f in function_definitions(self.decls.root)]
        self.assertEqual(names, ["twice", "scale", "reads_counter_twice",
                                 "shadowed", "block_extern"])
        for f in function_definitions(self.decls.root):
            self.assertTrue(is_definition(f))

    def test_prototype_is_not_a_definition(self):
        prototype = next(e for e in self.decls.root.children
                         if e.kind == EntityKind.FUNCTION_DECL and e.name == "twice")
        self.assertFalse(is_definition(prototype))

    def test_filter_is_exact(self):
        self.assertEqual([f.name for f in function_definitions(self.scenarios.root, "sum")], ["sum"])
        self.assertEqual(function_definitions(self.scenarios.root, "su"), [])
        self.assertEqual(function_definitions(self.scenarios.root, "missing"), [])

    def test_filter_on_prototyped_function(self):
        selected = function_definitions(self.decls.root, "twice")
        self.assertEqual(len(selected), 1)
        self.assertIs(selected[0].definition, selected[0])

    def test_signature(self):
        add = function_definitions(self.scenarios.root, "add")[0]
        sig = signature_of(add)
        self.assertEqual(sig.name, "add")
        self.assertEqual(sig.result_type, INT)
        self.assertEqual(sig.arguments, ((INT, "a"), (INT, "b")))
        self.assertEqual(sig.line, 1)

    def test_unnamed_argument(self):
        fn = Entity(EntityKind.FUNCTION_DECL, name="f", result_type=INT,
                    arguments=[Entity(EntityKind.PARM_DECL, name=None, type=INT)])
        with self.assertRaises(StructuralError) as cm:
            signature_of(fn)
        self.assertEqual(cm.exception.function, "f")

    def test_missing_result_type(self):
        fn = Entity(EntityKind.FUNCTION_DECL, name="f", arguments=[])
        with self.assertRaises(StructuralError):
            signature_of(fn)

    def test_variadic(self):
        fn = Entity(EntityKind.FUNCTION_DECL, name="f", result_type=INT,
                    arguments=[], is_variadic=True)
        with self.assertRaises(UnsupportedConstructError):
            signature_of(fn)


if __name__ == "__main__":
    unittest.main()
