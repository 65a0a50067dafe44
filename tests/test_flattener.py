import unittest
import os
import sys

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from snapcall.errors import StructuralError, UnsupportedConstructError, UnsupportedTypeError
from snapcall.flattener import Assignment, Flattener, flatten, flatten_arguments
from snapcall.type_model import (
    AliasType, ArrayType, ElaboratedType, EnumType, Field, FunctionType,
    OpaqueType, PointerType, PrimitiveKind, PrimitiveType, QualifiedType, RecordType,
)

INT = PrimitiveType(PrimitiveKind.INT)
DOUBLE = PrimitiveType(PrimitiveKind.DOUBLE)
LONG = PrimitiveType(PrimitiveKind.LONG)


def struct(tag, *fields):
    record = RecordType("struct", tag, [Field(name, ctype) for name, ctype in fields])
    return ElaboratedType("struct", tag, record)


class TestPrimitiveArguments(unittest.TestCase):

    def test_one_local_and_one_assignment_per_parameter(self):
        args = [(INT, "a"), (DOUBLE, "b"), (LONG, "c")]
        locals, assignments = flatten_arguments(args)
        self.assertEqual(len(locals), len(args))
        self.assertEqual(len(assignments), len(args))
        self.assertEqual([l.name for l in locals], ["a", "b", "c"])
        self.assertEqual(assignments[0], Assignment("a", INT, "a"))

    def test_local_renders_as_declaration(self):
        locals, _ = flatten("a", "a", INT, True)
        self.assertEqual(locals[0].render(), "int a;")

    def test_no_local_when_not_needed(self):
        locals, assignments = flatten("p.x", "p.x", INT, False)
        self.assertEqual(locals, [])
        self.assertEqual(assignments, [Assignment("p.x", INT, "p.x")])


class TestPointers(unittest.TestCase):

    def test_pointer_to_int(self):
        """v and v_val are both staged; v is re-pointed at v_val."""
        locals, assignments = flatten("v", "v", PointerType(INT), True)
        self.assertEqual([l.name for l in locals], ["v", "v_val"])
        self.assertEqual(locals[0].render(), "int * v;")
        self.assertEqual(locals[1].render(), "int v_val;")

        self.assertEqual(assignments[0], Assignment("v_val", INT, "(*v)"))
        self.assertEqual(assignments[1].lhs, "v")
        self.assertEqual(assignments[1].rhs, "(&v_val)")

    def test_pointer_assignment_follows_its_pointee(self):
        """Every local an assignment refers to is assigned before it."""
        _, assignments = flatten("pp", "pp", PointerType(PointerType(INT)), True)
        self.assertEqual([a.lhs for a in assignments], ["pp_val_val", "pp_val", "pp"])
        self.assertEqual(assignments[0].rhs, "(*(*pp))")
        self.assertEqual(assignments[1].rhs, "(&pp_val_val)")
        self.assertEqual(assignments[2].rhs, "(&pp_val)")

    def test_pointer_to_pointer_display(self):
        locals, _ = flatten("pp", "pp", PointerType(PointerType(INT)), True)
        self.assertEqual([l.render() for l in locals],
                         ["int ** pp;", "int * pp_val;", "int pp_val_val;"])

    def test_pointer_field_local_is_a_valid_identifier(self):
        """A pointer inside a record is staged as s_q_val, never s.q_val."""
        holder = struct("S", ("n", INT), ("q", PointerType(INT)))
        locals, assignments = flatten("s", "s", holder, True)
        self.assertEqual([l.render() for l in locals], ["struct S s;", "int s_q_val;"])
        self.assertEqual([(a.lhs, a.rhs) for a in assignments], [
            ("s.n", "s.n"),
            ("s_q_val", "(*s.q)"),
            ("s.q", "(&s_q_val)"),
        ])

    def test_pointer_to_record(self):
        point = struct("P", ("x", INT), ("y", INT))
        locals, assignments = flatten("p", "p", PointerType(point), True)
        self.assertEqual([l.render() for l in locals], ["struct P * p;", "struct P p_val;"])
        self.assertEqual([(a.lhs, a.rhs) for a in assignments], [
            ("p_val.x", "(*p).x"),
            ("p_val.y", "(*p).y"),
            ("p", "(&p_val)"),
        ])


class TestRecords(unittest.TestCase):

    def test_fields_in_declaration_order(self):
        point = struct("P", ("x", INT), ("y", INT))
        locals, assignments = flatten("p", "p", point, True)
        self.assertEqual([l.render() for l in locals], ["struct P p;"])
        self.assertEqual([a.lhs for a in assignments], ["p.x", "p.y"])

    def test_nested_record_has_no_intermediate_local(self):
        inner = struct("In", ("a", INT), ("b", DOUBLE))
        outer = struct("Out", ("first", inner), ("n", LONG), ("second", inner))
        locals, assignments = flatten("o", "o", outer, True)
        self.assertEqual(len(locals), 1)
        self.assertEqual([a.lhs for a in assignments],
                         ["o.first.a", "o.first.b", "o.n", "o.second.a", "o.second.b"])

    def test_typedef_spelling_is_kept_for_the_local(self):
        alias = AliasType("Point", struct(None, ("x", INT)))
        locals, assignments = flatten("p", "p", alias, True)
        self.assertEqual(locals[0].render(), "Point p;")
        self.assertEqual(assignments[0].lhs, "p.x")

    def test_union_is_rejected(self):
        record = RecordType("union", "U", [Field("i", INT), Field("d", DOUBLE)])
        with self.assertRaises(UnsupportedConstructError):
            flatten("u", "u", ElaboratedType("union", "U", record), True)

    def test_incomplete_record_is_rejected(self):
        record = RecordType("struct", "Opaque")
        with self.assertRaises(StructuralError):
            flatten("o", "o", ElaboratedType("struct", "Opaque", record), True)

    def test_unnamed_field_is_rejected(self):
        record = RecordType("struct", "S", [Field(None, INT)])
        with self.assertRaises(StructuralError):
            flatten("s", "s", ElaboratedType("struct", "S", record), True)

    def test_bit_field_is_rejected(self):
        record = RecordType("struct", "F", [Field("ready", INT, "1")])
        with self.assertRaises(UnsupportedConstructError):
            flatten("f", "f", ElaboratedType("struct", "F", record), True)

    def test_recursive_record_is_rejected(self):
        record = RecordType("struct", "Node")
        node = ElaboratedType("struct", "Node", record)
        record.fields = [Field("value", INT), Field("next", PointerType(node))]
        with self.assertRaises(UnsupportedConstructError):
            flatten("n", "n", PointerType(node), True)

    def test_anonymous_record_local_is_rejected(self):
        with self.assertRaises(StructuralError):
            flatten("s", "s", struct(None, ("x", INT)), True)


class TestQualifiers(unittest.TestCase):

    def test_const_parameter_local_is_assignable(self):
        locals, assignments = flatten("n", "n", QualifiedType(("const",), INT), True)
        self.assertEqual(locals[0].render(), "int n;")
        self.assertEqual(assignments, [Assignment("n", INT, "n")])

    def test_pointer_to_const_keeps_the_pointer_spelling(self):
        locals, _ = flatten("p", "p", PointerType(QualifiedType(("const",), INT)), True)
        self.assertEqual([l.render() for l in locals], ["const int * p;", "int p_val;"])

    def test_const_typedef_is_spelled_out(self):
        cint = AliasType("cint", QualifiedType(("const",), INT))
        locals, _ = flatten("c", "c", cint, True)
        self.assertEqual(locals[0].render(), "int c;")

    def test_const_field_is_rejected(self):
        holder = struct("K", ("id", QualifiedType(("const",), INT)))
        with self.assertRaises(UnsupportedConstructError):
            flatten("k", "k", holder, True)


class TestUnsupported(unittest.TestCase):

    def test_array(self):
        with self.assertRaises(UnsupportedConstructError):
            flatten("xs", "xs", ArrayType(INT, "4"), True)

    def test_function_pointer(self):
        fn = PointerType(FunctionType(INT, (INT,)))
        with self.assertRaises(UnsupportedConstructError):
            flatten("fn", "fn", fn, True)

    def test_enum(self):
        with self.assertRaises(UnsupportedTypeError):
            flatten("c", "c", ElaboratedType("enum", "Color", EnumType("Color")), True)

    def test_opaque(self):
        with self.assertRaises(UnsupportedTypeError):
            flatten("f", "f", PointerType(OpaqueType("FILE")), True)

    def test_leaf_without_format(self):
        with self.assertRaises(UnsupportedTypeError):
            flatten("c", "c", PrimitiveType(PrimitiveKind.CHAR), True)

    def test_missing_type(self):
        with self.assertRaises(StructuralError):
            Flattener().flatten("x", "x", None, True)


if __name__ == "__main__":
    unittest.main()
