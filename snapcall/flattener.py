"""
Type Flattener: turns typed values into replay statements.

Given the name of a value, the expression that reads it in the running
program and its type, the flattener walks the type and records:

  • LocalDeclaration  a temporary the replay function must declare
                      (one per top-level value and one per pointee)
  • Assignment        one literal assignment per primitive leaf, plus one
                      per pointer re-pointing it at its staged pointee

Pointers are never reproduced by address.  ``int *v`` becomes a local
``v_val`` holding the pointee and ``v = (&v_val)``, since the replay runs
in a different process than the one that captured the values.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from snapcall.errors import StructuralError, UnsupportedConstructError, UnsupportedTypeError
from snapcall.formats import format_of
from snapcall.type_model import (
    ArrayType, CType, EnumType, FunctionType, OpaqueType, PointerType,
    RecordType, is_const, is_transparent, unqualified, unwrap,
)

logger = logging.getLogger(__name__)


def _local_identifier(name: str) -> str:
    """C identifier for a staged value; ``s.q`` becomes ``s_q``."""
    return name.replace(".", "_")


@dataclass(frozen=True)
class LocalDeclaration:
    """A temporary declared at the top of the replay function."""
    name: str
    type: CType

    def render(self) -> str:
        return f"{self.type.display_name} {self.name};"


@dataclass(frozen=True)
class Assignment:
    """``lhs = <value of rhs printed with the format for type>;``"""
    lhs: str
    type: CType
    rhs: str


class Flattener:
    """Accumulates locals and assignments over one or more values."""

    def __init__(self):
        self.locals: List[LocalDeclaration] = []
        self.assignments: List[Assignment] = []
        # Records currently being expanded; a record reached again through
        # a pointer would never bottom out.
        self._open_records: List[RecordType] = []

    def flatten(self, name: str, expr: str, ctype: CType, need_local: bool,
                declared: Optional[CType] = None) -> None:
        """Flatten one value.

        ``declared`` is the outermost spelling of the type and is what the
        staged local is declared with (``P p`` rather than ``struct P p``).
        """
        if ctype is None:
            raise StructuralError(f"'{name}' has no type")

        if is_transparent(ctype):
            self.flatten(name, expr, ctype.underlying, need_local, declared or ctype)
            return

        self._check_supported(name, ctype)

        if need_local:
            self._declare(name, declared or ctype)

        if isinstance(ctype, PointerType):
            val_name = _local_identifier(name) + "_val"
            self.flatten(val_name, f"(*{expr})", ctype.pointee, True)
            self.assignments.append(Assignment(name, ctype, f"(&{val_name})"))
        elif isinstance(ctype, RecordType):
            self._flatten_record(name, expr, ctype)
        else:
            # Fails here, before anything is emitted, if the leaf has no format.
            format_of(ctype)
            self.assignments.append(Assignment(name, ctype, expr))

    def result(self) -> Tuple[List[LocalDeclaration], List[Assignment]]:
        return list(self.locals), list(self.assignments)

    # ────────────────────────────────────────────────────────────────

    def _declare(self, name: str, declared: CType) -> None:
        declared = unqualified(declared)
        if is_const(declared):
            # const hidden behind a typedef; spell the type out instead.
            declared = unwrap(declared)
        if "<anonymous>" in declared.display_name:
            raise StructuralError(
                f"'{name}' has an anonymous record type that cannot be redeclared"
            )
        logger.debug("local %s %s", declared.display_name, name)
        self.locals.append(LocalDeclaration(name, declared))

    def _flatten_record(self, name: str, expr: str, record: RecordType) -> None:
        if record.keyword == "union":
            raise UnsupportedConstructError(f"'{name}' is a union ({record.display_name})")
        if not record.is_complete:
            raise StructuralError(f"Record without fields: {record.display_name}")
        if record in self._open_records:
            raise UnsupportedConstructError(
                f"'{name}' has recursive type {record.display_name}"
            )

        self._open_records.append(record)
        try:
            for fld in record.fields:
                if not fld.name:
                    raise StructuralError(f"Field without a name in {record.display_name}")
                if fld.type is None:
                    raise StructuralError(
                        f"Field without a type: {record.display_name}.{fld.name}"
                    )
                if fld.bit_width is not None:
                    raise UnsupportedConstructError(
                        f"Bit-field {record.display_name}.{fld.name} is not supported"
                    )
                if is_const(fld.type):
                    raise UnsupportedConstructError(
                        f"Const field {record.display_name}.{fld.name} cannot be assigned"
                    )
                self.flatten(f"{name}.{fld.name}", f"{expr}.{fld.name}", fld.type, False)
        finally:
            self._open_records.pop()

    @staticmethod
    def _check_supported(name: str, ctype: CType) -> None:
        if isinstance(ctype, ArrayType):
            raise UnsupportedConstructError(f"'{name}' is an array ({ctype.display_name})")
        if isinstance(ctype, FunctionType):
            raise UnsupportedConstructError(f"'{name}' is a function ({ctype.display_name})")
        if isinstance(ctype, PointerType) and isinstance(unwrap(ctype.pointee), FunctionType):
            raise UnsupportedConstructError(f"'{name}' is a function pointer")
        if isinstance(ctype, OpaqueType):
            raise UnsupportedTypeError(f"'{name}' has unknown type {ctype.display_name}")
        if isinstance(ctype, EnumType):
            raise UnsupportedTypeError(f"Unsupported type: {ctype.display_name}")


def flatten(name: str, expr: str, ctype: CType,
            need_local: bool) -> Tuple[List[LocalDeclaration], List[Assignment]]:
    """Flatten a single value and return ``(locals, assignments)``."""
    flattener = Flattener()
    flattener.flatten(name, expr, ctype, need_local)
    return flattener.result()


def flatten_arguments(
    arguments: Sequence[Tuple[CType, str]],
) -> Tuple[List[LocalDeclaration], List[Assignment]]:
    """Flatten every ``(type, name)`` argument as a staged top-level value."""
    flattener = Flattener()
    for arg_type, arg_name in arguments:
        flattener.flatten(arg_name, arg_name, arg_type, True)
    return flattener.result()
