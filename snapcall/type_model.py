"""
C type model used by the front end, the flattener and the emitter.

A type is one of a closed set of variants.  Typedef aliases and
tag-qualified ("elaborated") types are thin wrappers that name an
underlying type; they are unwrapped by plain recursion, never by
subclass dispatch.

    PrimitiveType     int, unsigned int, double, ...
    PointerType       T *
    AliasType         typedef name -> underlying
    ElaboratedType    struct/union/enum tag -> underlying
    QualifiedType     const/volatile -> underlying
    RecordType        struct or union with ordered fields

EnumType, ArrayType, FunctionType and OpaqueType describe declarations the
front end can see but the flattener refuses to reconstruct.
"""

import enum
from dataclasses import dataclass, field
from typing import List, Optional


class PrimitiveKind(enum.Enum):
    VOID = "void"
    BOOL = "_Bool"
    CHAR = "char"
    SCHAR = "signed char"
    UCHAR = "unsigned char"
    SHORT = "short"
    USHORT = "unsigned short"
    INT = "int"
    UINT = "unsigned int"
    LONG = "long"
    ULONG = "unsigned long"
    LONGLONG = "long long"
    ULONGLONG = "unsigned long long"
    FLOAT = "float"
    DOUBLE = "double"
    LONGDOUBLE = "long double"


class CType:
    """Base class of every type variant."""

    @property
    def display_name(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.display_name


@dataclass(frozen=True)
class PrimitiveType(CType):
    kind: PrimitiveKind

    @property
    def display_name(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class PointerType(CType):
    pointee: CType

    @property
    def display_name(self) -> str:
        if isinstance(self.pointee, PointerType):
            return f"{self.pointee.display_name}*"
        return f"{self.pointee.display_name} *"


@dataclass(frozen=True)
class AliasType(CType):
    """A typedef name."""
    name: str
    underlying: CType = field(compare=False)

    @property
    def display_name(self) -> str:
        return self.name


@dataclass(frozen=True)
class QualifiedType(CType):
    """``const`` / ``volatile`` applied to another type."""
    qualifiers: tuple
    underlying: CType

    @property
    def is_const(self) -> bool:
        return "const" in self.qualifiers

    @property
    def display_name(self) -> str:
        quals = " ".join(self.qualifiers)
        if isinstance(self.underlying, PointerType):
            return f"{self.underlying.display_name} {quals}"
        return f"{quals} {self.underlying.display_name}"


@dataclass(frozen=True)
class ElaboratedType(CType):
    """A type spelled through its tag, e.g. ``struct P``."""
    keyword: str            # "struct", "union" or "enum"
    tag: Optional[str]
    underlying: CType = field(compare=False)

    @property
    def display_name(self) -> str:
        if self.tag:
            return f"{self.keyword} {self.tag}"
        return self.underlying.display_name


@dataclass
class Field:
    name: Optional[str]
    type: Optional[CType]
    bit_width: Optional[str] = None     # text of the bit-field width, if any


@dataclass(eq=False)
class RecordType(CType):
    """A struct or union.

    ``fields`` stays ``None`` until the body is seen, so a forward
    declaration and the later definition share one object.
    """
    keyword: str
    tag: Optional[str]
    fields: Optional[List[Field]] = None

    @property
    def is_complete(self) -> bool:
        return self.fields is not None

    @property
    def is_anonymous(self) -> bool:
        return not self.tag

    @property
    def display_name(self) -> str:
        return f"{self.keyword} {self.tag or '<anonymous>'}"

    def __repr__(self) -> str:
        count = "incomplete" if self.fields is None else f"{len(self.fields)} fields"
        return f"RecordType({self.display_name}, {count})"


@dataclass(eq=False)
class EnumType(CType):
    tag: Optional[str]
    constants: List[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"enum {self.tag or '<anonymous>'}"


@dataclass(frozen=True)
class ArrayType(CType):
    element: CType
    size: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.element.display_name} [{self.size or ''}]"


@dataclass(frozen=True)
class FunctionType(CType):
    result: CType
    parameters: tuple = ()
    is_variadic: bool = False

    @property
    def display_name(self) -> str:
        params = ", ".join(p.display_name for p in self.parameters) or "void"
        if self.is_variadic:
            params += ", ..."
        return f"{self.result.display_name} ({params})"


@dataclass(frozen=True)
class OpaqueType(CType):
    """A type name the front end could not resolve (e.g. from an unread header)."""
    name: str

    @property
    def display_name(self) -> str:
        return self.name


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def is_transparent(ctype: CType) -> bool:
    """True for the wrapper layers that name another type."""
    return isinstance(ctype, (AliasType, ElaboratedType, QualifiedType))


def unwrap(ctype: CType) -> CType:
    """Strip typedef, tag and qualifier layers until a non-wrapper type is reached."""
    while is_transparent(ctype):
        ctype = ctype.underlying
    return ctype


def is_const(ctype: Optional[CType]) -> bool:
    """True if a const qualifier applies to the object itself, through any typedef."""
    while is_transparent(ctype):
        if isinstance(ctype, QualifiedType) and ctype.is_const:
            return True
        ctype = ctype.underlying
    return False


def unqualified(ctype: CType) -> CType:
    """Drop the outermost qualifier layers, keeping the spelling below them."""
    while isinstance(ctype, QualifiedType):
        ctype = ctype.underlying
    return ctype


def is_void(ctype: Optional[CType]) -> bool:
    if ctype is None:
        return False
    inner = unwrap(ctype)
    return isinstance(inner, PrimitiveType) and inner.kind is PrimitiveKind.VOID


# Builtin spellings of the primitive kinds, keyed by their sorted word list
# so that "long unsigned int" and "unsigned long" resolve the same way.
_SPELLINGS = {
    ("void",): PrimitiveKind.VOID,
    ("_Bool",): PrimitiveKind.BOOL,
    ("char",): PrimitiveKind.CHAR,
    ("char", "signed"): PrimitiveKind.SCHAR,
    ("char", "unsigned"): PrimitiveKind.UCHAR,
    ("short",): PrimitiveKind.SHORT,
    ("int", "short"): PrimitiveKind.SHORT,
    ("short", "signed"): PrimitiveKind.SHORT,
    ("int", "short", "signed"): PrimitiveKind.SHORT,
    ("short", "unsigned"): PrimitiveKind.USHORT,
    ("int", "short", "unsigned"): PrimitiveKind.USHORT,
    ("int",): PrimitiveKind.INT,
    ("signed",): PrimitiveKind.INT,
    ("int", "signed"): PrimitiveKind.INT,
    ("unsigned",): PrimitiveKind.UINT,
    ("int", "unsigned"): PrimitiveKind.UINT,
    ("long",): PrimitiveKind.LONG,
    ("int", "long"): PrimitiveKind.LONG,
    ("long", "signed"): PrimitiveKind.LONG,
    ("int", "long", "signed"): PrimitiveKind.LONG,
    ("long", "unsigned"): PrimitiveKind.ULONG,
    ("int", "long", "unsigned"): PrimitiveKind.ULONG,
    ("long", "long"): PrimitiveKind.LONGLONG,
    ("int", "long", "long"): PrimitiveKind.LONGLONG,
    ("long", "long", "signed"): PrimitiveKind.LONGLONG,
    ("int", "long", "long", "signed"): PrimitiveKind.LONGLONG,
    ("long", "long", "unsigned"): PrimitiveKind.ULONGLONG,
    ("int", "long", "long", "unsigned"): PrimitiveKind.ULONGLONG,
    ("float",): PrimitiveKind.FLOAT,
    ("double",): PrimitiveKind.DOUBLE,
    ("double", "long"): PrimitiveKind.LONGDOUBLE,
}


def primitive_from_words(words: List[str]) -> Optional[PrimitiveType]:
    """Resolve a list of specifier keywords (``["unsigned", "long"]``) to a primitive."""
    kind = _SPELLINGS.get(tuple(sorted(words)))
    return PrimitiveType(kind) if kind else None


def _alias(name: str, kind: PrimitiveKind) -> AliasType:
    return AliasType(name, PrimitiveType(kind))


# Typedef names normally supplied by system headers.  The front end only
# falls back to these when the translation unit does not define the name
# itself (system includes are usually not expanded).  LP64 widths.
BUILTIN_TYPEDEFS = {
    "bool": _alias("bool", PrimitiveKind.BOOL),
    "int8_t": _alias("int8_t", PrimitiveKind.SCHAR),
    "uint8_t": _alias("uint8_t", PrimitiveKind.UCHAR),
    "int16_t": _alias("int16_t", PrimitiveKind.SHORT),
    "uint16_t": _alias("uint16_t", PrimitiveKind.USHORT),
    "int32_t": _alias("int32_t", PrimitiveKind.INT),
    "uint32_t": _alias("uint32_t", PrimitiveKind.UINT),
    "int64_t": _alias("int64_t", PrimitiveKind.LONG),
    "uint64_t": _alias("uint64_t", PrimitiveKind.ULONG),
    "size_t": _alias("size_t", PrimitiveKind.ULONG),
    "ssize_t": _alias("ssize_t", PrimitiveKind.LONG),
    "ptrdiff_t": _alias("ptrdiff_t", PrimitiveKind.LONG),
    "intptr_t": _alias("intptr_t", PrimitiveKind.LONG),
    "uintptr_t": _alias("uintptr_t", PrimitiveKind.ULONG),
}
