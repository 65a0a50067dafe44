"""printf conversion used to print each leaf value into the replay source."""

from snapcall.errors import UnsupportedTypeError
from snapcall.type_model import CType, PointerType, PrimitiveKind, PrimitiveType, unwrap

# Pointer leaves are not printed as addresses: the emitter passes the
# replay-side expression (``(&v_val)``) as a string argument.
POINTER_FORMAT = "%s"

# Not exact for every value: %f/%lf round to six decimals and print nan/inf
# for non-finite values, and %lld of LLONG_MIN is not a valid literal.
_PRIMITIVE_FORMATS = {
    PrimitiveKind.INT: "%d",
    PrimitiveKind.LONG: "%ld",
    PrimitiveKind.LONGLONG: "%lld",
    PrimitiveKind.UINT: "%u",
    PrimitiveKind.FLOAT: "%f",
    PrimitiveKind.DOUBLE: "%lf",
}


def format_of(ctype: CType) -> str:
    """Return the printf format for a leaf of type ``ctype``.

    Typedef, tag and qualifier layers are looked through.  Any kind outside the fixed
    table raises UnsupportedTypeError rather than risk printing a value
    with the wrong width.
    """
    inner = unwrap(ctype)
    if isinstance(inner, PointerType):
        return POINTER_FORMAT
    if isinstance(inner, PrimitiveType):
        fmt = _PRIMITIVE_FORMATS.get(inner.kind)
        if fmt is not None:
            return fmt
    raise UnsupportedTypeError(f"Unsupported type: {ctype.display_name}")
