"""
Code Emitter: renders snapshot functions as C source.

A snapshot function has the original parameters plus a leading stream.
Each call prints, at runtime, the source of one replay function:

    static inline void snapshot_add(FILE *stream, int a, int b) {
        static int counter = 0;
        fprintf(stream, "static inline int replay_add_%d(void) {\\n", ++counter);
        fprintf(stream, "    int a;\\n");
        fprintf(stream, "    int b;\\n");
        fprintf(stream, "    a = %d;\\n", a);
        fprintf(stream, "    b = %d;\\n", b);
        fprintf(stream, "    return add(a, b);\\n");
        fprintf(stream, "}\\n");
    }
"""

import logging
from typing import Iterable, List, Sequence, TextIO

from snapcall.errors import OutputError
from snapcall.flattener import Assignment, LocalDeclaration
from snapcall.formats import POINTER_FORMAT, format_of
from snapcall.type_model import is_void
from snapcall.walker import FunctionSignature

logger = logging.getLogger(__name__)

HEADER = "#include <stdio.h>\n\n"
INDENT = "    "


def _c_string(text: str) -> str:
    """Quote ``text`` as a C string literal."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _fresh_name(base: str, taken: Iterable[str]) -> str:
    """``base`` unless a parameter already uses it; then ``base_1``, ``base_2``, ..."""
    taken = set(taken)
    name = base
    n = 0
    while name in taken:
        n += 1
        name = f"{base}_{n}"
    return name


class _Printer:
    """Collects the ``fprintf`` statements of one snapshot body."""

    def __init__(self, stream: str):
        self.stream = stream
        self.lines: List[str] = []

    def print(self, text: str, *args: str) -> None:
        call_args = ", ".join([self.stream, _c_string(text)] + list(args))
        self.lines.append(f"{INDENT}fprintf({call_args});")


def render_function(signature: FunctionSignature,
                    locals: Sequence[LocalDeclaration],
                    assignments: Sequence[Assignment]) -> str:
    """Return the complete C text of ``snapshot_<name>``."""
    name = signature.name
    param_names = [arg_name for _, arg_name in signature.arguments]
    stream = _fresh_name("stream", param_names)
    counter = _fresh_name("counter", param_names + [stream])

    params = "".join(f", {arg_type.display_name} {arg_name}"
                     for arg_type, arg_name in signature.arguments)
    out = [f"static inline void snapshot_{name}(FILE *{stream}{params}) {{",
           f"{INDENT}static int {counter} = 0;"]

    printer = _Printer(stream)
    result = signature.result_type.display_name
    printer.print(f"static inline {result} replay_{name}_%d(void) {{\n", f"++{counter}")

    for local in locals:
        printer.print(f"{INDENT}{local.render()}\n")

    for a in assignments:
        fmt = format_of(a.type)
        rhs = _c_string(a.rhs) if fmt == POINTER_FORMAT else a.rhs
        printer.print(f"{INDENT}{a.lhs} = {fmt};\n", rhs)

    call = f"{name}({', '.join(param_names)});"
    if not is_void(signature.result_type):
        call = f"return {call}"
    printer.print(f"{INDENT}{call}\n")
    printer.print("}\n")

    out.extend(printer.lines)
    out.append("}")
    return "\n".join(out) + "\n"


def emit_header(out: TextIO) -> None:
    write_output(out, HEADER)


def emit_function(out: TextIO, signature: FunctionSignature,
                  locals: Sequence[LocalDeclaration],
                  assignments: Sequence[Assignment]) -> None:
    """Render one snapshot function and write it in a single call."""
    text = render_function(signature, locals, assignments)
    logger.debug("Emitting snapshot_%s (%d locals, %d assignments)",
                 signature.name, len(locals), len(assignments))
    write_output(out, text)


def write_output(out: TextIO, text: str) -> None:
    try:
        out.write(text)
    except OSError as e:
        raise OutputError(f"Failed to write generated code: {e}") from e
