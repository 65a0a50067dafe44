"""
Generator: ties the front end, walker, flattener and emitter together.

The translation unit is parsed and every selected function is rendered
before anything is written, so a failure never leaves a half-written
snapshot header behind.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, TextIO, Tuple

from snapcall.emitter import HEADER, render_function, write_output
from snapcall.errors import StructuralError
from snapcall.flattener import flatten_arguments
from snapcall.frontend import Entity, FrontendContext
from snapcall.global_refs import collect_global_assignments
from snapcall.walker import FunctionSignature, function_definitions, signature_of

logger = logging.getLogger(__name__)


@dataclass
class GenerationReport:
    """What one generate() call produced."""
    path: str
    functions: List[str] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)  # (name, reason)


def snapshot_source(function: Entity) -> Tuple[FunctionSignature, str]:
    """Build the snapshot text of a single function definition.

    Raises StructuralError (with the function name attached) when the
    function uses something that cannot be replayed.
    """
    try:
        signature = signature_of(function)
        locals, assignments = flatten_arguments(signature.arguments)
        assignments.extend(collect_global_assignments(function))
        return signature, render_function(signature, locals, assignments)
    except StructuralError as e:
        raise e.for_function(function.name or "<unnamed>")


def generate(out: TextIO, path: str, function_filter: Optional[str] = None,
             cflags: Sequence[str] = (), context: Optional[FrontendContext] = None,
             skip_unsupported: bool = False) -> GenerationReport:
    """Write snapshot functions for the definitions in ``path`` to ``out``.

    Args:
        out: Text stream receiving the generated C.
        path: C source file to instrument.
        function_filter: Only instrument the definition with exactly this name.
        cflags: Extra compiler flags (-I, -D, -U, -include) for the front end.
        context: Shared front end; a private one is created if omitted.
        skip_unsupported: Log and skip functions that cannot be replayed
            instead of failing the whole file.

    Raises:
        ParseError: the file could not be preprocessed or parsed.
        OutputError: writing to ``out`` failed.
        StructuralError: a function cannot be replayed and
            ``skip_unsupported`` is False.
    """
    context = context or FrontendContext()
    unit = context.parse(path, cflags)
    report = GenerationReport(path=path)

    buffer = io.StringIO()
    buffer.write(HEADER)
    for function in function_definitions(unit.root, function_filter):
        try:
            signature, text = snapshot_source(function)
        except StructuralError as e:
            if not skip_unsupported:
                raise
            logger.warning("Skipping %s: %s", function.name, e.detail)
            report.skipped.append((function.name, e.detail))
            continue
        buffer.write(text)
        report.functions.append(signature.name)

    if function_filter is not None and not report.functions and not report.skipped:
        logger.warning("No definition named %s in %s", function_filter, path)

    write_output(out, buffer.getvalue())
    logger.info("Generated %d snapshot function(s) for %s (%d skipped)",
                len(report.functions), path, len(report.skipped))
    return report


def generate_to_string(path: str, **kwargs) -> Tuple[str, GenerationReport]:
    """Convenience wrapper returning the generated text."""
    out = io.StringIO()
    report = generate(out, path, **kwargs)
    return out.getvalue(), report
