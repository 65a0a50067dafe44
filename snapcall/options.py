"""Run configuration shared by the command line and the MCP server."""

import logging
from typing import List, Optional, TextIO

from pydantic import BaseModel

from snapcall.errors import StructuralError
from snapcall.frontend import FrontendContext
from snapcall.generator import GenerationReport, generate, snapshot_source
from snapcall.walker import FunctionSignature, function_definitions, signature_of

logger = logging.getLogger(__name__)


class GeneratorOptions(BaseModel):
    source_path: str
    function_filter: Optional[str] = None
    compiler_flags: List[str] = []
    skip_unsupported: bool = False
    output_path: Optional[str] = None

    def run(self, out: TextIO, context: Optional[FrontendContext] = None) -> GenerationReport:
        return generate(
            out,
            self.source_path,
            function_filter=self.function_filter,
            cflags=self.compiler_flags,
            context=context,
            skip_unsupported=self.skip_unsupported,
        )


class FunctionSummary(BaseModel):
    """One function definition as reported by ``list_functions``."""
    name: str
    line: int
    signature: str
    replayable: bool = True
    reason: Optional[str] = None

    @classmethod
    def from_signature(cls, sig: FunctionSignature) -> "FunctionSummary":
        params = ", ".join(f"{t.display_name} {n}" for t, n in sig.arguments) or "void"
        return cls(name=sig.name, line=sig.line,
                   signature=f"{sig.result_type.display_name} {sig.name}({params})")


def list_functions(source_path: str, compiler_flags: Optional[List[str]] = None,
                   context: Optional[FrontendContext] = None) -> List[FunctionSummary]:
    """Summaries of every function definition in ``source_path``, in source order."""
    context = context or FrontendContext()
    unit = context.parse(source_path, compiler_flags or [])
    summaries = []
    for function in function_definitions(unit.root):
        try:
            summary = FunctionSummary.from_signature(signature_of(function))
        except StructuralError as e:
            logger.debug("Cannot summarize %s: %s", function.name, e)
            summaries.append(FunctionSummary(
                name=function.name or "<unnamed>", line=function.line,
                signature="", replayable=False, reason=e.detail,
            ))
            continue
        try:
            snapshot_source(function)
        except StructuralError as e:
            summary.replayable = False
            summary.reason = e.detail
        summaries.append(summary)
    return summaries
