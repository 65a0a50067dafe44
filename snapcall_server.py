"""
snapcall MCP Server

Exposes snapshot generation via the Model Context Protocol:

  1.  list_functions       function definitions of a C file and whether
                         each one can be replayed
  2.  generate_snapshots   generated snapshot_<name> functions as C text
"""

from mcp.server.fastmcp import FastMCP
import io
import os
import sys
import logging

# Ensure the snapcall package is importable
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from snapcall.errors import SnapcallError
from snapcall.frontend import FrontendContext
from snapcall.options import GeneratorOptions, list_functions as _list_functions

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("snapcall")

# One parser for the whole server; parses are serialized inside it.
frontend = FrontendContext()


def _split_flags(compiler_flags: str) -> list:
    """Whitespace-separated compiler flags, e.g. "-Iinclude -DDEBUG=1"."""
    return compiler_flags.split() if compiler_flags.strip() else []


# ═══════════════════════════════════════════════════════════════════════
#  Tool 1: List Functions
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_functions(source_path: str, compiler_flags: str = "") -> str:
    """
    Lists the function definitions in a C source file.

    Args:
        source_path:    Absolute path to the C source file.
        compiler_flags: Space-separated flags for the C front end
                        (-I<dir>, -D<name>[=<value>], -U<name>, -include <file>).
    """
    if not os.path.exists(source_path):
        return f"Error: Source file not found at {source_path}"

    try:
        summaries = _list_functions(source_path, _split_flags(compiler_flags), context=frontend)
    except SnapcallError as e:
        return f"Error: {e}"

    if not summaries:
        return f"No function definitions found in {source_path}."

    result = f"## Functions in `{os.path.basename(source_path)}`\n\n"
    result += "| Line | Function | Replayable |\n|------|----------|------------|\n"
    for s in summaries:
        status = "yes" if s.replayable else f"no ({s.reason})"
        label = f"`{s.signature}`" if s.signature else f"`{s.name}`"
        result += f"| {s.line} | {label} | {status} |\n"
    return result


# ═══════════════════════════════════════════════════════════════════════
#  Tool 2: Generate Snapshots
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def generate_snapshots(source_path: str, function_filter: str = "",
                       compiler_flags: str = "", skip_unsupported: bool = False) -> str:
    """
    Generates snapshot_<name> functions for the definitions in a C file.

    Include the result as a header in the program under test and call
    snapshot_<name>(stream, args...) right before a call to <name>.  Each
    call prints a self-contained replay_<name>_<n>() function reproducing
    that call.

    Args:
        source_path:      Absolute path to the C source file.
        function_filter:  Only instrument the function with exactly this name.
        compiler_flags:   Space-separated flags for the C front end.
        skip_unsupported: Skip functions with unsupported types instead of failing.
    """
    if not os.path.exists(source_path):
        return f"Error: Source file not found at {source_path}"

    options = GeneratorOptions(
        source_path=source_path,
        function_filter=function_filter or None,
        compiler_flags=_split_flags(compiler_flags),
        skip_unsupported=skip_unsupported,
    )

    out = io.StringIO()
    try:
        report = options.run(out, context=frontend)
    except SnapcallError as e:
        return f"Error: {e}"

    result = out.getvalue()
    if report.skipped:
        notes = "\n".join(f"/* skipped {name}: {reason} */" for name, reason in report.skipped)
        result += "\n" + notes + "\n"
    return result


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    mcp.run()
