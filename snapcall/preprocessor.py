import os
import io
import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from pcpp import Preprocessor, OutputDirective, Action

from snapcall.errors import ParseError

logger = logging.getLogger(__name__)


class _QuietPreprocessor(Preprocessor):
    """A pcpp Preprocessor that routes its diagnostics to ``logging``.

    Includes that cannot be found (typically system headers such as
    ``<stdio.h>``) are passed through untouched so preprocessing can
    continue.  Every other pcpp error is remembered so the caller can
    fail the parse instead of continuing on a half-expanded unit.
    """

    def __init__(self):
        super().__init__()
        self.errors: List[Tuple[str, int, str]] = []

    def on_include_not_found(self, is_malformed, is_system_include, curdir, includepath):
        logger.debug("pcpp: include not found: %s (system=%s)", includepath, is_system_include)
        raise OutputDirective(Action.IgnoreAndPassThrough)

    def on_error(self, file, line, msg):
        logger.debug("pcpp: %s:%s: %s", file, line, msg)
        self.errors.append((file, line, msg))


# ═══════════════════════════════════════════════════════════════════════
#  Compiler flags
# ═══════════════════════════════════════════════════════════════════════

# Flags that take their value as the next argument when not glued on.
_INCLUDE_DIR_FLAGS = ("-I", "-isystem", "-iquote", "-idirafter")


@dataclass
class CompilerFlags:
    """The subset of compiler flags that affects preprocessing."""
    include_dirs: List[str] = field(default_factory=list)
    defines: List[Tuple[str, str]] = field(default_factory=list)
    undefines: List[str] = field(default_factory=list)
    forced_includes: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)

    @classmethod
    def parse(cls, flags: Sequence[str]) -> "CompilerFlags":
        """Parse ``-I``/``-D``/``-U``/``-include`` out of a compiler command line.

        Anything else (``-std=c99``, ``-Wall``, ...) is kept in ``ignored``.
        """
        result = cls()
        args = list(flags)
        i = 0
        while i < len(args):
            arg = args[i]
            i += 1

            def value_of(prefix: str) -> str:
                nonlocal i
                if len(arg) > len(prefix):
                    return arg[len(prefix):]
                if i >= len(args):
                    raise ParseError(f"Compiler flag {arg} expects a value")
                i += 1
                return args[i - 1]

            prefix = next((p for p in _INCLUDE_DIR_FLAGS if arg.startswith(p)), None)
            if arg == "-include":
                result.forced_includes.append(value_of("-include"))
            elif prefix is not None:
                result.include_dirs.append(value_of(prefix))
            elif arg.startswith("-D"):
                name, sep, value = value_of("-D").partition("=")
                result.defines.append((name, value if sep else "1"))
            elif arg.startswith("-U"):
                result.undefines.append(value_of("-U"))
            else:
                logger.debug("Ignoring compiler flag %s", arg)
                result.ignored.append(arg)
        return result


# ═══════════════════════════════════════════════════════════════════════
#  Engine
# ═══════════════════════════════════════════════════════════════════════

class PreprocessorEngine:
    """
    A C preprocessor wrapper using 'pcpp'.

    It expands macros and handles conditional compilation (#ifdef, etc.),
    returning the expanded source code.  The #line directives emitted by
    pcpp are parsed into a line map so that positions in the expanded
    source can be reported against the original file.
    """

    def __init__(self, flags: Optional[CompilerFlags] = None):
        self.flags = flags or CompilerFlags()
        # Filled by preprocess(): expanded line i+1 -> (original_line, file)
        self.line_map: List[Tuple[int, str]] = []

    def preprocess(self, file_path: str) -> bytes:
        """
        Preprocess a file and return the expanded source as UTF-8 bytes.

        Raises ParseError if the file cannot be read or pcpp reports an error
        other than a missing include.
        """
        if not os.path.isfile(file_path):
            raise ParseError("file not found", path=file_path)

        pp = _QuietPreprocessor()

        # The directory of the source file comes first, as for "..." includes.
        pp.add_path(os.path.dirname(os.path.abspath(file_path)))
        for d in self.flags.include_dirs:
            pp.add_path(os.path.abspath(d))

        for name, value in self.flags.defines:
            pp.define(f"{name} {value}")
        for name in self.flags.undefines:
            pp.macros.pop(name, None)

        try:
            with open(file_path, "r", encoding="utf-8", errors="replace") as f:
                text = f.read()
        except OSError as e:
            raise ParseError(f"cannot read source: {e}", path=file_path) from e

        forced = "".join(f'#include "{os.path.abspath(inc)}"\n'
                         for inc in self.flags.forced_includes)

        output_buffer = io.StringIO()
        try:
            pp.parse(forced + text, source=file_path)
            pp.write(output_buffer)
        except Exception as e:
            logger.error("Preprocessing failed for %s: %s", file_path, e)
            raise ParseError(f"preprocessing failed: {e}", path=file_path) from e

        if pp.errors:
            err_file, err_line, msg = pp.errors[0]
            raise ParseError(msg, path=err_file or file_path, line=err_line or 0)

        expanded_text = output_buffer.getvalue()
        self.line_map = _build_line_map(expanded_text, file_path)
        logger.debug("Preprocessed %s: %d lines", file_path, len(self.line_map))
        return expanded_text.encode("utf-8")

    def get_original_location(self, file_path: str, expanded_line: int) -> Tuple[str, int]:
        """
        Convert a line number in the preprocessed source to (file, line) in original source.

        Args:
            file_path: The file that was preprocessed
            expanded_line: 1-indexed line number in preprocessed output
        """
        if expanded_line < 1 or expanded_line > len(self.line_map):
            return file_path, expanded_line
        orig_line, orig_file = self.line_map[expanded_line - 1]
        return orig_file, orig_line


_LINE_DIRECTIVE_RE = re.compile(r'^#line\s+(\d+)\s+"([^"]+)"')


def _build_line_map(expanded_text: str, file_path: str) -> List[Tuple[int, str]]:
    """Map each expanded line to the (line, file) it came from."""
    final_map: List[Tuple[int, str]] = []
    current_line = 1
    current_file = file_path

    for line in expanded_text.splitlines():
        m = _LINE_DIRECTIVE_RE.match(line)
        if m:
            # Directive: #line N "file" -> the *next* line is N
            next_line_num = int(m.group(1))
            current_file = m.group(2)
            final_map.append((next_line_num - 1, current_file))
            current_line = next_line_num
        else:
            final_map.append((current_line, current_file))
            current_line += 1

    return final_map
