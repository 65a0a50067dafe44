"""
Command line entry point.

    snapcall <input.c> [--filter NAME] [--skip-unsupported] [-v] [-o FILE] [-- <cflags>...]

Everything after ``--`` is passed to the front end as compiler flags
(-I, -D, -U, -include).  Generated C goes to stdout unless ``-o`` is given.
Exit status is 1 on any generation error.
"""

import argparse
import io
import logging
import sys
from typing import List, Optional, Sequence, Tuple

from snapcall.emitter import write_output
from snapcall.errors import OutputError, SnapcallError
from snapcall.frontend import FrontendContext
from snapcall.options import GeneratorOptions

logger = logging.getLogger("snapcall")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snapcall",
        description="Generate snapshot_<name> functions that print replayable calls.",
        epilog="Compiler flags for the C front end follow a literal '--'.",
    )
    parser.add_argument("input", help="C source file to instrument")
    parser.add_argument(
        "--filter", dest="function_filter", metavar="NAME",
        help="only instrument the function definition with exactly this name",
    )
    parser.add_argument(
        "--skip-unsupported", action="store_true",
        help="skip functions with unsupported types instead of failing",
    )
    parser.add_argument("-o", "--output", metavar="FILE", help="write to FILE instead of stdout")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr")
    return parser


def _split_argv(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Separate our own arguments from the compiler flags after ``--``."""
    argv = list(argv)
    if "--" in argv:
        i = argv.index("--")
        return argv[:i], argv[i + 1:]
    return argv, []


def main(argv: Optional[Sequence[str]] = None) -> int:
    own, cflags = _split_argv(sys.argv[1:] if argv is None else argv)
    args = _build_parser().parse_args(own)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logger.debug("Compiler flags: %s", cflags)

    options = GeneratorOptions(
        source_path=args.input,
        function_filter=args.function_filter,
        compiler_flags=cflags,
        skip_unsupported=args.skip_unsupported,
        output_path=args.output,
    )

    buffer = io.StringIO()
    try:
        report = options.run(buffer, FrontendContext())
        if options.output_path:
            try:
                with open(options.output_path, "w", encoding="utf-8") as f:
                    f.write(buffer.getvalue())
            except OSError as e:
                raise OutputError(f"cannot write {options.output_path}: {e}") from e
        else:
            write_output(sys.stdout, buffer.getvalue())
    except SnapcallError as e:
        print(f"snapcall: error: {e}", file=sys.stderr)
        return 1

    for name, reason in report.skipped:
        print(f"snapcall: skipped {name}: {reason}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
