"""
Error types for snapshot generation.

Three kinds of failure are distinguished:

  • ParseError         the translation unit could not be read, preprocessed
                       or parsed with the given flags
  • OutputError        writing the generated text to the stream failed
  • StructuralError    a declaration lacks something the generator needs
                       (a name, a type, fields) or uses a construct whose
                       flattening is not defined

Parse and output errors abort the current file only.  Structural errors mean
the replay for that function would be wrong, so they propagate unless the
caller explicitly asks to skip such functions.
"""

from typing import Optional


class SnapcallError(Exception):
    """Base class for every error raised by snapcall."""


class ParseError(SnapcallError):
    """The source file could not be turned into a translation unit."""

    def __init__(self, message: str, path: str = "", line: int = 0):
        self.path = path
        self.line = line
        location = path
        if path and line:
            location = f"{path}:{line}"
        super().__init__(f"{location}: {message}" if location else message)


class OutputError(SnapcallError):
    """Writing generated code to the output stream failed."""


class StructuralError(SnapcallError):
    """A declaration does not fit the model the generator relies on."""

    def __init__(self, message: str, function: Optional[str] = None):
        self.detail = message
        self.function = function
        super().__init__(self._format())

    def _format(self) -> str:
        if self.function:
            return f"{self.function}: {self.detail}"
        return self.detail

    def for_function(self, function: str) -> "StructuralError":
        """Attach the name of the function being generated, once."""
        if self.function is None:
            self.function = function
            self.args = (self._format(),)
        return self


class UnsupportedTypeError(StructuralError):
    """A leaf type has no known literal format."""


class UnsupportedConstructError(StructuralError):
    """Arrays, function pointers, unions, variadics, bit-fields, recursive records."""
