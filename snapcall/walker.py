"""
Declaration Walker: selects the function definitions to instrument.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from snapcall.errors import StructuralError, UnsupportedConstructError
from snapcall.frontend import Entity, EntityKind
from snapcall.type_model import CType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunctionSignature:
    """What the emitter needs to know about one function."""
    name: str
    result_type: CType
    arguments: Tuple[Tuple[CType, str], ...]
    line: int = 0


def is_definition(entity: Entity) -> bool:
    """A function entity is a definition iff it is its own canonical definition."""
    return entity.kind == EntityKind.FUNCTION_DECL and entity.definition is entity


def function_definitions(root: Entity, name_filter: Optional[str] = None) -> List[Entity]:
    """Top-level function definitions of a unit, in source order.

    Prototypes are skipped.  When ``name_filter`` is given only the function
    with exactly that name is returned.
    """
    selected = []
    for child in root.children:
        if not is_definition(child):
            continue
        if name_filter is not None and child.name != name_filter:
            continue
        selected.append(child)
    logger.debug("Selected %d function definition(s) (filter=%s)", len(selected), name_filter)
    return selected


def signature_of(function: Entity) -> FunctionSignature:
    """Extract the name, result type and named arguments of a definition."""
    if not function.name:
        raise StructuralError("Function without a name")
    if function.result_type is None:
        raise StructuralError("Function without result type", function.name)
    if function.arguments is None:
        raise StructuralError("Function without arguments", function.name)
    if function.is_variadic:
        raise UnsupportedConstructError("Variadic functions are not supported", function.name)

    arguments = []
    for arg in function.arguments:
        if arg.type is None:
            raise StructuralError("Argument without a type", function.name)
        if not arg.name:
            raise StructuralError("Argument without a name", function.name)
        arguments.append((arg.type, arg.name))

    return FunctionSignature(
        name=function.name,
        result_type=function.result_type,
        arguments=tuple(arguments),
        line=function.line,
    )
