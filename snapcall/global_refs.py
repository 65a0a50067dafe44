"""Global Reference Collector: externally-linked variables read by a function."""

import logging
from typing import List

from snapcall.errors import StructuralError, UnsupportedConstructError, UnsupportedTypeError
from snapcall.flattener import Assignment
from snapcall.formats import format_of
from snapcall.frontend import Entity, EntityKind, Linkage
from snapcall.type_model import PointerType, is_const, unwrap

logger = logging.getLogger(__name__)


def is_global(entity: Entity) -> bool:
    return entity.kind == EntityKind.VAR_DECL and entity.linkage is Linkage.EXTERNAL


def collect_global_assignments(function: Entity) -> List[Assignment]:
    """One ``g = <value of g>`` assignment per read of an external global.

    Every occurrence produces its own assignment, so a global read three
    times is assigned three times; the repeats are identical.
    """
    assignments = []
    for entity in function.walk():
        if entity.kind != EntityKind.DECL_REF_EXPR or entity.reference is None:
            continue
        target = entity.reference
        if not is_global(target):
            continue
        if not target.name:
            raise StructuralError("Global without a name", function.name)
        if target.type is None:
            raise StructuralError(f"Global without a type: {target.name}", function.name)
        if is_const(target.type):
            raise UnsupportedConstructError(
                f"Const global {target.name} cannot be assigned in a replay", function.name)
        if isinstance(unwrap(target.type), PointerType):
            raise UnsupportedTypeError(f"Pointer global {target.name} is not supported", function.name)
        # Record globals have no staged local to flatten into.
        format_of(target.type)
        assignments.append(Assignment(target.name, target.type, target.name))

    logger.debug("%s reads %d global reference(s)", function.name, len(assignments))
    return assignments
