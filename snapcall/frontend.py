"""
Front end: C translation unit → read-only entity tree, via tree-sitter.

The source is expanded with pcpp (include paths and macro definitions come
from the compiler flags), parsed with tree-sitter-c, and turned into a tree
of Entity objects that carries what snapshot generation needs:

  • kind and name of every declaration
  • resolved types (typedef chains, struct/union/enum tags, declarators)
  • linkage of file-scope and block-scope ``extern`` variables
  • the canonical definition of each file-scope function
  • for every identifier read inside a body, the declaration it resolves to
    under C block scoping (locals and parameters shadow globals)

One FrontendContext owns the tree-sitter parser; parses through it are
serialized by a lock.
"""

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import tree_sitter_c as tsc
from tree_sitter import Language, Parser, Node

from snapcall.errors import ParseError
from snapcall.preprocessor import CompilerFlags, PreprocessorEngine
from snapcall.type_model import (
    BUILTIN_TYPEDEFS, AliasType, ArrayType, CType, ElaboratedType, EnumType,
    Field, FunctionType, OpaqueType, PointerType, PrimitiveKind, PrimitiveType,
    QualifiedType, RecordType, primitive_from_words,
)

logger = logging.getLogger(__name__)

C_LANGUAGE = Language(tsc.language())


# ═══════════════════════════════════════════════════════════════════════
#  Entity tree
# ═══════════════════════════════════════════════════════════════════════

class EntityKind(enum.Enum):
    TRANSLATION_UNIT = "translation_unit"
    FUNCTION_DECL = "function_decl"
    PARM_DECL = "parm_decl"
    VAR_DECL = "var_decl"
    FIELD_DECL = "field_decl"
    TYPEDEF_DECL = "typedef_decl"
    STRUCT_DECL = "struct_decl"
    UNION_DECL = "union_decl"
    ENUM_DECL = "enum_decl"
    ENUM_CONSTANT_DECL = "enum_constant_decl"
    COMPOUND_STMT = "compound_stmt"
    DECL_REF_EXPR = "decl_ref_expr"
    EXPRESSION = "expression"
    STATEMENT = "statement"


class Linkage(enum.Enum):
    NONE = "none"
    INTERNAL = "internal"
    EXTERNAL = "external"


class _DeclarationChain:
    """Shared by every declaration of one file-scope name."""

    def __init__(self):
        self.definition: Optional["Entity"] = None


@dataclass(eq=False)
class Entity:
    """A node of the declaration tree."""
    kind: EntityKind
    name: Optional[str] = None
    type: Optional[CType] = None
    line: int = 0
    linkage: Linkage = Linkage.NONE
    children: List["Entity"] = field(default_factory=list, repr=False)
    reference: Optional["Entity"] = field(default=None, repr=False)
    # Functions only
    result_type: Optional[CType] = None
    arguments: Optional[List["Entity"]] = field(default=None, repr=False)
    is_variadic: bool = False
    _chain: Optional[_DeclarationChain] = field(default=None, repr=False)

    @property
    def definition(self) -> Optional["Entity"]:
        """The canonical defining declaration of this entity, if known."""
        if self._chain is None:
            return None
        return self._chain.definition

    def walk(self) -> Iterator["Entity"]:
        """Yield all descendants in pre-order, source order."""
        stack = list(reversed(self.children))
        while stack:
            entity = stack.pop()
            yield entity
            stack.extend(reversed(entity.children))


@dataclass
class TranslationUnit:
    path: str
    root: Entity
    source: bytes = field(repr=False)
    flags: CompilerFlags = field(default_factory=CompilerFlags, repr=False)


# ═══════════════════════════════════════════════════════════════════════
#  Context
# ═══════════════════════════════════════════════════════════════════════

class FrontendContext:
    """The process-wide parsing resource.

    Create one at start-up and pass it to whatever needs to parse; at most
    one translation unit is parsed at a time.
    """

    def __init__(self):
        self._parser = Parser(C_LANGUAGE)
        self._lock = threading.Lock()

    def parse(self, path: str, flags: Sequence[str] = ()) -> TranslationUnit:
        """Preprocess and parse ``path``.  Raises ParseError."""
        compiler_flags = CompilerFlags.parse(flags)
        with self._lock:
            engine = PreprocessorEngine(compiler_flags)
            source = engine.preprocess(path)
            tree = self._parser.parse(source)

            if tree.root_node.has_error:
                bad = _first_error(tree.root_node)
                row = bad.start_point[0] + 1 if bad is not None else 0
                orig_file, orig_line = engine.get_original_location(path, row)
                what = "missing " + bad.type if bad is not None and bad.is_missing else "syntax error"
                raise ParseError(what, path=orig_file, line=orig_line)

            root = _UnitBuilder(source, path, engine).build(tree.root_node)

        logger.info("Parsed %s: %d top-level entities", path, len(root.children))
        return TranslationUnit(path=path, root=root, source=source, flags=compiler_flags)


# ═══════════════════════════════════════════════════════════════════════
#  Tree traversal helpers
# ═══════════════════════════════════════════════════════════════════════

def _node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _walk_all(node: Node):
    """Yield all descendant nodes."""
    cursor = node.walk()
    visited = False
    while True:
        if not visited:
            yield cursor.node
        if not visited and cursor.goto_first_child():
            visited = False
            continue
        if cursor.goto_next_sibling():
            visited = False
            continue
        if cursor.goto_parent():
            visited = True
            continue
        break


def _first_error(root: Node) -> Optional[Node]:
    for node in _walk_all(root):
        if node.type == "ERROR" or node.is_missing:
            return node
    return None


def _storage_classes(node: Node, source: bytes) -> List[str]:
    return [_node_text(c, source) for c in node.children
            if c.type == "storage_class_specifier"]


def _qualify(base: Optional[CType], node: Node, source: bytes) -> Optional[CType]:
    """Wrap ``base`` in the type qualifiers written directly under ``node``."""
    qualifiers = tuple(_node_text(c, source) for c in node.children
                       if c.type == "type_qualifier")
    if base is None or not qualifiers:
        return base
    return QualifiedType(qualifiers, base)


class _Scope:
    """One level of the ordinary-identifier namespace."""

    def __init__(self, parent: Optional["_Scope"] = None):
        self.parent = parent
        self._names: Dict[str, Entity] = {}

    def child(self) -> "_Scope":
        return _Scope(self)

    def declare(self, name: Optional[str], entity: Entity) -> None:
        if name:
            self._names[name] = entity

    def lookup(self, name: str) -> Optional[Entity]:
        scope = self
        while scope is not None:
            if name in scope._names:
                return scope._names[name]
            scope = scope.parent
        return None


# Preprocessor nodes that may wrap top-level items.
_PREPROC_CONTAINERS = {
    "preproc_ifdef", "preproc_if", "preproc_elif",
    "preproc_else", "preproc_ifndef",
}

# Nodes inside bodies that never contain a variable read.
_OPAQUE_NODES = {
    "comment", "preproc_call", "type_descriptor", "field_identifier", "statement_identifier",
    "type_identifier", "primitive_type", "sized_type_specifier",
    "struct_specifier", "union_specifier", "enum_specifier",
}

_LITERAL_NODES = {
    "number_literal", "string_literal", "char_literal", "concatenated_string",
    "true", "false", "null",
}

_RECORD_KINDS = {"struct": EntityKind.STRUCT_DECL, "union": EntityKind.UNION_DECL}

_VOID = PrimitiveType(PrimitiveKind.VOID)


# ═══════════════════════════════════════════════════════════════════════
#  Unit builder
# ═══════════════════════════════════════════════════════════════════════

class _UnitBuilder:
    """Builds the entity tree of one translation unit from a tree-sitter tree."""

    def __init__(self, source: bytes, path: str, engine: PreprocessorEngine):
        self.source = source
        self.path = path
        self.engine = engine
        self.file_scope = _Scope()
        self.typedefs: Dict[str, AliasType] = {}
        self.tags: Dict[Tuple[str, str], CType] = {}
        self.chains: Dict[str, _DeclarationChain] = {}
        # Record/enum bodies seen while resolving a specifier; drained into
        # the translation unit by build().
        self._defined_tags: List[Entity] = []

    def build(self, root: Node) -> Entity:
        unit = Entity(EntityKind.TRANSLATION_UNIT, name=self.path)
        self._build_top_level(root, unit)
        return unit

    def _build_top_level(self, node: Node, unit: Entity) -> None:
        for child in node.named_children:
            if child.type in _PREPROC_CONTAINERS:
                self._build_top_level(child, unit)
                continue

            if child.type == "function_definition":
                entities = [self._function_definition(child)]
            elif child.type == "declaration":
                entities = self._declaration(child, self.file_scope, file_scope=True)
            elif child.type == "type_definition":
                entities = self._type_definition(child)
            elif child.type in ("struct_specifier", "union_specifier", "enum_specifier"):
                self._specifier_type(child)
                entities = []
            else:
                continue

            unit.children.extend(self._defined_tags)
            self._defined_tags = []
            unit.children.extend(entities)

    def _line(self, node: Node) -> int:
        _, line = self.engine.get_original_location(self.path, node.start_point[0] + 1)
        return line

    def _text(self, node: Node) -> str:
        return _node_text(node, self.source)

    def _chain_for(self, name: str) -> _DeclarationChain:
        return self.chains.setdefault(name, _DeclarationChain())

    # ────────────────────────────────────────────────────────────────
    #  Types
    # ────────────────────────────────────────────────────────────────

    def _named_type(self, name: str) -> CType:
        if name in self.typedefs:
            return self.typedefs[name]
        words = primitive_from_words([name])
        if words is not None:
            return words
        if name in BUILTIN_TYPEDEFS:
            return BUILTIN_TYPEDEFS[name]
        logger.debug("Unresolved type name %s", name)
        return OpaqueType(name)

    def _specifier_type(self, node: Optional[Node]) -> Optional[CType]:
        """Type named by a declaration's type specifier."""
        if node is None:
            return None
        t = node.type
        if t in ("primitive_type", "type_identifier"):
            return self._named_type(self._text(node))
        if t == "sized_type_specifier":
            words = self._text(node).split()
            return primitive_from_words(words) or OpaqueType(" ".join(words))
        if t in ("struct_specifier", "union_specifier"):
            return self._record_type(node)
        if t == "enum_specifier":
            return self._enum_type(node)
        return OpaqueType(self._text(node))

    def _base_type(self, node: Node) -> Optional[CType]:
        """Specifier type of a declaration, with its const/volatile applied."""
        return _qualify(self._specifier_type(node.child_by_field_name("type")), node, self.source)

    def _record_type(self, node: Node) -> CType:
        keyword = "union" if node.type == "union_specifier" else "struct"
        name_node = node.child_by_field_name("name")
        body = node.child_by_field_name("body")
        tag = self._text(name_node) if name_node is not None else None

        if tag is not None:
            record = self.tags.get((keyword, tag))
            if record is None:
                record = RecordType(keyword, tag)
                self.tags[(keyword, tag)] = record
        else:
            record = RecordType(keyword, None)

        if body is not None:
            # Registered before the fields are read so that members
            # pointing back at this record resolve to the same object.
            fields, field_entities = self._fields(body)
            record.fields = fields
            self._defined_tags.append(Entity(
                _RECORD_KINDS[keyword], name=tag, type=record,
                line=self._line(node), children=field_entities,
            ))

        return ElaboratedType(keyword, tag, record)

    def _fields(self, body: Node) -> Tuple[List[Field], List[Entity]]:
        fields: List[Field] = []
        entities: List[Entity] = []
        for child in body.named_children:
            if child.type != "field_declaration":
                continue
            base = self._base_type(child)
            width = None
            for c in child.children:
                if c.type == "bitfield_clause":
                    width = self._text(c).lstrip(":").strip()
            declarators = child.children_by_field_name("declarator")
            if not declarators:
                # Anonymous member (C11) or a bare ``int : 3;``
                fields.append(Field(None, base, width))
                continue
            for declarator in declarators:
                name, ctype = self._declarator(declarator, base)
                fields.append(Field(name, ctype, width))
                entities.append(Entity(EntityKind.FIELD_DECL, name=name, type=ctype,
                                       line=self._line(declarator)))
        return fields, entities

    def _enum_type(self, node: Node) -> CType:
        name_node = node.child_by_field_name("name")
        body = node.child_by_field_name("body")
        tag = self._text(name_node) if name_node is not None else None

        enum_type = self.tags.get(("enum", tag)) if tag else None
        if enum_type is None:
            enum_type = EnumType(tag)
            if tag:
                self.tags[("enum", tag)] = enum_type

        if body is not None:
            constants = []
            for child in body.named_children:
                if child.type != "enumerator":
                    continue
                name = self._text(child.child_by_field_name("name"))
                constants.append(Entity(EntityKind.ENUM_CONSTANT_DECL, name=name,
                                        type=enum_type, line=self._line(child)))
                self.file_scope.declare(name, constants[-1])
            enum_type.constants = [c.name for c in constants]
            self._defined_tags.append(Entity(
                EntityKind.ENUM_DECL, name=tag, type=enum_type,
                line=self._line(node), children=constants,
            ))

        return ElaboratedType("enum", tag, enum_type)

    def _declarator(self, node: Optional[Node], base: Optional[CType]) -> Tuple[Optional[str], Optional[CType]]:
        """Apply a declarator to ``base``; return ``(name, type)``.

        Declarators nest inside-out: in ``*a[3]`` the pointer applies to the
        base type first and the array to the result.
        """
        if node is None:
            return None, base
        t = node.type
        if t in ("identifier", "field_identifier", "type_identifier", "primitive_type"):
            return self._text(node), base
        if base is None:
            return self._declarator(node.child_by_field_name("declarator"), None)

        if t in ("pointer_declarator", "abstract_pointer_declarator"):
            pointer = _qualify(PointerType(base), node, self.source)
            return self._declarator(node.child_by_field_name("declarator"), pointer)
        if t in ("array_declarator", "abstract_array_declarator"):
            size = node.child_by_field_name("size")
            array = ArrayType(base, self._text(size) if size is not None else None)
            return self._declarator(node.child_by_field_name("declarator"), array)
        if t in ("function_declarator", "abstract_function_declarator"):
            params, variadic = self._parameters(node.child_by_field_name("parameters"))
            ftype = FunctionType(base, tuple(p.type for p in params), variadic)
            return self._declarator(node.child_by_field_name("declarator"), ftype)
        if t == "init_declarator":
            return self._declarator(node.child_by_field_name("declarator"), base)
        if t in ("parenthesized_declarator", "abstract_parenthesized_declarator",
                 "attributed_declarator"):
            inner = next((c for c in node.named_children
                          if c.type not in ("type_qualifier", "attribute_declaration",
                                            "ms_call_modifier")), None)
            return self._declarator(inner, base)
        logger.debug("Unhandled declarator %s", t)
        return None, base

    def _parameters(self, node: Optional[Node]) -> Tuple[List[Entity], bool]:
        """Parameter entities of a parameter list, and whether it ends in ``...``."""
        params: List[Entity] = []
        variadic = False
        if node is None:
            return params, variadic
        for child in node.named_children:
            if child.type == "variadic_parameter":
                variadic = True
            elif child.type == "parameter_declaration":
                base = self._base_type(child)
                name, ctype = self._declarator(child.child_by_field_name("declarator"), base)
                params.append(Entity(EntityKind.PARM_DECL, name=name, type=ctype,
                                     line=self._line(child)))
        # f(void) declares no parameters
        if len(params) == 1 and params[0].name is None and params[0].type == _VOID:
            params = []
        return params, variadic

    # ────────────────────────────────────────────────────────────────
    #  Declarations
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def _function_declarator(node: Optional[Node]) -> Optional[Node]:
        """The function_declarator that names the declared function."""
        while node is not None:
            inner = node.child_by_field_name("declarator")
            if node.type == "function_declarator" and inner is not None \
                    and inner.type == "identifier":
                return node
            if inner is None:
                inner = next((c for c in node.named_children
                              if c.type.endswith("declarator")), None)
            node = inner
        return None

    def _function_entity(self, node: Node, declarator: Node, base: Optional[CType],
                         linkage: Linkage) -> Entity:
        name, ftype = self._declarator(declarator, base)
        fn_decl = self._function_declarator(declarator)
        params, variadic = ([], False)
        if fn_decl is not None:
            params, variadic = self._parameters(fn_decl.child_by_field_name("parameters"))
        result = ftype.result if isinstance(ftype, FunctionType) else None
        return Entity(
            EntityKind.FUNCTION_DECL, name=name, type=ftype, line=self._line(node),
            linkage=linkage, result_type=result, arguments=params,
            is_variadic=variadic, _chain=self._chain_for(name) if name else None,
        )

    def _function_definition(self, node: Node) -> Entity:
        storage = _storage_classes(node, self.source)
        linkage = Linkage.INTERNAL if "static" in storage else Linkage.EXTERNAL
        base = self._base_type(node)
        entity = self._function_entity(node, node.child_by_field_name("declarator"),
                                       base, linkage)
        if entity._chain is not None:
            entity._chain.definition = entity
        self.file_scope.declare(entity.name, entity)

        scope = self.file_scope.child()
        for param in entity.arguments:
            scope.declare(param.name, param)
        entity.children.extend(entity.arguments)

        body = node.child_by_field_name("body")
        if body is not None:
            # Tags defined inside the body do not belong to the unit.
            pending, self._defined_tags = self._defined_tags, []
            entity.children.extend(self._build(body, scope))
            self._defined_tags = pending
        logger.debug("function %s: %d parameters", entity.name, len(entity.arguments))
        return entity

    def _declaration(self, node: Node, scope: _Scope, file_scope: bool) -> List[Entity]:
        storage = _storage_classes(node, self.source)
        base = self._base_type(node)
        entities = []

        for declarator in node.children_by_field_name("declarator"):
            name, ctype = self._declarator(declarator, base)
            if isinstance(ctype, FunctionType):
                linkage = Linkage.INTERNAL if "static" in storage else Linkage.EXTERNAL
                prior = self.file_scope.lookup(name) if name else None
                if prior is not None and prior.kind == EntityKind.FUNCTION_DECL:
                    linkage = prior.linkage
                entity = self._function_entity(node, declarator, base, linkage)
                scope.declare(name, entity)
                entities.append(entity)
                continue

            linkage = self._variable_linkage(name, storage, file_scope)
            entity = Entity(EntityKind.VAR_DECL, name=name, type=ctype,
                            line=self._line(declarator), linkage=linkage)
            if file_scope and name:
                entity._chain = self._chain_for(name)
                if "extern" not in storage or declarator.type == "init_declarator":
                    entity._chain.definition = entity
            elif linkage is Linkage.EXTERNAL and name:
                entity._chain = self._chain_for(name)
            # The declared name is in scope within its own initializer.
            scope.declare(name, entity)
            if declarator.type == "init_declarator":
                value = declarator.child_by_field_name("value")
                if value is not None:
                    entity.children.extend(self._build(value, scope))
            entities.append(entity)

        return entities

    def _variable_linkage(self, name: Optional[str], storage: List[str], file_scope: bool) -> Linkage:
        if file_scope:
            if "static" in storage:
                return Linkage.INTERNAL
            prior = self.file_scope.lookup(name) if name else None
            if "extern" in storage and prior is not None and prior.kind == EntityKind.VAR_DECL:
                return prior.linkage
            return Linkage.EXTERNAL
        if "extern" in storage:
            prior = self.file_scope.lookup(name) if name else None
            if prior is not None and prior.kind == EntityKind.VAR_DECL:
                return prior.linkage
            return Linkage.EXTERNAL
        return Linkage.NONE

    def _type_definition(self, node: Node) -> List[Entity]:
        base = self._base_type(node)
        entities = []
        for declarator in node.children_by_field_name("declarator"):
            name, ctype = self._declarator(declarator, base)
            if not name or ctype is None:
                continue
            alias = AliasType(name, ctype)
            self.typedefs[name] = alias
            entity = Entity(EntityKind.TYPEDEF_DECL, name=name, type=alias,
                            line=self._line(node))
            self.file_scope.declare(name, entity)
            entities.append(entity)
        return entities

    # ────────────────────────────────────────────────────────────────
    #  Bodies
    # ────────────────────────────────────────────────────────────────

    def _build(self, node: Node, scope: _Scope) -> List[Entity]:
        """Entities for a statement or expression node inside a body."""
        t = node.type
        if t in _OPAQUE_NODES:
            return []
        if t == "identifier":
            name = self._text(node)
            target = scope.lookup(name)
            return [Entity(EntityKind.DECL_REF_EXPR, name=name,
                           type=target.type if target is not None else None,
                           line=self._line(node), reference=target)]
        if t == "declaration":
            return self._declaration(node, scope, file_scope=False)
        if t == "type_definition":
            return self._type_definition(node)
        if t in _LITERAL_NODES:
            return [Entity(EntityKind.EXPRESSION, name=t, line=self._line(node))]

        if t == "compound_statement":
            kind = EntityKind.COMPOUND_STMT
            scope = scope.child()
        elif t == "for_statement":
            kind = EntityKind.STATEMENT
            scope = scope.child()
        elif t.endswith("_expression"):
            kind = EntityKind.EXPRESSION
        else:
            kind = EntityKind.STATEMENT

        entity = Entity(kind, name=t, line=self._line(node))
        for child in node.named_children:
            entity.children.extend(self._build(child, scope))
        return [entity]
