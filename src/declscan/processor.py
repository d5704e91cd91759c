"""
Module processor.

Walks the statements of one file (and, recursively, namespace bodies) in a
single pass, maintaining the identifier map built from imports and emitting
declaration records in source order. Module specifiers must already be
resolved; see `collect_specifiers` and `declscan.extract`.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

import tree_sitter as ts

from declscan.dependencies import IdentifierMap, ImportBinding
from declscan.extractors import (
    ExtractContext,
    declared_name,
    extract_class,
    extract_enum,
    extract_function,
    extract_interface,
    extract_type_alias,
    extract_variables,
)
from declscan.logger import logger
from declscan.models import (
    DeclarationRecord,
    ExternalDependency,
    InternalDependency,
    NamespaceDeclaration,
    ReExportDeclaration,
    VariableDeclaration,
)
from declscan.parsers import find_child, get_node_text, has_child, iter_named, strip_quotes
from declscan.paths import ResolvedSpecifier, SpecifierResolver, package_name
from declscan.positions import split_lines

Handler = Callable[[ts.Node, "_Scope", bool, bool], None]

_FUNCTION_DECLARATIONS = ("function_declaration", "generator_function_declaration")
_FUNCTION_EXPRESSIONS = (
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
)
_NAMESPACES = ("internal_module", "module")

# Statements that never produce records and are not worth a debug line.
_SILENT = {
    "comment",
    "empty_statement",
    "hash_bang_line",
    "import_alias",
    "if_statement",
    "for_statement",
    "for_in_statement",
    "while_statement",
    "try_statement",
    "return_statement",
    "throw_statement",
    "statement_block",
}

_WS = re.compile(r"\s+")


@dataclass
class _Scope:
    """Accumulator for one file or namespace body."""

    ctx: ExtractContext
    records: List[DeclarationRecord] = field(default_factory=list)
    # names declared in this scope, filled before the walk
    declared: Set[str] = field(default_factory=set)
    implemented_functions: Set[str] = field(default_factory=set)
    # `export { local as exported }` without a source, applied after the walk
    local_exports: List[Tuple[str, str]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Specifier collection
# ---------------------------------------------------------------------------


def _statement_source(node: ts.Node) -> Optional[str]:
    if node.type == "import_statement":
        require = find_child(node, "import_require_clause")
        if require is not None:
            src = require.child_by_field_name("source") or find_child(require, "string")
            return strip_quotes(get_node_text(src)) if src is not None else None
    if node.type in ("import_statement", "export_statement"):
        src = node.child_by_field_name("source")
        if src is not None:
            return strip_quotes(get_node_text(src))
    return None


def _namespace_of(node: ts.Node) -> Optional[ts.Node]:
    """Return the namespace node wrapped by *node*, if any."""
    if node.type in _NAMESPACES:
        return node
    if node.type in ("expression_statement", "ambient_declaration"):
        return find_child(node, *_NAMESPACES)
    if node.type == "export_statement":
        decl = node.child_by_field_name("declaration")
        return _namespace_of(decl) if decl is not None else None
    return None


def collect_specifiers(root: ts.Node) -> List[str]:
    """
    Every import / export-from specifier of the file in source order,
    namespace bodies included. Duplicates are kept.
    """
    out: List[str] = []
    stack = [root]
    while stack:
        scope = stack.pop()
        nested: List[ts.Node] = []
        for stmt in scope.named_children:
            spec = _statement_source(stmt)
            if spec is not None:
                out.append(spec)
                continue
            ns = _namespace_of(stmt)
            body = ns.child_by_field_name("body") if ns is not None else None
            if body is not None:
                nested.append(body)
        stack.extend(reversed(nested))
    return out


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class ModuleProcessor:
    def __init__(
        self,
        file_path: str,
        source_text: str,
        resolved: Optional[Mapping[str, ResolvedSpecifier]] = None,
        resolver: Optional[SpecifierResolver] = None,
    ) -> None:
        self.file_path = file_path
        self.resolved: Dict[str, ResolvedSpecifier] = dict(resolved or {})
        self.resolver = resolver or SpecifierResolver()
        # shared by every scope of the file
        self.imported: IdentifierMap = {}
        self.ctx = ExtractContext(
            file_path=file_path, lines=split_lines(source_text), imported=self.imported
        )
        self._handlers: Dict[str, Handler] = {
            "import_statement": self._handle_import,
            "export_statement": self._handle_export,
            "function_declaration": self._handle_function,
            "generator_function_declaration": self._handle_function,
            "function_signature": self._handle_function_signature,
            "class_declaration": self._handle_class,
            "abstract_class_declaration": self._handle_class,
            "interface_declaration": self._handle_interface,
            "type_alias_declaration": self._handle_type_alias,
            "enum_declaration": self._handle_enum,
            "lexical_declaration": self._handle_variables,
            "variable_declaration": self._handle_variables,
            "internal_module": self._handle_namespace,
            "module": self._handle_namespace,
            "ambient_declaration": self._handle_ambient,
            "expression_statement": self._handle_expression,
        }

    def process(self, root: ts.Node) -> List[DeclarationRecord]:
        return self._process_scope(root, self.ctx)

    # --- scopes ----------------------------------------------------------
    def _process_scope(self, body: ts.Node, ctx: ExtractContext) -> List[DeclarationRecord]:
        scope = _Scope(ctx=ctx)
        self._prescan(body, scope)
        for stmt in body.named_children:
            self._process_node(stmt, scope)
        self._apply_local_exports(scope)
        return scope.records

    def _prescan(self, body: ts.Node, scope: _Scope) -> None:
        for stmt in body.named_children:
            decl = stmt
            if stmt.type == "export_statement":
                decl = stmt.child_by_field_name("declaration")
            elif stmt.type == "ambient_declaration":
                decl = next(iter_named(stmt), None)
            if decl is None:
                continue
            if decl.type in _FUNCTION_DECLARATIONS:
                scope.implemented_functions.add(declared_name(decl))
            if decl.type in ("lexical_declaration", "variable_declaration"):
                for declarator in iter_named(decl, "variable_declarator"):
                    scope.declared.add(declared_name(declarator))
            else:
                name = declared_name(decl)
                if name:
                    scope.declared.add(name)

    def _apply_local_exports(self, scope: _Scope) -> None:
        for local, exported in scope.local_exports:
            qualified = scope.ctx.qualify(local)
            for rec in scope.records:
                if rec.name == qualified and not rec.is_re_export:
                    rec.is_exported = True
                    if exported == "default":
                        rec.is_default = True

    def _process_node(
        self,
        node: ts.Node,
        scope: _Scope,
        is_exported: bool = False,
        is_default: bool = False,
    ) -> None:
        if node.type == "ERROR" or (node.has_error and _namespace_of(node) is None):
            logger.warning(
                "TS syntax error; skipping statement",
                path=self.file_path,
                node_type=node.type,
                line=node.start_point[0] + 1,
                raw=(get_node_text(node) or "")[:200],
            )
            return
        handler = self._handlers.get(node.type)
        if handler is None:
            if node.type not in _SILENT:
                self._debug_unknown_node(node)
            return
        try:
            handler(node, scope, is_exported, is_default)
        except Exception as ex:
            logger.warning(
                "TS handler error; skipping declaration",
                path=self.file_path,
                node_type=node.type,
                line=node.start_point[0] + 1,
                error=str(ex),
            )

    def _debug_unknown_node(self, node: ts.Node, *, context: Optional[str] = None) -> None:
        fields = dict(
            path=self.file_path,
            node_type=node.type,
            line=node.start_point[0] + 1,
            raw=(get_node_text(node) or "")[:200],
        )
        if context is not None:
            fields["context"] = context
        logger.debug("Unknown TypeScript node type", **fields)

    def _emit(
        self,
        scope: _Scope,
        record: DeclarationRecord,
        span_node: ts.Node,
        is_default: bool = False,
    ) -> None:
        if is_default:
            record.is_default = True
        record.dependencies = scope.ctx.dependencies(span_node)
        scope.records.append(record)

    def _resolve(self, specifier: str) -> ResolvedSpecifier:
        resolved = self.resolved.get(specifier)
        if resolved is None:
            resolved = self.resolver.resolve(specifier, self.file_path)
            self.resolved[specifier] = resolved
        return resolved

    # --- imports ---------------------------------------------------------
    def _bind(self, name_node: Optional[ts.Node], resolved: ResolvedSpecifier) -> None:
        name = get_node_text(name_node)
        if not name:
            return
        self.imported[name] = ImportBinding(
            specifier=resolved.specifier,
            source=resolved.source,
            is_external=resolved.is_external,
        )

    def _handle_import(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        specifier = _statement_source(node)
        if specifier is None:
            return
        resolved = self._resolve(specifier)

        require = find_child(node, "import_require_clause")
        if require is not None:
            # import x = require("y")
            self._bind(find_child(require, "identifier"), resolved)
            return

        clause = find_child(node, "import_clause")
        if clause is None:
            # side-effect import
            return
        for part in clause.named_children:
            if part.type == "identifier":
                self._bind(part, resolved)
            elif part.type == "namespace_import":
                self._bind(find_child(part, "identifier"), resolved)
            elif part.type == "named_imports":
                for spec in iter_named(part, "import_specifier"):
                    local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                    self._bind(local, resolved)

    # --- exports ---------------------------------------------------------
    def _handle_export(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        default = has_child(node, "default")

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            self._process_node(declaration, scope, is_exported=True, is_default=default)
            return

        source = node.child_by_field_name("source")
        if source is not None:
            self._handle_re_export(node, scope, self._resolve(strip_quotes(get_node_text(source))))
            return

        value = node.child_by_field_name("value")
        if value is not None and default:
            self._handle_default_value(node, value, scope)
            return

        clause = find_child(node, "export_clause")
        if clause is not None:
            self._handle_local_export_clause(node, clause, scope)
            return

        self._debug_unknown_node(node, context="export")

    def _re_export(
        self,
        node: ts.Node,
        scope: _Scope,
        name: str,
        depends_on: str,
        resolved: ResolvedSpecifier,
    ) -> None:
        qualified = scope.ctx.qualify(name)
        if resolved.is_external:
            dep = ExternalDependency(
                package_name=package_name(resolved.specifier),
                import_path=resolved.specifier,
                depends_on=[depends_on],
            )
        else:
            dep = InternalDependency(file_path=resolved.source, depends_on=[depends_on])
        scope.records.append(
            ReExportDeclaration(
                name=qualified,
                re_export_source=resolved.source,
                position=scope.ctx.position(node),
                uri=scope.ctx.uri(qualified),
                type_signature=_WS.sub(" ", get_node_text(node)).strip().rstrip(";"),
                dependencies=[dep],
            )
        )

    def _handle_re_export(self, node: ts.Node, scope: _Scope, resolved: ResolvedSpecifier) -> None:
        clause = find_child(node, "export_clause")
        if clause is not None:
            for spec in iter_named(clause, "export_specifier"):
                original = get_node_text(spec.child_by_field_name("name"))
                alias = spec.child_by_field_name("alias")
                exported = get_node_text(alias) if alias is not None else original
                self._re_export(node, scope, exported, original, resolved)
            return

        ns_export = find_child(node, "namespace_export")
        if ns_export is not None:
            # export * as ns from "x"
            name_node = next(iter_named(ns_export), None)
            self._re_export(node, scope, get_node_text(name_node) or "*", "*", resolved)
            return

        self._re_export(node, scope, "*", "*", resolved)

    def _handle_default_value(self, node: ts.Node, value: ts.Node, scope: _Scope) -> None:
        if value.type in _FUNCTION_EXPRESSIONS:
            name = declared_name(value) or "default"
            record = extract_function(value, scope.ctx, is_exported=True, is_default=True, name=name)
            self._emit(scope, record, value)
            return
        if value.type == "class":
            name = declared_name(value) or "default"
            record = extract_class(value, scope.ctx, is_exported=True, is_default=True, name=name)
            self._emit(scope, record, value)
            return
        if value.type == "identifier" and get_node_text(value) in scope.declared:
            scope.local_exports.append((get_node_text(value), "default"))
            return

        qualified = scope.ctx.qualify("default")
        record = VariableDeclaration(
            name=qualified,
            is_exported=True,
            position=scope.ctx.position(node),
            uri=scope.ctx.uri(qualified),
            type_signature="export default",
        )
        self._emit(scope, record, node, is_default=True)

    def _handle_local_export_clause(self, node: ts.Node, clause: ts.Node, scope: _Scope) -> None:
        for spec in iter_named(clause, "export_specifier"):
            local = get_node_text(spec.child_by_field_name("name"))
            alias = spec.child_by_field_name("alias")
            exported = get_node_text(alias) if alias is not None else local
            if local in scope.declared:
                scope.local_exports.append((local, exported))
                continue
            binding = self.imported.get(local)
            if binding is not None:
                # imported name exported again without a source clause
                self._re_export(node, scope, exported, local, self._resolve(binding.specifier))
                continue
            self._debug_unknown_node(spec, context="export of undeclared name")

    # --- declarations ----------------------------------------------------
    def _handle_function(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        record = extract_function(node, scope.ctx, is_exported=is_exported, is_default=is_default)
        self._emit(scope, record, node)

    def _handle_function_signature(
        self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool
    ) -> None:
        # overloads are represented by their implementation
        if declared_name(node) in scope.implemented_functions:
            return
        self._handle_function(node, scope, is_exported, is_default)

    def _handle_class(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        record = extract_class(node, scope.ctx, is_exported=is_exported, is_default=is_default)
        self._emit(scope, record, node)

    def _handle_interface(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        self._emit(scope, extract_interface(node, scope.ctx, is_exported), node, is_default)

    def _handle_type_alias(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        self._emit(scope, extract_type_alias(node, scope.ctx, is_exported), node, is_default)

    def _handle_enum(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        self._emit(scope, extract_enum(node, scope.ctx, is_exported), node, is_default)

    def _handle_variables(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        for record in extract_variables(node, scope.ctx, is_exported):
            self._emit(scope, record, node)

    def _handle_namespace(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None or name_node.type == "string":
            # `declare module "pkg" {}` augments another module
            self._debug_unknown_node(node, context="module augmentation")
            return
        name = _WS.sub("", get_node_text(name_node))
        qualified = scope.ctx.qualify(name)
        body = node.child_by_field_name("body")
        members = self._process_scope(body, scope.ctx.nested(name)) if body is not None else []
        record = NamespaceDeclaration(
            name=qualified,
            is_exported=is_exported,
            position=scope.ctx.position(node),
            uri=scope.ctx.uri(qualified),
            type_signature=f"namespace {name}",
            members=members,
        )
        self._emit(scope, record, node)

    def _handle_ambient(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        inner = next(iter_named(node), None)
        if inner is None or inner.type not in self._handlers:
            self._debug_unknown_node(node, context="declare")
            return
        self._process_node(inner, scope, is_exported, is_default)

    def _handle_expression(self, node: ts.Node, scope: _Scope, is_exported: bool, is_default: bool) -> None:
        # `namespace N {}` at statement level
        ns = find_child(node, *_NAMESPACES)
        if ns is not None:
            self._handle_namespace(ns, scope, is_exported, is_default)
