"""
One extraction routine per declaration kind.

Each routine takes a tree-sitter declaration node plus an `ExtractContext`
and returns fully populated record(s). Top-level `dependencies` are attached by
the module processor afterwards; class members scan their own span here.
"""

from dataclasses import dataclass, field, replace
from typing import List, Mapping, Optional, Sequence

import tree_sitter as ts

from declscan.dependencies import ImportBinding, find_dependencies
from declscan.models import (
    ClassDeclaration,
    ClassMemberInfo,
    DeclarationKind,
    Dependency,
    EnumDeclaration,
    EnumMemberInfo,
    FunctionDeclaration,
    InterfaceDeclaration,
    MethodSignature,
    Position,
    PropertyInfo,
    TypeAliasDeclaration,
    VariableDeclaration,
)
from declscan.parsers import find_child, get_node_text, has_child, iter_named
from declscan.paths import generate_declaration_uri
from declscan.positions import node_span, span_to_position
from declscan.signatures import (
    class_signature,
    function_parameters,
    function_return_type,
    function_signature,
    infer_expression_type,
    interface_signature,
    is_async,
    is_generator,
    method_signature,
    property_signature,
    render_expression_name,
    render_heritage_name,
    render_type,
    render_type_parameters,
)


@dataclass(frozen=True)
class ExtractContext:
    file_path: str
    lines: Sequence[str]
    prefix: str = ""  # dotted namespace path, empty at file level
    # identifier map of the file, filled while imports are walked
    imported: Mapping[str, ImportBinding] = field(default_factory=dict, compare=False)

    def qualify(self, name: str) -> str:
        return f"{self.prefix}.{name}" if self.prefix else name

    def uri(self, qualified_name: str) -> str:
        return generate_declaration_uri(self.file_path, qualified_name)

    def position(self, node: ts.Node) -> Position:
        return span_to_position(node_span(node), self.lines)

    def dependencies(self, node: ts.Node) -> List[Dependency]:
        return find_dependencies(get_node_text(node), self.imported)

    def nested(self, name: str) -> "ExtractContext":
        return replace(self, prefix=self.qualify(name))


def _type_parameters(node: ts.Node) -> Optional[List[str]]:
    return render_type_parameters(node.child_by_field_name("type_parameters")) or None


def declared_name(node: ts.Node) -> str:
    return get_node_text(node.child_by_field_name("name"))


# ---------------------------------------------------------------------------
# Functions
# ---------------------------------------------------------------------------


def extract_function(
    node: ts.Node,
    ctx: ExtractContext,
    is_exported: bool = False,
    is_default: bool = False,
    name: Optional[str] = None,
) -> FunctionDeclaration:
    """
    Handles function declarations, overload / ambient signatures and
    function expressions used as default exports.
    """
    name = name or declared_name(node) or "default"
    qualified = ctx.qualify(name)
    type_params = _type_parameters(node)
    params = function_parameters(node)
    async_ = is_async(node)
    generator = is_generator(node)
    return_type = function_return_type(node, params)

    return FunctionDeclaration(
        name=qualified,
        is_exported=is_exported,
        is_default=is_default,
        position=ctx.position(node),
        uri=ctx.uri(qualified),
        type_parameters=type_params,
        type_signature=function_signature(
            params, return_type, type_params, async_, generator
        ),
        parameters=params,
        return_type=return_type,
        is_async=async_,
        is_generator=generator,
    )


# ---------------------------------------------------------------------------
# Classes
# ---------------------------------------------------------------------------

_METHOD_NODES = ("method_definition", "method_signature", "abstract_method_signature")


def _member_name(node: ts.Node) -> str:
    return get_node_text(node.child_by_field_name("name"))


def _accessibility(node: ts.Node) -> str:
    mod = find_child(node, "accessibility_modifier")
    return get_node_text(mod) if mod is not None else ""


def _extract_method(node: ts.Node, ctx: ExtractContext, owner: str) -> MethodSignature:
    name = _member_name(node)
    access = _accessibility(node)
    params = function_parameters(node)
    accessor = "get" if has_child(node, "get") else "set" if has_child(node, "set") else None
    async_ = is_async(node)
    generator = has_child(node, "*")
    return_type = function_return_type(node, params)
    return MethodSignature(
        name=name,
        uri=ctx.uri(f"{owner}.{name}"),
        position=ctx.position(node),
        type_signature=method_signature(name, params, return_type, accessor, async_, generator),
        dependencies=ctx.dependencies(node),
        is_static=has_child(node, "static"),
        is_private=access == "private" or name.startswith("#"),
        is_protected=access == "protected",
        is_async=async_,
        is_generator=generator,
        is_abstract=node.type == "abstract_method_signature" or has_child(node, "abstract"),
        accessor=accessor,
        parameters=params,
        return_type=return_type,
        type_parameters=_type_parameters(node),
    )


def _extract_constructor(node: ts.Node, ctx: ExtractContext, owner: str) -> MethodSignature:
    # parameter properties unwrap to their binding through render_parameter
    params = function_parameters(node)
    return MethodSignature(
        name="constructor",
        uri=ctx.uri(f"{owner}.constructor"),
        position=ctx.position(node),
        type_signature=method_signature("constructor", params, None),
        dependencies=ctx.dependencies(node),
        is_private=_accessibility(node) == "private",
        is_protected=_accessibility(node) == "protected",
        parameters=params,
        return_type=None,
    )


def _extract_property(node: ts.Node, ctx: ExtractContext, owner: str) -> PropertyInfo:
    name = _member_name(node)
    access = _accessibility(node)
    type_node = node.child_by_field_name("type")
    value = node.child_by_field_name("value")
    if type_node is not None:
        prop_type = render_type(type_node)
    elif value is not None:
        prop_type = infer_expression_type(value)
    else:
        prop_type = "any"
    readonly = has_child(node, "readonly")
    optional = has_child(node, "?")
    initializer = get_node_text(value) if value is not None else None
    return PropertyInfo(
        name=name,
        uri=ctx.uri(f"{owner}.{name}"),
        position=ctx.position(node),
        type_signature=property_signature(name, prop_type, readonly, optional, initializer),
        dependencies=ctx.dependencies(node),
        type=prop_type,
        is_static=has_child(node, "static"),
        is_private=access == "private" or name.startswith("#"),
        is_protected=access == "protected",
        is_readonly=readonly,
        is_optional=optional,
        initializer=initializer,
    )


def extract_class_members(
    body: Optional[ts.Node], ctx: ExtractContext, owner: str
) -> ClassMemberInfo:
    """
    Members of the class body. *owner* is the qualified class name; member
    URIs read `file#Owner.member`.
    """
    members = ClassMemberInfo()
    if body is None:
        return members

    implemented = {
        _member_name(m) for m in iter_named(body, "method_definition")
    }
    for member in iter_named(body):
        if member.type in _METHOD_NODES:
            name = _member_name(member)
            if name == "constructor":
                # an overload signature never replaces the implementation
                if members.constructor is None or member.type == "method_definition":
                    members.constructor = _extract_constructor(member, ctx, owner)
                continue
            if member.type == "method_signature" and name in implemented:
                continue
            members.methods.append(_extract_method(member, ctx, owner))
        elif member.type in ("public_field_definition", "property_signature"):
            members.properties.append(_extract_property(member, ctx, owner))
    return members


def _extends_name(heritage: Optional[ts.Node]) -> Optional[str]:
    clause = find_child(heritage, "extends_clause") if heritage is not None else None
    if clause is None:
        return None
    value = clause.child_by_field_name("value")
    if value is None:
        value = next(iter_named(clause), None)
    return render_expression_name(value)


def _implements_names(heritage: Optional[ts.Node]) -> List[str]:
    clause = find_child(heritage, "implements_clause") if heritage is not None else None
    return [
        render_heritage_name(t) for t in iter_named(clause) if t.type != "comment"
    ]


def extract_class(
    node: ts.Node,
    ctx: ExtractContext,
    is_exported: bool = False,
    is_default: bool = False,
    name: Optional[str] = None,
) -> ClassDeclaration:
    name = name or declared_name(node) or "default"
    qualified = ctx.qualify(name)
    type_params = _type_parameters(node)
    heritage = find_child(node, "class_heritage")
    extends = _extends_name(heritage)
    implements = _implements_names(heritage)

    return ClassDeclaration(
        name=qualified,
        is_exported=is_exported,
        is_default=is_default,
        position=ctx.position(node),
        uri=ctx.uri(qualified),
        type_parameters=type_params,
        type_signature=class_signature("class", type_params, extends, implements),
        extends=extends,
        implements=implements,
        members=extract_class_members(node.child_by_field_name("body"), ctx, qualified),
        is_abstract=node.type == "abstract_class_declaration",
    )


# ---------------------------------------------------------------------------
# Interfaces, type aliases, enums
# ---------------------------------------------------------------------------


def extract_interface(
    node: ts.Node, ctx: ExtractContext, is_exported: bool = False
) -> InterfaceDeclaration:
    qualified = ctx.qualify(declared_name(node))
    type_params = _type_parameters(node)
    clause = find_child(node, "extends_type_clause")
    supertypes = [
        render_heritage_name(t) for t in iter_named(clause) if t.type != "comment"
    ]
    return InterfaceDeclaration(
        name=qualified,
        is_exported=is_exported,
        position=ctx.position(node),
        uri=ctx.uri(qualified),
        type_parameters=type_params,
        type_signature=interface_signature(type_params, supertypes),
        implements=supertypes,
    )


def extract_type_alias(
    node: ts.Node, ctx: ExtractContext, is_exported: bool = False
) -> TypeAliasDeclaration:
    qualified = ctx.qualify(declared_name(node))
    type_params = _type_parameters(node)
    aliased = render_type(node.child_by_field_name("value"))
    params_str = f"<{', '.join(type_params)}>" if type_params else ""
    return TypeAliasDeclaration(
        name=qualified,
        is_exported=is_exported,
        position=ctx.position(node),
        uri=ctx.uri(qualified),
        type_parameters=type_params,
        type_signature=f"type{params_str} = {aliased}",
    )


def _enum_members(body: Optional[ts.Node]) -> List[EnumMemberInfo]:
    out: List[EnumMemberInfo] = []
    for member in iter_named(body):
        if member.type == "enum_assignment":
            value = member.child_by_field_name("value")
            out.append(
                EnumMemberInfo(
                    name=_member_name(member),
                    initializer=get_node_text(value) if value is not None else None,
                )
            )
        elif member.type in ("property_identifier", "string", "number"):
            out.append(EnumMemberInfo(name=get_node_text(member)))
    return out


def extract_enum(
    node: ts.Node, ctx: ExtractContext, is_exported: bool = False
) -> EnumDeclaration:
    name = declared_name(node)
    qualified = ctx.qualify(name)
    return EnumDeclaration(
        name=qualified,
        is_exported=is_exported,
        position=ctx.position(node),
        uri=ctx.uri(qualified),
        type_signature=f"enum {name}",
        enum_members=_enum_members(node.child_by_field_name("body")),
        is_const=has_child(node, "const"),
    )


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


def variable_kind(node: ts.Node) -> DeclarationKind:
    if node.type == "variable_declaration":
        return DeclarationKind.VAR
    kind = get_node_text(node.child_by_field_name("kind")) or "const"
    return DeclarationKind.LET if kind == "let" else DeclarationKind.CONST


def extract_variables(
    node: ts.Node, ctx: ExtractContext, is_exported: bool = False
) -> List[VariableDeclaration]:
    """
    One record per declarator with a plain identifier target; destructuring
    declarators are skipped.
    """
    kind = variable_kind(node)
    position = ctx.position(node)
    out: List[VariableDeclaration] = []

    for declarator in iter_named(node, "variable_declarator"):
        target = declarator.child_by_field_name("name")
        if target is None or target.type != "identifier":
            continue
        name = get_node_text(target)
        qualified = ctx.qualify(name)

        type_node = declarator.child_by_field_name("type")
        value = declarator.child_by_field_name("value")
        if type_node is not None:
            signature = f"{kind.value} {name}: {render_type(type_node)}"
        elif value is not None:
            signature = f"{kind.value} {name}: {infer_expression_type(value)}"
        else:
            signature = f"{kind.value} {name}"

        out.append(
            VariableDeclaration(
                name=qualified,
                kind=kind,
                is_exported=is_exported,
                position=position,
                uri=ctx.uri(qualified),
                type_signature=signature,
            )
        )
    return out
