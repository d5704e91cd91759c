"""
Signature reconstruction.

Turns tree-sitter type, parameter and type-parameter nodes into normalized
strings. Nothing in here raises: unknown shapes render as "any" (types) or
"unknown" (heritage names).
"""

import re
from typing import Callable, Dict, List, Optional, Sequence

import tree_sitter as ts

from declscan.logger import logger
from declscan.models import ParameterInfo
from declscan.parsers import find_child, get_node_text, has_child, iter_named

MAPPED_TYPE_PLACEHOLDER = "{ [key: string]: any }"

FUNCTION_NODE_TYPES = (
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
    "function_signature",
)

# Nodes whose bodies own their own `return` statements.
_SCOPE_BOUNDARIES = FUNCTION_NODE_TYPES + ("class", "class_declaration", "class_body")

_WS = re.compile(r"\s+")


def _squash(text: str) -> str:
    return _WS.sub(" ", text).strip()


def _compact(text: str) -> str:
    return _WS.sub("", text)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


def render_type(node: Optional[ts.Node]) -> str:
    """
    Render a type expression node. Falls back to "any" for anything that is
    not specifically modelled.
    """
    if node is None:
        return "any"
    handler = _TYPE_RENDERERS.get(node.type)
    if handler is None:
        logger.debug(
            "Unsupported type node, falling back to any",
            node_type=node.type,
            line=node.start_point[0] + 1,
        )
        return "any"
    try:
        return handler(node) or "any"
    except Exception as ex:
        logger.debug(
            "Type rendering failed, falling back to any",
            node_type=node.type,
            line=node.start_point[0] + 1,
            error=str(ex),
        )
        return "any"


def _first_type(node: ts.Node) -> Optional[ts.Node]:
    return next((c for c in node.named_children if c.type != "comment"), None)


def _render_text(node: ts.Node) -> str:
    return _squash(get_node_text(node))


def _render_qualified(node: ts.Node) -> str:
    return _compact(get_node_text(node))


def _render_annotation(node: ts.Node) -> str:
    # type_annotation / opting_type_annotation: ":" followed by the type
    return render_type(_first_type(node))


def _render_generic(node: ts.Node) -> str:
    name = _render_qualified(node.child_by_field_name("name") or _first_type(node))
    args = node.child_by_field_name("type_arguments") or find_child(
        node, "type_arguments"
    )
    rendered = render_type_arguments(args)
    return f"{name}<{', '.join(rendered)}>" if rendered else name


def render_type_arguments(node: Optional[ts.Node]) -> List[str]:
    return [render_type(c) for c in iter_named(node) if c.type != "comment"]


def _render_array(node: ts.Node) -> str:
    return f"{render_type(_first_type(node))}[]"


def _render_tuple(node: ts.Node) -> str:
    members = [render_type(c) for c in node.named_children if c.type != "comment"]
    return f"[{', '.join(members)}]"


def _render_optional(node: ts.Node) -> str:
    return f"{render_type(_first_type(node))}?"


def _render_rest(node: ts.Node) -> str:
    return f"...{render_type(_first_type(node))}"


def _render_tuple_member(node: ts.Node) -> str:
    # named tuple members (`[name: string, age?: number]`)
    name_node = node.child_by_field_name("name") or node.child_by_field_name("pattern")
    name = get_node_text(name_node) or "_"
    optional = "?" if node.type == "optional_parameter" or has_child(node, "?") else ""
    type_node = node.child_by_field_name("type") or find_child(node, "type_annotation")
    return f"{name}{optional}: {render_type(type_node)}"


def _collect_operands(node: ts.Node, node_type: str) -> List[str]:
    out: List[str] = []
    for ch in node.named_children:
        if ch.type == "comment":
            continue
        if ch.type == node_type:
            out.extend(_collect_operands(ch, node_type))
        else:
            out.append(render_type(ch))
    return out


def _render_union(node: ts.Node) -> str:
    return " | ".join(_collect_operands(node, "union_type"))


def _render_intersection(node: ts.Node) -> str:
    return " & ".join(_collect_operands(node, "intersection_type"))


def _type_params_prefix(node: ts.Node) -> str:
    params = render_type_parameters(node.child_by_field_name("type_parameters"))
    return f"<{', '.join(params)}>" if params else ""


def _render_function_type(node: ts.Node) -> str:
    params = render_parameters(node.child_by_field_name("parameters"))
    ret = node.child_by_field_name("return_type") or node.child_by_field_name("type")
    return f"{_type_params_prefix(node)}({format_parameters(params)}) => {render_type(ret)}"


def _render_constructor_type(node: ts.Node) -> str:
    prefix = "abstract new " if has_child(node, "abstract") else "new "
    return f"{prefix}{_render_function_type(node)}"


def _render_conditional(node: ts.Node) -> str:
    check = render_type(node.child_by_field_name("left"))
    ext = render_type(node.child_by_field_name("right"))
    true_ty = render_type(node.child_by_field_name("consequence"))
    false_ty = render_type(node.child_by_field_name("alternative"))
    return f"{check} extends {ext} ? {true_ty} : {false_ty}"


def _render_lookup(node: ts.Node) -> str:
    parts = [c for c in node.named_children if c.type != "comment"]
    if len(parts) < 2:
        return "any"
    return f"{render_type(parts[0])}[{render_type(parts[1])}]"


def _render_type_query(node: ts.Node) -> str:
    target = _first_type(node)
    return f"typeof {_compact(get_node_text(target))}" if target else "any"


def _render_type_predicate(node: ts.Node) -> str:
    name = get_node_text(node.child_by_field_name("name")) or "this"
    return f"{name} is {render_type(node.child_by_field_name('type'))}"


def _render_asserts(node: ts.Node) -> str:
    target = _first_type(node)
    if target is None:
        return "asserts"
    if target.type == "type_predicate":
        return f"asserts {_render_type_predicate(target)}"
    return f"asserts {get_node_text(target)}"


def _render_literal(node: ts.Node) -> str:
    lit = node.named_children[0] if node.named_children else node
    if lit.type == "string":
        return f'"{get_node_text(lit)[1:-1]}"'
    return _render_text(lit)


def _render_parenthesized(node: ts.Node) -> str:
    return f"({render_type(_first_type(node))})"


def _render_keyof(node: ts.Node) -> str:
    return f"keyof {render_type(_first_type(node))}"


def _render_readonly(node: ts.Node) -> str:
    return f"readonly {render_type(_first_type(node))}"


def _render_infer(node: ts.Node) -> str:
    named = [c for c in node.named_children if c.type != "comment"]
    if not named:
        return "any"
    out = f"infer {get_node_text(named[0])}"
    if len(named) > 1:
        out += f" extends {render_type(named[1])}"
    return out


def _render_mapped(node: ts.Node) -> str:
    return MAPPED_TYPE_PLACEHOLDER


def _member_name(node: ts.Node) -> str:
    name_node = node.child_by_field_name("name")
    return get_node_text(name_node) if name_node is not None else ""


def _render_object_member(node: ts.Node) -> Optional[str]:
    if node.type == "property_signature":
        readonly = "readonly " if has_child(node, "readonly") else ""
        optional = "?" if has_child(node, "?") else ""
        type_node = node.child_by_field_name("type")
        return f"{readonly}{_member_name(node)}{optional}: {render_type(type_node)}"
    if node.type in ("method_signature", "call_signature", "construct_signature"):
        params = render_parameters(node.child_by_field_name("parameters"))
        ret = render_type(node.child_by_field_name("return_type"))
        head = {
            "method_signature": _member_name(node)
            + ("?" if has_child(node, "?") else ""),
            "call_signature": "",
            "construct_signature": "new ",
        }[node.type]
        return f"{head}{_type_params_prefix(node)}({format_parameters(params)}): {ret}"
    if node.type == "index_signature":
        key = get_node_text(node.child_by_field_name("name")) or "key"
        index_type = render_type(node.child_by_field_name("index_type"))
        value_type = render_type(node.child_by_field_name("type"))
        return f"[{key}: {index_type}]: {value_type}"
    return None


def _render_object(node: ts.Node) -> str:
    members = [c for c in node.named_children if c.type != "comment"]
    for m in members:
        if m.type == "index_signature" and has_child(m, "mapped_type_clause"):
            return MAPPED_TYPE_PLACEHOLDER
    rendered = [r for r in (_render_object_member(m) for m in members) if r]
    if not rendered:
        return "{}"
    return f"{{ {'; '.join(rendered)} }}"


_TYPE_RENDERERS: Dict[str, Callable[[ts.Node], str]] = {
    "predefined_type": _render_text,
    "type_identifier": _render_text,
    "identifier": _render_text,
    "this_type": lambda n: "this",
    "this": lambda n: "this",
    "existential_type": lambda n: "*",
    "nested_type_identifier": _render_qualified,
    "generic_type": _render_generic,
    "type_annotation": _render_annotation,
    "opting_type_annotation": _render_annotation,
    "omitting_type_annotation": _render_annotation,
    "adding_type_annotation": _render_annotation,
    "type_predicate_annotation": _render_annotation,
    "asserts_annotation": _render_annotation,
    "array_type": _render_array,
    "tuple_type": _render_tuple,
    "optional_type": _render_optional,
    "rest_type": _render_rest,
    "required_parameter": _render_tuple_member,
    "optional_parameter": _render_tuple_member,
    "union_type": _render_union,
    "intersection_type": _render_intersection,
    "function_type": _render_function_type,
    "constructor_type": _render_constructor_type,
    "conditional_type": _render_conditional,
    "lookup_type": _render_lookup,
    "type_query": _render_type_query,
    "type_predicate": _render_type_predicate,
    "asserts": _render_asserts,
    "literal_type": _render_literal,
    "template_literal_type": _render_text,
    "parenthesized_type": _render_parenthesized,
    "index_type_query": _render_keyof,
    "readonly_type": _render_readonly,
    "infer_type": _render_infer,
    "object_type": _render_object,
    "interface_body": _render_object,
    "mapped_type_clause": _render_mapped,
}


# ---------------------------------------------------------------------------
# Type parameters
# ---------------------------------------------------------------------------


def render_type_parameters(node: Optional[ts.Node]) -> List[str]:
    """Render a `type_parameters` node as ["T", "U extends X = Y", ...]."""
    out: List[str] = []
    for param in iter_named(node, "type_parameter"):
        name = get_node_text(param.child_by_field_name("name")) or "T"
        text = f"const {name}" if has_child(param, "const") else name
        constraint = param.child_by_field_name("constraint")
        if constraint is not None:
            text += f" extends {render_type(_first_type(constraint))}"
        default = param.child_by_field_name("value")
        if default is not None:
            text += f" = {render_type(_first_type(default))}"
        out.append(text)
    return out


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

_PARAMETER_TYPES = ("required_parameter", "optional_parameter")


def render_parameter(node: ts.Node) -> ParameterInfo:
    """
    Normalize one formal parameter. Rest parameters keep their binding name,
    default values unwrap to the bound name, destructuring patterns collapse
    to a synthetic name.
    """
    pattern = node.child_by_field_name("pattern")
    type_node = node.child_by_field_name("type")
    value = node.child_by_field_name("value")
    is_optional = node.type == "optional_parameter"
    is_rest = False

    binding = pattern if pattern is not None else node
    if binding.type == "rest_pattern":
        is_rest = True
        binding = _first_type(binding) or binding

    approx_type = "any"
    if binding.type in ("identifier", "this", "shorthand_property_identifier_pattern"):
        name = get_node_text(binding)
    elif binding.type == "object_pattern":
        name, approx_type = "_destructured_object", "object"
    elif binding.type == "array_pattern":
        name, approx_type = "_destructured_array", "any[]"
    else:
        name = get_node_text(binding) or "_complex_param"

    if type_node is not None:
        type_str = render_type(type_node)
    elif value is not None and approx_type == "any":
        type_str = infer_expression_type(value)
    elif is_rest and approx_type == "any":
        type_str = "any[]"
    else:
        type_str = approx_type

    return ParameterInfo(
        name=name, type=type_str, is_optional=is_optional, is_rest=is_rest
    )


def render_parameters(node: Optional[ts.Node]) -> List[ParameterInfo]:
    if node is None:
        return []
    if node.type == "identifier":
        # single unparenthesized arrow parameter
        return [ParameterInfo(name=get_node_text(node))]
    return [render_parameter(p) for p in iter_named(node, *_PARAMETER_TYPES)]


def function_parameters(fn: ts.Node) -> List[ParameterInfo]:
    params = fn.child_by_field_name("parameters")
    if params is None:
        params = fn.child_by_field_name("parameter")
    return render_parameters(params)


def format_parameters(params: Sequence[ParameterInfo]) -> str:
    return ", ".join(
        f"{'...' if p.is_rest else ''}{p.name}{'?' if p.is_optional else ''}: {p.type}"
        for p in params
    )


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


def render_expression_name(node: Optional[ts.Node]) -> str:
    """
    Restricted expression renderer for heritage clauses: identifiers and
    dotted member access only.
    """
    if node is None:
        return "unknown"
    if node.type in ("identifier", "property_identifier", "type_identifier"):
        return get_node_text(node)
    if node.type == "member_expression":
        obj = render_expression_name(node.child_by_field_name("object"))
        prop = node.child_by_field_name("property")
        if obj == "unknown" or prop is None:
            return "unknown"
        return f"{obj}.{get_node_text(prop)}"
    return "unknown"


def render_heritage_name(node: Optional[ts.Node]) -> str:
    """Name of a type used in implements/extends lists, without arguments."""
    if node is None:
        return "unknown"
    if node.type in ("type_identifier", "identifier"):
        return get_node_text(node)
    if node.type in ("nested_type_identifier", "nested_identifier"):
        return _compact(get_node_text(node))
    if node.type == "generic_type":
        return render_heritage_name(node.child_by_field_name("name"))
    return render_expression_name(node)


def is_function_node(node: Optional[ts.Node]) -> bool:
    return node is not None and node.type in FUNCTION_NODE_TYPES


def is_async(node: ts.Node) -> bool:
    return has_child(node, "async")


def is_generator(node: ts.Node) -> bool:
    return "generator" in node.type or has_child(node, "*")


def infer_expression_type(node: Optional[ts.Node]) -> str:
    """Coarse type of an initializer expression."""
    if node is None:
        return "any"
    t = node.type
    if t in ("string", "template_string"):
        return "string"
    if t == "number":
        return "number"
    if t in ("true", "false"):
        return "boolean"
    if t == "null":
        return "null"
    if t == "array":
        return "any[]"
    if t == "object":
        return "object"
    if is_function_node(node):
        return arrow_type_signature(node)
    return "any"


def arrow_type_signature(fn: ts.Node) -> str:
    params = function_parameters(fn)
    return f"({format_parameters(params)}) => {function_return_type(fn, params)}"


def function_return_type(fn: ts.Node, params: Sequence[ParameterInfo]) -> str:
    """Annotated return type, or one inferred from the function body."""
    annotation = fn.child_by_field_name("return_type")
    if annotation is not None:
        return render_type(annotation)
    if is_generator(fn) or fn.child_by_field_name("body") is None:
        return "any"
    inferred = infer_return_type(fn, params)
    if is_async(fn) and not inferred.startswith("Promise<"):
        return f"Promise<{inferred}>"
    return inferred


def _return_expression_type(expr: ts.Node, params: Sequence[ParameterInfo]) -> str:
    if expr.type == "identifier":
        name = get_node_text(expr)
        for p in params:
            if p.name == name:
                return p.type
    return infer_expression_type(expr)


def _collect_returns(node: ts.Node, found: List[Optional[ts.Node]]) -> None:
    for ch in node.named_children:
        if ch.type == "return_statement":
            found.append(_first_type(ch))
            continue
        if ch.type in _SCOPE_BOUNDARIES:
            continue
        _collect_returns(ch, found)


def infer_return_type(fn: ts.Node, params: Sequence[ParameterInfo]) -> str:
    """
    Union of the types of every `return` in the body. Nested functions and
    classes are not searched. No returns at all means "void".
    """
    body = fn.child_by_field_name("body")
    if body is None:
        return "void"
    if body.type != "statement_block":
        # arrow function with an expression body
        return _return_expression_type(body, params)

    found: List[Optional[ts.Node]] = []
    _collect_returns(body, found)
    if not found:
        return "void"

    types: List[str] = []
    for expr in found:
        types.append("void" if expr is None else _return_expression_type(expr, params))
    unique = list(dict.fromkeys(types))
    return " | ".join(unique)


# ---------------------------------------------------------------------------
# Signature assembly
# ---------------------------------------------------------------------------


def _type_params_str(type_parameters: Optional[Sequence[str]]) -> str:
    return f"<{', '.join(type_parameters)}>" if type_parameters else ""


def function_signature(
    parameters: Sequence[ParameterInfo],
    return_type: str,
    type_parameters: Optional[Sequence[str]] = None,
    is_async: bool = False,
    is_generator: bool = False,
) -> str:
    return (
        f"{'async ' if is_async else ''}function{'*' if is_generator else ''}"
        f"{_type_params_str(type_parameters)}({format_parameters(parameters)}): {return_type}"
    )


def method_signature(
    name: str,
    parameters: Sequence[ParameterInfo],
    return_type: Optional[str],
    accessor: Optional[str] = None,
    is_async: bool = False,
    is_generator: bool = False,
) -> str:
    """
    Member form of a signature: `constructor(a: T)`, `get x(): T`,
    `set x(v: T)` or `async *name(a: T): R`.
    """
    if name == "constructor":
        return f"constructor({format_parameters(parameters)})"
    if accessor == "get":
        return f"get {name}(): {return_type}"
    if accessor == "set":
        return f"set {name}({format_parameters(parameters[:1])})"
    return (
        f"{'async ' if is_async else ''}{'*' if is_generator else ''}"
        f"{name}({format_parameters(parameters)}): {return_type}"
    )


def property_signature(
    name: str,
    prop_type: str,
    is_readonly: bool = False,
    is_optional: bool = False,
    initializer: Optional[str] = None,
) -> str:
    sig = f"{'readonly ' if is_readonly else ''}{name}{'?' if is_optional else ''}: {prop_type}"
    if initializer:
        sig += f" = {initializer}"
    return sig


def class_signature(
    keyword: str,
    type_parameters: Optional[Sequence[str]] = None,
    extends: Optional[str] = None,
    implements: Optional[Sequence[str]] = None,
) -> str:
    sig = f"{keyword}{_type_params_str(type_parameters)}"
    if extends:
        sig += f" extends {extends}"
    if implements:
        sig += f" implements {', '.join(implements)}"
    return sig


def interface_signature(
    type_parameters: Optional[Sequence[str]] = None,
    supertypes: Optional[Sequence[str]] = None,
) -> str:
    sig = f"interface{_type_params_str(type_parameters)}"
    if supertypes:
        sig += f" extends {', '.join(supertypes)}"
    return sig
