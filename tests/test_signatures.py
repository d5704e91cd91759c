import pytest

from declscan.parsers import parse_source
from declscan.signatures import (
    MAPPED_TYPE_PLACEHOLDER,
    format_parameters,
    function_parameters,
    function_return_type,
    render_type,
    render_type_parameters,
)


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #
def _alias_value(type_text: str):
    tree = parse_source(f"type X = {type_text};\n", "t.ts")
    alias = tree.root_node.named_children[0]
    assert alias.type == "type_alias_declaration"
    return alias.child_by_field_name("value")


def _first_statement(source: str, path: str = "t.ts"):
    tree = parse_source(source, path)
    return tree.root_node.named_children[0]


# --------------------------------------------------------------------------- #
# Types
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize(
    "type_text, expected",
    [
        ("string", "string"),
        ("Foo", "Foo"),
        ("ns.Foo", "ns.Foo"),
        ("Array<string>", "Array<string>"),
        ("Map<string, number[]>", "Map<string, number[]>"),
        ("string[]", "string[]"),
        ("[string, number]", "[string, number]"),
        ("string | number | null", "string | number | null"),
        ("A & B", "A & B"),
        ("(a: string, b?: number) => void", "(a: string, b?: number) => void"),
        ("new () => Foo", "new () => Foo"),
        ("abstract new () => Foo", "abstract new () => Foo"),
        ("[name: string, age?: number]", "[name: string, age?: number]"),
        ("T extends string ? \"a\" : never", 'T extends string ? "a" : never'),
        ("T[\"key\"]", 'T["key"]'),
        ("typeof config", "typeof config"),
        ("keyof T", "keyof T"),
        ("(string | number)[]", "(string | number)[]"),
        ("{ a: string; b?: number }", "{ a: string; b?: number }"),
        ("42", "42"),
    ],
)
def test_render_type(type_text, expected):
    assert render_type(_alias_value(type_text)) == expected


def test_mapped_type_renders_placeholder():
    assert render_type(_alias_value("{ [K in keyof T]: T[K] }")) == MAPPED_TYPE_PLACEHOLDER


def test_render_type_never_raises_on_missing_node():
    assert render_type(None) == "any"


def test_type_predicate_return():
    fn = _first_statement("function isStr(x: unknown): x is string { return true; }\n")
    params = function_parameters(fn)
    assert function_return_type(fn, params) == "x is string"


def test_asserts_return():
    fn = _first_statement(
        "function check(x: unknown): asserts x is string { if (!x) throw new Error(); }\n"
    )
    assert function_return_type(fn, function_parameters(fn)) == "asserts x is string"


# --------------------------------------------------------------------------- #
# Type parameters and parameters
# --------------------------------------------------------------------------- #
def test_render_type_parameters():
    fn = _first_statement("function f<T, K extends keyof T = keyof T>() {}\n")
    params = render_type_parameters(fn.child_by_field_name("type_parameters"))
    assert params == ["T", "K extends keyof T = keyof T"]


def test_parameters_rest_default_and_destructured():
    fn = _first_statement(
        "function f(a: string, b?: number, c = 'x', { d }: Opts, [e], ...rest: number[]) {}\n"
    )
    params = function_parameters(fn)

    assert [p.name for p in params] == [
        "a",
        "b",
        "c",
        "_destructured_object",
        "_destructured_array",
        "rest",
    ]
    assert params[1].is_optional is True
    assert params[2].type == "string"
    assert params[2].is_optional is False
    assert params[3].type == "Opts"
    assert params[4].type == "any[]"
    assert params[5].is_rest is True
    assert params[5].type == "number[]"
    assert format_parameters(params[:2]) == "a: string, b?: number"


def test_unannotated_parameter_is_any():
    fn = _first_statement("function f(x) {}\n")
    assert function_parameters(fn)[0].type == "any"


# --------------------------------------------------------------------------- #
# Return type inference
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize(
    "source, expected",
    [
        ("function f() {}\n", "void"),
        ("function f() { return 1; }\n", "number"),
        ("function f(x: boolean) { if (x) { return 'a'; } return 2; }\n", "string | number"),
        ("function f(n: number) { return n; }\n", "number"),
        ("async function f() { return 'a'; }\n", "Promise<string>"),
        ("function f() { const g = () => { return 1; }; }\n", "void"),
        ("function* f() { yield 1; }\n", "any"),
        ("function f(): Promise<void> { return undefined as any; }\n", "Promise<void>"),
    ],
)
def test_function_return_type(source, expected):
    fn = _first_statement(source)
    assert function_return_type(fn, function_parameters(fn)) == expected
